# onboarding_app/audit.py
import logging

from django.db import DatabaseError, transaction

from .models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    CLIENT_CREATED = "Client created"
    CLIENT_UPDATED = "Client details updated"
    TASK_UPDATED = "Task updated"
    TASK_COMPLETED = "Task marked as completed"
    TASK_ASSIGNED = "Task assigned"
    STAGE_STARTED = "Stage started"
    STAGE_COMPLETED = "Stage completed"
    STAGE_UPDATED = "Stage updated"
    DOCUMENT_UPLOADED = "Document uploaded"


def log_audit(client_id, action, actor_role, details=None):
    """
    Append an entry to the client's audit trail.

    Auditing never blocks the action being audited: a failed insert is
    logged and dropped.
    """
    full_action = f"{action}: {details}" if details else action
    try:
        # Savepoint so a failed insert does not poison the caller's transaction
        with transaction.atomic():
            entry = AuditLog.objects.create(client_id=client_id, action=full_action, actor_role=actor_role)
    except DatabaseError:
        logger.exception("Audit write failed for client %s (%s)", client_id, full_action)
        return None
    logger.info("[AUDIT] %s | %s | client %s", actor_role, full_action, client_id)
    return entry
