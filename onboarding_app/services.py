# onboarding_app/services.py
"""
Data access around the progress engine.

Queries return plain rows (``.values()``) which are handed to the pure rules in
``progress``; writes happen here, inside transactions, keyed by primary key.
"""
import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from . import progress
from .audit import AuditAction, log_audit
from .models import ActorRole, Client, Document, Stage, Subtask, Task
from .progress import COMPLETED, GateDecision

logger = logging.getLogger(__name__)


class OnboardingError(Exception):
    """Base class for errors the API reports back to the caller."""
    status_code = 400


class InvalidStatus(OnboardingError):
    pass


class InvalidParameter(OnboardingError):
    pass


class DuplicateClient(OnboardingError):
    status_code = 409


class DocumentUploadRequired(OnboardingError):
    status_code = 409

    def __init__(self, message="A document must be uploaded before this item can be completed"):
        super().__init__(message)


def _stage_rows(client_id):
    return Stage.objects.filter(client_id=client_id).values(
        'client_stage_id', 'stage_name', 'order_number', 'status', 'document_required', 'document_mode'
    )


def _subtask_rows(client_id):
    return Subtask.objects.filter(stage__client_id=client_id).annotate(
        client_stage_id=F('stage_id')
    ).values('subtask_id', 'client_stage_id', 'status')


def fetch_client_stages(client_id):
    return progress.attach_subtasks(_stage_rows(client_id), _subtask_rows(client_id))


def fetch_stage(stage_id):
    stage = Stage.objects.filter(pk=stage_id).values(
        'client_stage_id', 'stage_name', 'order_number', 'status', 'document_required', 'document_mode'
    )
    subtasks = Subtask.objects.filter(stage_id=stage_id).annotate(
        client_stage_id=F('stage_id')
    ).values('subtask_id', 'client_stage_id', 'status')
    stages = progress.attach_subtasks(stage, subtasks)
    return stages[0] if stages else None


def client_progress(client_id):
    return progress.calculate_progress(fetch_client_stages(client_id))


def clients_progress(client_ids):
    """Live progress for many clients with two queries instead of two per client."""
    client_ids = list(client_ids)
    stage_rows = Stage.objects.filter(client_id__in=client_ids).values(
        'client_id', 'client_stage_id', 'stage_name', 'order_number', 'status', 'document_required',
        'document_mode'
    )
    subtask_rows = Subtask.objects.filter(stage__client_id__in=client_ids).annotate(
        client_stage_id=F('stage_id'), client_id=F('stage__client_id')
    ).values('subtask_id', 'client_stage_id', 'client_id', 'status')

    stages_by_client = {client_id: [] for client_id in client_ids}
    subtasks_by_client = {client_id: [] for client_id in client_ids}
    for row in stage_rows:
        stages_by_client[row['client_id']].append(row)
    for row in subtask_rows:
        subtasks_by_client[row['client_id']].append(row)
    return {
        client_id: progress.calculate_progress(
            progress.attach_subtasks(rows, subtasks_by_client[client_id])
        )
        for client_id, rows in stages_by_client.items()
    }


def recalculate_client_progress(client_id, actor_role=ActorRole.SYSTEM):
    """
    Persist the live rollup: stage statuses first, then the client's cached
    progress, current stage and status.
    """
    with transaction.atomic():
        stages = fetch_client_stages(client_id)
        for stage in stages:
            rolled = progress.rollup_stage_status(stage)
            if rolled == stage.status:
                continue
            Stage.objects.filter(pk=stage.stage_id).update(status=rolled, updated_at=timezone.now())
            logger.info("Stage %s of client %s: %s -> %s", stage.stage_id, client_id, stage.status, rolled)
            if rolled == COMPLETED:
                log_audit(client_id, AuditAction.STAGE_COMPLETED, actor_role, stage.stage_name)
            elif stage.status == progress.NOT_STARTED:
                log_audit(client_id, AuditAction.STAGE_STARTED, actor_role, stage.stage_name)

        summary = progress.calculate_progress(stages)
        next_stage = summary.next_stage
        Client.objects.filter(pk=client_id).update(
            progress=summary.progress_percent,
            stage_id=next_stage.stage_id if next_stage else None,
            client_status=summary.client_status,
            updated_at=timezone.now(),
        )

    logger.info(
        "Client %s progress recalculated: %s/%s stages, %s%%",
        client_id, summary.completed_stages, summary.total_stages, summary.progress_percent,
    )
    return summary


def _require_known_status(value, allowed):
    if not progress.is_known_status(value):
        raise InvalidStatus(f"Unknown status: {value!r}")
    status = progress.normalize_status(value)
    if status not in allowed:
        raise InvalidStatus(f"Status {status!r} is not allowed here")
    return status


def _acknowledged_document(document_id, **owner):
    if document_id is None:
        return None
    return Document.objects.filter(pk=document_id, **owner).first()


def update_task_status(task, new_status, actor_role, document_id=None):
    """
    Change a task's status, honouring the document requirement.

    Completing or approving a task that requires a document needs
    ``document_id`` pointing at an upload recorded for that same task; without
    it nothing is written and DocumentUploadRequired is raised.
    """
    status = _require_known_status(new_status, [c for c, _ in Task._meta.get_field('status').choices])

    with transaction.atomic():
        # Gate against the locked row, not the caller's copy
        current = Task.objects.select_for_update().get(pk=task.pk)
        decision = progress.gate_status_change(current, status)
        if decision is GateDecision.REQUIRE_DOCUMENT_UPLOAD:
            if _acknowledged_document(document_id, task_id=current.pk) is None:
                logger.info("Task %s move to %s held until a document is uploaded", current.pk, status)
                raise DocumentUploadRequired()

        Task.objects.filter(pk=current.pk).update(status=status, updated_at=timezone.now())
        if status in progress.TERMINAL_TASK_STATUSES:
            action = AuditAction.TASK_COMPLETED
        else:
            action = AuditAction.TASK_UPDATED
        log_audit(current.client_id, action, actor_role, f"{current.task_title} -> {status}")
        recalculate_client_progress(current.client_id, actor_role)

    logger.info("Task %s status %s -> %s", current.pk, current.status, status)
    task.status = status
    task.document_required = current.document_required
    return task


def update_subtask_status(subtask, new_status, actor_role, document_id=None):
    status = _require_known_status(new_status, progress.STATUSES)

    with transaction.atomic():
        # Lock the whole checklist: the stage-mode gate depends on the siblings
        siblings = list(Subtask.objects.select_for_update().filter(stage_id=subtask.stage_id))
        previous = next((s.status for s in siblings if s.pk == subtask.pk), subtask.status)
        stage = fetch_stage(subtask.stage_id)
        decision = progress.gate_subtask_completion(stage, subtask.pk, status)
        if decision is GateDecision.REQUIRE_DOCUMENT_UPLOAD:
            if _acknowledged_document(document_id, subtask_id=subtask.pk) is None:
                logger.info("Subtask %s completion held until a document is uploaded", subtask.pk)
                raise DocumentUploadRequired()

        Subtask.objects.filter(pk=subtask.pk).update(status=status, updated_at=timezone.now())
        summary = recalculate_client_progress(subtask.stage.client_id, actor_role)

    logger.info("Subtask %s status %s -> %s", subtask.pk, previous, status)
    subtask.status = status
    return summary


def _ensure_unique_client_name(name, exclude_pk=None):
    clash = Client.objects.filter(client_name__iexact=name.strip())
    if exclude_pk is not None:
        clash = clash.exclude(pk=exclude_pk)
    existing = clash.first()
    if existing is not None:
        raise DuplicateClient(f'A client named "{existing.client_name}" already exists')


def create_client(actor_role, **fields):
    _ensure_unique_client_name(fields['client_name'])
    client = Client.objects.create(**fields)
    log_audit(client.pk, AuditAction.CLIENT_CREATED, actor_role, client.client_name)
    logger.info("Client %s created: %s", client.pk, client.client_name)
    return client


def update_client(client, actor_role, **fields):
    """Apply changed fields and audit which ones changed."""
    if 'client_name' in fields:
        _ensure_unique_client_name(fields['client_name'], exclude_pk=client.pk)
    changed = sorted(name for name, value in fields.items() if getattr(client, name) != value)
    if not changed:
        return client
    for name in changed:
        setattr(client, name, fields[name])
    client.save(update_fields=changed + ['updated_at'])
    log_audit(client.pk, AuditAction.CLIENT_UPDATED, actor_role, ", ".join(changed))
    return client


def archive_client(client, actor_role, archive=True):
    client.archived_at = timezone.now() if archive else None
    client.save(update_fields=['archived_at', 'updated_at'])
    log_audit(client.pk, AuditAction.CLIENT_UPDATED, actor_role, "archived" if archive else "restored")
    logger.info("Client %s %s", client.pk, "archived" if archive else "restored")
    return client


def save_client_stages(client, stages, actor_role):
    """
    Replace a client's stage plan with ``stages`` and recalculate progress.

    Each entry carries ``stage_name``, ``order_number``, the document settings
    and an optional ``subtasks`` list. Stage statuses are derived from the
    submitted subtasks, the same way a recalculation would.
    """
    orders = [entry['order_number'] for entry in stages]
    if len(orders) != len(set(orders)):
        raise OnboardingError("Stage order numbers must be unique")

    with transaction.atomic():
        Stage.objects.filter(client=client).delete()
        for entry in sorted(stages, key=lambda e: e['order_number']):
            subtasks = entry.get('subtasks') or []
            record = progress.StageRecord(
                stage_id=None,
                status=progress.normalize_status(entry.get('status')),
                subtasks=tuple(
                    progress.SubtaskRecord(stage_id=None, status=progress.normalize_status(sub.get('status')))
                    for sub in subtasks
                ),
            )
            stage = Stage.objects.create(
                client=client,
                stage_name=entry['stage_name'],
                order_number=entry['order_number'],
                status=progress.rollup_stage_status(record),
                document_required=entry.get('document_required', False),
                document_mode=entry.get('document_mode'),
            )
            Subtask.objects.bulk_create([
                Subtask(
                    stage=stage,
                    subtask_title=(sub.get('subtask_title') or '').strip(),
                    order_number=position,
                    status=progress.normalize_status(sub.get('status')),
                )
                for position, sub in enumerate(subtasks, start=1)
            ])
        log_audit(client.pk, AuditAction.STAGE_UPDATED, actor_role, f"{len(stages)} stages")
        summary = recalculate_client_progress(client.pk, actor_role)

    logger.info("Client %s stage plan saved with %s stages", client.pk, len(stages))
    return summary


def register_document(client, file_name, actor_role, task=None, subtask=None, folder_path='', blob_url=''):
    """Record that a file has been stored for a client (optionally for a task or subtask)."""
    document = Document.objects.create(
        client=client,
        task=task,
        subtask=subtask,
        file_name=file_name,
        folder_path=folder_path,
        blob_url=blob_url,
        uploaded_by_role=actor_role,
    )
    log_audit(client.pk, AuditAction.DOCUMENT_UPLOADED, actor_role, file_name)
    return document


def assign_task(client, actor_role, **fields):
    next_order = (Task.objects.filter(client=client).order_by('-order_number')
                  .values_list('order_number', flat=True).first() or 0) + 1
    task = Task.objects.create(client=client, created_by_role=actor_role, order_number=next_order, **fields)
    log_audit(client.pk, AuditAction.TASK_ASSIGNED, actor_role,
              f"{task.task_title} -> {task.assigned_to_role}")
    return task


def task_rows(ctx, client_id=None, status=None):
    queryset = ctx.scope_tasks(Task.objects.select_related('client'))
    if client_id is not None:
        queryset = queryset.filter(client_id=client_id)
    if status:
        queryset = queryset.filter(status=progress.normalize_status(status))
    return queryset


def dashboard_summary(ctx, today=None):
    clients = ctx.scope_clients(Client.objects.filter(archived_at__isnull=True))
    tasks = list(ctx.scope_tasks(Task.objects.all()).values('task_id', 'status', 'due_date'))
    return {
        'total_clients': clients.count(),
        'active_onboarding': clients.filter(client_status=progress.IN_PROGRESS).count(),
        'tasks_in_progress': sum(1 for t in tasks if t['status'] == progress.IN_PROGRESS),
        'overdue_tasks': sum(1 for t in tasks if progress.is_overdue(t['due_date'], t['status'], today=today)),
    }
