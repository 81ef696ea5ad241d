# onboarding_app/models.py
from django.conf import settings
from django.db import models

from .progress import DOCUMENT_MODE_STAGE, DOCUMENT_MODE_SUBTASK


class Status(models.TextChoices):
    NOT_STARTED = 'Not Started', 'Not Started'
    IN_PROGRESS = 'In Progress', 'In Progress'
    COMPLETED = 'Completed', 'Completed'


class TaskStatus(models.TextChoices):
    NOT_STARTED = 'Not Started', 'Not Started'
    IN_PROGRESS = 'In Progress', 'In Progress'
    COMPLETED = 'Completed', 'Completed'
    APPROVED = 'Approved', 'Approved'


class AssigneeRole(models.TextChoices):
    CLIENT = 'CLIENT', 'Client'
    CPA = 'CPA', 'CPA'
    SERVICE_CENTER = 'SERVICE_CENTER', 'Service Center'


class ActorRole(models.TextChoices):
    ADMIN = 'ADMIN', 'Admin'
    CLIENT = 'CLIENT', 'Client'
    CPA = 'CPA', 'CPA'
    SERVICE_CENTER = 'SERVICE_CENTER', 'Service Center'
    SYSTEM = 'SYSTEM', 'System'


class DocumentMode(models.TextChoices):
    STAGE = DOCUMENT_MODE_STAGE, 'One document per stage'
    SUBTASK = DOCUMENT_MODE_SUBTASK, 'One document per subtask'


class DocumentStatus(models.TextChoices):
    UPLOADED = 'Uploaded', 'Uploaded'
    REVIEWED = 'Reviewed', 'Reviewed'
    APPROVED = 'Approved', 'Approved'
    NEEDS_FIX = 'Needs Fix', 'Needs Fix'


class Client(models.Model):
    # progress, client_status and stage are caches rewritten on recalculation
    client_id = models.AutoField(primary_key=True)
    client_name = models.CharField(max_length=255)
    code = models.CharField(max_length=64, blank=True, default='')
    client_status = models.CharField(max_length=32, choices=Status.choices, default=Status.NOT_STARTED)
    progress = models.PositiveSmallIntegerField(default=0)
    stage = models.ForeignKey(
        'Stage', on_delete=models.SET_NULL, null=True, blank=True, related_name='current_for_clients'
    )
    cpa = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='cpa_clients'
    )
    service_center = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='service_center_clients'
    )
    primary_contact_name = models.CharField(max_length=255, blank=True, default='')
    primary_contact_email = models.EmailField(blank=True, default='')
    primary_contact_phone = models.CharField(max_length=64, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['client_name']

    def __str__(self):
        return self.client_name


class Stage(models.Model):
    client_stage_id = models.AutoField(primary_key=True)
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='stages')
    stage_name = models.CharField(max_length=255)
    order_number = models.PositiveIntegerField()
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NOT_STARTED)
    document_required = models.BooleanField(default=False)
    document_mode = models.CharField(max_length=16, choices=DocumentMode.choices, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'client_stages'
        ordering = ['order_number']
        constraints = [
            models.UniqueConstraint(fields=['client', 'order_number'], name='unique_stage_order_per_client'),
        ]

    def __str__(self):
        return f"{self.order_number}. {self.stage_name}"


class Subtask(models.Model):
    subtask_id = models.AutoField(primary_key=True)
    stage = models.ForeignKey(Stage, on_delete=models.CASCADE, related_name='subtasks')
    subtask_title = models.CharField(max_length=255)
    order_number = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.NOT_STARTED)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'client_stage_subtasks'
        ordering = ['order_number']


class Task(models.Model):
    task_id = models.AutoField(primary_key=True)
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='tasks')
    task_title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default='')
    assigned_to_role = models.CharField(max_length=32, choices=AssigneeRole.choices, default=AssigneeRole.CLIENT)
    created_by_role = models.CharField(max_length=32, choices=ActorRole.choices, default=ActorRole.ADMIN)
    status = models.CharField(max_length=32, choices=TaskStatus.choices, default=TaskStatus.NOT_STARTED)
    due_date = models.DateTimeField(null=True, blank=True)
    document_required = models.BooleanField(default=True)
    order_number = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'onboarding_tasks'
        ordering = ['order_number', 'created_at']


class Document(models.Model):
    # The file itself lives in blob storage; this row is the upload acknowledgment
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='documents')
    task = models.ForeignKey(Task, on_delete=models.SET_NULL, null=True, blank=True, related_name='documents')
    subtask = models.ForeignKey(Subtask, on_delete=models.SET_NULL, null=True, blank=True, related_name='documents')
    file_name = models.CharField(max_length=255)
    folder_path = models.CharField(max_length=512, blank=True, default='')
    blob_url = models.URLField(max_length=1024, blank=True, default='')
    uploaded_by_role = models.CharField(max_length=32, choices=ActorRole.choices)
    status = models.CharField(max_length=32, choices=DocumentStatus.choices, default=DocumentStatus.UPLOADED)
    uploaded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-uploaded_at']


class AuditLog(models.Model):
    client = models.ForeignKey(Client, on_delete=models.CASCADE, related_name='audit_entries')
    action = models.CharField(max_length=512)
    actor_role = models.CharField(max_length=32, choices=ActorRole.choices)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'onboarding_audit_log'
        ordering = ['-created_at', '-id']
