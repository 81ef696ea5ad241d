from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework.fields import empty

from .models import AssigneeRole, AuditLog, Client, Document, DocumentMode, Stage, Subtask, Task
from .progress import (
    NOT_STARTED,
    STATUSES,
    is_known_status,
    is_overdue,
    normalize_document_required,
    normalize_status,
)


class StageProgressSerializer(serializers.Serializer):
    stage_id = serializers.IntegerField()
    stage_name = serializers.CharField()
    order_number = serializers.IntegerField()
    status = serializers.CharField()
    completed = serializers.BooleanField()


def progress_payload(summary, stages=()):
    """Plain-dict view of a ProgressSummary, with the per-stage breakdown when stages are given."""
    next_stage = summary.next_stage
    payload = {
        'completed_stages': summary.completed_stages,
        'total_stages': summary.total_stages,
        'progress': summary.progress_percent,
        'client_status': summary.client_status,
        'next_stage': {
            'stage_id': next_stage.stage_id,
            'stage_name': next_stage.stage_name,
        } if next_stage else None,
    }
    if stages:
        payload['stages'] = StageProgressSerializer([
            {
                'stage_id': stage.stage_id,
                'stage_name': stage.stage_name,
                'order_number': stage.order_number,
                'status': stage.status,
                'completed': summary.per_stage_completed.get(stage.stage_id, False),
            }
            for stage in stages
        ], many=True).data
    return payload


class ClientSerializer(serializers.ModelSerializer):
    class Meta:
        model = Client
        fields = [
            'client_id', 'client_name', 'code', 'client_status', 'progress', 'stage',
            'cpa', 'service_center', 'primary_contact_name', 'primary_contact_email',
            'primary_contact_phone', 'created_at', 'updated_at',
        ]
        read_only_fields = ['client_status', 'progress', 'stage']


class TaskSerializer(serializers.ModelSerializer):
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all())
    client_name = serializers.CharField(source='client.client_name', read_only=True)
    is_overdue = serializers.SerializerMethodField()

    class Meta:
        model = Task
        fields = [
            'task_id', 'client', 'client_name', 'task_title', 'description', 'assigned_to_role',
            'created_by_role', 'status', 'due_date', 'document_required', 'order_number',
            'is_overdue', 'created_at', 'updated_at',
        ]
        read_only_fields = ['created_by_role', 'status', 'order_number']

    def get_is_overdue(self, obj):
        return is_overdue(obj.due_date, obj.status, today=self.context.get('today'))


class DocumentRequiredField(serializers.Field):
    """Takes booleans, the SQL 0/1 bit or nothing at all; absent or null means required."""

    def __init__(self, **kwargs):
        kwargs.setdefault('required', False)
        super().__init__(**kwargs)

    def run_validation(self, data=empty):
        return normalize_document_required(None if data is empty else data)

    def to_representation(self, value):
        return bool(value)


class TaskAssignSerializer(serializers.Serializer):
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all())
    task_title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    assigned_to_role = serializers.ChoiceField(choices=AssigneeRole.choices, default=AssigneeRole.CLIENT)
    due_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    document_required = DocumentRequiredField()


class StatusChangeSerializer(serializers.Serializer):
    status = serializers.CharField(max_length=32)
    document_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class DocumentSerializer(serializers.ModelSerializer):
    client = serializers.PrimaryKeyRelatedField(queryset=Client.objects.all())
    task = serializers.PrimaryKeyRelatedField(queryset=Task.objects.all(), allow_null=True, required=False)
    subtask = serializers.PrimaryKeyRelatedField(queryset=Subtask.objects.all(), allow_null=True, required=False)

    class Meta:
        model = Document
        fields = [
            'id', 'client', 'task', 'subtask', 'file_name', 'folder_path', 'blob_url',
            'uploaded_by_role', 'status', 'uploaded_at',
        ]
        read_only_fields = ['uploaded_by_role', 'status', 'uploaded_at']

    def validate(self, attrs):
        client = attrs['client']
        task = attrs.get('task')
        subtask = attrs.get('subtask')
        if task is not None and task.client_id != client.pk:
            raise serializers.ValidationError({'task': 'Task does not belong to this client.'})
        if subtask is not None and subtask.stage.client_id != client.pk:
            raise serializers.ValidationError({'subtask': 'Subtask does not belong to this client.'})
        return attrs


class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = ['id', 'client', 'action', 'actor_role', 'created_at']


class ClientWriteSerializer(serializers.ModelSerializer):
    cpa = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.filter(role='CPA'), allow_null=True, required=False
    )
    service_center = serializers.PrimaryKeyRelatedField(
        queryset=get_user_model().objects.filter(role='SERVICE_CENTER'), allow_null=True, required=False
    )

    class Meta:
        model = Client
        fields = [
            'client_name', 'code', 'cpa', 'service_center', 'primary_contact_name',
            'primary_contact_email', 'primary_contact_phone',
        ]


class SubtaskInputSerializer(serializers.Serializer):
    subtask_title = serializers.CharField(max_length=255, allow_blank=True)
    status = serializers.CharField(max_length=32, required=False, default=NOT_STARTED)

    def validate_status(self, value):
        if not is_known_status(value) or normalize_status(value) not in STATUSES:
            raise serializers.ValidationError(f"Unknown status: {value!r}")
        return normalize_status(value)


class StageInputSerializer(serializers.Serializer):
    stage_name = serializers.CharField(max_length=255)
    order_number = serializers.IntegerField(min_value=1)
    status = serializers.CharField(max_length=32, required=False, default=NOT_STARTED)
    document_required = serializers.BooleanField(required=False, default=False)
    document_mode = serializers.ChoiceField(
        choices=DocumentMode.choices, allow_null=True, required=False, default=None
    )
    subtasks = SubtaskInputSerializer(many=True, required=False)


class StagePlanSerializer(serializers.Serializer):
    stages = StageInputSerializer(many=True, allow_empty=True)

    def validate_stages(self, value):
        orders = [stage['order_number'] for stage in value]
        if len(orders) != len(set(orders)):
            raise serializers.ValidationError('Stage order numbers must be unique.')
        return value


class SubtaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = Subtask
        fields = ['subtask_id', 'subtask_title', 'order_number', 'status']


class StageSerializer(serializers.ModelSerializer):
    subtasks = SubtaskSerializer(many=True, read_only=True)

    class Meta:
        model = Stage
        fields = [
            'client_stage_id', 'stage_name', 'order_number', 'status', 'document_required',
            'document_mode', 'subtasks',
        ]


class ArchiveSerializer(serializers.Serializer):
    archive = serializers.BooleanField(required=False, default=True)
