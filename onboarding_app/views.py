# onboarding_app/views.py
import logging

from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .context import ADMIN, CPA, SERVICE_CENTER, RequestContext
from .models import AuditLog, Client, Subtask, Task
from .progress import calculate_progress
from .serializers import (
    ArchiveSerializer,
    AuditLogSerializer,
    ClientSerializer,
    ClientWriteSerializer,
    DocumentSerializer,
    StagePlanSerializer,
    StageSerializer,
    StatusChangeSerializer,
    TaskAssignSerializer,
    TaskSerializer,
    progress_payload,
)

logger = logging.getLogger(__name__)

ASSIGNING_ROLES = (ADMIN, CPA, SERVICE_CENTER)


def _error(message, status_code=status.HTTP_400_BAD_REQUEST, **extra):
    return Response({'errors': [message], **extra}, status=status_code)


def _int_param(request, name):
    value = request.query_params.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise services.InvalidParameter(f'{name} must be an integer')


def _require_admin(ctx):
    if ctx.role != ADMIN:
        return _error('Only Admin users can manage clients and stages', status.HTTP_403_FORBIDDEN)
    return None


class ClientListView(APIView):
    """
    GET lists clients visible to the caller, each with progress recomputed from
    live stage and subtask state (the cached ``progress`` column is ignored).

    POST creates a client (Admin only); duplicate names are rejected with 409.
    """

    def post(self, request):
        ctx = RequestContext.from_request(request)
        denied = _require_admin(ctx)
        if denied:
            return denied

        serializer = ClientWriteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        try:
            client = services.create_client(ctx.role, **serializer.validated_data)
        except services.OnboardingError as e:
            return _error(str(e), e.status_code)
        return Response({'data': ClientSerializer(client).data}, status=status.HTTP_201_CREATED)

    def get(self, request):
        ctx = RequestContext.from_request(request)
        clients = list(ctx.scope_clients(Client.objects.filter(archived_at__isnull=True)))
        summaries = services.clients_progress(c.pk for c in clients)

        data = []
        for client, row in zip(clients, ClientSerializer(clients, many=True).data):
            summary = summaries[client.pk]
            row.update(
                progress=summary.progress_percent,
                client_status=summary.client_status,
                completed_stages=summary.completed_stages,
                total_stages=summary.total_stages,
            )
            data.append(row)
        return Response({'data': data})


class ClientDetailView(APIView):
    def get(self, request, client_id):
        ctx = RequestContext.from_request(request)
        client = get_object_or_404(ctx.scope_clients(Client.objects.all()), pk=client_id)
        return Response({'data': ClientSerializer(client).data})

    def patch(self, request, client_id):
        ctx = RequestContext.from_request(request)
        denied = _require_admin(ctx)
        if denied:
            return denied
        client = get_object_or_404(Client, pk=client_id)

        serializer = ClientWriteSerializer(client, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        try:
            services.update_client(client, ctx.role, **serializer.validated_data)
        except services.OnboardingError as e:
            return _error(str(e), e.status_code)
        return Response({'data': ClientSerializer(client).data})


class ClientArchiveView(APIView):
    """
    Archive or restore a client. Archived clients drop out of the client list
    and the dashboard but keep their history.

    Request Body:
        archive (bool, optional): false restores the client. Defaults to true.
    """

    def post(self, request, client_id):
        ctx = RequestContext.from_request(request)
        denied = _require_admin(ctx)
        if denied:
            return denied
        client = get_object_or_404(Client, pk=client_id)

        serializer = ArchiveSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        archive = serializer.validated_data['archive']
        services.archive_client(client, ctx.role, archive=archive)
        return Response({'data': {'client_id': client.pk, 'archived': archive}})


class ClientStagesView(APIView):
    """
    GET returns the client's stages with their subtasks.

    PUT replaces the whole stage plan (Admin only) and recalculates progress.

    Request Body:
        stages (list): ``stage_name``, ``order_number`` (unique per client),
            ``document_required``, ``document_mode`` and ``subtasks``.
    """

    def get(self, request, client_id):
        ctx = RequestContext.from_request(request)
        client = get_object_or_404(ctx.scope_clients(Client.objects.all()), pk=client_id)
        stages = client.stages.prefetch_related('subtasks')
        return Response({'data': StageSerializer(stages, many=True).data})

    def put(self, request, client_id):
        ctx = RequestContext.from_request(request)
        denied = _require_admin(ctx)
        if denied:
            return denied
        client = get_object_or_404(Client, pk=client_id)

        serializer = StagePlanSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)
        try:
            summary = services.save_client_stages(client, serializer.validated_data['stages'], ctx.role)
        except services.OnboardingError as e:
            return _error(str(e), e.status_code)

        stages = services.fetch_client_stages(client.pk)
        return Response({'data': progress_payload(summary, stages)})


class ClientProgressView(APIView):
    def get(self, request, client_id):
        ctx = RequestContext.from_request(request)
        client = get_object_or_404(ctx.scope_clients(Client.objects.all()), pk=client_id)
        stages = services.fetch_client_stages(client.pk)
        summary = calculate_progress(stages)
        return Response({'data': progress_payload(summary, stages)})


class ProgressRecalculateView(APIView):
    """
    Persist the live rollup for one client.

    Request Body:
        client_id (int): the client to recalculate.

    Returns:
        {"data": {...progress summary...}} or {"errors": [...]} with HTTP 400.
    """

    def post(self, request):
        client_id = request.data.get('client_id')
        if not client_id:
            return _error('client_id is required')
        if not str(client_id).isdigit():
            return _error('client_id must be an integer')
        ctx = RequestContext.from_request(request)
        client = get_object_or_404(ctx.scope_clients(Client.objects.all()), pk=client_id)
        summary = services.recalculate_client_progress(client.pk, ctx.role)
        return Response({'data': progress_payload(summary)})


class TaskListView(APIView):
    """
    GET lists the caller's tasks with an ``is_overdue`` flag.

    Query Parameters:
        client_id (int): only tasks of this client.
        status (str): only tasks in this status.
        overdue (str): "1"/"true" keeps only overdue tasks.

    POST assigns a new task to a client (Admin, CPA and Service Center only).
    """

    def get(self, request):
        ctx = RequestContext.from_request(request)
        try:
            client_id = _int_param(request, 'client_id')
        except services.InvalidParameter as e:
            return _error(str(e))
        tasks = services.task_rows(ctx, client_id=client_id, status=request.query_params.get('status'))
        data = TaskSerializer(tasks, many=True).data
        if request.query_params.get('overdue', '').lower() in ('1', 'true', 'yes'):
            data = [row for row in data if row['is_overdue']]
        return Response({'data': data})

    def post(self, request):
        ctx = RequestContext.from_request(request)
        if ctx.role not in ASSIGNING_ROLES:
            return _error('Only Admin, CPA and Service Center users can assign tasks', status.HTTP_403_FORBIDDEN)

        serializer = TaskAssignSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        fields = dict(serializer.validated_data)
        client = fields.pop('client')
        if not ctx.scope_clients(Client.objects.filter(pk=client.pk)).exists():
            return _error('Client not found', status.HTTP_404_NOT_FOUND)

        task = services.assign_task(client, ctx.role, **fields)
        logger.info("Task %s assigned to %s for client %s", task.pk, task.assigned_to_role, client.pk)
        return Response({'data': TaskSerializer(task).data}, status=status.HTTP_201_CREATED)


class TaskStatusView(APIView):
    """
    Change a task's status.

    Request Body:
        status (str): the new status.
        document_id (int, optional): upload acknowledgment for a task that
            requires a document before it can be completed.

    Returns:
        - 200 with the updated task.
        - 409 with {"requires_document_upload": true} when the upload is
          still missing; the task keeps its previous status.
        - 400 for an unknown status.
    """

    def post(self, request, task_id):
        ctx = RequestContext.from_request(request)
        task = get_object_or_404(ctx.scope_tasks(Task.objects.select_related('client')), pk=task_id)

        serializer = StatusChangeSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        try:
            services.update_task_status(
                task,
                serializer.validated_data['status'],
                ctx.role,
                document_id=serializer.validated_data['document_id'],
            )
        except services.DocumentUploadRequired as e:
            return _error(str(e), e.status_code, requires_document_upload=True, task_id=task.pk)
        except services.OnboardingError as e:
            return _error(str(e), e.status_code)

        return Response({'data': TaskSerializer(task).data})


class SubtaskStatusView(APIView):
    def post(self, request, subtask_id):
        ctx = RequestContext.from_request(request)
        subtask = get_object_or_404(
            ctx.scope_by_client(Subtask.objects.select_related('stage'), field='stage__client'),
            pk=subtask_id,
        )

        serializer = StatusChangeSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        try:
            summary = services.update_subtask_status(
                subtask,
                serializer.validated_data['status'],
                ctx.role,
                document_id=serializer.validated_data['document_id'],
            )
        except services.DocumentUploadRequired as e:
            return _error(str(e), e.status_code, requires_document_upload=True, subtask_id=subtask.pk)
        except services.OnboardingError as e:
            return _error(str(e), e.status_code)

        return Response({
            'status': 'success',
            'subtask_id': subtask.pk,
            'subtask_status': subtask.status,
            'data': progress_payload(summary),
        })


class DocumentUploadView(APIView):
    """
    Record a document that has been stored in blob storage.

    The returned ``id`` is the acknowledgment to send back with a
    status change that requires a document.
    """

    def post(self, request):
        ctx = RequestContext.from_request(request)
        serializer = DocumentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({'errors': serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        client = data['client']
        if not ctx.scope_clients(Client.objects.filter(pk=client.pk)).exists():
            return _error('Client not found', status.HTTP_404_NOT_FOUND)

        document = services.register_document(
            client,
            data['file_name'],
            ctx.role,
            task=data.get('task'),
            subtask=data.get('subtask'),
            folder_path=data.get('folder_path', ''),
            blob_url=data.get('blob_url', ''),
        )
        return Response({'data': DocumentSerializer(document).data}, status=status.HTTP_201_CREATED)


class AuditLogView(APIView):
    def get(self, request):
        ctx = RequestContext.from_request(request)
        entries = ctx.scope_by_client(AuditLog.objects.all())
        try:
            client_id = _int_param(request, 'client_id')
        except services.InvalidParameter as e:
            return _error(str(e))
        if client_id is not None:
            entries = entries.filter(client_id=client_id)
        return Response({'data': AuditLogSerializer(entries[:500], many=True).data})


class DashboardView(APIView):
    def get(self, request):
        ctx = RequestContext.from_request(request)
        return Response({'data': services.dashboard_summary(ctx)})
