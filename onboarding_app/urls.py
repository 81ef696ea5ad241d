# onboarding_app/urls.py
from django.urls import path

from .views import (
    AuditLogView,
    ClientArchiveView,
    ClientDetailView,
    ClientListView,
    ClientProgressView,
    ClientStagesView,
    DashboardView,
    DocumentUploadView,
    ProgressRecalculateView,
    SubtaskStatusView,
    TaskListView,
    TaskStatusView,
)

urlpatterns = [
    path('clients/', ClientListView.as_view(), name='client-list'),
    path('clients/<int:client_id>/', ClientDetailView.as_view(), name='client-detail'),
    path('clients/<int:client_id>/archive/', ClientArchiveView.as_view(), name='client-archive'),
    path('clients/<int:client_id>/stages/', ClientStagesView.as_view(), name='client-stages'),
    path('clients/<int:client_id>/progress/', ClientProgressView.as_view(), name='client-progress'),
    path('progress/recalculate/', ProgressRecalculateView.as_view(), name='progress-recalculate'),
    path('tasks/', TaskListView.as_view(), name='task-list'),
    path('tasks/<int:task_id>/status/', TaskStatusView.as_view(), name='task-status'),
    path('subtasks/<int:subtask_id>/status/', SubtaskStatusView.as_view(), name='subtask-status'),
    path('documents/', DocumentUploadView.as_view(), name='document-upload'),
    path('audit/', AuditLogView.as_view(), name='audit-log'),
    path('dashboard/', DashboardView.as_view(), name='dashboard'),
]
