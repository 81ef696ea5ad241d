"""Pytest fixtures for the onboarding API."""
import pytest
from rest_framework.test import APIClient

from onboarding_app.models import Client, Stage, Subtask, Task
from onboarding_user.models import Role, User


@pytest.fixture()
def cpa_user(db):
    return User.objects.create_user(username='cpa', password='x', role=Role.CPA)


@pytest.fixture()
def service_center_user(db):
    return User.objects.create_user(username='sc', password='x', role=Role.SERVICE_CENTER)


@pytest.fixture()
def admin_user(db):
    return User.objects.create_user(username='admin', password='x', role=Role.ADMIN)


@pytest.fixture()
def acme(db, cpa_user, service_center_user):
    return Client.objects.create(client_name='Acme', code='ACM', cpa=cpa_user, service_center=service_center_user)


@pytest.fixture()
def other_client(db):
    return Client.objects.create(client_name='Globex', code='GLX')


@pytest.fixture()
def client_user(acme):
    return User.objects.create_user(username='acme-owner', password='x', role=Role.CLIENT, client=acme)


@pytest.fixture()
def stages(acme):
    """Three ordered stages; the second carries two subtasks."""
    kickoff = Stage.objects.create(client=acme, stage_name='Kickoff', order_number=1, status='Completed')
    documents = Stage.objects.create(client=acme, stage_name='Documents', order_number=2, status='In Progress')
    review = Stage.objects.create(client=acme, stage_name='Review', order_number=3)
    Subtask.objects.create(stage=documents, subtask_title='W-9', order_number=1, status='Completed')
    Subtask.objects.create(stage=documents, subtask_title='Bank letter', order_number=2)
    return kickoff, documents, review


@pytest.fixture()
def task(acme):
    return Task.objects.create(client=acme, task_title='Sign engagement letter', status='In Progress')


@pytest.fixture()
def api_as():
    def _client(user):
        api = APIClient()
        api.force_authenticate(user=user)
        return api
    return _client
