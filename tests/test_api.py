"""API tests: progress, task status gating, subtasks, documents, scoping."""
import datetime

import pytest
from django.db import DatabaseError
from django.utils import timezone

from onboarding_app import audit, services
from onboarding_app.models import AuditLog, Client, Document, Stage, Subtask, Task

pytestmark = pytest.mark.django_db


class TestProgress:

    def test_client_progress_is_live(self, api_as, admin_user, acme, stages):
        response = api_as(admin_user).get(f'/api/clients/{acme.pk}/progress/')

        assert response.status_code == 200
        data = response.json()['data']
        assert data['completed_stages'] == 1
        assert data['total_stages'] == 3
        assert data['progress'] == 33
        assert data['next_stage']['stage_name'] == 'Documents'
        assert [s['completed'] for s in data['stages']] == [True, False, False]

    def test_client_without_stages(self, api_as, admin_user, acme):
        data = api_as(admin_user).get(f'/api/clients/{acme.pk}/progress/').json()['data']
        assert data['progress'] == 0
        assert data['completed_stages'] == 0
        assert data['next_stage'] is None

    def test_recalculate_persists_rollup(self, api_as, admin_user, acme, stages):
        _, documents, _ = stages
        documents.subtasks.update(status='Completed')

        response = api_as(admin_user).post('/api/progress/recalculate/', {'client_id': acme.pk}, format='json')

        assert response.status_code == 200
        assert response.json()['data']['progress'] == 67
        acme.refresh_from_db()
        documents.refresh_from_db()
        assert acme.progress == 67
        assert acme.client_status == 'In Progress'
        assert acme.stage.stage_name == 'Review'
        assert documents.status == 'Completed'
        assert AuditLog.objects.filter(client=acme, action='Stage completed: Documents').exists()

    def test_recalculate_requires_client_id(self, api_as, admin_user):
        response = api_as(admin_user).post('/api/progress/recalculate/', {}, format='json')
        assert response.status_code == 400
        assert response.json()['errors'] == ['client_id is required']

    def test_client_list_uses_live_progress(self, api_as, admin_user, acme, other_client, stages):
        Client.objects.filter(pk=acme.pk).update(progress=99)
        rows = api_as(admin_user).get('/api/clients/').json()['data']
        by_name = {row['client_name']: row for row in rows}
        assert by_name['Acme']['progress'] == 33
        assert by_name['Acme']['total_stages'] == 3
        assert by_name['Globex']['progress'] == 0

    def test_bulk_progress_keeps_clients_apart(self, acme, other_client, stages, django_assert_num_queries):
        setup = Stage.objects.create(client=other_client, stage_name='Setup', order_number=1)
        Subtask.objects.create(stage=setup, subtask_title='Payroll', status='Completed')

        with django_assert_num_queries(2):
            summaries = services.clients_progress([acme.pk, other_client.pk])

        assert summaries[acme.pk].progress_percent == 33
        assert summaries[other_client.pk].progress_percent == 100


class TestTaskStatus:

    def test_non_completed_change_is_direct(self, api_as, client_user, task):
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Not Started'}, format='json'
        )
        assert response.status_code == 200
        task.refresh_from_db()
        assert task.status == 'Not Started'

    def test_completion_without_upload_is_held(self, api_as, client_user, task):
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Completed'}, format='json'
        )

        assert response.status_code == 409
        assert response.json()['requires_document_upload'] is True
        task.refresh_from_db()
        assert task.status == 'In Progress'

    def test_completion_with_upload_acknowledgment(self, api_as, client_user, acme, task):
        api = api_as(client_user)
        upload = api.post('/api/documents/', {
            'client': acme.pk,
            'task': task.pk,
            'file_name': 'engagement-letter.pdf',
            'blob_url': 'https://blob.example.com/acme/engagement-letter.pdf',
        }, format='json')
        assert upload.status_code == 201
        document_id = upload.json()['data']['id']

        response = api.post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Completed', 'document_id': document_id}, format='json'
        )

        assert response.status_code == 200
        assert response.json()['data']['status'] == 'Completed'
        task.refresh_from_db()
        assert task.status == 'Completed'
        actions = list(AuditLog.objects.filter(client=acme).values_list('action', flat=True))
        assert 'Document uploaded: engagement-letter.pdf' in actions
        assert 'Task marked as completed: Sign engagement letter -> Completed' in actions

    def test_approval_without_upload_is_held(self, api_as, client_user, task):
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Approved'}, format='json'
        )

        assert response.status_code == 409
        assert response.json()['requires_document_upload'] is True
        task.refresh_from_db()
        assert task.status == 'In Progress'

    def test_gate_reads_the_stored_flag(self, task):
        stale = Task.objects.get(pk=task.pk)
        stale.document_required = False

        with pytest.raises(services.DocumentUploadRequired):
            services.update_task_status(stale, 'Completed', 'CLIENT')

        task.refresh_from_db()
        assert task.status == 'In Progress'

    def test_document_of_another_task_is_not_an_acknowledgment(self, api_as, client_user, acme, task):
        other = Task.objects.create(client=acme, task_title='Other')
        document = Document.objects.create(client=acme, task=other, file_name='x.pdf', uploaded_by_role='CLIENT')

        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Completed', 'document_id': document.pk}, format='json'
        )

        assert response.status_code == 409
        task.refresh_from_db()
        assert task.status == 'In Progress'

    def test_document_not_required_completes_directly(self, api_as, client_user, task):
        Task.objects.filter(pk=task.pk).update(document_required=False)
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'completed'}, format='json'
        )
        assert response.status_code == 200
        task.refresh_from_db()
        assert task.status == 'Completed'

    def test_unknown_status_is_rejected(self, api_as, client_user, task):
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Finished-ish'}, format='json'
        )
        assert response.status_code == 400
        task.refresh_from_db()
        assert task.status == 'In Progress'

    def test_audit_failure_does_not_block_status_change(self, api_as, client_user, task, monkeypatch):
        def broken_create(**kwargs):
            raise DatabaseError("audit table unavailable")

        monkeypatch.setattr(audit.AuditLog.objects, 'create', broken_create)
        response = api_as(client_user).post(
            f'/api/tasks/{task.pk}/status/', {'status': 'Not Started'}, format='json'
        )
        assert response.status_code == 200
        task.refresh_from_db()
        assert task.status == 'Not Started'


class TestTaskList:

    def test_overdue_flag_and_filter(self, api_as, admin_user, acme):
        yesterday = timezone.now() - datetime.timedelta(days=2)
        Task.objects.create(client=acme, task_title='Late', due_date=yesterday, status='In Progress')
        Task.objects.create(client=acme, task_title='Late but done', due_date=yesterday, status='Completed')
        Task.objects.create(client=acme, task_title='No date')

        api = api_as(admin_user)
        rows = api.get('/api/tasks/').json()['data']
        flags = {row['task_title']: row['is_overdue'] for row in rows}
        assert flags == {'Late': True, 'Late but done': False, 'No date': False}

        overdue = api.get('/api/tasks/', {'overdue': '1'}).json()['data']
        assert [row['task_title'] for row in overdue] == ['Late']

    def test_non_integer_client_id_is_rejected(self, api_as, admin_user, acme, other_client):
        Task.objects.create(client=acme, task_title='Mine')
        Task.objects.create(client=other_client, task_title='Theirs')
        api = api_as(admin_user)

        response = api.get('/api/tasks/', {'client_id': 'abc'})
        assert response.status_code == 400
        assert response.json()['errors'] == ['client_id must be an integer']

        assert api.get('/api/audit/', {'client_id': '1x'}).status_code == 400

    def test_assign_task_accepts_bit_flag(self, api_as, cpa_user, acme):
        response = api_as(cpa_user).post('/api/tasks/', {
            'client': acme.pk,
            'task_title': 'Upload prior returns',
            'assigned_to_role': 'CPA',
            'document_required': 0,
        }, format='json')

        assert response.status_code == 201
        task = Task.objects.get(task_title='Upload prior returns')
        assert task.document_required is False
        assert task.created_by_role == 'CPA'
        assert AuditLog.objects.filter(client=acme, action__startswith='Task assigned').exists()

    def test_assign_task_defaults_to_document_required(self, api_as, admin_user, acme):
        response = api_as(admin_user).post('/api/tasks/', {
            'client': acme.pk,
            'task_title': 'Sign 8879',
            'document_required': None,
        }, format='json')
        assert response.status_code == 201
        assert response.json()['data']['document_required'] is True

    def test_clients_cannot_assign_tasks(self, api_as, client_user, acme):
        response = api_as(client_user).post('/api/tasks/', {'client': acme.pk, 'task_title': 'x'}, format='json')
        assert response.status_code == 403


class TestSubtaskStatus:

    def test_finishing_checklist_completes_stage(self, api_as, client_user, acme, stages):
        _, documents, _ = stages
        pending = documents.subtasks.get(subtask_title='Bank letter')

        response = api_as(client_user).post(
            f'/api/subtasks/{pending.pk}/status/', {'status': 'Completed'}, format='json'
        )

        assert response.status_code == 200
        assert response.json()['data']['progress'] == 67
        documents.refresh_from_db()
        assert documents.status == 'Completed'

    def test_stage_mode_document_gate(self, api_as, client_user, acme, stages):
        _, documents, _ = stages
        Stage.objects.filter(pk=documents.pk).update(document_required=True, document_mode='stage')
        pending = documents.subtasks.get(subtask_title='Bank letter')
        api = api_as(client_user)

        held = api.post(f'/api/subtasks/{pending.pk}/status/', {'status': 'Completed'}, format='json')
        assert held.status_code == 409
        pending.refresh_from_db()
        assert pending.status == 'Not Started'

        document = Document.objects.create(
            client=acme, subtask=pending, file_name='bank.pdf', uploaded_by_role='CLIENT'
        )
        done = api.post(
            f'/api/subtasks/{pending.pk}/status/', {'status': 'Completed', 'document_id': document.pk}, format='json'
        )
        assert done.status_code == 200
        pending.refresh_from_db()
        assert pending.status == 'Completed'


class TestScoping:

    def test_client_only_sees_own_client(self, api_as, client_user, acme, other_client):
        api = api_as(client_user)
        rows = api.get('/api/clients/').json()['data']
        assert [row['client_name'] for row in rows] == ['Acme']
        assert api.get(f'/api/clients/{other_client.pk}/progress/').status_code == 404

    def test_cpa_sees_only_cpa_tasks_of_own_clients(self, api_as, cpa_user, acme, other_client):
        Task.objects.create(client=acme, task_title='CPA review', assigned_to_role='CPA')
        Task.objects.create(client=acme, task_title='Client upload', assigned_to_role='CLIENT')
        Task.objects.create(client=other_client, task_title='Other CPA work', assigned_to_role='CPA')

        rows = api_as(cpa_user).get('/api/tasks/').json()['data']
        assert [row['task_title'] for row in rows] == ['CPA review']

    def test_foreign_task_status_is_not_found(self, api_as, client_user, other_client):
        foreign = Task.objects.create(client=other_client, task_title='Not yours')
        response = api_as(client_user).post(
            f'/api/tasks/{foreign.pk}/status/', {'status': 'In Progress'}, format='json'
        )
        assert response.status_code == 404

    def test_subtask_of_other_client_is_not_found(self, api_as, client_user, other_client):
        stage = Stage.objects.create(client=other_client, stage_name='Setup', order_number=1)
        subtask = Subtask.objects.create(stage=stage, subtask_title='Foreign')
        response = api_as(client_user).post(
            f'/api/subtasks/{subtask.pk}/status/', {'status': 'Completed'}, format='json'
        )
        assert response.status_code == 404

    def test_unauthenticated_requests_are_rejected(self, acme):
        from rest_framework.test import APIClient
        assert APIClient().get('/api/clients/').status_code in (401, 403)


class TestDashboardAndAudit:

    def test_dashboard_counts(self, api_as, admin_user, acme, other_client):
        Client.objects.filter(pk=acme.pk).update(client_status='In Progress')
        Task.objects.create(client=acme, task_title='Late', status='In Progress',
                            due_date=timezone.now() - datetime.timedelta(days=3))
        Task.objects.create(client=other_client, task_title='Fresh', status='Not Started')

        data = api_as(admin_user).get('/api/dashboard/').json()['data']
        assert data == {
            'total_clients': 2,
            'active_onboarding': 1,
            'tasks_in_progress': 1,
            'overdue_tasks': 1,
        }

    def test_audit_log_is_scoped(self, api_as, client_user, acme, other_client):
        audit.log_audit(acme.pk, audit.AuditAction.CLIENT_UPDATED, 'ADMIN')
        audit.log_audit(other_client.pk, audit.AuditAction.CLIENT_UPDATED, 'ADMIN', 'phone number')

        rows = api_as(client_user).get('/api/audit/').json()['data']
        assert [row['action'] for row in rows] == ['Client details updated']

    def test_current_user(self, api_as, cpa_user):
        data = api_as(cpa_user).get('/api/users/me/').json()['data']
        assert data['username'] == 'cpa'
        assert data['role'] == 'CPA'

    def test_service_center_scope(self, api_as, service_center_user, acme, other_client):
        Task.objects.create(client=acme, task_title='Payroll setup', assigned_to_role='SERVICE_CENTER')
        api = api_as(service_center_user)
        assert [row['client_name'] for row in api.get('/api/clients/').json()['data']] == ['Acme']
        assert [row['task_title'] for row in api.get('/api/tasks/').json()['data']] == ['Payroll setup']


class TestClientManagement:

    def test_admin_creates_client(self, api_as, admin_user, cpa_user):
        response = api_as(admin_user).post('/api/clients/', {
            'client_name': 'Initech',
            'code': 'INI',
            'cpa': cpa_user.pk,
            'primary_contact_email': 'bill@initech.example',
        }, format='json')

        assert response.status_code == 201
        client = Client.objects.get(client_name='Initech')
        assert client.cpa == cpa_user
        assert response.json()['data']['client_id'] == client.pk
        assert AuditLog.objects.filter(client=client, action='Client created: Initech').exists()

    def test_duplicate_name_is_a_conflict(self, api_as, admin_user, acme):
        response = api_as(admin_user).post('/api/clients/', {'client_name': ' ACME '}, format='json')
        assert response.status_code == 409
        assert Client.objects.count() == 1

    def test_only_admin_manages_clients(self, api_as, cpa_user, acme):
        api = api_as(cpa_user)
        assert api.post('/api/clients/', {'client_name': 'Initech'}, format='json').status_code == 403
        assert api.patch(f'/api/clients/{acme.pk}/', {'code': 'X'}, format='json').status_code == 403
        assert api.post(f'/api/clients/{acme.pk}/archive/', {}, format='json').status_code == 403

    def test_update_audits_changed_fields(self, api_as, admin_user, acme):
        response = api_as(admin_user).patch(f'/api/clients/{acme.pk}/', {
            'code': 'ACM',
            'primary_contact_phone': '555-0100',
        }, format='json')

        assert response.status_code == 200
        assert response.json()['data']['primary_contact_phone'] == '555-0100'
        actions = list(AuditLog.objects.filter(client=acme).values_list('action', flat=True))
        assert actions == ['Client details updated: primary_contact_phone']

    def test_rename_onto_existing_client_is_rejected(self, api_as, admin_user, acme, other_client):
        response = api_as(admin_user).patch(f'/api/clients/{acme.pk}/', {'client_name': 'globex'}, format='json')
        assert response.status_code == 409
        acme.refresh_from_db()
        assert acme.client_name == 'Acme'

    def test_archive_and_restore(self, api_as, admin_user, acme, other_client):
        api = api_as(admin_user)

        assert api.post(f'/api/clients/{acme.pk}/archive/', {}, format='json').status_code == 200
        acme.refresh_from_db()
        assert acme.archived_at is not None
        assert [row['client_name'] for row in api.get('/api/clients/').json()['data']] == ['Globex']

        response = api.post(f'/api/clients/{acme.pk}/archive/', {'archive': False}, format='json')
        assert response.json()['data'] == {'client_id': acme.pk, 'archived': False}
        acme.refresh_from_db()
        assert acme.archived_at is None
        assert AuditLog.objects.filter(client=acme, action='Client details updated: restored').exists()


class TestStagePlan:

    PLAN = {
        'stages': [
            {
                'stage_name': 'Kickoff',
                'order_number': 1,
                'subtasks': [
                    {'subtask_title': 'Intro call', 'status': 'completed'},
                    {'subtask_title': 'Welcome pack', 'status': 'Completed'},
                ],
            },
            {
                'stage_name': 'Documents',
                'order_number': 2,
                'document_required': True,
                'document_mode': 'subtask',
                'subtasks': [{'subtask_title': 'W-9'}],
            },
        ],
    }

    def test_save_replaces_plan_and_recalculates(self, api_as, admin_user, acme, stages):
        response = api_as(admin_user).put(f'/api/clients/{acme.pk}/stages/', self.PLAN, format='json')

        assert response.status_code == 200
        data = response.json()['data']
        assert data['progress'] == 50
        assert data['next_stage']['stage_name'] == 'Documents'
        assert [s['stage_name'] for s in data['stages']] == ['Kickoff', 'Documents']

        kickoff = Stage.objects.get(client=acme, stage_name='Kickoff')
        assert kickoff.status == 'Completed'
        assert list(kickoff.subtasks.values_list('order_number', flat=True)) == [1, 2]
        documents = Stage.objects.get(client=acme, stage_name='Documents')
        assert documents.document_required is True
        assert documents.document_mode == 'subtask'
        assert not Stage.objects.filter(client=acme, stage_name='Review').exists()

        acme.refresh_from_db()
        assert acme.progress == 50
        assert acme.stage == documents
        assert AuditLog.objects.filter(client=acme, action='Stage updated: 2 stages').exists()

    def test_duplicate_order_numbers_are_rejected(self, api_as, admin_user, acme, stages):
        plan = {'stages': [
            {'stage_name': 'One', 'order_number': 1},
            {'stage_name': 'Also one', 'order_number': 1},
        ]}
        response = api_as(admin_user).put(f'/api/clients/{acme.pk}/stages/', plan, format='json')

        assert response.status_code == 400
        assert Stage.objects.filter(client=acme).count() == 3

    def test_unknown_subtask_status_is_rejected(self, api_as, admin_user, acme):
        plan = {'stages': [
            {'stage_name': 'One', 'order_number': 1, 'subtasks': [{'subtask_title': 'x', 'status': 'Approved'}]},
        ]}
        response = api_as(admin_user).put(f'/api/clients/{acme.pk}/stages/', plan, format='json')
        assert response.status_code == 400

    def test_client_reads_own_stages(self, api_as, client_user, acme, other_client, stages):
        api = api_as(client_user)
        data = api.get(f'/api/clients/{acme.pk}/stages/').json()['data']

        assert [s['stage_name'] for s in data] == ['Kickoff', 'Documents', 'Review']
        assert [s['subtask_title'] for s in data[1]['subtasks']] == ['W-9', 'Bank letter']
        assert api.get(f'/api/clients/{other_client.pk}/stages/').status_code == 404
        assert api.put(f'/api/clients/{acme.pk}/stages/', self.PLAN, format='json').status_code == 403
