import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

STATUS_CHOICES = [('Not Started', 'Not Started'), ('In Progress', 'In Progress'), ('Completed', 'Completed')]
ROLE_CHOICES = [
    ('ADMIN', 'Admin'), ('CLIENT', 'Client'), ('CPA', 'CPA'),
    ('SERVICE_CENTER', 'Service Center'), ('SYSTEM', 'System'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Client',
            fields=[
                ('client_id', models.AutoField(primary_key=True, serialize=False)),
                ('client_name', models.CharField(max_length=255)),
                ('code', models.CharField(blank=True, default='', max_length=64)),
                ('client_status', models.CharField(choices=STATUS_CHOICES, default='Not Started', max_length=32)),
                ('progress', models.PositiveSmallIntegerField(default=0)),
                ('primary_contact_name', models.CharField(blank=True, default='', max_length=255)),
                ('primary_contact_email', models.EmailField(blank=True, default='', max_length=254)),
                ('primary_contact_phone', models.CharField(blank=True, default='', max_length=64)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('archived_at', models.DateTimeField(blank=True, null=True)),
                ('cpa', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cpa_clients', to=settings.AUTH_USER_MODEL)),
                ('service_center', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='service_center_clients', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['client_name'],
            },
        ),
        migrations.CreateModel(
            name='Stage',
            fields=[
                ('client_stage_id', models.AutoField(primary_key=True, serialize=False)),
                ('stage_name', models.CharField(max_length=255)),
                ('order_number', models.PositiveIntegerField()),
                ('status', models.CharField(choices=STATUS_CHOICES, default='Not Started', max_length=32)),
                ('document_required', models.BooleanField(default=False)),
                ('document_mode', models.CharField(blank=True, choices=[('stage', 'One document per stage'), ('subtask', 'One document per subtask')], max_length=16, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='stages', to='onboarding_app.client')),
            ],
            options={
                'db_table': 'client_stages',
                'ordering': ['order_number'],
            },
        ),
        migrations.AddConstraint(
            model_name='stage',
            constraint=models.UniqueConstraint(fields=('client', 'order_number'), name='unique_stage_order_per_client'),
        ),
        migrations.AddField(
            model_name='client',
            name='stage',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='current_for_clients', to='onboarding_app.stage'),
        ),
        migrations.CreateModel(
            name='Subtask',
            fields=[
                ('subtask_id', models.AutoField(primary_key=True, serialize=False)),
                ('subtask_title', models.CharField(max_length=255)),
                ('order_number', models.PositiveIntegerField(default=1)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='Not Started', max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('stage', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='subtasks', to='onboarding_app.stage')),
            ],
            options={
                'db_table': 'client_stage_subtasks',
                'ordering': ['order_number'],
            },
        ),
        migrations.CreateModel(
            name='Task',
            fields=[
                ('task_id', models.AutoField(primary_key=True, serialize=False)),
                ('task_title', models.CharField(max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('assigned_to_role', models.CharField(choices=[('CLIENT', 'Client'), ('CPA', 'CPA'), ('SERVICE_CENTER', 'Service Center')], default='CLIENT', max_length=32)),
                ('created_by_role', models.CharField(choices=ROLE_CHOICES, default='ADMIN', max_length=32)),
                ('status', models.CharField(choices=STATUS_CHOICES + [('Approved', 'Approved')], default='Not Started', max_length=32)),
                ('due_date', models.DateTimeField(blank=True, null=True)),
                ('document_required', models.BooleanField(default=True)),
                ('order_number', models.PositiveIntegerField(default=1)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='tasks', to='onboarding_app.client')),
            ],
            options={
                'db_table': 'onboarding_tasks',
                'ordering': ['order_number', 'created_at'],
            },
        ),
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_name', models.CharField(max_length=255)),
                ('folder_path', models.CharField(blank=True, default='', max_length=512)),
                ('blob_url', models.URLField(blank=True, default='', max_length=1024)),
                ('uploaded_by_role', models.CharField(choices=ROLE_CHOICES, max_length=32)),
                ('status', models.CharField(choices=[('Uploaded', 'Uploaded'), ('Reviewed', 'Reviewed'), ('Approved', 'Approved'), ('Needs Fix', 'Needs Fix')], default='Uploaded', max_length=32)),
                ('uploaded_at', models.DateTimeField(auto_now_add=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='documents', to='onboarding_app.client')),
                ('subtask', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='documents', to='onboarding_app.subtask')),
                ('task', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='documents', to='onboarding_app.task')),
            ],
            options={
                'ordering': ['-uploaded_at'],
            },
        ),
        migrations.CreateModel(
            name='AuditLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('action', models.CharField(max_length=512)),
                ('actor_role', models.CharField(choices=ROLE_CHOICES, max_length=32)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('client', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='audit_entries', to='onboarding_app.client')),
            ],
            options={
                'db_table': 'onboarding_audit_log',
                'ordering': ['-created_at', '-id'],
            },
        ),
    ]
