import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

ROLE_CHOICES = [
    ('viewer', 'Viewer'),
    ('creator', 'Creator'),
    ('reviewer', 'Reviewer'),
    ('approver', 'Approver'),
    ('publisher', 'Publisher'),
    ('admin', 'Admin'),
]

REQUEST_STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('in_progress', 'In Progress'),
    ('approved', 'Approved'),
    ('rejected', 'Rejected'),
    ('cancelled', 'Cancelled'),
    ('expired', 'Expired'),
    ('escalated', 'Escalated'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='WorkflowTemplate',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('code', models.CharField(help_text='Stable identifier shared by all versions', max_length=60)),
                ('version', models.PositiveIntegerField(default=1)),
                ('name', models.CharField(max_length=120)),
                ('description', models.TextField(blank=True, default='')),
                ('category', models.CharField(blank=True, default='', max_length=60)),
                ('organization', models.CharField(blank=True, default='', help_text='Organization that authored the template', max_length=60)),
                ('applicable_entity_types', models.JSONField(blank=True, default=list, help_text='List of target types this template may be used for')),
                ('allow_parallel_stages', models.BooleanField(default=False)),
                ('require_all_approvers', models.BooleanField(default=False)),
                ('default_timeout_hours', models.PositiveIntegerField(default=0, help_text='Stage deadline when a stage sets none. 0 disables deadlines.')),
                ('auto_start', models.BooleanField(default=True, help_text='Activate the first stage on creation instead of waiting for submit_for_review')),
                ('rejection_policy', models.CharField(choices=[('reject', 'Reject the request'), ('revise', 'Send back for revision')], default='reject', max_length=10)),
                ('is_public', models.BooleanField(default=False)),
                ('usage_count', models.PositiveIntegerField(default=0)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approval_workflowtemplate_created', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'approval_workflow_template',
                'ordering': ['code', '-version'],
                'unique_together': {('code', 'version')},
            },
        ),
        migrations.CreateModel(
            name='WorkflowStage',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('index', models.PositiveIntegerField(help_text='0-based position of the stage')),
                ('name', models.CharField(max_length=120)),
                ('approver_roles', models.JSONField(blank=True, default=list)),
                ('require_all', models.BooleanField(blank=True, help_text="Overrides the template's require_all_approvers when set", null=True)),
                ('timeout_hours', models.PositiveIntegerField(blank=True, null=True)),
                ('escalation_role', models.CharField(blank=True, choices=ROLE_CHOICES, max_length=20, null=True)),
                ('parallel_group', models.PositiveIntegerField(blank=True, help_text='Consecutive stages in the same group activate together', null=True)),
                ('template', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='stages', to='approval.workflowtemplate')),
            ],
            options={
                'db_table': 'approval_workflow_stage',
                'ordering': ['template', 'index'],
                'unique_together': {('template', 'index')},
            },
        ),
        migrations.CreateModel(
            name='ApprovalWorkflow',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('name', models.CharField(max_length=120)),
                ('scope_type', models.CharField(blank=True, default='', max_length=40)),
                ('scope_id', models.CharField(blank=True, default='', max_length=64)),
                ('is_active', models.BooleanField(default=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approval_approvalworkflow_created', to=settings.AUTH_USER_MODEL)),
                ('template', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='workflows', to='approval.workflowtemplate')),
            ],
            options={
                'db_table': 'approval_workflow',
                'indexes': [models.Index(fields=['scope_type', 'scope_id', 'is_active'], name='approval_wo_scope_t_4c1d2e_idx')],
            },
        ),
        migrations.CreateModel(
            name='ApprovalRequest',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('target_type', models.CharField(choices=[('campaign', 'Campaign'), ('journey', 'Journey'), ('content', 'Content'), ('brand', 'Brand')], max_length=20)),
                ('target_id', models.CharField(max_length=64)),
                ('status', models.CharField(choices=REQUEST_STATUS_CHOICES, default='pending', max_length=15)),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('urgent', 'Urgent')], default='medium', max_length=10)),
                ('current_stage_indices', models.JSONField(blank=True, default=list)),
                ('cycle', models.PositiveIntegerField(default=1, help_text='Pass through the workflow; a revision starts a new cycle')),
                ('escalation_level', models.PositiveIntegerField(default=0)),
                ('version', models.PositiveIntegerField(default=0)),
                ('notes', models.TextField(blank=True, default='')),
                ('due_date', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('published_at', models.DateTimeField(blank=True, null=True)),
                ('requested_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='approval_requests', to=settings.AUTH_USER_MODEL)),
                ('workflow', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='requests', to='approval.approvalworkflow')),
            ],
            options={
                'db_table': 'approval_request',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['target_type', 'target_id'], name='approval_re_target__8b7f3a_idx'),
                    models.Index(fields=['status', 'due_date'], name='approval_re_status_2e9c41_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=models.Q(status__in=['escalated', 'in_progress', 'pending']),
                        fields=('target_type', 'target_id'),
                        name='approval_request_one_open_per_target',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='StageInstance',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stage_index', models.PositiveIntegerField()),
                ('cycle', models.PositiveIntegerField(default=1)),
                ('name', models.CharField(blank=True, default='', max_length=120)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('active', 'Active'), ('escalated', 'Escalated'), ('completed', 'Completed'), ('rejected', 'Rejected'), ('skipped', 'Skipped'), ('cancelled', 'Cancelled')], default='pending', max_length=12)),
                ('activated_at', models.DateTimeField(blank=True, null=True)),
                ('due_at', models.DateTimeField(blank=True, null=True)),
                ('completed_at', models.DateTimeField(blank=True, null=True)),
                ('escalated_at', models.DateTimeField(blank=True, null=True)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='stage_instances', to='approval.approvalrequest')),
            ],
            options={
                'db_table': 'approval_stage_instance',
                'ordering': ['request', 'cycle', 'stage_index'],
                'indexes': [models.Index(fields=['status', 'due_at'], name='approval_st_status_7a0d5b_idx')],
                'unique_together': {('request', 'cycle', 'stage_index')},
            },
        ),
        migrations.CreateModel(
            name='StageAssignment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('role_snapshot', models.CharField(choices=ROLE_CHOICES, max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('approved', 'Approved'), ('rejected', 'Rejected'), ('revision_requested', 'Revision Requested'), ('delegated', 'Delegated'), ('reassigned', 'Reassigned'), ('superseded', 'Superseded')], default='pending', max_length=20)),
                ('decision_comment', models.TextField(blank=True, default='')),
                ('decided_at', models.DateTimeField(blank=True, null=True)),
                ('counted', models.BooleanField(default=True, help_text='False when the decision arrived after the stage completed')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('approver', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='approval_assignments', to=settings.AUTH_USER_MODEL)),
                ('stage_instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='assignments', to='approval.stageinstance')),
            ],
            options={
                'db_table': 'approval_stage_assignment',
                'indexes': [models.Index(fields=['approver', 'status'], name='approval_st_approve_5f3b88_idx')],
                'unique_together': {('stage_instance', 'approver')},
            },
        ),
        migrations.CreateModel(
            name='ApprovalAction',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('stage_index', models.PositiveIntegerField(blank=True, null=True)),
                ('actor_role', models.CharField(blank=True, default='', max_length=20)),
                ('action', models.CharField(choices=[('approve', 'Approve'), ('reject', 'Reject'), ('request_revision', 'Request Revision'), ('submit_for_review', 'Submit for Review'), ('publish', 'Publish'), ('escalate', 'Escalate'), ('cancel', 'Cancel'), ('delegate', 'Delegate'), ('expire', 'Expire')], max_length=20)),
                ('comment', models.TextField(blank=True, default='')),
                ('from_status', models.CharField(choices=REQUEST_STATUS_CHOICES, max_length=15)),
                ('to_status', models.CharField(choices=REQUEST_STATUS_CHOICES, max_length=15)),
                ('triggers_stage_completion', models.BooleanField(default=False)),
                ('created_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('actor', models.ForeignKey(blank=True, help_text='Null for system actions', null=True, on_delete=django.db.models.deletion.PROTECT, related_name='approval_actions', to=settings.AUTH_USER_MODEL)),
                ('request', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='actions', to='approval.approvalrequest')),
            ],
            options={
                'db_table': 'approval_action',
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['request', 'action'], name='approval_ac_request_91c2de_idx'),
                    models.Index(fields=['actor', 'created_at'], name='approval_ac_actor_i_0b6e47_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ApprovalDelegation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reason', models.TextField(blank=True, default='')),
                ('active', models.BooleanField(default=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('deactivated_at', models.DateTimeField(blank=True, null=True)),
                ('from_user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='delegations_given', to=settings.AUTH_USER_MODEL)),
                ('stage_instance', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='delegations', to='approval.stageinstance')),
                ('to_user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='delegations_received', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'approval_delegation',
                'indexes': [models.Index(fields=['active', 'to_user'], name='approval_de_active_3d8a19_idx')],
            },
        ),
    ]
