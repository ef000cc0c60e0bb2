from django.contrib import admin
from .models import (
    ApprovalAction,
    ApprovalDelegation,
    ApprovalRequest,
    ApprovalWorkflow,
    StageAssignment,
    StageInstance,
    WorkflowStage,
    WorkflowTemplate,
)


class WorkflowStageInline(admin.TabularInline):
    """Inline admin for stages within a workflow template."""
    model = WorkflowStage
    extra = 1
    fields = [
        'index', 'name', 'approver_roles', 'require_all',
        'timeout_hours', 'escalation_role', 'parallel_group'
    ]
    ordering = ['index']


@admin.register(WorkflowTemplate)
class WorkflowTemplateAdmin(admin.ModelAdmin):
    """Admin for workflow templates. Prefer the API, which validates topology."""
    list_display = ['code', 'version', 'name', 'category', 'auto_start', 'usage_count', 'created_at']
    list_filter = ['category', 'rejection_policy', 'is_public']
    search_fields = ['code', 'name', 'description']
    readonly_fields = ['usage_count', 'created_at', 'updated_at', 'created_by']
    inlines = [WorkflowStageInline]

    fieldsets = (
        ('Basic Information', {
            'fields': ('code', 'version', 'name', 'description', 'category', 'organization')
        }),
        ('Behaviour', {
            'fields': (
                'applicable_entity_types', 'allow_parallel_stages', 'require_all_approvers',
                'default_timeout_hours', 'auto_start', 'rejection_policy', 'is_public'
            )
        }),
        ('Audit', {
            'fields': ('usage_count', 'created_by', 'created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )


@admin.register(ApprovalWorkflow)
class ApprovalWorkflowAdmin(admin.ModelAdmin):
    list_display = ['name', 'template', 'scope_type', 'scope_id', 'is_active', 'created_at']
    list_filter = ['is_active', 'scope_type']
    search_fields = ['name', 'template__code', 'scope_id']


class StageInstanceInline(admin.TabularInline):
    """Inline admin for stage instances."""
    model = StageInstance
    extra = 0
    can_delete = False
    fields = ['cycle', 'stage_index', 'name', 'status', 'activated_at', 'due_at', 'completed_at']
    readonly_fields = fields


class ApprovalActionInline(admin.TabularInline):
    """Inline admin for the audit trail (read only)."""
    model = ApprovalAction
    extra = 0
    can_delete = False
    fields = ['created_at', 'action', 'actor', 'actor_role', 'from_status', 'to_status', 'comment']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(ApprovalRequest)
class ApprovalRequestAdmin(admin.ModelAdmin):
    """Admin for requests. State changes must go through the engine."""
    list_display = [
        'id', 'target_type', 'target_id', 'workflow', 'status',
        'priority', 'current_stage_indices', 'created_at'
    ]
    list_filter = ['status', 'priority', 'target_type']
    search_fields = ['target_id', 'workflow__name']
    readonly_fields = [
        'workflow', 'target_type', 'target_id', 'status', 'priority',
        'current_stage_indices', 'cycle', 'escalation_level', 'version',
        'requested_by', 'created_at', 'updated_at', 'finished_at', 'published_at'
    ]
    inlines = [StageInstanceInline, ApprovalActionInline]

    def has_add_permission(self, request):
        """Prevent manual creation - use TransitionEngine instead."""
        return False


@admin.register(StageAssignment)
class StageAssignmentAdmin(admin.ModelAdmin):
    list_display = ['stage_instance', 'approver', 'role_snapshot', 'status', 'counted', 'decided_at']
    list_filter = ['status', 'role_snapshot', 'counted']
    search_fields = ['approver__email', 'approver__name']
    readonly_fields = ['stage_instance', 'approver', 'role_snapshot', 'decided_at', 'counted']


@admin.register(ApprovalAction)
class ApprovalActionAdmin(admin.ModelAdmin):
    """Audit trail; rows can never be edited or deleted."""
    list_display = ['request', 'action', 'actor', 'actor_role', 'from_status', 'to_status', 'created_at']
    list_filter = ['action', 'actor_role', 'created_at']
    search_fields = ['comment', 'actor__email']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ApprovalDelegation)
class ApprovalDelegationAdmin(admin.ModelAdmin):
    list_display = ['from_user', 'to_user', 'stage_instance', 'active', 'created_at']
    list_filter = ['active', 'created_at']
    search_fields = ['from_user__email', 'to_user__email', 'reason']
