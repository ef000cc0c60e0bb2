"""
Serializers for Approval Workflow models.
Handles serialization/deserialization of approval models for API endpoints.
"""
from rest_framework import serializers

from . import rbac
from .choices import ActionType, Priority, RejectionPolicy, Role, TargetType
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
from .templates import STAGE_FIELDS, TEMPLATE_FIELDS, TemplateStore


class RoleListField(serializers.ListField):
    child = serializers.ChoiceField(choices=Role.choices)


class WorkflowStageSerializer(serializers.ModelSerializer):
    """Stage definition, nested inside a template."""
    approver_roles = RoleListField(allow_empty=True)
    index = serializers.IntegerField(min_value=0, required=False)

    class Meta:
        model = WorkflowStage
        fields = [
            'id',
            'index',
            'name',
            'approver_roles',
            'require_all',
            'timeout_hours',
            'escalation_role',
            'parallel_group',
        ]
        read_only_fields = ['id']


class WorkflowTemplateListSerializer(serializers.ModelSerializer):
    """
    Lightweight serializer for listing workflow templates.
    """
    stage_count = serializers.SerializerMethodField()
    is_locked = serializers.SerializerMethodField()

    class Meta:
        model = WorkflowTemplate
        fields = [
            'id',
            'code',
            'version',
            'name',
            'category',
            'organization',
            'applicable_entity_types',
            'is_public',
            'usage_count',
            'stage_count',
            'is_locked',
            'created_at',
        ]

    def get_stage_count(self, obj):
        return obj.stages.count()

    def get_is_locked(self, obj):
        return obj.is_locked()


class WorkflowTemplateSerializer(WorkflowTemplateListSerializer):
    """
    Full serializer for WorkflowTemplate.
    Includes nested stages.
    """
    stages = WorkflowStageSerializer(many=True, read_only=True)

    class Meta(WorkflowTemplateListSerializer.Meta):
        fields = WorkflowTemplateListSerializer.Meta.fields + [
            'description',
            'allow_parallel_stages',
            'require_all_approvers',
            'default_timeout_hours',
            'auto_start',
            'rejection_policy',
            'stages',
            'updated_at',
        ]


class WorkflowTemplateCreateUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for creating/updating workflow templates with nested stages.

    Creation and edits go through TemplateStore so topology is validated and
    templates referenced by live requests stay frozen.
    """
    stages = WorkflowStageSerializer(many=True, required=False)
    applicable_entity_types = serializers.ListField(
        child=serializers.ChoiceField(choices=TargetType.choices),
        required=False,
    )
    rejection_policy = serializers.ChoiceField(
        choices=RejectionPolicy.choices,
        required=False,
    )

    class Meta:
        model = WorkflowTemplate
        fields = ['id', 'code'] + list(TEMPLATE_FIELDS) + ['stages']
        read_only_fields = ['id']

    def validate_code(self, value):
        if self.instance and value != self.instance.code:
            raise serializers.ValidationError("Template code cannot be changed.")
        return value

    def validate(self, attrs):
        if self.instance is None and not attrs.get('stages'):
            raise serializers.ValidationError({'stages': 'At least one stage is required.'})
        return attrs

    def create(self, validated_data):
        stages = validated_data.pop('stages')
        code = validated_data.pop('code')
        name = validated_data.pop('name')
        return TemplateStore.create_template(
            code,
            name,
            [dict(s) for s in stages],
            created_by=self.context.get('user'),
            **validated_data
        )

    def update(self, instance, validated_data):
        stages = validated_data.pop('stages', None)
        validated_data.pop('code', None)
        return TemplateStore.update_template(
            instance,
            stages=[dict(s) for s in stages] if stages is not None else None,
            **validated_data
        )


class ApprovalWorkflowSerializer(serializers.ModelSerializer):
    template_code = serializers.CharField(source='template.code', read_only=True)
    template_version = serializers.IntegerField(source='template.version', read_only=True)

    class Meta:
        model = ApprovalWorkflow
        fields = [
            'id',
            'template',
            'template_code',
            'template_version',
            'name',
            'scope_type',
            'scope_id',
            'is_active',
            'created_at',
        ]
        read_only_fields = ['id', 'template', 'template_code', 'template_version', 'created_at']


class ActivateTemplateSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True)
    scope_type = serializers.CharField(required=False, allow_blank=True, default='')
    scope_id = serializers.CharField(required=False, allow_blank=True, default='')


# Request monitoring serializers

class StageAssignmentSerializer(serializers.ModelSerializer):
    """Serializer for stage assignments (one row per eligible approver)."""
    approver_name = serializers.CharField(source='approver.name', read_only=True)

    class Meta:
        model = StageAssignment
        fields = [
            'id',
            'approver',
            'approver_name',
            'role_snapshot',
            'status',
            'decision_comment',
            'decided_at',
            'counted',
        ]


class StageInstanceSerializer(serializers.ModelSerializer):
    """Runtime stage state; assignments are only shown to deciding roles."""
    assignments = StageAssignmentSerializer(many=True, read_only=True)

    class Meta:
        model = StageInstance
        fields = [
            'id',
            'stage_index',
            'cycle',
            'name',
            'status',
            'activated_at',
            'due_at',
            'completed_at',
            'escalated_at',
            'assignments',
        ]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        role = self.context.get('role')
        if role is None or Role(role) not in rbac.DECIDING_ROLES:
            data.pop('assignments')
        return data


class ApprovalActionSerializer(serializers.ModelSerializer):
    """Serializer for the audit trail."""
    actor_name = serializers.SerializerMethodField()
    action_display = serializers.CharField(source='get_action_display', read_only=True)

    class Meta:
        model = ApprovalAction
        fields = [
            'id',
            'stage_index',
            'actor',
            'actor_name',
            'actor_role',
            'action',
            'action_display',
            'comment',
            'from_status',
            'to_status',
            'triggers_stage_completion',
            'created_at',
        ]

    def get_actor_name(self, obj):
        return obj.actor.name if obj.actor_id else 'SYSTEM'


class ApprovalRequestListSerializer(serializers.ModelSerializer):
    workflow_name = serializers.CharField(source='workflow.name', read_only=True)
    is_overdue = serializers.SerializerMethodField()

    class Meta:
        model = ApprovalRequest
        fields = [
            'id',
            'workflow',
            'workflow_name',
            'target_type',
            'target_id',
            'status',
            'priority',
            'current_stage_indices',
            'due_date',
            'is_overdue',
            'version',
            'created_at',
        ]

    def get_is_overdue(self, obj):
        return obj.is_overdue()


class ApprovalRequestDetailSerializer(ApprovalRequestListSerializer):
    """
    Full request with stage state, trimmed to what the caller's role may see.
    """
    stages = serializers.SerializerMethodField()
    available_actions = serializers.SerializerMethodField()
    requested_by_name = serializers.CharField(source='requested_by.name', read_only=True, default=None)

    class Meta(ApprovalRequestListSerializer.Meta):
        fields = ApprovalRequestListSerializer.Meta.fields + [
            'cycle',
            'escalation_level',
            'notes',
            'requested_by',
            'requested_by_name',
            'updated_at',
            'finished_at',
            'published_at',
            'stages',
            'available_actions',
        ]

    def get_stages(self, obj):
        stages = obj.stage_instances.filter(cycle=obj.cycle).prefetch_related('assignments__approver')
        return StageInstanceSerializer(stages, many=True, context=self.context).data

    def get_available_actions(self, obj):
        role = self.context.get('role')
        if role is None:
            return []
        actions = set(rbac.allowed_actions(role, obj.status))
        if obj.published_at is not None:
            actions.discard(ActionType.PUBLISH)
        return sorted(str(a) for a in actions)


class ApprovalRequestCreateSerializer(serializers.Serializer):
    workflow = serializers.PrimaryKeyRelatedField(queryset=ApprovalWorkflow.objects.all())
    target_type = serializers.ChoiceField(choices=TargetType.choices)
    target_id = serializers.CharField(max_length=64)
    priority = serializers.ChoiceField(choices=Priority.choices, default=Priority.MEDIUM)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=ActionType.choices)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class DelegateSerializer(serializers.Serializer):
    to_user = serializers.IntegerField()
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    expected_version = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class BulkActionSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False, max_length=500)
    action = serializers.ChoiceField(choices=ActionType.choices)
    comment = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class ApprovalDelegationSerializer(serializers.ModelSerializer):
    """Serializer for approval delegations."""
    from_user_name = serializers.CharField(source='from_user.name', read_only=True)
    to_user_name = serializers.CharField(source='to_user.name', read_only=True)
    stage_index = serializers.IntegerField(source='stage_instance.stage_index', read_only=True)

    class Meta:
        model = ApprovalDelegation
        fields = [
            'id',
            'from_user',
            'from_user_name',
            'to_user',
            'to_user_name',
            'stage_index',
            'reason',
            'active',
            'created_at',
            'deactivated_at',
        ]
