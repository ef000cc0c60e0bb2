"""Approval workflow models.

Templates describe stage topology, workflows bind a template to a scope,
requests are the live instances and ``ApprovalAction`` is the append-only
audit trail. Role and entity-type lists are stored as JSON and converted
to typed ``domain`` dataclasses by the ``to_definition`` helpers.
"""

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.base.models import AuditMixin

from .choices import (
    ActionType,
    AssignmentStatus,
    OPEN_STAGE_STATUSES,
    OPEN_STATUSES,
    Priority,
    RejectionPolicy,
    RequestStatus,
    Role,
    StageStatus,
    TargetType,
    TERMINAL_STATUSES,
)
from .domain import StageDefinition, TemplateDefinition
from .exceptions import ImmutableRecordError


class WorkflowTemplate(AuditMixin):
    """Reusable, versioned stage topology.

    A template referenced by a live request is frozen; edits go through
    ``TemplateStore.new_version`` which copies it under the same ``code``.
    """

    code = models.CharField(max_length=60, help_text="Stable identifier shared by all versions")
    version = models.PositiveIntegerField(default=1)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=60, blank=True, default="")
    organization = models.CharField(
        max_length=60,
        blank=True,
        default="",
        help_text="Organization that authored the template",
    )

    applicable_entity_types = models.JSONField(
        default=list,
        blank=True,
        help_text="List of target types this template may be used for",
    )
    allow_parallel_stages = models.BooleanField(default=False)
    require_all_approvers = models.BooleanField(default=False)
    default_timeout_hours = models.PositiveIntegerField(
        default=0,
        help_text="Stage deadline when a stage sets none. 0 disables deadlines.",
    )
    auto_start = models.BooleanField(
        default=True,
        help_text="Activate the first stage on creation instead of waiting for submit_for_review",
    )
    rejection_policy = models.CharField(
        max_length=10,
        choices=RejectionPolicy.choices,
        default=RejectionPolicy.REJECT,
    )
    is_public = models.BooleanField(default=False)
    usage_count = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "approval_workflow_template"
        ordering = ["code", "-version"]
        unique_together = ("code", "version")

    def __str__(self):
        return f"{self.name} v{self.version}"

    @property
    def entity_types(self):
        return frozenset(TargetType(t) for t in (self.applicable_entity_types or []))

    def applies_to(self, target_type):
        types = self.entity_types
        return not types or TargetType(target_type) in types

    def is_locked(self):
        """True while any request created from this template is still open."""
        return ApprovalRequest.objects.filter(
            workflow__template=self,
            status__in=OPEN_STATUSES,
        ).exists()

    def to_definition(self):
        return TemplateDefinition(
            code=self.code,
            version=self.version,
            stages=tuple(stage.to_definition() for stage in self.stages.order_by("index")),
            applicable_entity_types=self.entity_types,
            allow_parallel_stages=self.allow_parallel_stages,
            require_all_approvers=self.require_all_approvers,
            default_timeout_hours=self.default_timeout_hours,
            auto_start=self.auto_start,
            rejection_policy=RejectionPolicy(self.rejection_policy),
        )


class WorkflowStage(models.Model):
    """One stage definition belonging to a template."""

    template = models.ForeignKey(
        WorkflowTemplate,
        related_name="stages",
        on_delete=models.CASCADE,
    )
    index = models.PositiveIntegerField(help_text="0-based position of the stage")
    name = models.CharField(max_length=120)
    approver_roles = models.JSONField(default=list, blank=True)
    require_all = models.BooleanField(
        null=True,
        blank=True,
        help_text="Overrides the template's require_all_approvers when set",
    )
    timeout_hours = models.PositiveIntegerField(null=True, blank=True)
    escalation_role = models.CharField(
        max_length=20,
        choices=Role.choices,
        null=True,
        blank=True,
    )
    parallel_group = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Consecutive stages in the same group activate together",
    )

    class Meta:
        db_table = "approval_workflow_stage"
        ordering = ["template", "index"]
        unique_together = ("template", "index")

    def __str__(self):
        return f"{self.template.code}#{self.index} {self.name}"

    def to_definition(self):
        return StageDefinition(
            index=self.index,
            name=self.name,
            approver_roles=frozenset(Role(r) for r in (self.approver_roles or [])),
            require_all=self.require_all,
            timeout_hours=self.timeout_hours,
            escalation_role=Role(self.escalation_role) if self.escalation_role else None,
            parallel_group=self.parallel_group,
        )


class ApprovalWorkflow(AuditMixin):
    """Activated binding of a template to a scope such as a brand or account."""

    template = models.ForeignKey(
        WorkflowTemplate,
        related_name="workflows",
        on_delete=models.PROTECT,
    )
    name = models.CharField(max_length=120)
    scope_type = models.CharField(max_length=40, blank=True, default="")
    scope_id = models.CharField(max_length=64, blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "approval_workflow"
        indexes = [
            models.Index(fields=["scope_type", "scope_id", "is_active"], name="approval_wo_scope_t_4c1d2e_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({'active' if self.is_active else 'inactive'})"


class ApprovalRequest(models.Model):
    """Live approval instance for one target entity."""

    workflow = models.ForeignKey(
        ApprovalWorkflow,
        related_name="requests",
        on_delete=models.PROTECT,
    )
    target_type = models.CharField(max_length=20, choices=TargetType.choices)
    target_id = models.CharField(max_length=64)

    status = models.CharField(
        max_length=15,
        choices=RequestStatus.choices,
        default=RequestStatus.PENDING,
    )
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
    )
    current_stage_indices = models.JSONField(default=list, blank=True)
    cycle = models.PositiveIntegerField(
        default=1,
        help_text="Pass through the workflow; a revision starts a new cycle",
    )
    escalation_level = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="approval_requests",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes = models.TextField(blank=True, default="")
    due_date = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "approval_request"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["target_type", "target_id"], name="approval_re_target__8b7f3a_idx"),
            models.Index(fields=["status", "due_date"], name="approval_re_status_2e9c41_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["target_type", "target_id"],
                condition=Q(status__in=sorted(s.value for s in OPEN_STATUSES)),
                name="approval_request_one_open_per_target",
            ),
        ]

    def __str__(self):
        return f"Request #{self.pk} for {self.target_type}:{self.target_id} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def template(self):
        return self.workflow.template

    def current_stages(self):
        return self.stage_instances.filter(
            cycle=self.cycle,
            stage_index__in=self.current_stage_indices or [],
        ).order_by("stage_index")

    def open_stages(self):
        return self.stage_instances.filter(
            cycle=self.cycle,
            status__in=OPEN_STAGE_STATUSES,
        ).order_by("stage_index")

    def is_overdue(self, now=None):
        now = now or timezone.now()
        if self.is_terminal:
            return False
        if self.due_date and self.due_date < now:
            return True
        return self.open_stages().filter(due_at__lt=now).exists()


class StageInstance(models.Model):
    """Runtime state of one stage for one request cycle."""

    request = models.ForeignKey(
        ApprovalRequest,
        related_name="stage_instances",
        on_delete=models.CASCADE,
    )
    stage_index = models.PositiveIntegerField()
    cycle = models.PositiveIntegerField(default=1)
    name = models.CharField(max_length=120, blank=True, default="")
    status = models.CharField(
        max_length=12,
        choices=StageStatus.choices,
        default=StageStatus.PENDING,
    )
    activated_at = models.DateTimeField(null=True, blank=True)
    due_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    escalated_at = models.DateTimeField(null=True, blank=True)
    warned_at = models.DateTimeField(
        null=True, blank=True,
        help_text="When the approaching-deadline warning went out",
    )

    class Meta:
        db_table = "approval_stage_instance"
        ordering = ["request", "cycle", "stage_index"]
        unique_together = ("request", "cycle", "stage_index")
        indexes = [
            models.Index(fields=["status", "due_at"], name="approval_st_status_7a0d5b_idx"),
        ]

    def __str__(self):
        return f"Stage {self.stage_index} ({self.status}) of request #{self.request_id}"

    @property
    def is_open(self):
        return self.status in OPEN_STAGE_STATUSES

    def decisions(self):
        """Decisions keyed by approver id."""
        return {
            a.approver_id: {
                "decision": a.status,
                "comment": a.decision_comment,
                "timestamp": a.decided_at,
                "counted": a.counted,
            }
            for a in self.assignments.filter(decided_at__isnull=False)
        }


class StageAssignment(models.Model):
    """Materialised eligible approver for a stage instance, with the decision."""

    stage_instance = models.ForeignKey(
        StageInstance,
        related_name="assignments",
        on_delete=models.CASCADE,
    )
    approver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="approval_assignments",
        on_delete=models.CASCADE,
    )
    role_snapshot = models.CharField(max_length=20, choices=Role.choices)
    status = models.CharField(
        max_length=20,
        choices=AssignmentStatus.choices,
        default=AssignmentStatus.PENDING,
    )
    decision_comment = models.TextField(blank=True, default="")
    decided_at = models.DateTimeField(null=True, blank=True)
    counted = models.BooleanField(
        default=True,
        help_text="False when the decision arrived after the stage completed",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "approval_stage_assignment"
        unique_together = ("stage_instance", "approver")
        indexes = [
            models.Index(fields=["approver", "status"], name="approval_st_approve_5f3b88_idx"),
        ]

    def __str__(self):
        return f"{self.approver} -> {self.stage_instance} ({self.status})"


class ApprovalActionQuerySet(models.QuerySet):
    def update(self, **kwargs):
        raise ImmutableRecordError()

    def delete(self):
        raise ImmutableRecordError()


class ApprovalAction(models.Model):
    """Append-only audit record, one row per committed transition."""

    request = models.ForeignKey(
        ApprovalRequest,
        related_name="actions",
        on_delete=models.PROTECT,
    )
    stage_index = models.PositiveIntegerField(null=True, blank=True)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="approval_actions",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        help_text="Null for system actions",
    )
    actor_role = models.CharField(max_length=20, blank=True, default="")
    action = models.CharField(max_length=20, choices=ActionType.choices)
    comment = models.TextField(blank=True, default="")
    from_status = models.CharField(max_length=15, choices=RequestStatus.choices)
    to_status = models.CharField(max_length=15, choices=RequestStatus.choices)
    triggers_stage_completion = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    objects = ApprovalActionQuerySet.as_manager()

    class Meta:
        db_table = "approval_action"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["request", "action"], name="approval_ac_request_91c2de_idx"),
            models.Index(fields=["actor", "created_at"], name="approval_ac_actor_i_0b6e47_idx"),
        ]

    def __str__(self):
        actor = self.actor if self.actor_id else "SYSTEM"
        return f"{self.action} by {actor} on request #{self.request_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ImmutableRecordError()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError()


class ApprovalDelegation(models.Model):
    """Record of an approver handing their assignment to another user."""

    from_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="delegations_given",
        on_delete=models.CASCADE,
    )
    to_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="delegations_received",
        on_delete=models.CASCADE,
    )
    stage_instance = models.ForeignKey(
        StageInstance,
        related_name="delegations",
        on_delete=models.CASCADE,
    )
    reason = models.TextField(blank=True, default="")
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "approval_delegation"
        indexes = [
            models.Index(fields=["active", "to_user"], name="approval_de_active_3d8a19_idx"),
        ]

    def __str__(self):
        return f"Delegation: {self.from_user} -> {self.to_user} ({'active' if self.active else 'inactive'})"
