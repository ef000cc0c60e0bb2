"""Transition engine for approval requests.

Every state change of an ``ApprovalRequest`` goes through
:class:`TransitionEngine`. One call locks the request row, validates the
action, lets the stage resolver decide what the decisions mean, persists
the new state together with exactly one ``ApprovalAction`` row and
schedules collaborator calls for after the commit.
"""

import logging
from datetime import timedelta

from django.contrib.auth import get_user_model
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from . import rbac
from .choices import (
    ActionType,
    AssignmentStatus,
    DECISION_ACTIONS,
    EntityState,
    OPEN_STAGE_STATUSES,
    OPEN_STATUSES,
    Priority,
    RequestStatus,
    Role,
    StageStatus,
    raise_priority,
)
from .conf import engine_setting
from .domain import Resolution, StageProgress, TransitionResult
from .exceptions import (
    ActiveRequestExists,
    AlreadyFinalized,
    InvalidTransition,
    NotAssigned,
    NotFound,
    PermissionDenied,
    StateConflict,
)
from .integrations import TransitionEvent, dispatch_notification, push_entity_state
from .models import (
    ApprovalAction,
    ApprovalDelegation,
    ApprovalRequest,
    StageAssignment,
    StageInstance,
    WorkflowTemplate,
)
from .resolver import first_step, next_step, resolve
from .signals import request_escalated, send_on_commit, stage_completed, transition_committed

logger = logging.getLogger(__name__)

User = get_user_model()

DECISION_STATUS = {
    ActionType.APPROVE: AssignmentStatus.APPROVED,
    ActionType.REJECT: AssignmentStatus.REJECTED,
    ActionType.REQUEST_REVISION: AssignmentStatus.REVISION_REQUESTED,
}

# Assignments that still count towards a stage's eligible approvers.
LIVE_ASSIGNMENT_STATUSES = frozenset({
    AssignmentStatus.PENDING,
    AssignmentStatus.APPROVED,
    AssignmentStatus.REJECTED,
    AssignmentStatus.REVISION_REQUESTED,
})


class TransitionEngine:
    """Validates and applies actions on approval requests."""

    # ----------------------
    # Helper Methods
    # ----------------------

    @staticmethod
    def _action(action):
        try:
            return ActionType(action)
        except ValueError:
            raise InvalidTransition(f"Unknown action '{action}'", action=str(action))

    @staticmethod
    def _role(role):
        try:
            return Role(role)
        except ValueError:
            raise PermissionDenied(f"Unknown role '{role}'", role=str(role))

    @staticmethod
    def get_request(request_id):
        try:
            return ApprovalRequest.objects.select_related("workflow__template").get(pk=request_id)
        except (ApprovalRequest.DoesNotExist, ValueError, TypeError):
            raise NotFound(f"Approval request {request_id} not found", request_id=request_id)

    @staticmethod
    def lock_request(request_id):
        """Fetch a request with a row lock. Call inside ``transaction.atomic``.

        Raises:
            NotFound: unknown id
            StateConflict: the row is locked and ``LOCK_NOWAIT`` is enabled
        """
        try:
            return ApprovalRequest.objects.select_for_update(
                nowait=engine_setting("LOCK_NOWAIT")
            ).get(pk=request_id)
        except (ApprovalRequest.DoesNotExist, ValueError, TypeError):
            raise NotFound(f"Approval request {request_id} not found", request_id=request_id)
        except OperationalError as exc:
            raise StateConflict(request_id=request_id) from exc

    @staticmethod
    def _eligible_users(approver_roles):
        roles = approver_roles or (rbac.DECIDING_ROLES - {Role.ADMIN})
        return User.objects.filter(
            is_active=True,
            role__in=sorted(str(r) for r in roles),
        ).order_by("pk")

    @classmethod
    def _create_assignments(cls, stage_instance, definition):
        """Materialise one pending assignment per eligible user.

        Returns:
            List of created StageAssignment objects
        """
        assignments = [
            StageAssignment(
                stage_instance=stage_instance,
                approver=user,
                role_snapshot=user.role,
                status=AssignmentStatus.PENDING,
            )
            for user in cls._eligible_users(definition.approver_roles)
        ]
        return StageAssignment.objects.bulk_create(assignments)

    @staticmethod
    def _due_at(definition, template, now):
        hours = definition.effective_timeout_hours(template.default_timeout_hours)
        return now + timedelta(hours=hours) if hours else None

    @classmethod
    def _progress(cls, request):
        snapshots = []
        stages = request.stage_instances.filter(cycle=request.cycle).prefetch_related("assignments")
        for stage in stages:
            live = [
                a for a in stage.assignments.all()
                if a.status in LIVE_ASSIGNMENT_STATUSES and a.counted
            ]
            snapshots.append(StageProgress(
                index=stage.stage_index,
                status=StageStatus(stage.status),
                eligible=len(live),
                approvals=sum(1 for a in live if a.status == AssignmentStatus.APPROVED),
                rejections=sum(1 for a in live if a.status == AssignmentStatus.REJECTED),
                revisions=sum(1 for a in live if a.status == AssignmentStatus.REVISION_REQUESTED),
            ))
        return snapshots

    @staticmethod
    def _retire_assignments(stage, now):
        stage.assignments.filter(status=AssignmentStatus.PENDING).update(
            status=AssignmentStatus.SUPERSEDED
        )
        stage.delegations.filter(active=True).update(active=False, deactivated_at=now)

    # ----------------------
    # Stage Activation
    # ----------------------

    @classmethod
    def _activate_step(cls, request, template, step, now):
        for index in step:
            definition = template.stage(index)
            stage, _ = StageInstance.objects.get_or_create(
                request=request,
                cycle=request.cycle,
                stage_index=index,
                defaults={"name": definition.name},
            )
            stage.status = StageStatus.ACTIVE
            stage.activated_at = now
            stage.due_at = cls._due_at(definition, template, now)
            stage.save()

            if not cls._create_assignments(stage, definition):
                # Stays active: an admin or escalation has to take it over.
                logger.warning(
                    "Stage %s of request #%s has no eligible approvers",
                    index, request.pk,
                )

    @classmethod
    def _advance(cls, request, template, step, now):
        """Activate ``step`` and point the request at it."""
        cls._activate_step(request, template, step, now)
        request.status = RequestStatus.IN_PROGRESS
        request.current_stage_indices = list(step)

    @staticmethod
    def _finish(request, status, now):
        request.status = status
        request.finished_at = now
        request.current_stage_indices = []

    @classmethod
    def _complete_stages(cls, request, indices, now):
        for stage in request.stage_instances.filter(cycle=request.cycle, stage_index__in=indices):
            stage.status = StageStatus.COMPLETED
            stage.completed_at = now
            stage.save(update_fields=["status", "completed_at"])
            cls._retire_assignments(stage, now)

    @classmethod
    def _close_stages(cls, request, now, rejected_index=None):
        """Close every unfinished stage of the current cycle."""
        stages = request.stage_instances.filter(
            cycle=request.cycle,
            status__in=OPEN_STAGE_STATUSES | {StageStatus.PENDING},
        )
        for stage in stages:
            if stage.stage_index == rejected_index:
                stage.status = StageStatus.REJECTED
            else:
                stage.status = StageStatus.CANCELLED
            stage.completed_at = now
            stage.save(update_fields=["status", "completed_at"])
            cls._retire_assignments(stage, now)

    @classmethod
    def _restart_cycle(cls, request, template):
        """Start a new pass at the first step, awaiting resubmission."""
        request.cycle += 1
        cls._await_submission(request, template)

    @staticmethod
    def _await_submission(request, template):
        step = first_step(template)
        for index in step:
            StageInstance.objects.create(
                request=request,
                cycle=request.cycle,
                stage_index=index,
                name=template.stage(index).name,
                status=StageStatus.PENDING,
            )
        request.status = RequestStatus.PENDING
        request.current_stage_indices = list(step)

    @classmethod
    def _commit(cls, request, action, from_status, actor_id=None, actor_role="",
                comment=None, stage_index=None, completed=(), entity_state=None,
                recorded_only=False):
        """Persist the request with its audit row and queue after-commit work."""
        request.version += 1
        request.save()

        ApprovalAction.objects.create(
            request=request,
            stage_index=stage_index,
            actor_id=actor_id,
            actor_role=str(actor_role or ""),
            action=action,
            comment=comment or "",
            from_status=from_status,
            to_status=request.status,
            triggers_stage_completion=bool(completed),
        )

        event = TransitionEvent(
            request_id=request.pk,
            action=str(action),
            from_status=str(from_status),
            to_status=str(request.status),
            actor_id=actor_id,
            target_type=request.target_type,
            target_id=request.target_id,
            stage_index=stage_index,
        )
        if entity_state is not None:
            push_entity_state(request.target_type, request.target_id, entity_state)
        dispatch_notification(event)
        send_on_commit(transition_committed, sender=cls, event=event)
        for index in completed:
            send_on_commit(
                stage_completed, sender=cls,
                request_id=request.pk, stage_index=index, cycle=request.cycle,
            )

        return TransitionResult(
            request_id=request.pk,
            action=action,
            from_status=from_status,
            to_status=request.status,
            stage_indices=tuple(request.current_stage_indices),
            recorded_only=recorded_only,
            version=request.version,
            completed_stages=tuple(completed),
        )

    # ----------------------
    # Request Creation
    # ----------------------

    @classmethod
    def create_request(cls, workflow, target_type, target_id, requested_by=None,
                       priority=Priority.MEDIUM, due_date=None, notes=""):
        """Open an approval request for a target entity.

        Raises:
            InvalidTransition: inactive workflow or unsupported target type
            ActiveRequestExists: the target already has an open request
        """
        template_row = workflow.template
        if not workflow.is_active:
            raise InvalidTransition(
                f"Workflow '{workflow.name}' is not active", workflow_id=workflow.pk
            )
        if not template_row.applies_to(target_type):
            raise InvalidTransition(
                f"Template '{template_row.code}' does not apply to {target_type}",
                target_type=str(target_type),
            )

        target_id = str(target_id)
        template = template_row.to_definition()
        now = timezone.now()

        with transaction.atomic():
            if ApprovalRequest.objects.filter(
                target_type=target_type, target_id=target_id, status__in=OPEN_STATUSES,
            ).exists():
                raise ActiveRequestExists(target_type=str(target_type), target_id=target_id)

            try:
                with transaction.atomic():
                    request = ApprovalRequest.objects.create(
                        workflow=workflow,
                        target_type=target_type,
                        target_id=target_id,
                        status=RequestStatus.PENDING,
                        priority=priority,
                        requested_by=requested_by,
                        due_date=due_date,
                        notes=notes or "",
                    )
            except IntegrityError as exc:
                raise ActiveRequestExists(
                    target_type=str(target_type), target_id=target_id
                ) from exc

            step = first_step(template)
            entity_state = EntityState.DRAFT
            if template.auto_start:
                cls._advance(request, template, step, now)
                # Nobody has decided yet.
                request.status = RequestStatus.PENDING
                entity_state = EntityState.IN_REVIEW
            else:
                cls._await_submission(request, template)
            request.save()

            WorkflowTemplate.objects.filter(pk=template_row.pk).update(
                usage_count=F("usage_count") + 1
            )
            push_entity_state(request.target_type, request.target_id, entity_state)

        logger.info(
            "Created approval request #%s for %s:%s using %s v%s (stages %s)",
            request.pk, target_type, target_id, template.code, template.version,
            request.current_stage_indices,
        )
        return request

    # ----------------------
    # Actions
    # ----------------------

    @classmethod
    def apply(cls, request_id, actor_id, actor_role, action, comment=None, expected_version=None):
        """Apply one action to a request.

        Args:
            request_id: ApprovalRequest primary key
            actor_id: id of the acting user (already authenticated)
            actor_role: the actor's resolved role
            action: ActionType value
            comment: Optional comment stored on the audit row
            expected_version: when given, must equal the request's version

        Returns:
            TransitionResult

        Raises:
            ApprovalError subclasses, see ``core.approval.exceptions``
        """
        action = cls._action(action)
        role = cls._role(actor_role)

        with transaction.atomic():
            request = cls.lock_request(request_id)

            if expected_version is not None and int(expected_version) != request.version:
                raise StateConflict(
                    request_id=request.pk,
                    expected_version=int(expected_version),
                    version=request.version,
                )

            if request.is_terminal and not cls._publishable(request, action):
                raise AlreadyFinalized(
                    f"Request #{request.pk} is already {request.status}",
                    request_id=request.pk, status=str(request.status),
                )

            rbac.check(role, request.status, action)

            if action in DECISION_ACTIONS:
                result = cls._decide(request, actor_id, role, action, comment)
            elif action == ActionType.SUBMIT_FOR_REVIEW:
                result = cls._submit(request, actor_id, role, comment)
            elif action == ActionType.CANCEL:
                result = cls._cancel(request, actor_id, role, comment)
            elif action == ActionType.PUBLISH:
                result = cls._publish(request, actor_id, role, comment)
            elif action == ActionType.ESCALATE:
                result = cls._manual_escalate(request, actor_id, role, comment)
            else:
                raise InvalidTransition(
                    f"Action '{action}' cannot be applied directly", action=str(action)
                )

        logger.info(
            "Request #%s %s by user %s (%s): %s -> %s%s",
            result.request_id, action, actor_id, role, result.from_status,
            result.to_status, " [recorded only]" if result.recorded_only else "",
        )
        return result

    @staticmethod
    def _publishable(request, action):
        return (
            action == ActionType.PUBLISH
            and request.status == RequestStatus.APPROVED
            and request.published_at is None
        )

    @classmethod
    def _decide(cls, request, actor_id, role, action, comment):
        template = request.template.to_definition()
        open_stages = list(
            request.open_stages().filter(stage_index__in=request.current_stage_indices or [])
        )
        if not open_stages:
            raise InvalidTransition(
                f"Request #{request.pk} has no active stage, submit it for review first",
                request_id=request.pk,
            )

        assignments = list(
            StageAssignment.objects.select_related("stage_instance").filter(
                stage_instance__in=open_stages,
                approver_id=actor_id,
                status=AssignmentStatus.PENDING,
            )
        )
        if not assignments and role == Role.ADMIN:
            assignments = cls._admin_assignments(open_stages, actor_id)
        if not assignments:
            late = StageAssignment.objects.select_related("stage_instance").filter(
                stage_instance__request=request,
                stage_instance__cycle=request.cycle,
                stage_instance__status=StageStatus.COMPLETED,
                approver_id=actor_id,
                status=AssignmentStatus.SUPERSEDED,
            ).order_by("stage_instance__stage_index").first()
            if late is not None:
                return cls._record_late_decision(request, late, actor_id, role, action, comment)
            raise NotAssigned(request_id=request.pk, actor_id=actor_id)

        permitted = [
            a for a in assignments
            if cls._may_decide(role, template.stage(a.stage_instance.stage_index), a.stage_instance)
        ]
        if not permitted:
            raise PermissionDenied(
                f"Role '{role}' is not an approver role for the active stage",
                role=str(role), action=str(action),
            )

        now = timezone.now()
        for assignment in permitted:
            assignment.status = DECISION_STATUS[action]
            assignment.decision_comment = comment or ""
            assignment.decided_at = now
            assignment.save(update_fields=["status", "decision_comment", "decided_at"])

        from_status = request.status
        stage_index = permitted[0].stage_instance.stage_index
        resolution = resolve(template, cls._progress(request))
        entity_state = None
        completed = ()

        if resolution.kind == Resolution.REJECTED:
            cls._close_stages(request, now, rejected_index=resolution.rejected_index)
            cls._finish(request, RequestStatus.REJECTED, now)
            entity_state = EntityState.REJECTED
        elif resolution.kind == Resolution.REVISION:
            cls._close_stages(request, now, rejected_index=resolution.rejected_index)
            cls._restart_cycle(request, template)
            entity_state = EntityState.DRAFT
        else:
            completed = resolution.completed
            cls._complete_stages(request, completed, now)
            if resolution.kind == Resolution.ALL_COMPLETE:
                cls._finish(request, RequestStatus.APPROVED, now)
                entity_state = EntityState.APPROVED
            elif resolution.kind == Resolution.STAGE_COMPLETE:
                cls._advance(request, template, resolution.next_indices, now)
            elif request.status == RequestStatus.PENDING:
                request.status = RequestStatus.IN_PROGRESS

        return cls._commit(
            request, action, from_status,
            actor_id=actor_id, actor_role=role, comment=comment,
            stage_index=stage_index, completed=completed, entity_state=entity_state,
        )

    @staticmethod
    def _may_decide(role, definition, stage):
        if rbac.can_decide_on_stage(role, definition.approver_roles):
            return True
        # Escalated stages are handed to the escalation role.
        return stage.status == StageStatus.ESCALATED and role == definition.escalation_role

    @staticmethod
    def _admin_assignments(open_stages, actor_id):
        """Admins may decide on stages they were not assigned to."""
        assigned = set(
            StageAssignment.objects.filter(
                stage_instance__in=open_stages, approver_id=actor_id,
            ).values_list("stage_instance_id", flat=True)
        )
        created = []
        for stage in open_stages:
            if stage.pk in assigned:
                continue
            created.append(StageAssignment.objects.create(
                stage_instance=stage,
                approver_id=actor_id,
                role_snapshot=Role.ADMIN,
                status=AssignmentStatus.PENDING,
            ))
        return created

    @classmethod
    def _record_late_decision(cls, request, assignment, actor_id, role, action, comment):
        """Decision on a stage that already completed: audit only."""
        assignment.status = DECISION_STATUS[action]
        assignment.decision_comment = comment or ""
        assignment.decided_at = timezone.now()
        assignment.counted = False
        assignment.save(update_fields=["status", "decision_comment", "decided_at", "counted"])

        return cls._commit(
            request, action, request.status,
            actor_id=actor_id, actor_role=role, comment=comment,
            stage_index=assignment.stage_instance.stage_index, recorded_only=True,
        )

    @classmethod
    def _submit(cls, request, actor_id, role, comment):
        awaiting = request.stage_instances.filter(
            cycle=request.cycle,
            stage_index__in=request.current_stage_indices or [],
            status=StageStatus.PENDING,
        )
        if request.status != RequestStatus.PENDING or not awaiting.exists():
            raise InvalidTransition(
                f"Request #{request.pk} is already under review", request_id=request.pk
            )

        from_status = request.status
        template = request.template.to_definition()
        cls._advance(request, template, tuple(request.current_stage_indices), timezone.now())
        return cls._commit(
            request, ActionType.SUBMIT_FOR_REVIEW, from_status,
            actor_id=actor_id, actor_role=role, comment=comment,
            stage_index=request.current_stage_indices[0] if request.current_stage_indices else None,
            entity_state=EntityState.IN_REVIEW,
        )

    @classmethod
    def _cancel(cls, request, actor_id, role, comment):
        from_status = request.status
        stage_index = request.current_stage_indices[0] if request.current_stage_indices else None
        now = timezone.now()
        cls._close_stages(request, now)
        cls._finish(request, RequestStatus.CANCELLED, now)
        return cls._commit(
            request, ActionType.CANCEL, from_status,
            actor_id=actor_id, actor_role=role, comment=comment,
            stage_index=stage_index, entity_state=EntityState.DRAFT,
        )

    @classmethod
    def _publish(cls, request, actor_id, role, comment):
        request.published_at = timezone.now()
        return cls._commit(
            request, ActionType.PUBLISH, request.status,
            actor_id=actor_id, actor_role=role, comment=comment,
            entity_state=EntityState.PUBLISHED,
        )

    @classmethod
    def _manual_escalate(cls, request, actor_id, role, comment):
        stages = [
            s for s in request.open_stages().filter(
                stage_index__in=request.current_stage_indices or []
            )
            if s.status == StageStatus.ACTIVE
        ]
        if not stages:
            raise InvalidTransition(
                f"Request #{request.pk} has no active stage left to escalate",
                request_id=request.pk,
            )
        return cls.escalate_stages(
            request, stages, timezone.now(),
            actor_id=actor_id, actor_role=role, comment=comment,
        )

    # ----------------------
    # Escalation & Expiry
    # ----------------------

    @classmethod
    def _reassign(cls, stage, escalation_role):
        """Hand the stage's open votes to active holders of ``escalation_role``.

        Holders already on the stage keep (or get back) a pending vote;
        holders who already decided are left as they are.
        """
        if not escalation_role:
            return
        users = list(
            User.objects.filter(is_active=True, role=str(escalation_role)).order_by("pk")
        )
        if not users:
            logger.warning(
                "No active users with role %s to take over stage %s of request #%s",
                escalation_role, stage.stage_index, stage.request_id,
            )
            return
        holder_ids = [user.pk for user in users]
        stage.assignments.filter(status=AssignmentStatus.PENDING).exclude(
            approver_id__in=holder_ids
        ).update(status=AssignmentStatus.REASSIGNED)
        stage.assignments.filter(
            approver_id__in=holder_ids, status=AssignmentStatus.REASSIGNED
        ).update(status=AssignmentStatus.PENDING)

        on_stage = set(stage.assignments.values_list("approver_id", flat=True))
        StageAssignment.objects.bulk_create([
            StageAssignment(
                stage_instance=stage,
                approver=user,
                role_snapshot=user.role,
                status=AssignmentStatus.PENDING,
            )
            for user in users
            if user.pk not in on_stage
        ])

    @classmethod
    def escalate_stages(cls, request, stages, now, actor_id=None, actor_role="", comment=None):
        """Escalate ``stages`` of a locked request.

        Pending assignments move to the stage's escalation role, each stage
        gets a fresh deadline, and the request's priority goes up one level.
        """
        template = request.template.to_definition()
        from_status = request.status

        for stage in stages:
            definition = template.stage(stage.stage_index)
            cls._reassign(stage, definition.escalation_role)
            stage.status = StageStatus.ESCALATED
            stage.escalated_at = now
            stage.due_at = cls._due_at(definition, template, now)
            stage.save(update_fields=["status", "escalated_at", "due_at"])

        request.priority = raise_priority(request.priority)
        request.status = RequestStatus.ESCALATED
        request.escalation_level += 1

        indices = [s.stage_index for s in stages]
        send_on_commit(
            request_escalated, sender=cls,
            request_id=request.pk, stage_indices=indices, priority=str(request.priority),
        )
        return cls._commit(
            request, ActionType.ESCALATE, from_status,
            actor_id=actor_id, actor_role=actor_role,
            comment=comment or f"Escalated stage(s) {indices}",
            stage_index=indices[0],
        )

    @classmethod
    def expire_request(cls, request, now, comment=None):
        """Expire a locked request whose escalated deadline has also passed."""
        from_status = request.status
        stage_index = request.current_stage_indices[0] if request.current_stage_indices else None
        cls._close_stages(request, now)
        cls._finish(request, RequestStatus.EXPIRED, now)
        return cls._commit(
            request, ActionType.EXPIRE, from_status,
            comment=comment or "Escalated stage passed its deadline",
            stage_index=stage_index, entity_state=EntityState.DRAFT,
        )

    # ----------------------
    # Delegation
    # ----------------------

    @classmethod
    def delegate(cls, request_id, actor_id, actor_role, to_user_id, comment=None,
                 expected_version=None):
        """Hand the actor's pending assignment on an active stage to another user.

        Returns:
            TransitionResult
        """
        role = cls._role(actor_role)

        with transaction.atomic():
            request = cls.lock_request(request_id)
            if expected_version is not None and int(expected_version) != request.version:
                raise StateConflict(
                    request_id=request.pk,
                    expected_version=int(expected_version),
                    version=request.version,
                )
            if request.is_terminal:
                raise AlreadyFinalized(request_id=request.pk, status=str(request.status))
            rbac.check(role, request.status, ActionType.DELEGATE)

            from_assignment = StageAssignment.objects.select_for_update().select_related(
                "stage_instance"
            ).filter(
                stage_instance__request=request,
                stage_instance__cycle=request.cycle,
                stage_instance__status__in=OPEN_STAGE_STATUSES,
                approver_id=actor_id,
                status=AssignmentStatus.PENDING,
            ).order_by("stage_instance__stage_index").first()
            if from_assignment is None:
                raise NotAssigned(request_id=request.pk, actor_id=actor_id)

            stage = from_assignment.stage_instance
            try:
                to_user = User.objects.get(pk=to_user_id, is_active=True)
            except (User.DoesNotExist, ValueError, TypeError):
                raise NotFound(f"User {to_user_id} not found", user_id=to_user_id)

            definition = request.template.to_definition().stage(stage.stage_index)
            if not cls._may_decide(to_user.role, definition, stage):
                raise PermissionDenied(
                    f"User {to_user.pk} cannot decide on stage {stage.stage_index}",
                    user_id=to_user.pk, role=str(to_user.role),
                )
            if stage.assignments.filter(approver=to_user).exists():
                raise InvalidTransition(
                    "Target user is already involved in this stage", user_id=to_user.pk
                )

            ApprovalDelegation.objects.create(
                from_user_id=actor_id,
                to_user=to_user,
                stage_instance=stage,
                reason=comment or "",
                active=True,
            )
            StageAssignment.objects.create(
                stage_instance=stage,
                approver=to_user,
                role_snapshot=to_user.role,
                status=AssignmentStatus.PENDING,
            )
            from_assignment.status = AssignmentStatus.DELEGATED
            from_assignment.save(update_fields=["status"])

            result = cls._commit(
                request, ActionType.DELEGATE, request.status,
                actor_id=actor_id, actor_role=role,
                comment=comment or f"Delegated to user {to_user.pk}",
                stage_index=stage.stage_index,
            )

        logger.info(
            "Request #%s stage %s delegated by user %s to user %s",
            request.pk, stage.stage_index, actor_id, to_user.pk,
        )
        return result

    # ----------------------
    # Utility Methods
    # ----------------------

    @staticmethod
    def pending_for_user(user):
        """Open requests with a stage waiting on ``user``'s decision."""
        return ApprovalRequest.objects.filter(
            status__in=OPEN_STATUSES,
            stage_instances__status__in=OPEN_STAGE_STATUSES,
            stage_instances__assignments__approver=user,
            stage_instances__assignments__status=AssignmentStatus.PENDING,
        ).distinct()
