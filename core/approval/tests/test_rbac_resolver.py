"""Unit tests for the capability table and the stage resolver.

Both are pure functions over enums and dataclasses, so no database is needed.
"""

from django.test import SimpleTestCase

from core.approval import rbac
from core.approval.choices import ActionType, RejectionPolicy, RequestStatus, Role, StageStatus
from core.approval.domain import Resolution, StageDefinition, StageProgress, TemplateDefinition
from core.approval.exceptions import PermissionDenied
from core.approval.resolver import build_steps, first_step, next_step, resolve


def make_template(*stages, **options):
    definitions = tuple(
        StageDefinition(index=i, name=f'Stage {i}', **stage) for i, stage in enumerate(stages)
    )
    return TemplateDefinition(code='t', version=1, stages=definitions, **options)


def progress(index, status=StageStatus.ACTIVE, **counts):
    return StageProgress(index=index, status=status, **counts)


class CapabilityTableTest(SimpleTestCase):
    """Test the static role/status capability table."""

    def test_every_role_and_status_is_covered(self):
        for role in Role:
            for status in RequestStatus:
                self.assertIsInstance(rbac.allowed_actions(role, status), frozenset)

    def test_viewer_can_do_nothing(self):
        for status in RequestStatus:
            self.assertEqual(rbac.allowed_actions(Role.VIEWER, status), frozenset())

    def test_publisher_only_publishes_approved_requests(self):
        self.assertTrue(rbac.is_allowed(Role.PUBLISHER, RequestStatus.APPROVED, ActionType.PUBLISH))
        self.assertFalse(rbac.is_allowed(Role.PUBLISHER, RequestStatus.IN_PROGRESS, ActionType.PUBLISH))
        self.assertFalse(rbac.is_allowed(Role.PUBLISHER, RequestStatus.IN_PROGRESS, ActionType.APPROVE))

    def test_creator_submits_and_cancels_but_never_decides(self):
        self.assertTrue(rbac.is_allowed(Role.CREATOR, RequestStatus.PENDING, ActionType.SUBMIT_FOR_REVIEW))
        self.assertTrue(rbac.is_allowed(Role.CREATOR, RequestStatus.ESCALATED, ActionType.CANCEL))
        self.assertFalse(rbac.is_allowed(Role.CREATOR, RequestStatus.PENDING, ActionType.APPROVE))

    def test_terminal_statuses_allow_no_decisions(self):
        for status in (RequestStatus.REJECTED, RequestStatus.CANCELLED, RequestStatus.EXPIRED):
            for role in Role:
                self.assertNotIn(ActionType.APPROVE, rbac.allowed_actions(role, status))

    def test_unknown_action_is_not_allowed(self):
        self.assertFalse(rbac.is_allowed(Role.ADMIN, RequestStatus.PENDING, 'launch'))

    def test_deciding_roles(self):
        self.assertEqual(rbac.DECIDING_ROLES, {Role.REVIEWER, Role.APPROVER, Role.ADMIN})

    def test_can_decide_on_stage(self):
        self.assertTrue(rbac.can_decide_on_stage(Role.REVIEWER, {Role.REVIEWER}))
        self.assertFalse(rbac.can_decide_on_stage(Role.REVIEWER, {Role.APPROVER}))
        self.assertTrue(rbac.can_decide_on_stage(Role.ADMIN, {Role.APPROVER}))
        # Empty set: any role with general approve capability
        self.assertTrue(rbac.can_decide_on_stage(Role.APPROVER, set()))
        self.assertFalse(rbac.can_decide_on_stage(Role.PUBLISHER, set()))
        self.assertFalse(rbac.can_decide_on_stage(Role.PUBLISHER, {Role.PUBLISHER}))

    def test_check_raises_permission_denied(self):
        with self.assertRaises(PermissionDenied) as ctx:
            rbac.check(Role.VIEWER, RequestStatus.PENDING, ActionType.APPROVE)
        self.assertEqual(ctx.exception.code, 'PERMISSION_DENIED')

        with self.assertRaises(PermissionDenied):
            rbac.check(Role.REVIEWER, RequestStatus.PENDING, ActionType.APPROVE, {Role.APPROVER})

        # No exception
        rbac.check(Role.REVIEWER, RequestStatus.PENDING, ActionType.APPROVE, {Role.REVIEWER})


class StepTopologyTest(SimpleTestCase):
    """Test grouping of stages into activation steps."""

    def test_sequential_stages(self):
        template = make_template({}, {}, {})
        self.assertEqual(build_steps(template), [(0,), (1,), (2,)])
        self.assertEqual(first_step(template), (0,))
        self.assertEqual(next_step(template, (1,)), (2,))
        self.assertIsNone(next_step(template, (2,)))

    def test_parallel_group_forms_one_step(self):
        template = make_template(
            {'parallel_group': 1}, {'parallel_group': 1}, {},
            allow_parallel_stages=True,
        )
        self.assertEqual(build_steps(template), [(0, 1), (2,)])
        self.assertEqual(next_step(template, (0,)), (2,))

    def test_parallel_group_ignored_when_disallowed(self):
        template = make_template({'parallel_group': 1}, {'parallel_group': 1})
        self.assertEqual(build_steps(template), [(0,), (1,)])

    def test_unknown_indices(self):
        with self.assertRaises(ValueError):
            next_step(make_template({}), (5,))


class ResolveTest(SimpleTestCase):
    """Test resolution of stage decisions."""

    def setUp(self):
        self.template = make_template(
            {'approver_roles': frozenset({Role.REVIEWER})},
            {'approver_roles': frozenset({Role.APPROVER})},
        )

    def test_no_decisions_is_incomplete(self):
        result = resolve(self.template, [progress(0, eligible=2)])
        self.assertEqual(result.kind, Resolution.INCOMPLETE)
        self.assertEqual(result.completed, ())

    def test_single_approval_completes_stage(self):
        result = resolve(self.template, [progress(0, eligible=2, approvals=1)])
        self.assertEqual(result.kind, Resolution.STAGE_COMPLETE)
        self.assertEqual(result.completed, (0,))
        self.assertEqual(result.next_indices, (1,))

    def test_last_stage_completes_workflow(self):
        result = resolve(self.template, [
            progress(0, StageStatus.COMPLETED, eligible=1, approvals=1),
            progress(1, eligible=1, approvals=1),
        ])
        self.assertEqual(result.kind, Resolution.ALL_COMPLETE)
        self.assertTrue(result.is_terminal)

    def test_require_all_waits_for_every_approver(self):
        template = make_template({'require_all': True})
        self.assertEqual(
            resolve(template, [progress(0, eligible=2, approvals=1)]).kind,
            Resolution.INCOMPLETE,
        )
        self.assertEqual(
            resolve(template, [progress(0, eligible=2, approvals=2)]).kind,
            Resolution.ALL_COMPLETE,
        )

    def test_template_default_require_all(self):
        template = make_template({}, require_all_approvers=True)
        self.assertEqual(
            resolve(template, [progress(0, eligible=3, approvals=2)]).kind,
            Resolution.INCOMPLETE,
        )

    def test_rejection_ends_workflow(self):
        result = resolve(self.template, [progress(0, eligible=2, approvals=1, rejections=1)])
        self.assertEqual(result.kind, Resolution.REJECTED)
        self.assertEqual(result.rejected_index, 0)

    def test_rejection_under_revise_policy(self):
        template = make_template({}, rejection_policy=RejectionPolicy.REVISE)
        result = resolve(template, [progress(0, eligible=1, rejections=1)])
        self.assertEqual(result.kind, Resolution.REVISION)

    def test_revision_request(self):
        result = resolve(self.template, [progress(0, eligible=1, revisions=1)])
        self.assertEqual(result.kind, Resolution.REVISION)

    def test_skipped_stage_counts_as_satisfied(self):
        result = resolve(self.template, [
            progress(0, StageStatus.SKIPPED),
            progress(1, eligible=1, approvals=1),
        ])
        self.assertEqual(result.kind, Resolution.ALL_COMPLETE)
        self.assertEqual(result.completed, (1,))

    def test_parallel_step_waits_for_all_stages(self):
        template = make_template(
            {'parallel_group': 1}, {'parallel_group': 1}, {},
            allow_parallel_stages=True,
        )
        result = resolve(template, [
            progress(0, eligible=1, approvals=1),
            progress(1, eligible=1),
        ])
        self.assertEqual(result.kind, Resolution.INCOMPLETE)
        self.assertEqual(result.completed, (0,))

        result = resolve(template, [
            progress(0, StageStatus.COMPLETED, eligible=1, approvals=1),
            progress(1, eligible=1, approvals=1),
        ])
        self.assertEqual(result.kind, Resolution.STAGE_COMPLETE)
        self.assertEqual(result.next_indices, (2,))

    def test_escalated_stage_still_accepts_decisions(self):
        result = resolve(self.template, [progress(0, StageStatus.ESCALATED, eligible=1, approvals=1)])
        self.assertEqual(result.kind, Resolution.STAGE_COMPLETE)
