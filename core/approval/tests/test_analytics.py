"""Tests for the approval metrics summary."""

from datetime import timedelta

from django.test import TestCase
from django.utils import timezone

from core.approval.analytics import approval_summary, trend_direction, weekly_trends
from core.approval.choices import ActionType, Role, TargetType
from core.approval.escalation import EscalationScheduler
from core.approval.managers import TransitionEngine
from core.approval.models import ApprovalRequest
from core.base.test_utils import create_user, create_workflow


class ApprovalSummaryTest(TestCase):

    def setUp(self):
        self.reviewer = create_user(Role.REVIEWER)
        _, self.workflow = create_workflow(
            [{'name': 'Review', 'approver_roles': ['reviewer'], 'timeout_hours': 4}]
        )
        self.requests = [
            TransitionEngine.create_request(self.workflow, TargetType.CONTENT, f'post-{i}')
            for i in range(4)
        ]

    def decide(self, request, action):
        TransitionEngine.apply(request.pk, self.reviewer.pk, Role.REVIEWER, action)

    def test_empty(self):
        summary = approval_summary(workflow=None, since=timezone.now() + timedelta(days=1))
        self.assertEqual(summary['total_requests'], 0)
        self.assertEqual(summary['approval_rate'], 0.0)
        self.assertEqual(summary['bottleneck_stages'], [])

    def test_counts_and_rates(self):
        self.decide(self.requests[0], ActionType.APPROVE)
        self.decide(self.requests[1], ActionType.APPROVE)
        self.decide(self.requests[2], ActionType.REJECT)

        summary = approval_summary(workflow=self.workflow)

        self.assertEqual(summary['total_requests'], 4)
        self.assertEqual(summary['active_requests'], 1)
        self.assertEqual(summary['completed_requests'], 2)
        self.assertEqual(summary['rejected_requests'], 1)
        self.assertEqual(summary['approval_rate'], 66.67)
        self.assertEqual(summary['overdue_requests'], 0)
        self.assertGreaterEqual(summary['average_completion_hours'], 0)

        bottleneck = summary['bottleneck_stages'][0]
        self.assertEqual(bottleneck['stage_index'], 0)
        self.assertEqual(bottleneck['completed'], 2)

    def test_overdue_and_escalated(self):
        later = timezone.now() + timedelta(hours=5)
        EscalationScheduler(clock=lambda: later).sweep()

        summary = approval_summary(now=later + timedelta(hours=5))
        self.assertEqual(summary['escalated_requests'], 4)
        self.assertEqual(summary['escalation_rate'], 100.0)
        self.assertEqual(summary['overdue_requests'], 4)

    def test_approval_rate_ignores_undecided_requests(self):
        self.decide(self.requests[0], ActionType.APPROVE)

        summary = approval_summary(workflow=self.workflow)
        self.assertEqual(summary['active_requests'], 3)
        self.assertEqual(summary['approval_rate'], 100.0)

    def test_approver_performance(self):
        admin = create_user(Role.ADMIN)
        self.decide(self.requests[0], ActionType.APPROVE)
        self.decide(self.requests[1], ActionType.REJECT)
        TransitionEngine.apply(self.requests[2].pk, admin.pk, Role.ADMIN, ActionType.APPROVE)

        performance = approval_summary(workflow=self.workflow)['approver_performance']

        self.assertEqual(set(performance), {self.reviewer.email, admin.email})
        stats = performance[self.reviewer.email]
        self.assertEqual(stats['approver_id'], self.reviewer.pk)
        self.assertEqual(stats['decisions'], 2)
        self.assertEqual(stats['approved'], 1)
        self.assertEqual(stats['rejected'], 1)
        self.assertEqual(stats['approval_rate'], 50.0)
        self.assertGreaterEqual(stats['average_response_hours'], 0)
        self.assertEqual(performance[admin.email]['approval_rate'], 100.0)


class WeeklyTrendsTest(TestCase):

    def setUp(self):
        self.reviewer = create_user(Role.REVIEWER)
        _, self.workflow = create_workflow([{'name': 'Review', 'approver_roles': ['reviewer']}])

    def submit_on(self, moment, count):
        for i in range(count):
            request = TransitionEngine.create_request(
                self.workflow, TargetType.CONTENT, f'post-{moment:%Y%m%d}-{i}'
            )
            ApprovalRequest.objects.filter(pk=request.pk).update(created_at=moment)

    def test_groups_by_monday(self):
        monday = timezone.now().replace(year=2026, month=3, day=2, hour=12, minute=0, second=0, microsecond=0)
        self.submit_on(monday, 1)
        self.submit_on(monday + timedelta(days=3), 2)
        self.submit_on(monday + timedelta(days=7), 1)

        trends = weekly_trends(ApprovalRequest.objects.all())

        self.assertEqual(trends['weekly_submissions'], {'2026-03-02': 3, '2026-03-09': 1})
        self.assertEqual(trends['weekly_completions'], {})

    def test_approvals_count_in_completion_week(self):
        self.submit_on(timezone.now(), 2)
        request = ApprovalRequest.objects.first()
        TransitionEngine.apply(request.pk, self.reviewer.pk, Role.REVIEWER, ActionType.APPROVE)

        trends = weekly_trends(ApprovalRequest.objects.all())
        self.assertEqual(sum(trends['weekly_completions'].values()), 1)

    def test_trend_direction(self):
        self.assertEqual(trend_direction([]), 'stable')
        self.assertEqual(trend_direction([5]), 'stable')
        self.assertEqual(trend_direction([1, 1, 1, 1, 8, 8, 8, 8]), 'increasing')
        self.assertEqual(trend_direction([8, 8, 8, 8, 1, 1, 1, 1]), 'decreasing')
        self.assertEqual(trend_direction([4, 4, 4, 4, 4, 4, 4, 4]), 'stable')
