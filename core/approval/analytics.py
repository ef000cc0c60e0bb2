"""Read-only approval metrics for dashboards."""

from collections import defaultdict
from datetime import timedelta

from django.db.models import Count, Q
from django.utils import timezone

from .choices import (
    OPEN_STAGE_STATUSES,
    OPEN_STATUSES,
    AssignmentStatus,
    RequestStatus,
    StageStatus,
)
from .models import ApprovalRequest, StageAssignment, StageInstance

DECIDED_ASSIGNMENT_STATUSES = (
    AssignmentStatus.APPROVED,
    AssignmentStatus.REJECTED,
    AssignmentStatus.REVISION_REQUESTED,
)

# Recent weeks must differ from the older average by more than this to count as a trend
TREND_TOLERANCE = 0.1


def _hours(delta):
    return round(delta.total_seconds() / 3600, 2)


def _rate(part, total):
    return round(part / total * 100, 2) if total else 0.0


def approval_summary(workflow=None, since=None, until=None, now=None):
    """Throughput, escalation and bottleneck figures.

    Args:
        workflow: restrict to one ApprovalWorkflow
        since, until: bounds on request ``created_at``
        now: reference time for overdue counts

    Returns:
        dict suitable for a JSON response
    """
    now = now or timezone.now()
    requests = ApprovalRequest.objects.all()
    if workflow is not None:
        requests = requests.filter(workflow=workflow)
    if since is not None:
        requests = requests.filter(created_at__gte=since)
    if until is not None:
        requests = requests.filter(created_at__lte=until)

    counts = requests.aggregate(
        total=Count("pk"),
        active=Count("pk", filter=Q(status__in=OPEN_STATUSES)),
        approved=Count("pk", filter=Q(status=RequestStatus.APPROVED)),
        rejected=Count("pk", filter=Q(status=RequestStatus.REJECTED)),
        expired=Count("pk", filter=Q(status=RequestStatus.EXPIRED)),
        escalated=Count("pk", filter=Q(escalation_level__gt=0)),
    )
    overdue = requests.filter(status__in=OPEN_STATUSES).filter(
        Q(due_date__lt=now)
        | Q(stage_instances__status__in=OPEN_STAGE_STATUSES, stage_instances__due_at__lt=now)
    ).distinct().count()

    durations = [
        finished - created
        for created, finished in requests.filter(finished_at__isnull=False)
        .values_list("created_at", "finished_at")
    ]
    average_completion = _hours(sum(durations, timedelta()) / len(durations)) if durations else 0.0

    total = counts["total"]
    return {
        "total_requests": total,
        "active_requests": counts["active"],
        "completed_requests": counts["approved"],
        "rejected_requests": counts["rejected"],
        "overdue_requests": overdue,
        "escalated_requests": counts["escalated"],
        "approval_rate": _rate(counts["approved"], counts["approved"] + counts["rejected"]),
        "escalation_rate": _rate(counts["escalated"], total),
        "timeout_rate": _rate(counts["expired"], total),
        "average_completion_hours": average_completion,
        "bottleneck_stages": stage_bottlenecks(requests),
        "approver_performance": approver_performance(requests),
        "trends": weekly_trends(requests),
    }


def stage_bottlenecks(requests):
    """Average hours from activation to completion per stage, slowest first."""
    rows = StageInstance.objects.filter(
        request__in=requests,
        status=StageStatus.COMPLETED,
        activated_at__isnull=False,
        completed_at__isnull=False,
    ).values_list("stage_index", "name", "activated_at", "completed_at")

    grouped = defaultdict(list)
    for index, name, activated, completed in rows:
        grouped[(index, name)].append(completed - activated)

    stages = [
        {
            "stage_index": index,
            "name": name,
            "completed": len(deltas),
            "average_hours": _hours(sum(deltas, timedelta()) / len(deltas)),
        }
        for (index, name), deltas in grouped.items()
    ]
    return sorted(stages, key=lambda s: (-s["average_hours"], s["stage_index"]))


def approver_performance(requests):
    """Decision counts and response times per approver, by email."""
    rows = (
        StageAssignment.objects.filter(
            stage_instance__request__in=requests,
            status__in=DECIDED_ASSIGNMENT_STATUSES,
            decided_at__isnull=False,
        )
        .values_list(
            "approver_id", "approver__email", "status",
            "decided_at", "stage_instance__activated_at",
        )
        .order_by("approver__email", "decided_at")
    )

    stats = {}
    for approver_id, email, status, decided, activated in rows:
        entry = stats.setdefault(email, {
            "approver_id": approver_id,
            "decisions": 0,
            "approved": 0,
            "rejected": 0,
            "revisions_requested": 0,
            "response_times": [],
        })
        entry["decisions"] += 1
        if status == AssignmentStatus.APPROVED:
            entry["approved"] += 1
        elif status == AssignmentStatus.REJECTED:
            entry["rejected"] += 1
        else:
            entry["revisions_requested"] += 1
        if activated is not None:
            entry["response_times"].append(decided - activated)

    for entry in stats.values():
        times = entry.pop("response_times")
        entry["average_response_hours"] = (
            _hours(sum(times, timedelta()) / len(times)) if times else 0.0
        )
        entry["approval_rate"] = _rate(entry["approved"], entry["decisions"])
    return stats


def _week_start(moment):
    day = timezone.localtime(moment).date()
    return day - timedelta(days=day.weekday())


def weekly_trends(requests):
    """Submissions and approvals per week (Monday start) and the submission trend."""
    submissions = defaultdict(int)
    for created in requests.values_list("created_at", flat=True):
        submissions[_week_start(created)] += 1

    completions = defaultdict(int)
    approved = requests.filter(status=RequestStatus.APPROVED).values_list(
        "finished_at", "updated_at"
    )
    for finished, updated in approved:
        completions[_week_start(finished or updated)] += 1

    weeks = sorted(submissions)
    return {
        "weekly_submissions": {week.isoformat(): submissions[week] for week in weeks},
        "weekly_completions": {
            week.isoformat(): completions[week] for week in sorted(completions)
        },
        "trend_direction": trend_direction([submissions[week] for week in weeks]),
    }


def trend_direction(values):
    """Compare the last four weeks against the earlier ones.

    Fewer than two weeks of data is always "stable".
    """
    if len(values) < 2:
        return "stable"
    recent = sum(values[-4:]) / 4.0
    older_span = max(len(values) - 4, 4)
    older = sum(values[:older_span]) / float(older_span)
    if recent > older * (1 + TREND_TOLERANCE):
        return "increasing"
    if recent < older * (1 - TREND_TOLERANCE):
        return "decreasing"
    return "stable"
