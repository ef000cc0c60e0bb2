"""Escalation scheduler.

Finds requests whose active stage (or the request itself) is past due and
escalates them once per stage instance. Requests that stay unanswered
after escalation are expired when ``EXPIRE_ESCALATED_REQUESTS`` is on.
Active stages whose deadline falls within ``DEADLINE_WARNING_HOURS`` get a
single deadline warning through the notifier.

Candidates are gathered with a plain read; each one is then handled in its
own short transaction under a row lock and re-checked, so a slow request
never holds up the rest of the sweep and a crashed sweep can simply be
run again.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from .choices import OPEN_STAGE_STATUSES, OPEN_STATUSES, StageStatus
from .conf import engine_setting
from .exceptions import ApprovalError
from .integrations import TransitionEvent, dispatch_notification
from .managers import TransitionEngine
from .models import ApprovalRequest, StageInstance

logger = logging.getLogger(__name__)

DEADLINE_WARNING = "deadline_warning"


@dataclass
class SweepReport:
    escalated: List[int] = field(default_factory=list)
    expired: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)
    # stage instance ids, not request ids
    warned: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "escalated": self.escalated,
            "expired": self.expired,
            "skipped": self.skipped,
            "failed": self.failed,
            "warned": self.warned,
        }


class EscalationScheduler:
    """Periodic sweep over overdue requests.

    Args:
        clock: zero-argument callable returning an aware datetime.
            Tests inject a fixed clock.
    """

    def __init__(self, clock=None):
        self.clock = clock or timezone.now

    def candidate_ids(self, now):
        """Ids of open requests with an overdue stage or request deadline."""
        overdue = Q(
            stage_instances__status__in=OPEN_STAGE_STATUSES,
            stage_instances__due_at__lt=now,
        ) | Q(due_date__lt=now)
        return list(
            ApprovalRequest.objects.filter(status__in=OPEN_STATUSES)
            .filter(overdue)
            .order_by("pk")
            .values_list("pk", flat=True)
            .distinct()
        )

    def sweep(self):
        """Run one tick. Returns a ``SweepReport``."""
        now = self.clock()
        report = SweepReport()

        for request_id in self.candidate_ids(now):
            try:
                outcome = self.process(request_id, now)
            except ApprovalError as exc:
                logger.warning("Escalation of request #%s skipped: %s", request_id, exc.message)
                report.failed.append(request_id)
                continue
            except Exception:
                logger.exception("Escalation of request #%s failed", request_id)
                report.failed.append(request_id)
                continue
            getattr(report, outcome).append(request_id)

        for stage_id in self.warning_candidates(now):
            try:
                if self.warn(stage_id, now):
                    report.warned.append(stage_id)
            except ApprovalError as exc:
                logger.warning("Deadline warning for stage %s skipped: %s", stage_id, exc.message)
            except Exception:
                logger.exception("Deadline warning for stage %s failed", stage_id)

        if report.escalated or report.expired or report.failed or report.warned:
            logger.info(
                "Escalation sweep at %s: %d escalated, %d expired, %d failed, %d warned",
                now.isoformat(), len(report.escalated), len(report.expired),
                len(report.failed), len(report.warned),
            )
        return report

    def process(self, request_id, now):
        """Escalate or expire one request. Returns the report bucket name."""
        with transaction.atomic():
            request = TransitionEngine.lock_request(request_id)
            if request.is_terminal:
                return "skipped"

            open_stages = list(
                request.open_stages().filter(stage_index__in=request.current_stage_indices or [])
            )
            request_overdue = request.due_date is not None and request.due_date < now

            # One escalation per stage instance.
            to_escalate = [
                s for s in open_stages
                if s.status == StageStatus.ACTIVE
                and (request_overdue or (s.due_at is not None and s.due_at < now))
            ]
            if to_escalate:
                TransitionEngine.escalate_stages(request, to_escalate, now)
                return "escalated"

            lapsed = [
                s for s in open_stages
                if s.status == StageStatus.ESCALATED
                and s.due_at is not None and s.due_at < now
            ]
            if lapsed and engine_setting("EXPIRE_ESCALATED_REQUESTS"):
                TransitionEngine.expire_request(request, now)
                return "expired"

        return "skipped"

    def warning_candidates(self, now):
        """Ids of active, unwarned stages due within the warning window."""
        hours = engine_setting("DEADLINE_WARNING_HOURS")
        if not hours:
            return []
        return list(
            StageInstance.objects.filter(
                status=StageStatus.ACTIVE,
                warned_at__isnull=True,
                due_at__gt=now,
                due_at__lte=now + timedelta(hours=hours),
                request__status__in=OPEN_STATUSES,
            )
            .order_by("due_at", "pk")
            .values_list("pk", flat=True)
        )

    def warn(self, stage_id, now):
        """Send the deadline warning for one stage. Returns False if it no longer applies."""
        request_id = StageInstance.objects.values_list("request_id", flat=True).get(pk=stage_id)
        with transaction.atomic():
            request = TransitionEngine.lock_request(request_id)
            stage = StageInstance.objects.get(pk=stage_id)
            already_handled = stage.status != StageStatus.ACTIVE or stage.warned_at is not None
            if request.is_terminal or already_handled:
                return False

            stage.warned_at = now
            stage.save(update_fields=["warned_at"])
            dispatch_notification(TransitionEvent(
                request_id=request.pk,
                action=DEADLINE_WARNING,
                from_status=str(request.status),
                to_status=str(request.status),
                target_type=request.target_type,
                target_id=request.target_id,
                stage_index=stage.stage_index,
                due_at=stage.due_at,
            ))
        return True

    def run_forever(self, interval=None, stop_event=None):
        """Sweep every ``interval`` seconds until ``stop_event`` is set."""
        interval = interval or engine_setting("SCHEDULER_INTERVAL_SECONDS")
        stop_event = stop_event or threading.Event()
        logger.info("Escalation scheduler started, interval %ss", interval)

        while not stop_event.is_set():
            try:
                self.sweep()
            except Exception:
                logger.exception("Escalation sweep crashed, retrying next tick")
            stop_event.wait(interval)

        logger.info("Escalation scheduler stopped")
