"""Signals sent after an approval transition commits.

Receivers get keyword arguments only; they run outside the transition's
transaction, so a failing receiver cannot undo the transition.

    transition_committed(sender, event)
        every committed ApprovalAction; ``event`` is a TransitionEvent
    stage_completed(sender, request_id, stage_index, cycle)
        once per stage instance that reaches COMPLETED
    request_escalated(sender, request_id, stage_indices, priority)
        after the escalation sweep or a manual escalate
"""

import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

transition_committed = Signal()
stage_completed = Signal()
request_escalated = Signal()


def send_on_commit(signal, sender, **kwargs):
    def _send():
        for receiver, result in signal.send_robust(sender=sender, **kwargs):
            if isinstance(result, Exception):
                logger.error(
                    "Signal receiver %r failed: %s", receiver, result, exc_info=result
                )

    transaction.on_commit(_send)
