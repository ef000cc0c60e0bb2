"""Ports to collaborators the engine does not own.

The engine talks to two outside systems:

* an entity-state store, told when a target should move to draft,
  in-review, approved, rejected or published;
* a notification dispatcher, told about every committed transition and
  about stage deadlines that are close to passing.

Both are configured by dotted path in ``settings.APPROVAL_ENGINE`` and are
only ever invoked from ``transaction.on_commit`` callbacks. A failing
collaborator is logged and never rolls back or retries the transition.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from django.db import transaction
from django.utils.module_loading import import_string

from .conf import engine_setting

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionEvent:
    request_id: int
    action: str
    from_status: str
    to_status: str
    actor_id: Optional[int] = None
    target_type: str = ""
    target_id: str = ""
    stage_index: Optional[int] = None
    due_at: Optional[datetime] = None

    def to_dict(self):
        return asdict(self)


class EntityStateStore:
    """Interface for the external content/entity store."""

    def set_entity_state(self, target_type, target_id, state):
        raise NotImplementedError("Subclasses must implement set_entity_state()")


class Notifier:
    """Interface for the external notification dispatcher."""

    def notify(self, event):
        raise NotImplementedError("Subclasses must implement notify()")


class LoggingEntityStateStore(EntityStateStore):
    def set_entity_state(self, target_type, target_id, state):
        logger.info("Entity %s:%s -> %s", target_type, target_id, state)


class LoggingNotifier(Notifier):
    def notify(self, event):
        logger.info(
            "Request #%s %s: %s -> %s (actor=%s)",
            event.request_id, event.action, event.from_status,
            event.to_status, event.actor_id,
        )


@lru_cache(maxsize=None)
def _load(dotted_path):
    return import_string(dotted_path)()


def get_entity_store():
    return _load(engine_setting("ENTITY_STORE"))


def get_notifier():
    return _load(engine_setting("NOTIFIER"))


def reset_collaborators():
    """Drop cached collaborator instances (used when settings change)."""
    _load.cache_clear()


def push_entity_state(target_type, target_id, state):
    """Schedule an entity-state update for after the current transaction."""

    def _push():
        try:
            get_entity_store().set_entity_state(target_type, target_id, str(state))
        except Exception:
            logger.exception(
                "Entity store failed to set %s:%s to %s", target_type, target_id, state
            )

    transaction.on_commit(_push)


def dispatch_notification(event):
    """Schedule a fire-and-forget notification for after commit."""

    def _send():
        try:
            get_notifier().notify(event)
        except Exception:
            logger.exception(
                "Notifier failed for request #%s action %s", event.request_id, event.action
            )

    transaction.on_commit(_send)
