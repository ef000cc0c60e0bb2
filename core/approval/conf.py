"""Engine settings with defaults.

Override any key through ``settings.APPROVAL_ENGINE``::

    APPROVAL_ENGINE = {
        "ENTITY_STORE": "myproject.integrations.CmsEntityStore",
        "SCHEDULER_INTERVAL_SECONDS": 30,
    }
"""

from django.conf import settings

DEFAULTS = {
    "ENTITY_STORE": "core.approval.integrations.LoggingEntityStateStore",
    "NOTIFIER": "core.approval.integrations.LoggingNotifier",
    "SCHEDULER_INTERVAL_SECONDS": 60,
    "EXPIRE_ESCALATED_REQUESTS": True,
    # Warn approvers this many hours before a stage deadline; 0 turns warnings off
    "DEADLINE_WARNING_HOURS": 4,
    "LOCK_NOWAIT": False,
}


def engine_setting(name):
    """Return a single engine setting, falling back to ``DEFAULTS``."""
    overrides = getattr(settings, "APPROVAL_ENGINE", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
