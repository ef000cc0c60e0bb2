"""Role-based gate for approval actions.

A static table maps ``(role, request status)`` to the actions that role may
take. Decision actions are additionally checked against the stage's
``approver_roles``. The table is verified to cover every role and every
status when this module is imported, so adding an enum member without a
table entry fails loudly at startup.
"""

from .choices import ActionType, DECISION_ACTIONS, RequestStatus, Role
from .exceptions import PermissionDenied

_NONE = frozenset()

_DECIDE = frozenset({
    ActionType.APPROVE,
    ActionType.REJECT,
    ActionType.REQUEST_REVISION,
    ActionType.DELEGATE,
})

_AUTHOR = frozenset({ActionType.SUBMIT_FOR_REVIEW, ActionType.CANCEL})


def _open(actions):
    """Same allowed set for every non-terminal status."""
    return {
        RequestStatus.PENDING: frozenset(actions),
        RequestStatus.IN_PROGRESS: frozenset(actions),
        RequestStatus.ESCALATED: frozenset(actions),
    }


def _closed(approved=_NONE):
    return {
        RequestStatus.APPROVED: frozenset(approved),
        RequestStatus.REJECTED: _NONE,
        RequestStatus.CANCELLED: _NONE,
        RequestStatus.EXPIRED: _NONE,
    }


CAPABILITIES = {
    Role.VIEWER: {**_open(_NONE), **_closed()},
    Role.CREATOR: {**_open(_AUTHOR), **_closed()},
    Role.REVIEWER: {**_open(_DECIDE), **_closed()},
    Role.APPROVER: {**_open(_DECIDE | {ActionType.ESCALATE}), **_closed()},
    Role.PUBLISHER: {**_open(_NONE), **_closed({ActionType.PUBLISH})},
    Role.ADMIN: {
        **_open(_DECIDE | _AUTHOR | {ActionType.ESCALATE}),
        **_closed({ActionType.PUBLISH}),
    },
}


def _verify_exhaustive():
    missing = []
    for role in Role:
        row = CAPABILITIES.get(role)
        if row is None:
            missing.append(f"{role}: *")
            continue
        for status in RequestStatus:
            if status not in row:
                missing.append(f"{role}: {status}")
    if missing:
        raise ImportError(f"Capability table incomplete: {', '.join(missing)}")


_verify_exhaustive()

# Roles that hold general decision capability in at least one status.
DECIDING_ROLES = frozenset(
    role for role, row in CAPABILITIES.items()
    if any(ActionType.APPROVE in actions for actions in row.values())
)


def allowed_actions(role, status):
    """Actions ``role`` may take on a request in ``status``."""
    return CAPABILITIES[Role(role)][RequestStatus(status)]


def is_allowed(role, status, action):
    try:
        return ActionType(action) in allowed_actions(role, status)
    except ValueError:
        return False


def can_decide_on_stage(role, approver_roles):
    """Stage membership check for decision actions.

    An empty ``approver_roles`` set means any role with general approve
    capability. Admins may decide on every stage.
    """
    role = Role(role)
    if role not in DECIDING_ROLES:
        return False
    if role == Role.ADMIN or not approver_roles:
        return True
    return role in {Role(r) for r in approver_roles}


def check(role, status, action, approver_roles=None):
    """Raise ``PermissionDenied`` unless the action is allowed.

    ``approver_roles`` is only consulted for decision actions and only when
    given; engine code passes it per stage once the candidate stage is known.
    """
    if not is_allowed(role, status, action):
        raise PermissionDenied(
            f"Role '{role}' cannot '{action}' a request in status '{status}'",
            role=str(role), status=str(status), action=str(action),
        )
    if approver_roles is not None and action in DECISION_ACTIONS:
        if not can_decide_on_stage(role, approver_roles):
            raise PermissionDenied(
                f"Role '{role}' is not an approver role for this stage",
                role=str(role), action=str(action),
            )
