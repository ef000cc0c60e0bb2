"""Error taxonomy for the approval engine.

Each error carries a stable ``code`` that API callers and the bulk
coordinator report back. Views translate codes to HTTP statuses with
``HTTP_STATUS_BY_CODE``.
"""

from rest_framework import status


class ApprovalError(Exception):
    """Base class for every error the engine raises on purpose."""

    code = "APPROVAL_ERROR"
    default_message = "Approval workflow error"

    def __init__(self, message=None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def to_dict(self):
        payload = {"code": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class PermissionDenied(ApprovalError):
    code = "PERMISSION_DENIED"
    default_message = "Role is not allowed to perform this action in the current status"


class NotAssigned(ApprovalError):
    code = "NOT_ASSIGNED"
    default_message = "Actor is not an eligible approver for any active stage"


class AlreadyFinalized(ApprovalError):
    """Terminal request; bulk callers treat this as an idempotent no-op."""

    code = "ALREADY_FINALIZED"
    default_message = "Request has already reached a terminal state"


class NotFound(ApprovalError):
    code = "NOT_FOUND"
    default_message = "Object not found"


class StateConflict(ApprovalError):
    """Lost a race with a concurrent transition. Safe to refetch and retry."""

    code = "STATE_CONFLICT"
    default_message = "Request was modified concurrently, refetch and retry"


class TemplateInvalid(ApprovalError):
    code = "TEMPLATE_INVALID"
    default_message = "Workflow template is malformed"

    def __init__(self, message=None, errors=None, **context):
        self.errors = list(errors or [])
        if message is None and self.errors:
            message = "; ".join(self.errors)
        super().__init__(message, **context)

    def to_dict(self):
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class InvalidTransition(ApprovalError):
    code = "INVALID_TRANSITION"
    default_message = "Action is not valid for the current request state"


class ActiveRequestExists(ApprovalError):
    code = "ACTIVE_REQUEST_EXISTS"
    default_message = "Target already has an open approval request"


class TemplateLocked(ApprovalError):
    code = "TEMPLATE_LOCKED"
    default_message = "Template is referenced by a live request, create a new version instead"


class ImmutableRecordError(ApprovalError):
    code = "IMMUTABLE_RECORD"
    default_message = "Approval audit records cannot be modified or deleted"


HTTP_STATUS_BY_CODE = {
    PermissionDenied.code: status.HTTP_403_FORBIDDEN,
    NotAssigned.code: status.HTTP_403_FORBIDDEN,
    AlreadyFinalized.code: status.HTTP_409_CONFLICT,
    NotFound.code: status.HTTP_404_NOT_FOUND,
    StateConflict.code: status.HTTP_409_CONFLICT,
    TemplateInvalid.code: status.HTTP_400_BAD_REQUEST,
    InvalidTransition.code: status.HTTP_400_BAD_REQUEST,
    ActiveRequestExists.code: status.HTTP_409_CONFLICT,
    TemplateLocked.code: status.HTTP_409_CONFLICT,
    ImmutableRecordError.code: status.HTTP_400_BAD_REQUEST,
}
