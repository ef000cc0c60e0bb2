"""
Standardized API Responses

Every API response uses the envelope:
{
    "status": "success" | "error",
    "message": "string message or empty",
    "data": {...} | [] | null
}

Approval engine errors keep their stable code in ``data``:
{
    "status": "error",
    "message": "Request #12 is already approved",
    "data": {"code": "ALREADY_FINALIZED", "message": "...", "context": {...}}
}
"""
import logging

from rest_framework import status as http_status
from rest_framework.renderers import JSONRenderer
from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.approval.exceptions import ApprovalError, HTTP_STATUS_BY_CODE

logger = logging.getLogger(__name__)


def custom_exception_handler(exc, context):
    """
    Format every handled error consistently.

    ApprovalError subclasses are mapped to an HTTP status by their code;
    everything else goes through DRF's default handler first.
    """
    if isinstance(exc, ApprovalError):
        status_code = HTTP_STATUS_BY_CODE.get(exc.code, http_status.HTTP_400_BAD_REQUEST)
        logger.info("%s: %s", exc.code, exc.message)
        return Response({
            "status": "error",
            "message": exc.message,
            "data": exc.to_dict(),
        }, status=status_code)

    response = exception_handler(exc, context)

    if response is not None:
        response.data = format_error_response(response.data, response.status_code)

    return response


def format_error_response(errors, status_code):
    """
    Flatten DRF error payloads into the standard envelope.

    - {"field": ["error1", "error2"]} -> "field: error1, error2"
    - {"detail": "message"} -> "message"
    - ["error1", "error2"] -> "error1, error2"
    """
    if isinstance(errors, dict):
        message = ""
        field_messages = []
        for field, field_errors in errors.items():
            if field == 'detail':
                message = str(field_errors)
            else:
                field_messages.append(f"{field}: {_join_errors(field_errors)}")
        if field_messages:
            message = "; ".join(field_messages)
    elif isinstance(errors, list):
        message = _join_errors(errors)
    else:
        message = str(errors)

    return {
        "status": "error",
        "message": message,
        "data": None
    }


def _join_errors(errors):
    if isinstance(errors, dict):
        return "; ".join(f"{key}: {_join_errors(value)}" for key, value in errors.items())
    if isinstance(errors, list):
        return ", ".join(_join_errors(e) for e in errors)
    return str(errors)


class StandardizedJSONRenderer(JSONRenderer):
    """
    JSON renderer that wraps responses in the standard envelope unless the
    view already did.
    """

    def render(self, data, accepted_media_type=None, renderer_context=None):
        response = renderer_context.get('response') if renderer_context else None
        # 204 No Content has no body
        if response is not None and response.status_code == 204:
            return b''
        if response is not None and not self.is_already_formatted(data):
            if response.status_code >= 400:
                data = format_error_response(data, response.status_code)
            else:
                data = self.format_success_response(data)

        return super().render(data, accepted_media_type, renderer_context)

    @staticmethod
    def is_already_formatted(data):
        return isinstance(data, dict) and {'status', 'message', 'data'} <= set(data)

    @staticmethod
    def format_success_response(data):
        if isinstance(data, dict) and 'detail' in data:
            return {"status": "success", "message": str(data['detail']), "data": None}
        if data is None or (isinstance(data, dict) and not data):
            return {"status": "success", "message": "", "data": None}
        return {"status": "success", "message": "", "data": data}


def success_response(data=None, message="", status_code=http_status.HTTP_200_OK):
    """
    Build a standardized success response.

    Usage:
        return success_response(
            data=result.to_dict(),
            message="Assignment delegated",
        )
    """
    return Response({
        "status": "success",
        "message": message,
        "data": data
    }, status=status_code)


def error_response(message, data=None, status_code=http_status.HTTP_400_BAD_REQUEST):
    """
    Build a standardized error response.

    Usage:
        return error_response(
            'Admin role required',
            data={'code': 'PERMISSION_DENIED'},
            status_code=status.HTTP_403_FORBIDDEN,
        )
    """
    return Response({
        "status": "error",
        "message": message,
        "data": data
    }, status=status_code)
