"""
Application errors.

Every error is an HTTPException carrying a machine readable `code`, so the
service layer's `except HTTPException: raise` pattern passes them through
untouched and the handlers in main.py can render the error envelope.
"""

from fastapi import HTTPException, status
from typing import Any, Dict, Optional


class AppError(HTTPException):
    code = "INTERNAL_ERROR"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(status_code=status_code or self.status_code_default, detail=message)
        self.code = code or self.code
        self.message = message
        self.details = details


class ValidationFailed(AppError):
    code = "VALIDATION_ERROR"
    status_code_default = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code_default = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    code = "CONFLICT"
    status_code_default = status.HTTP_409_CONFLICT


class UsageLimitError(AppError):
    code = "USAGE_LIMIT_EXCEEDED"
    status_code_default = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str, limit_type: str, current: int, limit: int):
        super().__init__(
            message,
            details={"limit_type": limit_type, "current": current, "limit": limit},
        )
        self.limit_type = limit_type
        self.current = current
        self.limit = limit


class VapiError(AppError):
    """Error returned by (or while talking to) the Vapi API."""
    code = "VAPI_ERROR"
    status_code_default = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, vapi_status: Optional[int] = None, body: Any = None):
        # Vendor 4xx are surfaced as-is, everything else is a bad gateway
        http_status = vapi_status if vapi_status and 400 <= vapi_status < 500 else None
        super().__init__(
            message,
            status_code=http_status,
            details={"vapi_status": vapi_status, "vapi_response": body} if vapi_status else None,
        )
        self.vapi_status = vapi_status
        self.body = body


class WebhookProcessingError(AppError):
    code = "WEBHOOK_PROCESSING_ERROR"
    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, event_type: Optional[str] = None, call_id: Optional[str] = None):
        super().__init__(message, details={"event_type": event_type, "call_id": call_id})
        self.event_type = event_type
        self.call_id = call_id


def error_body(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {"success": False, "error": error}
