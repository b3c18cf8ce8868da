import logging
from fastapi import Request
from app.config.settings import settings
from app.core.dependencies import secrets_match
from app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)

VAPI_SECRET_HEADER = "x-vapi-secret"
MAKE_SECRET_HEADER = "x-make-apikey"


def verify_vapi_secret(request: Request) -> None:
    """Shared-secret check for Vapi server messages; an unset secret rejects everything."""
    if not secrets_match(request.headers.get(VAPI_SECRET_HEADER), settings.vapi_webhook_secret):
        logger.warning(f"Rejected Vapi webhook from {request.client.host if request.client else 'unknown'}")
        raise UnauthorizedError("Invalid webhook secret", code="INVALID_WEBHOOK_SECRET")


def verify_make_secret(request: Request) -> None:
    if not secrets_match(request.headers.get(MAKE_SECRET_HEADER), settings.make_webhook_secret):
        logger.warning(f"Rejected Make webhook from {request.client.host if request.client else 'unknown'}")
        raise UnauthorizedError("Invalid API key", code="INVALID_WEBHOOK_SECRET")
