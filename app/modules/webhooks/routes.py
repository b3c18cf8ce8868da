from fastapi import APIRouter, Body, Depends
from app.config.settings import settings
from app.database.supabase_client import get_service_supabase
from app.modules.webhooks.processor import WebhookProcessor
from app.modules.webhooks.schemas import MakeCallReport
from app.modules.webhooks.security import verify_make_secret, verify_vapi_secret
from app.core.responses import success
from app.core.utils import utcnow_iso
from supabase import Client
from typing import Any, Dict

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def get_webhook_processor(supabase: Client = Depends(get_service_supabase)) -> WebhookProcessor:
    return WebhookProcessor(supabase)


@router.get("/vapi")
async def vapi_webhook_status():
    """Readiness check used when configuring the Vapi server URL"""
    return {
        "status": "ok",
        "secret_configured": bool(settings.vapi_webhook_secret),
        "timestamp": utcnow_iso(),
    }


@router.post("/vapi", dependencies=[Depends(verify_vapi_secret)])
async def vapi_webhook(
    payload: Dict[str, Any] = Body(...),
    processor: WebhookProcessor = Depends(get_webhook_processor)
):
    """Vapi server messages (call lifecycle, transcripts, function calls)"""
    return processor.process_event(payload)


@router.post("/vapi/resource", dependencies=[Depends(verify_vapi_secret)])
async def vapi_resource_webhook(
    payload: Dict[str, Any] = Body(...),
    processor: WebhookProcessor = Depends(get_webhook_processor)
):
    """Vapi resource lifecycle events (assistant / phone number deleted)"""
    return success(processor.handle_resource_event(payload))


@router.post("/make/call-reports", dependencies=[Depends(verify_make_secret)])
async def make_call_report(
    report: MakeCallReport,
    processor: WebhookProcessor = Depends(get_webhook_processor)
):
    """End-of-call report forwarded by the Make.com scenario"""
    result = processor.ingest_make_call_report(report)
    return {
        "success": True,
        "call_log_id": result["call_log_id"],
        "lead_id": result["lead_id"],
        "warnings": result["warnings"],
        "message": "Call report processed successfully",
    }
