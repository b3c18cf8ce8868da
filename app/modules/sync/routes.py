from fastapi import APIRouter, Depends
from app.database.supabase_client import get_service_supabase
from app.integrations.vapi_client import VapiClient, get_vapi_client
from app.modules.sync.schemas import ProcessJobsRequest
from app.modules.sync.service import VapiSyncService
from app.core.dependencies import get_current_user, require_cron_secret
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(tags=["sync"])


def get_sync_service(
    supabase: Client = Depends(get_service_supabase),
    vapi: Optional[VapiClient] = Depends(get_vapi_client)
) -> VapiSyncService:
    return VapiSyncService(supabase, vapi)


def get_sync_status_service(supabase: Client = Depends(get_service_supabase)) -> VapiSyncService:
    return VapiSyncService(supabase)


@router.post("/sync")
async def sync_with_vapi(
    user_data: Dict = Depends(get_current_user),
    service: VapiSyncService = Depends(get_sync_service)
):
    """Reconcile the current user's assistants and phone numbers with Vapi"""
    summary = service.reconcile_user_resources(user_data["id"])
    jobs = service.process_user_jobs(user_data["id"])
    return success({**summary, "jobs": jobs}, message="Sync completed")


@router.get("/sync/status")
async def sync_status(
    user_data: Dict = Depends(get_current_user),
    service: VapiSyncService = Depends(get_sync_status_service)
):
    """Last reconciliation run for the current user"""
    return success({"last_sync": service.get_last_sync(user_data["id"])})


@router.get("/cron/sync", dependencies=[Depends(require_cron_secret)])
async def cron_sync(service: VapiSyncService = Depends(get_sync_service)):
    """Scheduled reconciliation for every user (cron secret required)"""
    return success(service.run_scheduled_sync())


@router.post("/jobs/process-vapi-sync", dependencies=[Depends(require_cron_secret)])
async def process_vapi_sync(
    request: Optional[ProcessJobsRequest] = None,
    service: VapiSyncService = Depends(get_sync_service)
):
    """Process pending Vapi sync queue jobs (cron secret required)"""
    limit = request.limit if request else 10
    return success(service.process_pending_jobs(limit))
