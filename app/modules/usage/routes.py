from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase, get_service_supabase
from app.integrations.vapi_client import VapiClient, get_vapi_client
from app.modules.usage.schemas import CostSyncRequest
from app.modules.usage.service import UsageService
from app.modules.sync.service import VapiSyncService
from app.core.dependencies import get_current_user, require_system_admin
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(tags=["usage"])


def get_usage_service(supabase: Client = Depends(get_supabase)) -> UsageService:
    return UsageService(supabase)


@router.get("/usage")
async def get_usage(
    user_data: Dict = Depends(get_current_user),
    service: UsageService = Depends(get_usage_service)
):
    """Usage for the current billing cycle against plan limits"""
    return success(service.get_usage_summary(user_data["id"]))


@router.post("/usage/recalculate")
async def recalculate_usage(
    user_data: Dict = Depends(get_current_user),
    service: UsageService = Depends(get_usage_service)
):
    """Recompute cycle minutes from call logs"""
    return success(service.recalculate_usage(user_data["id"]), message="Usage recalculated")


@router.get("/usage/check")
async def check_usage(
    user_data: Dict = Depends(get_current_user),
    service: UsageService = Depends(get_usage_service)
):
    """Whether the user may create assistants, add numbers or take calls"""
    return success(service.check_limits(user_data["id"]))


@router.get("/usage/validate-call")
async def validate_call(
    user_data: Dict = Depends(get_current_user),
    service: UsageService = Depends(get_usage_service)
):
    """Minute-limit check before placing a call"""
    return success(service.validate_call(user_data["id"]))


@router.post("/usage/sync")
async def sync_usage_costs(
    request: Optional[CostSyncRequest] = None,
    user_data: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_service_supabase),
    vapi: Optional[VapiClient] = Depends(get_vapi_client)
):
    """Pull final call costs from Vapi for recent calls"""
    days = request.days if request else 7
    result = VapiSyncService(supabase, vapi).sync_call_costs(user_data["id"], days=days)
    return success(result, message=f"Synced {result['synced_calls']} call(s)")


@router.get("/usage/sync")
async def usage_sync_status(
    user_data: Dict = Depends(get_current_user),
    supabase: Client = Depends(get_service_supabase)
):
    """Last Vapi sync for the current user"""
    return success({"last_sync": VapiSyncService(supabase).get_last_sync(user_data["id"])})


@router.get("/admin/usage-summary")
async def admin_usage_summary(
    profile: Dict = Depends(require_system_admin),
    supabase: Client = Depends(get_service_supabase)
):
    """System-wide usage, heaviest users first (system admins only)"""
    return success(UsageService(supabase).system_usage_summary())
