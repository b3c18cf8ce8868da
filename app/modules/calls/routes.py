from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.calls.service import CallService
from app.core.dependencies import get_current_user
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/calls", tags=["calls"])


def get_call_service(supabase: Client = Depends(get_supabase)) -> CallService:
    return CallService(supabase)


@router.get("")
async def list_calls(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    assistant_id: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    user_data: Dict = Depends(get_current_user),
    service: CallService = Depends(get_call_service)
):
    """List calls, newest first; limit is capped at 100"""
    result = service.list_calls(
        user_data["id"], page=page, limit=limit, assistant_id=assistant_id,
        status=status, start_date=start_date, end_date=end_date,
    )
    return success(result["calls"], pagination=result["pagination"])


@router.get("/analytics")
async def call_analytics(
    days: int = Query(30, ge=1, le=365),
    user_data: Dict = Depends(get_current_user),
    service: CallService = Depends(get_call_service)
):
    """Call totals and daily trend"""
    return success(service.call_analytics(user_data["id"], days))


@router.get("/{call_id}")
async def get_call(
    call_id: str,
    user_data: Dict = Depends(get_current_user),
    service: CallService = Depends(get_call_service)
):
    """Get a call with transcript, analysis and costs"""
    return success(service.get_call(user_data["id"], call_id))


@router.get("/{call_id}/transcript")
async def get_transcript(
    call_id: str,
    user_data: Dict = Depends(get_current_user),
    service: CallService = Depends(get_call_service)
):
    """Get the stored transcript of a call"""
    return success(service.get_transcript(user_data["id"], call_id))
