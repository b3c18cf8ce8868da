from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.modules.leads.schemas import LeadCreate, LeadUpdate, InteractionCreate
from app.modules.leads.service import LeadService
from app.core.dependencies import get_current_profile
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/leads", tags=["leads"])


def get_lead_service(supabase: Client = Depends(get_supabase)) -> LeadService:
    return LeadService(supabase)


@router.get("")
async def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = None,
    status: Optional[str] = None,
    lead_type: Optional[str] = None,
    lead_source: Optional[str] = None,
    min_score: Optional[int] = None,
    max_score: Optional[int] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """List leads for the user (or their team) with filters; limit is capped at 50"""
    result = service.list_leads(
        profile, page=page, limit=limit, search=search, status=status, lead_type=lead_type,
        lead_source=lead_source, min_score=min_score, max_score=max_score,
        start_date=start_date, end_date=end_date, sort_by=sort_by, sort_order=sort_order,
    )
    return success(result["leads"], pagination=result["pagination"])


@router.post("", status_code=201)
async def create_lead(
    lead_data: LeadCreate,
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Create a lead manually"""
    return success(service.create_lead(profile, lead_data), message="Lead created successfully")


@router.get("/analytics")
async def lead_analytics(
    days: Optional[int] = Query(None, ge=1, le=365),
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Lead counts by status, type and source, average score and conversion rate"""
    return success(service.lead_analytics(profile, days))


@router.get("/{lead_id}")
async def get_lead(
    lead_id: str,
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Get a lead with its interactions"""
    return success(service.get_lead(profile, lead_id))


@router.put("/{lead_id}")
async def update_lead(
    lead_id: str,
    lead_data: LeadUpdate,
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Update a lead"""
    return success(service.update_lead(profile, lead_id, lead_data), message="Lead updated successfully")


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: str,
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Delete a lead and its interactions"""
    service.delete_lead(profile, lead_id)
    return success(message="Lead deleted successfully")


@router.get("/{lead_id}/interactions")
async def list_interactions(
    lead_id: str,
    type: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """List a lead's interactions, newest first; limit is capped at 100"""
    result = service.list_interactions(profile, lead_id, interaction_type=type, page=page, limit=limit)
    return success(result["interactions"], pagination=result["pagination"])


@router.post("/{lead_id}/interactions", status_code=201)
async def create_interaction(
    lead_id: str,
    data: InteractionCreate,
    profile: Dict = Depends(get_current_profile),
    service: LeadService = Depends(get_lead_service)
):
    """Record an interaction with a lead"""
    return success(service.create_interaction(profile, lead_id, data), message="Interaction recorded")
