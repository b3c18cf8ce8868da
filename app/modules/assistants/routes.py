from fastapi import APIRouter, Depends, Query
from app.database.supabase_client import get_supabase
from app.integrations.vapi_client import VapiClient, get_vapi_client
from app.modules.assistants.schemas import AssistantCreate, AssistantUpdate
from app.modules.assistants.service import AssistantService
from app.core.dependencies import get_current_user
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/assistants", tags=["assistants"])


def get_assistant_service(
    supabase: Client = Depends(get_supabase),
    vapi: Optional[VapiClient] = Depends(get_vapi_client)
) -> AssistantService:
    return AssistantService(supabase, vapi)


@router.get("")
async def list_assistants(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    search: Optional[str] = None,
    user_data: Dict = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service)
):
    """List active assistants, newest first; limit is capped at 50"""
    result = service.list_assistants(user_data["id"], page=page, limit=limit, search=search)
    return success(result["assistants"], pagination=result["pagination"])


@router.post("", status_code=201)
async def create_assistant(
    request: AssistantCreate,
    user_data: Dict = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service)
):
    """Create an assistant in Vapi and store it"""
    assistant = service.create_assistant(user_data["id"], request)
    return success(assistant, message="Assistant created successfully")


@router.get("/{assistant_id}")
async def get_assistant(
    assistant_id: str,
    user_data: Dict = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service)
):
    return success(service.get_assistant(user_data["id"], assistant_id))


@router.put("/{assistant_id}")
async def update_assistant(
    assistant_id: str,
    request: AssistantUpdate,
    user_data: Dict = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service)
):
    """Update an assistant; Vapi is only called when its configuration changes"""
    assistant = service.update_assistant(user_data["id"], assistant_id, request)
    return success(assistant, message="Assistant updated successfully")


@router.delete("/{assistant_id}")
async def delete_assistant(
    assistant_id: str,
    user_data: Dict = Depends(get_current_user),
    service: AssistantService = Depends(get_assistant_service)
):
    """Delete an assistant and unassign its phone numbers"""
    service.delete_assistant(user_data["id"], assistant_id)
    return success(message="Assistant deleted successfully")
