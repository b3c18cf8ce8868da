from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.integrations.vapi_client import VapiClient, get_vapi_client
from app.modules.phone_numbers.schemas import PhoneNumberCreate, AssignAssistantRequest
from app.modules.phone_numbers.service import PhoneNumberService
from app.core.dependencies import get_current_user
from app.core.responses import success
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/phone-numbers", tags=["phone-numbers"])


def get_phone_number_service(
    supabase: Client = Depends(get_supabase),
    vapi: Optional[VapiClient] = Depends(get_vapi_client)
) -> PhoneNumberService:
    return PhoneNumberService(supabase, vapi)


@router.get("")
async def list_phone_numbers(
    user_data: Dict = Depends(get_current_user),
    service: PhoneNumberService = Depends(get_phone_number_service)
):
    """List active phone numbers with their assigned assistant"""
    return success(service.list_phone_numbers(user_data["id"]))


@router.post("", status_code=201)
async def create_phone_number(
    request: PhoneNumberCreate,
    user_data: Dict = Depends(get_current_user),
    service: PhoneNumberService = Depends(get_phone_number_service)
):
    """Register a Twilio number with Vapi"""
    phone = service.create_phone_number(user_data["id"], request)
    return success(phone, message="Phone number created successfully")


@router.get("/{phone_id}")
async def get_phone_number(
    phone_id: str,
    user_data: Dict = Depends(get_current_user),
    service: PhoneNumberService = Depends(get_phone_number_service)
):
    """Get a phone number"""
    return success(service.get_phone_number(phone_id, user_data["id"]))


@router.put("/{phone_id}/assistant")
async def assign_assistant(
    phone_id: str,
    request: AssignAssistantRequest,
    user_data: Dict = Depends(get_current_user),
    service: PhoneNumberService = Depends(get_phone_number_service)
):
    """Assign an assistant to the number, or unassign with null"""
    phone = service.assign_assistant(phone_id, user_data["id"], request.assistant_id)
    return success(phone, message="Assistant assignment updated")


@router.delete("/{phone_id}")
async def delete_phone_number(
    phone_id: str,
    user_data: Dict = Depends(get_current_user),
    service: PhoneNumberService = Depends(get_phone_number_service)
):
    """Delete an unassigned phone number"""
    service.delete_phone_number(phone_id, user_data["id"])
    return success(message="Phone number deleted successfully")
