import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.core.errors import ConflictError, NotFoundError, VapiError
from app.core.utils import mask_phone, mask_sid, utcnow_iso
from app.integrations.vapi_client import VapiClient
from app.modules.phone_numbers.schemas import PhoneNumberCreate, PhoneNumberResponse
from app.modules.usage.service import UsageService

logger = logging.getLogger(__name__)


class PhoneNumberService:
    def __init__(self, supabase: Client, vapi: Optional[VapiClient], usage_service: Optional[UsageService] = None):
        self.supabase = supabase
        self.vapi = vapi
        self.usage_service = usage_service or UsageService(supabase)

    def _require_vapi(self) -> VapiClient:
        if self.vapi is None:
            raise VapiError("Vapi API key is not configured")
        return self.vapi

    def _owned_assistant(self, user_id: str, assistant_id: str) -> Dict[str, Any]:
        result = self.supabase.table("user_assistants")\
            .select("id, name, vapi_assistant_id")\
            .eq("id", assistant_id)\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Assistant not found", code="ASSISTANT_NOT_FOUND")
        return result.data[0]

    def _get_row(self, phone_id: str, user_id: str) -> Dict[str, Any]:
        result = self.supabase.table("user_phone_numbers")\
            .select("*")\
            .eq("id", phone_id)\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Phone number not found", code="PHONE_NUMBER_NOT_FOUND")
        return result.data[0]

    def create_phone_number(self, user_id: str, request: PhoneNumberCreate) -> PhoneNumberResponse:
        """Register a Twilio number with Vapi and store it; the Vapi resource is removed if the insert fails"""
        duplicate = self.supabase.table("user_phone_numbers")\
            .select("id")\
            .eq("user_id", user_id)\
            .eq("phone_number", request.phone_number)\
            .eq("is_active", True)\
            .limit(1)\
            .execute()
        if duplicate.data:
            raise ConflictError("This phone number is already registered", code="PHONE_NUMBER_EXISTS")

        self.usage_service.ensure_can_add_phone_number(user_id)

        vapi_assistant_id = None
        if request.assistant_id:
            vapi_assistant_id = self._owned_assistant(user_id, request.assistant_id).get("vapi_assistant_id")

        payload = {
            "provider": "twilio",
            "number": request.phone_number,
            "twilioAccountSid": request.twilio_account_sid,
            "twilioAuthToken": request.twilio_auth_token,
            "name": request.friendly_name,
        }
        if vapi_assistant_id:
            payload["assistantId"] = vapi_assistant_id

        logger.info(
            f"Creating Twilio phone number {mask_phone(request.phone_number)} "
            f"(account {mask_sid(request.twilio_account_sid)}) for user {user_id}"
        )
        vapi_phone = self._require_vapi().create_phone_number(payload)

        try:
            now = utcnow_iso()
            result = self.supabase.table("user_phone_numbers").insert({
                "user_id": user_id,
                "phone_number": request.phone_number,
                "friendly_name": request.friendly_name,
                "provider": "twilio",
                "vapi_phone_id": vapi_phone["id"],
                "vapi_credential_id": vapi_phone.get("credentialId"),
                "twilio_account_sid": request.twilio_account_sid,
                "assigned_assistant_id": request.assistant_id,
                "assigned_at": now if request.assistant_id else None,
                "is_active": True,
                "created_at": now,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to store phone number")
        except Exception as e:
            logger.error(f"Storing phone number {mask_phone(request.phone_number)} failed, rolling back Vapi resource: {e}")
            try:
                self._require_vapi().delete_phone_number(vapi_phone["id"])
            except Exception as rollback_error:
                logger.error(f"Rollback of Vapi phone number {vapi_phone['id']} failed: {rollback_error}")
            if isinstance(e, HTTPException):
                raise
            raise HTTPException(status_code=500, detail=f"Failed to store phone number: {e}")

        logger.info(f"Phone number {mask_phone(request.phone_number)} created ({result.data[0]['id']})")
        return PhoneNumberResponse(**result.data[0])

    def list_phone_numbers(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            result = self.supabase.table("user_phone_numbers")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("is_active", True)\
                .order("created_at", desc=True)\
                .execute()
            phones = result.data or []
            assistant_ids = list({p["assigned_assistant_id"] for p in phones if p.get("assigned_assistant_id")})
            assistants: Dict[str, Dict[str, Any]] = {}
            if assistant_ids:
                rows = self.supabase.table("user_assistants")\
                    .select("id, name")\
                    .in_("id", assistant_ids)\
                    .execute()
                assistants = {a["id"]: a for a in rows.data or []}
            return [
                {
                    **PhoneNumberResponse(**p).model_dump(mode="json"),
                    "assistant": assistants.get(p.get("assigned_assistant_id")),
                }
                for p in phones
            ]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_phone_number(self, phone_id: str, user_id: str) -> PhoneNumberResponse:
        return PhoneNumberResponse(**self._get_row(phone_id, user_id))

    def assign_assistant(self, phone_id: str, user_id: str, assistant_id: Optional[str]) -> PhoneNumberResponse:
        """Point the number at an assistant (or detach it with None) in Vapi, then locally"""
        phone = self._get_row(phone_id, user_id)
        vapi_assistant_id = None
        if assistant_id:
            vapi_assistant_id = self._owned_assistant(user_id, assistant_id).get("vapi_assistant_id")

        self._require_vapi().update_phone_number(phone["vapi_phone_id"], {"assistantId": vapi_assistant_id})
        try:
            result = self.supabase.table("user_phone_numbers")\
                .update({
                    "assigned_assistant_id": assistant_id,
                    "assigned_at": utcnow_iso() if assistant_id else None,
                    "updated_at": utcnow_iso(),
                })\
                .eq("id", phone_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise NotFoundError("Phone number not found", code="PHONE_NUMBER_NOT_FOUND")
        logger.info(f"Phone number {mask_phone(phone['phone_number'])} assigned to {assistant_id or 'no assistant'}")
        return PhoneNumberResponse(**result.data[0])

    def delete_phone_number(self, phone_id: str, user_id: str) -> bool:
        phone = self._get_row(phone_id, user_id)
        if phone.get("assigned_assistant_id"):
            raise ConflictError(
                "Phone number is assigned to an assistant; unassign it first",
                code="PHONE_NUMBER_ASSIGNED",
            )
        try:
            self._require_vapi().delete_phone_number(phone["vapi_phone_id"])
        except VapiError as e:
            # Already gone upstream
            if e.vapi_status != 404:
                raise
        self.supabase.table("user_phone_numbers")\
            .update({"is_active": False, "updated_at": utcnow_iso()})\
            .eq("id", phone_id)\
            .execute()
        logger.info(f"Phone number {mask_phone(phone['phone_number'])} deleted")
        return True
