import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.settings import settings
from app.core.errors import NotFoundError, VapiError
from app.core.responses import pagination
from app.core.utils import utcnow_iso
from app.integrations.vapi_client import VapiClient
from app.modules.assistants import prompt_builder
from app.modules.assistants.schemas import AssistantCreate, AssistantResponse, AssistantUpdate
from app.modules.usage.service import UsageService

logger = logging.getLogger(__name__)

# Product model ids offered in the dashboard -> model names Vapi accepts
MODEL_MAPPING = {
    "gpt-4.1-nano-2025-04-14": "gpt-4o-mini",
    "gpt-4o-mini-cluster-2025-04-14": "gpt-4o-mini",
    "gpt-4.1-2025-04-14": "gpt-4o",
    "gpt-4o-cluster-2025-04-14": "gpt-4o",
    "gpt-4.1-mini-2025-04-14": "gpt-4o-mini",
}
DEFAULT_VAPI_MODEL = "gpt-4o-mini"

# Row columns whose change has to be pushed to Vapi
VAPI_FIELDS = (
    "name", "company_name", "agent_name", "personality", "model_id", "voice_id", "first_message",
    "first_message_mode", "max_call_duration", "background_sound", "custom_instructions",
    "structured_questions",
)

MAX_PAGE_SIZE = 50


def server_config() -> Dict[str, Any]:
    """Where Vapi posts end-of-call reports: the Make scenario when configured, else our own webhook"""
    if settings.make_configured:
        return {
            "url": settings.make_webhook_url,
            "headers": {"x-make-apikey": settings.make_webhook_secret},
        }
    server: Dict[str, Any] = {"url": f"{settings.app_url.rstrip('/')}/api/v1/webhooks/vapi"}
    if settings.vapi_webhook_secret:
        server["headers"] = {"x-vapi-secret": settings.vapi_webhook_secret}
    return server


def build_vapi_payload(user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Vapi assistant body for a (merged) assistant definition"""
    questions = data.get("structured_questions") or []
    system_prompt = prompt_builder.build_system_prompt(
        company_name=data.get("company_name"),
        agent_name=data.get("agent_name"),
        personality=data.get("personality") or "professional",
        questions=questions,
        custom_instructions=data.get("custom_instructions"),
    )
    model: Dict[str, Any] = {
        "provider": "openai",
        "model": MODEL_MAPPING.get(data.get("model_id") or "", DEFAULT_VAPI_MODEL),
        "messages": [{"role": "system", "content": system_prompt}],
        "maxTokens": 500,
        "temperature": 0.7,
    }
    analysis_plan: Dict[str, Any] = {
        "minMessagesThreshold": 2,
        "summaryPlan": {"enabled": True, "timeoutSeconds": 30},
    }
    if questions:
        model["functions"] = [prompt_builder.build_lead_function(questions)]
        analysis_plan["structuredDataSchema"] = prompt_builder.build_structured_data_schema(questions)

    return {
        "name": data["name"],
        "model": model,
        "voice": {"provider": "vapi", "voiceId": data.get("voice_id")},
        "transcriber": {"provider": "deepgram", "model": "nova-3-general", "language": "en"},
        "firstMessage": data.get("first_message")
        or prompt_builder.build_first_message(data.get("company_name"), data.get("agent_name")),
        "firstMessageMode": data.get("first_message_mode"),
        "maxDurationSeconds": data.get("max_call_duration"),
        "backgroundSound": data.get("background_sound"),
        "analysisPlan": analysis_plan,
        "serverMessages": ["end-of-call-report"],
        "server": server_config(),
        "metadata": {"user_id": user_id},
    }


def _questions_as_dicts(questions) -> List[Dict[str, Any]]:
    return [q if isinstance(q, dict) else q.model_dump() for q in questions or []]


def definition_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    """Rebuild the editable definition of an assistant from its stored row"""
    config = row.get("config") or {}
    return {
        "name": row.get("name"),
        "company_name": row.get("company_name"),
        "agent_name": row.get("agent_name"),
        "personality": row.get("personality"),
        "model_id": row.get("model_id"),
        "voice_id": row.get("voice_id"),
        "first_message": row.get("first_message"),
        "first_message_mode": row.get("first_message_mode"),
        "max_call_duration": row.get("max_call_duration"),
        "background_sound": row.get("background_sound"),
        "custom_instructions": config.get("customInstructions"),
        "structured_questions": config.get("questions") or [],
    }


class AssistantService:
    def __init__(self, supabase: Client, vapi: Optional[VapiClient], usage_service: Optional[UsageService] = None):
        self.supabase = supabase
        self.vapi = vapi
        self.usage_service = usage_service or UsageService(supabase)

    def _require_vapi(self) -> VapiClient:
        if self.vapi is None:
            raise VapiError("Vapi API key is not configured")
        return self.vapi

    def _get_row(self, user_id: str, assistant_id: str) -> Dict[str, Any]:
        result = self.supabase.table("user_assistants")\
            .select("*")\
            .eq("id", assistant_id)\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Assistant not found", code="ASSISTANT_NOT_FOUND")
        return result.data[0]

    def list_assistants(self, user_id: str, page: int = 1, limit: int = 20, search: Optional[str] = None) -> Dict[str, Any]:
        try:
            page = max(1, page)
            limit = max(1, min(limit, MAX_PAGE_SIZE))
            query = self.supabase.table("user_assistants")\
                .select("*", count="exact")\
                .eq("user_id", user_id)\
                .eq("is_active", True)
            if search:
                query = query.ilike("name", f"%{search}%")
            offset = (page - 1) * limit
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            assistants = [AssistantResponse(**row) for row in result.data or []]
            total = result.count if result.count is not None else len(assistants)
            return {"assistants": assistants, "pagination": pagination(page, limit, total)}
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_assistant(self, user_id: str, assistant_id: str) -> AssistantResponse:
        return AssistantResponse(**self._get_row(user_id, assistant_id))

    def create_assistant(self, user_id: str, request: AssistantCreate) -> AssistantResponse:
        """Create the assistant in Vapi, then store it; the Vapi assistant is deleted if the insert fails"""
        self.usage_service.ensure_can_create_assistant(user_id)

        data = request.model_dump()
        data["structured_questions"] = _questions_as_dicts(request.structured_questions)
        if not data.get("first_message"):
            data["first_message"] = prompt_builder.build_first_message(data.get("company_name"), data.get("agent_name"))

        logger.info(f"Creating Vapi assistant '{request.name}' for user {user_id}")
        vapi_assistant = self._require_vapi().create_assistant(build_vapi_payload(user_id, data))

        try:
            now = utcnow_iso()
            result = self.supabase.table("user_assistants").insert({
                "user_id": user_id,
                "name": request.name,
                "vapi_assistant_id": vapi_assistant["id"],
                "personality": request.personality,
                "company_name": request.company_name,
                "agent_name": request.agent_name,
                "model_id": request.model_id,
                "voice_id": request.voice_id,
                "first_message": data["first_message"],
                "first_message_mode": request.first_message_mode,
                "max_call_duration": request.max_call_duration,
                "background_sound": request.background_sound,
                "config": {
                    "questions": data["structured_questions"],
                    "customInstructions": request.custom_instructions,
                },
                "assistant_state": "active",
                "is_active": True,
                "is_disabled": False,
                "sync_status": "synced",
                "created_at": now,
            }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to store assistant")
        except Exception as e:
            logger.error(f"Storing assistant '{request.name}' failed, rolling back Vapi assistant: {e}")
            try:
                self._require_vapi().delete_assistant(vapi_assistant["id"])
            except Exception as rollback_error:
                logger.error(f"Rollback of Vapi assistant {vapi_assistant['id']} failed: {rollback_error}")
            if isinstance(e, HTTPException):
                raise
            raise HTTPException(status_code=500, detail=f"Failed to store assistant: {e}")

        logger.info(f"Assistant {result.data[0]['id']} created (vapi {vapi_assistant['id']})")
        return AssistantResponse(**result.data[0])

    def update_assistant(self, user_id: str, assistant_id: str, request: AssistantUpdate) -> AssistantResponse:
        row = self._get_row(user_id, assistant_id)
        changes = request.model_dump(exclude_unset=True)
        if "structured_questions" in changes:
            changes["structured_questions"] = _questions_as_dicts(request.structured_questions)
        if not changes:
            return AssistantResponse(**row)

        current = definition_from_row(row)
        merged = {**current, **changes}
        if any(merged.get(field) != current.get(field) for field in VAPI_FIELDS if field in changes):
            # A usage-disabled assistant keeps its limited call settings in Vapi until re-enabled
            payload = build_vapi_payload(user_id, merged)
            if row.get("is_disabled"):
                payload.pop("maxDurationSeconds", None)
                payload.pop("firstMessage", None)
            self._require_vapi().update_assistant(row["vapi_assistant_id"], payload)

        config = dict(row.get("config") or {})
        config["questions"] = merged["structured_questions"]
        config["customInstructions"] = merged.get("custom_instructions")
        if row.get("is_disabled") and "originalConfig" in config:
            original = dict(config["originalConfig"])
            if "max_call_duration" in changes:
                original["maxDurationSeconds"] = merged["max_call_duration"]
            if "first_message" in changes:
                original["firstMessage"] = merged["first_message"]
            config["originalConfig"] = original

        update_data = {
            key: value for key, value in changes.items()
            if key not in ("structured_questions", "custom_instructions")
        }
        update_data["config"] = config
        update_data["updated_at"] = utcnow_iso()
        try:
            result = self.supabase.table("user_assistants")\
                .update(update_data)\
                .eq("id", assistant_id)\
                .execute()
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        if not result.data:
            raise NotFoundError("Assistant not found", code="ASSISTANT_NOT_FOUND")
        logger.info(f"Assistant {assistant_id} updated ({', '.join(sorted(changes))})")
        return AssistantResponse(**result.data[0])

    def delete_assistant(self, user_id: str, assistant_id: str) -> bool:
        row = self._get_row(user_id, assistant_id)
        try:
            self._require_vapi().delete_assistant(row["vapi_assistant_id"])
        except VapiError as e:
            # Already gone upstream
            if e.vapi_status != 404:
                raise
        now = utcnow_iso()
        self.supabase.table("user_assistants")\
            .update({"is_active": False, "updated_at": now})\
            .eq("id", assistant_id)\
            .execute()
        self.supabase.table("user_phone_numbers")\
            .update({"assigned_assistant_id": None, "assigned_at": None, "updated_at": now})\
            .eq("assigned_assistant_id", assistant_id)\
            .execute()
        logger.info(f"Assistant {assistant_id} deleted")
        return True
