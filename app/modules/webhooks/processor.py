"""
Vapi / Make.com call-event ingestion.

A finished call goes through:

    find assistant -> create/update call_logs row -> store cost breakdown
    -> store transcript -> extract responses -> analyse -> upsert lead
    -> check usage limit

Only the first two steps are fatal. Every later step is best-effort: a failure
is logged, added to the result's `warnings` and the remaining steps still run.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from supabase import Client

from app.core.errors import NotFoundError, WebhookProcessingError
from app.core.utils import mask_phone, parse_timestamp, utcnow, utcnow_iso
from app.modules.calls.costs import cost_breakdown_row, to_cents
from app.modules.leads.service import LeadService, lead_fields_from_answers
from app.modules.usage.service import UsageService
from app.modules.webhooks import schemas
from app.modules.webhooks.call_analyzer import CallAnalyzer
from app.modules.webhooks.lead_extractor import LeadExtractor
from app.modules.webhooks.schemas import (
    CallAnalysisResult,
    ExtractedResponse,
    MakeCallReport,
    ResourceEvent,
    VapiEvent,
    WebhookResult,
)

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("full_name", "first_name", "last_name", "name", "phone_number", "phone", "email")
LEAD_STATUSES_FROM_ANALYSIS = ("qualified", "hot_lead")

VAPI_STATUS_MAP = {
    "queued": "initiated",
    "ringing": "ringing",
    "in-progress": "in_progress",
    "forwarding": "in_progress",
    "ended": "completed",
}


def unwrap_event(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Vapi server messages arrive as {"message": {...}}; flat events are accepted too."""
    message = payload.get("message")
    if isinstance(message, dict) and "type" in message:
        return message
    return payload


def call_status_for(vapi_status: Optional[str], ended_reason: Optional[str] = None) -> Optional[str]:
    reason = (ended_reason or "").lower()
    if vapi_status == "ended" and reason:
        if "no-answer" in reason or "did-not-answer" in reason:
            return "no_answer"
        if "busy" in reason:
            return "busy"
        if "error" in reason or "failed" in reason:
            return "failed"
    return VAPI_STATUS_MAP.get(vapi_status or "")


def parse_speakers(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    speakers = []
    for message in messages or []:
        role = message.get("role")
        if role not in ("user", "assistant", "bot"):
            continue
        text = message.get("message") or message.get("content")
        if not text:
            continue
        speakers.append({
            "role": "assistant" if role == "bot" else role,
            "text": text,
            "timestamp": message.get("time") or message.get("secondsFromStart"),
            "sequence": len(speakers),
        })
    return speakers


def transcript_from_speakers(speakers: List[Dict[str, Any]]) -> str:
    return "\n".join(f"{'AI' if s['role'] == 'assistant' else 'User'}: {s['text']}" for s in speakers)


class WebhookProcessor:
    def __init__(
        self,
        supabase: Client,
        usage_service: Optional[UsageService] = None,
        lead_service: Optional[LeadService] = None,
        analyzer: Optional[CallAnalyzer] = None,
    ):
        self.supabase = supabase
        self.usage_service = usage_service or UsageService(supabase)
        self.lead_service = lead_service or LeadService(supabase)
        self.analyzer = analyzer or CallAnalyzer()
        self._handlers: Dict[str, Callable[[VapiEvent], Dict[str, Any]]] = {
            schemas.CALL_START: self.handle_call_start,
            schemas.CALL_END: self.handle_call_end,
            schemas.END_OF_CALL_REPORT: self.handle_call_end,
            schemas.FUNCTION_CALL: self.handle_function_call,
            schemas.TRANSCRIPT: self.handle_transcript,
            schemas.STATUS_UPDATE: self.handle_status_update,
            schemas.HANG: self.handle_acknowledge,
            schemas.SPEECH_UPDATE: self.handle_acknowledge,
            schemas.VOICE_INPUT: self.handle_acknowledge,
        }

    # Lookups

    def _find_assistant(self, vapi_assistant_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not vapi_assistant_id:
            return None
        result = self.supabase.table("user_assistants")\
            .select("id, user_id, name, config")\
            .eq("vapi_assistant_id", vapi_assistant_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _find_call(self, vapi_call_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not vapi_call_id:
            return None
        result = self.supabase.table("call_logs")\
            .select("*")\
            .eq("vapi_call_id", vapi_call_id)\
            .limit(1)\
            .execute()
        return result.data[0] if result.data else None

    def _find_phone_number(self, user_id: str, vapi_phone_id: Optional[str] = None, number: Optional[str] = None) -> Optional[str]:
        if not vapi_phone_id and not number:
            return None
        query = self.supabase.table("user_phone_numbers")\
            .select("id")\
            .eq("user_id", user_id)
        query = query.eq("vapi_phone_id", vapi_phone_id) if vapi_phone_id else query.eq("phone_number", number)
        result = query.limit(1).execute()
        return result.data[0]["id"] if result.data else None

    @staticmethod
    def _call_id(event: VapiEvent) -> Optional[str]:
        return event.call_id or (event.call or {}).get("id")

    @staticmethod
    def _vapi_assistant_id(event: VapiEvent) -> Optional[str]:
        return (event.call or {}).get("assistantId") or (event.assistant or {}).get("id")

    @staticmethod
    def _question_map(assistant: Dict[str, Any]) -> Dict[str, str]:
        questions = (assistant.get("config") or {}).get("questions") or []
        return {
            q["structured_field_name"]: q.get("question_text", "")
            for q in questions
            if isinstance(q, dict) and q.get("structured_field_name")
        }

    # Dispatch

    def process_event(self, payload: Dict[str, Any]) -> WebhookResult:
        raw = unwrap_event(payload)
        event = VapiEvent.model_validate(raw)
        call_id = self._call_id(event)
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info(f"Ignoring unsupported Vapi event type: {event.type}")
            return WebhookResult(
                event_type=event.type,
                call_id=call_id,
                processed_at=utcnow_iso(),
                data={"ignored": True},
            )

        logger.info(f"Processing Vapi {event.type} event for call {call_id}")
        data = handler(event)
        warnings = data.pop("warnings", [])
        return WebhookResult(
            event_type=event.type,
            event_id=raw.get("id"),
            call_id=call_id,
            processed_at=utcnow_iso(),
            data=data,
            warnings=warnings,
        )

    # Handlers

    def handle_call_start(self, event: VapiEvent) -> Dict[str, Any]:
        call = event.call or {}
        vapi_call_id = self._call_id(event)
        assistant = self._find_assistant(self._vapi_assistant_id(event))
        if not assistant:
            raise WebhookProcessingError("Assistant not found for call", event.type, vapi_call_id)

        existing = self._find_call(vapi_call_id)
        if existing:
            return {"call_log_id": existing["id"], "created": False}

        caller = (call.get("customer") or {}).get("number") or "unknown"
        row = {
            "user_id": assistant["user_id"],
            "assistant_id": assistant["id"],
            "phone_number_id": self._find_phone_number(assistant["user_id"], vapi_phone_id=call.get("phoneNumberId")),
            "vapi_call_id": vapi_call_id,
            "caller_number": caller,
            "direction": "outbound" if call.get("type") == "outboundPhoneCall" else "inbound",
            "status": "initiated",
            "started_at": call.get("startedAt") or utcnow_iso(),
            "created_at": utcnow_iso(),
        }
        result = self.supabase.table("call_logs").insert(row).execute()
        if not result.data:
            raise WebhookProcessingError("Failed to create call record", event.type, vapi_call_id)
        logger.info(f"Call {vapi_call_id} started from {mask_phone(caller)}")
        return {"call_log_id": result.data[0]["id"], "created": True}

    def handle_call_end(self, event: VapiEvent) -> Dict[str, Any]:
        call = event.call or {}
        artifact = event.artifact or {}
        extra = event.model_extra or {}
        vapi_call_id = self._call_id(event)
        warnings: List[str] = []

        # 1. assistant
        assistant = self._find_assistant(self._vapi_assistant_id(event))
        if not assistant:
            raise WebhookProcessingError("Assistant not found for call", event.type, vapi_call_id)
        user_id = assistant["user_id"]

        started = parse_timestamp(event.started_at or call.get("startedAt"))
        ended = parse_timestamp(event.ended_at or call.get("endedAt")) or utcnow()
        if started:
            duration = max(0, round((ended - started).total_seconds()))
        else:
            duration = int(extra.get("durationSeconds") or call.get("duration") or 0)
        cost = float(event.cost if event.cost is not None else call.get("cost") or 0)
        cost_breakdown = event.cost_breakdown or call.get("costBreakdown") or {}
        messages = event.messages or artifact.get("messages") or call.get("messages") or []
        speakers = parse_speakers(messages)
        transcript = event.transcript if isinstance(event.transcript, str) else None
        transcript = transcript or artifact.get("transcript") or transcript_from_speakers(speakers)
        analysis_data = event.analysis or call.get("analysis") or {}
        structured_data = analysis_data.get("structuredData") or None
        summary = event.summary or analysis_data.get("summary")
        caller = (call.get("customer") or {}).get("number") or "unknown"

        # 2. call row
        existing = self._find_call(vapi_call_id)
        fields = {
            "status": "completed",
            "ended_at": ended.isoformat(),
            "duration_seconds": duration,
            "cost": cost,
            "cost_cents": to_cents(cost),
            "cost_breakdown": cost_breakdown,
            "ended_reason": event.ended_reason or call.get("endedReason"),
            "summary": summary,
            "recording_url": event.recording_url or artifact.get("recordingUrl"),
            "transcript": transcript,
            "structured_data": structured_data,
            "success_evaluation": _as_text(analysis_data.get("successEvaluation")),
            "updated_at": utcnow_iso(),
        }
        if existing:
            result = self.supabase.table("call_logs")\
                .update(fields)\
                .eq("id", existing["id"])\
                .execute()
            call_log = result.data[0] if result.data else {**existing, **fields}
        else:
            row = {
                **fields,
                "user_id": user_id,
                "assistant_id": assistant["id"],
                "phone_number_id": self._find_phone_number(user_id, vapi_phone_id=call.get("phoneNumberId")),
                "vapi_call_id": vapi_call_id,
                "caller_number": caller,
                "direction": "outbound" if call.get("type") == "outboundPhoneCall" else "inbound",
                "started_at": started.isoformat() if started else None,
                "created_at": utcnow_iso(),
            }
            result = self.supabase.table("call_logs").insert(row).execute()
            if not result.data:
                raise WebhookProcessingError("Failed to store call record", event.type, vapi_call_id)
            call_log = result.data[0]
        call_log_id = call_log["id"]

        # 3. cost breakdown
        try:
            self.supabase.table("call_costs")\
                .upsert(cost_breakdown_row(call_log_id, user_id, {"cost": cost, "costBreakdown": cost_breakdown}, transcript), on_conflict="call_id")\
                .execute()
        except Exception as e:
            logger.error(f"Failed to store cost breakdown for call {vapi_call_id}: {e}")
            warnings.append(f"cost_breakdown: {e}")

        # 4. transcript
        if transcript:
            try:
                self.supabase.table("call_transcripts").upsert({
                    "call_id": call_log_id,
                    "user_id": user_id,
                    "transcript_text": transcript,
                    "speakers": speakers,
                    "language": "en-US",
                    "updated_at": utcnow_iso(),
                }, on_conflict="call_id").execute()
            except Exception as e:
                logger.error(f"Failed to store transcript for call {vapi_call_id}: {e}")
                warnings.append(f"transcript: {e}")

        # 5. responses
        extractor = LeadExtractor(self._question_map(assistant))
        responses = extractor.extract_from_messages(messages, structured_data)
        try:
            self._store_responses(call_log_id, user_id, responses)
        except Exception as e:
            logger.error(f"Failed to store responses for call {vapi_call_id}: {e}")
            warnings.append(f"responses: {e}")

        # 6. analysis
        analysis: Optional[CallAnalysisResult] = None
        try:
            analysis = self.analyzer.analyze_call(transcript or "", responses, duration)
            self.supabase.table("call_analysis").insert({
                "call_id": call_log_id,
                "user_id": user_id,
                "lead_score": analysis.lead_score,
                "qualification_status": analysis.qualification_status,
                "lead_quality": analysis.lead_quality,
                "sentiment": analysis.sentiment.model_dump(),
                "intent": analysis.intent.model_dump(),
                "topics": analysis.topics.model_dump(),
                "engagement": analysis.engagement.model_dump(),
                "summary": analysis.summary,
                "next_steps": analysis.next_steps,
                "confidence": analysis.confidence,
                "created_at": utcnow_iso(),
            }).execute()
        except Exception as e:
            logger.error(f"Call analysis failed for call {vapi_call_id}: {e}")
            warnings.append(f"analysis: {e}")

        # 7. lead
        lead_id = None
        try:
            lead_id = self._upsert_lead(user_id, call_log_id, assistant["id"], responses, analysis, caller, summary)
        except Exception as e:
            logger.error(f"Failed to upsert lead for call {vapi_call_id}: {e}")
            warnings.append(f"lead: {e}")

        # 8. usage
        limit_enforced = False
        try:
            limit_enforced = self.usage_service.check_and_enforce_limit(user_id)
        except Exception as e:
            logger.error(f"Usage check failed for user {user_id}: {e}")
            warnings.append(f"usage: {e}")

        logger.info(f"Call {vapi_call_id} ended: {duration}s, ${cost:.4f}, {len(responses)} response(s)")
        return {
            "call_log_id": call_log_id,
            "duration_seconds": duration,
            "cost": cost,
            "responses_extracted": len(responses),
            "lead_score": analysis.lead_score if analysis else None,
            "qualification_status": analysis.qualification_status if analysis else None,
            "lead_id": lead_id,
            "limit_enforced": limit_enforced,
            "warnings": warnings,
        }

    def handle_function_call(self, event: VapiEvent) -> Dict[str, Any]:
        function_call = event.function_call or {}
        name = function_call.get("name")
        parameters = function_call.get("parameters") or {}
        call_log = self._find_call(self._call_id(event))
        if not call_log:
            logger.warning(f"Function call {name} for unknown call {self._call_id(event)}; acknowledged")
            return {"function_name": name, "stored": 0, "result": "acknowledged"}

        assistant = self._find_assistant(self._vapi_assistant_id(event)) or {}
        responses = LeadExtractor(self._question_map(assistant)).extract_from_function_call(name, parameters)
        self._store_responses(call_log["id"], call_log["user_id"], responses)
        return {"function_name": name, "stored": len(responses), "result": "Information recorded"}

    def handle_transcript(self, event: VapiEvent) -> Dict[str, Any]:
        if event.transcript_type != "final" or not isinstance(event.transcript, str):
            return {"stored": False}
        call_log = self._find_call(self._call_id(event))
        if not call_log:
            return {"stored": False}

        existing = self.supabase.table("call_transcripts")\
            .select("*")\
            .eq("call_id", call_log["id"])\
            .limit(1)\
            .execute()
        current = existing.data[0] if existing.data else {}
        speakers = list(current.get("speakers") or [])
        role = "assistant" if event.role in ("assistant", "bot") else "user"
        speakers.append({
            "role": role,
            "text": event.transcript,
            "timestamp": event.timestamp,
            "sequence": len(speakers),
        })
        self.supabase.table("call_transcripts").upsert({
            "call_id": call_log["id"],
            "user_id": call_log["user_id"],
            "transcript_text": transcript_from_speakers(speakers),
            "speakers": speakers,
            "language": "en-US",
            "updated_at": utcnow_iso(),
        }, on_conflict="call_id").execute()
        return {"stored": True, "segments": len(speakers)}

    def handle_status_update(self, event: VapiEvent) -> Dict[str, Any]:
        status = call_status_for(event.status, event.ended_reason)
        call_log = self._find_call(self._call_id(event))
        if not status or not call_log:
            return {"updated": False, "status": status}
        updates: Dict[str, Any] = {"status": status, "updated_at": utcnow_iso()}
        if event.ended_reason:
            updates["ended_reason"] = event.ended_reason
        self.supabase.table("call_logs")\
            .update(updates)\
            .eq("id", call_log["id"])\
            .execute()
        return {"updated": True, "status": status}

    def handle_acknowledge(self, event: VapiEvent) -> Dict[str, Any]:
        return {"acknowledged": True}

    # Make.com

    def ingest_make_call_report(self, report: MakeCallReport) -> Dict[str, Any]:
        assistant = self._find_assistant(report.assistant_id)
        if not assistant:
            raise NotFoundError("Assistant not found", code="ASSISTANT_NOT_FOUND")
        user_id = assistant["user_id"]
        warnings: List[str] = []

        started = parse_timestamp(report.started_at)
        ended = parse_timestamp(report.ended_at)
        row = {
            "user_id": user_id,
            "assistant_id": assistant["id"],
            "phone_number_id": self._find_phone_number(user_id, number=report.caller_number),
            "vapi_call_id": report.id,
            "caller_number": report.caller_number or "unknown",
            "direction": "inbound",
            "status": "completed",
            "started_at": started.isoformat() if started else report.started_at,
            "ended_at": ended.isoformat() if ended else None,
            "duration_seconds": report.duration_seconds,
            "cost": report.cost,
            "cost_cents": to_cents(report.cost),
            "transcript": report.transcript,
            "structured_data": report.structured_data,
            "success_evaluation": _as_text(report.success_evaluation),
            "summary": report.summary,
            "recording_url": report.recording_url,
            "updated_at": utcnow_iso(),
        }
        existing = self._find_call(report.id)
        if existing:
            result = self.supabase.table("call_logs")\
                .update(row)\
                .eq("id", existing["id"])\
                .execute()
        else:
            result = self.supabase.table("call_logs").insert({**row, "created_at": utcnow_iso()}).execute()
        if not result.data:
            raise WebhookProcessingError("Failed to store call report", "make-call-report", report.id)
        call_log_id = result.data[0]["id"]

        lead_id = None
        if report.structured_data:
            try:
                fields = lead_fields_from_answers(report.structured_data, report.caller_number)
                lead = self.lead_service.upsert_lead_from_call(
                    user_id, call_log_id, fields, assistant_id=assistant["id"], notes=report.summary
                )
                lead_id = lead["id"] if lead else None
            except Exception as e:
                logger.error(f"Failed to upsert lead for call report {report.id}: {e}")
                warnings.append(f"lead: {e}")

        limit_enforced = False
        try:
            limit_enforced = self.usage_service.check_and_enforce_limit(user_id)
        except Exception as e:
            logger.error(f"Usage check failed for user {user_id}: {e}")
            warnings.append(f"usage: {e}")

        logger.info(f"Stored Make call report {report.id} ({report.duration_seconds}s) for user {user_id}")
        return {
            "call_log_id": call_log_id,
            "lead_id": lead_id,
            "limit_enforced": limit_enforced,
            "warnings": warnings,
        }

    # Resource events

    def handle_resource_event(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        event = ResourceEvent.model_validate(unwrap_event(payload))
        if event.type == "assistant.deleted":
            vapi_id = (event.assistant or {}).get("id")
            result = self.supabase.table("user_assistants")\
                .update({"is_active": False, "sync_status": "deleted", "updated_at": utcnow_iso()})\
                .eq("vapi_assistant_id", vapi_id)\
                .execute()
            for assistant in result.data or []:
                self.supabase.table("user_phone_numbers")\
                    .update({"assigned_assistant_id": None})\
                    .eq("assigned_assistant_id", assistant["id"])\
                    .execute()
            logger.info(f"Vapi assistant {vapi_id} deleted upstream; {len(result.data or [])} local row(s) deactivated")
            return {"type": event.type, "updated": len(result.data or [])}
        if event.type == "phone-number.deleted":
            vapi_id = (event.phone_number or {}).get("id")
            result = self.supabase.table("user_phone_numbers")\
                .update({"is_active": False, "assigned_assistant_id": None, "updated_at": utcnow_iso()})\
                .eq("vapi_phone_id", vapi_id)\
                .execute()
            logger.info(f"Vapi phone number {vapi_id} deleted upstream")
            return {"type": event.type, "updated": len(result.data or [])}
        return {"type": event.type, "ignored": True}

    # Helpers

    def _store_responses(self, call_log_id: str, user_id: str, responses: List[ExtractedResponse]):
        if not responses:
            return
        self.supabase.table("lead_responses").insert([
            {
                "call_id": call_log_id,
                "user_id": user_id,
                "field_name": r.field_name,
                "question_text": r.question_text,
                "answer_value": r.answer_value,
                "answer_type": r.answer_type,
                "confidence": r.confidence,
                "function_name": r.function_name,
                "collected_at": r.collected_at,
            }
            for r in responses
        ]).execute()

    def _upsert_lead(
        self,
        user_id: str,
        call_log_id: str,
        assistant_id: str,
        responses: List[ExtractedResponse],
        analysis: Optional[CallAnalysisResult],
        caller: str,
        summary: Optional[str],
    ) -> Optional[str]:
        captured_contact = any(r.field_name in CONTACT_FIELDS for r in responses)
        qualified = analysis is not None and analysis.qualification_status in LEAD_STATUSES_FROM_ANALYSIS
        if not captured_contact and not qualified:
            return None
        fields = lead_fields_from_answers(
            {r.field_name: r.answer_value for r in responses},
            caller_number=caller,
            primary_intent=analysis.intent.primary if analysis else None,
        )
        lead = self.lead_service.upsert_lead_from_call(
            user_id,
            call_log_id,
            fields,
            score=analysis.lead_score if analysis else 0,
            assistant_id=assistant_id,
            notes=(analysis.summary if analysis else None) or summary,
        )
        return lead["id"] if lead else None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
