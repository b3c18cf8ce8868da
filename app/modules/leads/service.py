import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.core.errors import NotFoundError, ValidationFailed
from app.core.responses import pagination
from app.core.utils import ilike_any, mask_phone, parse_timestamp, utcnow, utcnow_iso
from app.modules.leads.schemas import (
    CONTACT_INTERACTIONS,
    LEAD_STATUSES,
    LEAD_TYPES,
    SORTABLE_COLUMNS,
    InteractionCreate,
    LeadCreate,
    LeadUpdate,
)

logger = logging.getLogger(__name__)

SEARCH_COLUMNS = ("first_name", "last_name", "email", "phone")

INTENT_LEAD_TYPES = {
    "buying": "buyer",
    "selling": "seller",
    "investing": "investor",
    "renting": "renter",
}

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")
_NUMBER = re.compile(r"[^\d.]")


def follow_up_status(next_follow_up_at: Any, now: Optional[datetime] = None) -> str:
    when = parse_timestamp(next_follow_up_at)
    if not when:
        return "none"
    hours = (when - (now or utcnow())).total_seconds() / 3600
    if hours < 0:
        return "overdue"
    if hours <= 24:
        return "due_soon"
    return "scheduled"


def _snake(key: str) -> str:
    return _CAMEL.sub("_", key).lower()


def _as_list(value: Any) -> Optional[List[str]]:
    if value in (None, "", []):
        return None
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [str(value).strip()]


def _as_amount(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    cleaned = _NUMBER.sub("", str(value))
    try:
        return float(cleaned) if cleaned else None
    except ValueError:
        return None


def lead_fields_from_answers(answers: Dict[str, Any], caller_number: Optional[str] = None, primary_intent: Optional[str] = None) -> Dict[str, Any]:
    """Map extracted answers or structured data (snake or camelCase keys) onto lead columns"""
    data = {_snake(k): v for k, v in (answers or {}).items() if v not in (None, "")}
    fields: Dict[str, Any] = {}

    full_name = data.get("full_name") or data.get("name")
    if full_name and not data.get("first_name"):
        parts = str(full_name).strip().split()
        if parts:
            fields["first_name"] = parts[0]
            if len(parts) > 1:
                fields["last_name"] = " ".join(parts[1:])
    for key in ("first_name", "last_name", "email", "timeline", "notes"):
        if data.get(key):
            fields[key] = str(data[key]).strip()

    phone = data.get("phone_number") or data.get("phone") or caller_number
    if phone and phone != "unknown":
        fields["phone"] = str(phone).strip()

    property_type = _as_list(data.get("property_type"))
    if property_type:
        fields["property_type"] = property_type
    budget_min = _as_amount(data.get("budget_min", data.get("budget")))
    if budget_min is not None:
        fields["budget_min"] = budget_min
    budget_max = _as_amount(data.get("budget_max"))
    if budget_max is not None:
        fields["budget_max"] = budget_max
    locations = _as_list(data.get("preferred_locations") or data.get("preferred_location") or data.get("location"))
    if locations:
        fields["preferred_locations"] = locations

    lead_type = str(data.get("lead_type") or "").lower()
    if lead_type in LEAD_TYPES:
        fields["lead_type"] = lead_type
    elif primary_intent:
        fields["lead_type"] = INTENT_LEAD_TYPES.get(primary_intent, "renter")
    return fields


class LeadService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def _scoped(self, query, profile: Dict[str, Any]):
        if profile.get("team_id"):
            return query.eq("team_id", profile["team_id"])
        return query.eq("user_id", profile["id"])

    def _get_lead_row(self, lead_id: str, profile: Dict[str, Any]) -> Dict[str, Any]:
        result = self._scoped(self.supabase.table("leads").select("*").eq("id", lead_id), profile)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Lead not found", code="LEAD_NOT_FOUND")
        return result.data[0]

    def _find_by_phone(self, profile: Dict[str, Any], phone: str, exclude_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        query = self._scoped(self.supabase.table("leads").select("id, status, score").eq("phone", phone), profile)
        if exclude_id:
            query = query.neq("id", exclude_id)
        result = query.limit(1).execute()
        return result.data[0] if result.data else None

    def list_leads(
        self,
        profile: Dict[str, Any],
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        status: Optional[str] = None,
        lead_type: Optional[str] = None,
        lead_source: Optional[str] = None,
        min_score: Optional[int] = None,
        max_score: Optional[int] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        try:
            page = max(1, page)
            limit = max(1, min(limit, 50))
            if sort_by not in SORTABLE_COLUMNS:
                raise ValidationFailed(f"Cannot sort by {sort_by}")

            query = self._scoped(self.supabase.table("leads").select("*", count="exact"), profile)
            if search and search.strip():
                query = query.or_(ilike_any(SEARCH_COLUMNS, search))
            if status:
                query = query.eq("status", status)
            if lead_type:
                query = query.eq("lead_type", lead_type)
            if lead_source:
                query = query.eq("lead_source", lead_source)
            if min_score is not None:
                query = query.gte("score", min_score)
            if max_score is not None:
                query = query.lte("score", max_score)
            if start_date:
                query = query.gte("created_at", start_date)
            if end_date:
                query = query.lte("created_at", end_date)

            offset = (page - 1) * limit
            result = query.order(sort_by, desc=sort_order != "asc")\
                .range(offset, offset + limit - 1)\
                .execute()
            now = utcnow()
            leads = [
                {**lead, "follow_up_status": follow_up_status(lead.get("next_follow_up_at"), now)}
                for lead in result.data or []
            ]
            total = result.count if result.count is not None else len(leads)
            return {"leads": leads, "pagination": pagination(page, limit, total)}
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_lead(self, profile: Dict[str, Any], lead_data: LeadCreate) -> Dict[str, Any]:
        try:
            if lead_data.call_id:
                call = self._scoped(self.supabase.table("call_logs").select("id, assistant_id").eq("id", lead_data.call_id), profile)\
                    .limit(1)\
                    .execute()
                if not call.data:
                    raise NotFoundError("Call not found", code="CALL_NOT_FOUND")

            existing = self._find_by_phone(profile, lead_data.phone)
            if existing:
                raise ValidationFailed(
                    "A lead with this phone number already exists",
                    code="DUPLICATE_LEAD",
                    details={"existing_lead_id": existing["id"]},
                )

            row = lead_data.model_dump(exclude_none=True, mode="json")
            row.update({
                "user_id": profile["id"],
                "team_id": profile.get("team_id"),
                "status": "new",
                "score": 0,
                "created_at": utcnow_iso(),
            })
            result = self.supabase.table("leads").insert(row).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create lead")
            logger.info(f"Created lead {result.data[0]['id']} for {mask_phone(lead_data.phone)}")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_lead(self, profile: Dict[str, Any], lead_id: str) -> Dict[str, Any]:
        try:
            lead = self._get_lead_row(lead_id, profile)
            interactions = self.supabase.table("lead_interactions")\
                .select("*")\
                .eq("lead_id", lead_id)\
                .order("created_at", desc=True)\
                .execute()
            return {
                **lead,
                "interactions": interactions.data or [],
                "follow_up_status": follow_up_status(lead.get("next_follow_up_at")),
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def update_lead(self, profile: Dict[str, Any], lead_id: str, lead_data: LeadUpdate) -> Dict[str, Any]:
        try:
            current = self._get_lead_row(lead_id, profile)
            updates = lead_data.model_dump(exclude_unset=True, mode="json")
            if not updates:
                return current

            budget_min = updates.get("budget_min", current.get("budget_min"))
            budget_max = updates.get("budget_max", current.get("budget_max"))
            if budget_min is not None and budget_max is not None and float(budget_min) > float(budget_max):
                raise ValidationFailed("budget_min must not exceed budget_max")

            if updates.get("phone") and updates["phone"] != current.get("phone"):
                duplicate = self._find_by_phone(profile, updates["phone"], exclude_id=lead_id)
                if duplicate:
                    raise ValidationFailed(
                        "Another lead with this phone number already exists",
                        code="DUPLICATE_LEAD",
                        details={"existing_lead_id": duplicate["id"]},
                    )

            if updates.get("status") == "contacted" and current.get("status") != "contacted":
                updates["last_contact_at"] = utcnow_iso()
            updates["updated_at"] = utcnow_iso()

            result = self.supabase.table("leads")\
                .update(updates)\
                .eq("id", lead_id)\
                .execute()
            if not result.data:
                raise NotFoundError("Lead not found", code="LEAD_NOT_FOUND")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def delete_lead(self, profile: Dict[str, Any], lead_id: str) -> bool:
        try:
            self._get_lead_row(lead_id, profile)
            self.supabase.table("lead_interactions")\
                .delete()\
                .eq("lead_id", lead_id)\
                .execute()
            self.supabase.table("leads")\
                .delete()\
                .eq("id", lead_id)\
                .execute()
            return True
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def list_interactions(
        self,
        profile: Dict[str, Any],
        lead_id: str,
        interaction_type: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        try:
            self._get_lead_row(lead_id, profile)
            page = max(1, page)
            limit = max(1, min(limit, 100))
            query = self.supabase.table("lead_interactions")\
                .select("*", count="exact")\
                .eq("lead_id", lead_id)
            if interaction_type:
                query = query.eq("interaction_type", interaction_type)
            offset = (page - 1) * limit
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            total = result.count if result.count is not None else len(result.data or [])
            return {"interactions": result.data or [], "pagination": pagination(page, limit, total)}
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def create_interaction(self, profile: Dict[str, Any], lead_id: str, data: InteractionCreate) -> Dict[str, Any]:
        try:
            lead = self._get_lead_row(lead_id, profile)
            row = data.model_dump(exclude_none=True, mode="json")
            row.update({"lead_id": lead_id, "user_id": profile["id"], "created_at": utcnow_iso()})
            result = self.supabase.table("lead_interactions").insert(row).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to create interaction")

            lead_updates: Dict[str, Any] = {"last_contact_at": utcnow_iso(), "updated_at": utcnow_iso()}
            if data.interaction_type in CONTACT_INTERACTIONS and lead.get("status") == "new":
                lead_updates["status"] = "contacted"
            if data.interaction_type == "follow_up" and data.scheduled_at:
                lead_updates["next_follow_up_at"] = data.scheduled_at.isoformat()
            self.supabase.table("leads")\
                .update(lead_updates)\
                .eq("id", lead_id)\
                .execute()
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def lead_analytics(self, profile: Dict[str, Any], days: Optional[int] = None) -> Dict[str, Any]:
        try:
            query = self._scoped(
                self.supabase.table("leads").select("id, status, lead_type, lead_source, score, created_at"),
                profile,
            )
            if days:
                query = query.gte("created_at", (utcnow() - timedelta(days=days)).isoformat())
            leads = query.execute().data or []

            total = len(leads)
            by_status = {status: 0 for status in LEAD_STATUSES}
            by_type: Dict[str, int] = {}
            by_source: Dict[str, int] = {}
            for lead in leads:
                by_status[lead.get("status") or "new"] = by_status.get(lead.get("status") or "new", 0) + 1
                lead_type = lead.get("lead_type") or "unknown"
                by_type[lead_type] = by_type.get(lead_type, 0) + 1
                source = lead.get("lead_source") or "unknown"
                by_source[source] = by_source.get(source, 0) + 1
            scores = [int(lead.get("score") or 0) for lead in leads]
            return {
                "total_leads": total,
                "by_status": by_status,
                "by_type": by_type,
                "by_source": by_source,
                "average_score": round(sum(scores) / total, 1) if total else 0.0,
                "conversion_rate": round(by_status.get("converted", 0) / total * 100, 1) if total else 0.0,
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def upsert_lead_from_call(
        self,
        user_id: str,
        call_log_id: str,
        fields: Dict[str, Any],
        score: int = 0,
        assistant_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Create or refresh the lead captured by a call.

        Matches an existing lead by (user_id, phone). Not race-free: two
        concurrent reports for the same caller can both insert.
        """
        phone = fields.get("phone")
        if not phone and not fields.get("email"):
            logger.info(f"Call {call_log_id} captured no contact details; no lead created")
            return None

        existing = None
        if phone:
            result = self.supabase.table("leads")\
                .select("*")\
                .eq("user_id", user_id)\
                .eq("phone", phone)\
                .limit(1)\
                .execute()
            existing = result.data[0] if result.data else None

        now = utcnow_iso()
        if existing:
            updates: Dict[str, Any] = {"updated_at": now, "call_id": call_log_id}
            for key, value in fields.items():
                if value and not existing.get(key):
                    updates[key] = value
            if score > int(existing.get("score") or 0):
                updates["score"] = score
            lead = self.supabase.table("leads")\
                .update(updates)\
                .eq("id", existing["id"])\
                .execute()
            lead_row = lead.data[0] if lead.data else {**existing, **updates}
        else:
            profile = self.supabase.table("profiles")\
                .select("team_id")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
            row = {
                **fields,
                "user_id": user_id,
                "team_id": profile.data[0].get("team_id") if profile.data else None,
                "call_id": call_log_id,
                "assistant_id": assistant_id,
                "lead_source": "voice_call",
                "status": "new",
                "score": score,
                "notes": fields.get("notes") or notes,
                "created_at": now,
            }
            lead = self.supabase.table("leads").insert(row).execute()
            if not lead.data:
                raise HTTPException(status_code=500, detail="Failed to create lead")
            lead_row = lead.data[0]

        self.supabase.table("lead_interactions").insert({
            "lead_id": lead_row["id"],
            "user_id": user_id,
            "interaction_type": "call",
            "content": notes,
            "completed_at": now,
            "created_at": now,
        }).execute()
        logger.info(f"{'Updated' if existing else 'Created'} lead {lead_row['id']} from call {call_log_id}")
        return lead_row
