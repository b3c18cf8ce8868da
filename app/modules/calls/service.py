from supabase import Client
from app.core.errors import NotFoundError
from app.core.responses import pagination
from app.core.utils import parse_timestamp, utcnow
from fastapi import HTTPException
from datetime import timedelta
from typing import Any, Dict, List, Optional


def group_calls_by_day(calls: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-day call count, duration and cost, newest day first"""
    days: Dict[str, Dict[str, Any]] = {}
    for call in calls:
        created = parse_timestamp(call.get("created_at"))
        if not created:
            continue
        key = created.date().isoformat()
        day = days.setdefault(key, {"date": key, "calls": 0, "completed": 0, "duration_seconds": 0, "cost": 0.0})
        day["calls"] += 1
        if call.get("status") == "completed":
            day["completed"] += 1
        day["duration_seconds"] += int(call.get("duration_seconds") or 0)
        day["cost"] = round(day["cost"] + float(call.get("cost") or 0), 4)
    return sorted(days.values(), key=lambda d: d["date"], reverse=True)


class CallService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def list_calls(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 20,
        assistant_id: Optional[str] = None,
        status: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List the user's calls, newest first"""
        try:
            page = max(1, page)
            limit = max(1, min(limit, 100))
            query = self.supabase.table("call_logs")\
                .select("*", count="exact")\
                .eq("user_id", user_id)
            if assistant_id:
                query = query.eq("assistant_id", assistant_id)
            if status:
                query = query.eq("status", status)
            if start_date:
                query = query.gte("created_at", start_date)
            if end_date:
                query = query.lte("created_at", end_date)
            offset = (page - 1) * limit
            result = query.order("created_at", desc=True)\
                .range(offset, offset + limit - 1)\
                .execute()
            calls = result.data or []
            total = result.count if result.count is not None else len(calls)
            return {"calls": calls, "pagination": pagination(page, limit, total)}
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def _get_call_row(self, user_id: str, call_id: str) -> Dict[str, Any]:
        result = self.supabase.table("call_logs")\
            .select("*")\
            .eq("id", call_id)\
            .eq("user_id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("Call not found", code="CALL_NOT_FOUND")
        return result.data[0]

    def get_call(self, user_id: str, call_id: str) -> Dict[str, Any]:
        """Call with its transcript, analysis and cost breakdown"""
        try:
            call = self._get_call_row(user_id, call_id)
            related = {}
            for key, table in (("transcript", "call_transcripts"), ("analysis", "call_analysis"), ("costs", "call_costs")):
                result = self.supabase.table(table)\
                    .select("*")\
                    .eq("call_id", call_id)\
                    .limit(1)\
                    .execute()
                related[key] = result.data[0] if result.data else None
            return {**call, **related}
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def get_transcript(self, user_id: str, call_id: str) -> Dict[str, Any]:
        try:
            self._get_call_row(user_id, call_id)
            result = self.supabase.table("call_transcripts")\
                .select("*")\
                .eq("call_id", call_id)\
                .limit(1)\
                .execute()
            if not result.data:
                raise NotFoundError("Transcript not found", code="TRANSCRIPT_NOT_FOUND")
            return result.data[0]
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def call_analytics(self, user_id: str, days: int = 30) -> Dict[str, Any]:
        try:
            since = (utcnow() - timedelta(days=days)).isoformat()
            result = self.supabase.table("call_logs")\
                .select("id, status, duration_seconds, cost, created_at")\
                .eq("user_id", user_id)\
                .gte("created_at", since)\
                .execute()
            calls = result.data or []
            total = len(calls)
            completed = sum(1 for c in calls if c.get("status") == "completed")
            total_duration = sum(int(c.get("duration_seconds") or 0) for c in calls)
            total_cost = sum(float(c.get("cost") or 0) for c in calls)
            return {
                "period_days": days,
                "total_calls": total,
                "completed_calls": completed,
                "success_rate": round(completed / total * 100, 1) if total else 0.0,
                "total_duration_seconds": total_duration,
                "average_duration_seconds": round(total_duration / total, 1) if total else 0.0,
                "total_cost": round(total_cost, 4),
                "average_cost": round(total_cost / total, 4) if total else 0.0,
                "daily": group_calls_by_day(calls),
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
