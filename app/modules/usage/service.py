"""
Usage accounting against subscription plan limits.

Nothing here blocks a call in flight: limits are plain comparisons of
per-cycle sums against plan constants. When minutes run out, the user's
assistants are disabled through the Vapi sync queue.
"""

import calendar
import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.plans import (
    ASSISTANTS_CRITICAL_THRESHOLD,
    ASSISTANTS_WARNING_THRESHOLD,
    MINUTES_CRITICAL_THRESHOLD,
    MINUTES_WARNING_THRESHOLD,
    WARNING_EVENT_INTERVAL_HOURS,
    get_plan,
    resolve_limits,
)
from app.core.errors import NotFoundError, UsageLimitError
from app.core.utils import parse_timestamp, utcnow
from app.modules.sync.service import queue_sync_job
from app.modules.usage.schemas import CallStats, CallValidation, UsageCheckResponse, UsageMetric, UsageSummary

logger = logging.getLogger(__name__)

USAGE_DISABLED_REASON = "usage_limit_exceeded"


def _anniversary(year: int, month: int, signup: datetime) -> datetime:
    # Signup on the 31st rolls to the last day of shorter months
    day = min(signup.day, calendar.monthrange(year, month)[1])
    return signup.replace(year=year, month=month, day=day)


def _shift_month(year: int, month: int, delta: int):
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def billing_cycle_start(signup: datetime, now: datetime) -> datetime:
    """Most recent monthly anniversary of `signup` that is not after `now`."""
    if now <= signup:
        return signup
    start = _anniversary(now.year, now.month, signup)
    if start > now:
        year, month = _shift_month(now.year, now.month, -1)
        start = _anniversary(year, month, signup)
    return start


def billing_cycle_end(signup: datetime, cycle_start: datetime) -> datetime:
    year, month = _shift_month(cycle_start.year, cycle_start.month, 1)
    return _anniversary(year, month, signup)


def minutes_from_seconds(total_seconds: int) -> int:
    return math.ceil(total_seconds / 60) if total_seconds > 0 else 0


def warning_level(used: int, limit: int, warning: float, critical: float) -> str:
    if limit <= 0:
        return "exceeded" if used > 0 else "none"
    ratio = used / limit
    if ratio >= 1 and critical < 1:
        return "exceeded"
    if ratio >= critical:
        return "critical"
    if ratio >= warning:
        return "warning"
    return "none"


def _metric(used: int, limit: int, warning: float, critical: float) -> UsageMetric:
    return UsageMetric(
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        percentage=round(used / limit * 100, 1) if limit > 0 else 0.0,
        warning_level=warning_level(used, limit, warning, critical),
    )


class UsageService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_profile(self, user_id: str) -> Dict[str, Any]:
        result = self.supabase.table("profiles")\
            .select("*")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise NotFoundError("User profile not found", code="PROFILE_NOT_FOUND")
        return result.data[0]

    def _signup(self, profile: Dict[str, Any], now: datetime) -> datetime:
        return parse_timestamp(profile.get("created_at")) or now

    def cycle_bounds(self, profile: Dict[str, Any], now: Optional[datetime] = None):
        now = now or utcnow()
        signup = self._signup(profile, now)
        start = billing_cycle_start(signup, now)
        return start, billing_cycle_end(signup, start)

    def _cycle_calls(self, user_id: str, cycle_start: datetime) -> List[Dict[str, Any]]:
        result = self.supabase.table("call_logs")\
            .select("id, duration_seconds, status, created_at")\
            .eq("user_id", user_id)\
            .gte("created_at", cycle_start.isoformat())\
            .execute()
        return result.data or []

    def calculate_usage(self, user_id: str, profile: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Seconds and billed minutes for the current billing cycle"""
        profile = profile or self.get_profile(user_id)
        cycle_start, cycle_end = self.cycle_bounds(profile, now)
        calls = self._cycle_calls(user_id, cycle_start)
        total_seconds = sum(int(c.get("duration_seconds") or 0) for c in calls)
        return {
            "total_seconds": total_seconds,
            "minutes_used": minutes_from_seconds(total_seconds),
            "call_count": len(calls),
            "calls": calls,
            "cycle_start": cycle_start,
            "cycle_end": cycle_end,
        }

    def count_active_assistants(self, user_id: str) -> int:
        result = self.supabase.table("user_assistants")\
            .select("id", count="exact")\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .execute()
        return result.count if result.count is not None else len(result.data or [])

    def count_active_phone_numbers(self, user_id: str) -> int:
        result = self.supabase.table("user_phone_numbers")\
            .select("id", count="exact")\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .execute()
        return result.count if result.count is not None else len(result.data or [])

    def get_usage_summary(self, user_id: str, now: Optional[datetime] = None) -> UsageSummary:
        try:
            now = now or utcnow()
            profile = self.get_profile(user_id)
            limits = resolve_limits(profile)
            usage = self.calculate_usage(user_id, profile, now)
            assistants = self.count_active_assistants(user_id)
            phones = self.count_active_phone_numbers(user_id)

            calls = usage["calls"]
            completed = [c for c in calls if c.get("status") == "completed"]
            call_stats = CallStats(
                total=len(calls),
                completed=len(completed),
                success_rate=round(len(completed) / len(calls) * 100, 1) if calls else 0.0,
                average_duration_seconds=round(usage["total_seconds"] / len(calls), 1) if calls else 0.0,
                total_duration_seconds=usage["total_seconds"],
            )
            minutes = _metric(usage["minutes_used"], limits["max_minutes_monthly"], MINUTES_WARNING_THRESHOLD, MINUTES_CRITICAL_THRESHOLD)
            assistant_metric = _metric(assistants, limits["max_assistants"], ASSISTANTS_WARNING_THRESHOLD, ASSISTANTS_CRITICAL_THRESHOLD)
            phone_metric = _metric(phones, limits["max_phone_numbers"], ASSISTANTS_WARNING_THRESHOLD, ASSISTANTS_CRITICAL_THRESHOLD)

            return UsageSummary(
                user_id=user_id,
                plan=(profile.get("subscription_type") or "free"),
                minutes=minutes,
                assistants=assistant_metric,
                phone_numbers=phone_metric,
                calls=call_stats,
                billing_cycle_start=usage["cycle_start"],
                billing_cycle_end=usage["cycle_end"],
                days_until_reset=max(0, math.ceil((usage["cycle_end"] - now).total_seconds() / 86400)),
                can_make_call=usage["minutes_used"] < limits["max_minutes_monthly"],
                can_create_assistant=assistants < limits["max_assistants"],
                limit_enforced_at=parse_timestamp(profile.get("limit_enforced_at")),
            )
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def check_limits(self, user_id: str) -> UsageCheckResponse:
        summary = self.get_usage_summary(user_id)
        warnings = []
        for name, metric in (("minutes", summary.minutes), ("assistants", summary.assistants)):
            if metric.warning_level != "none":
                warnings.append({
                    "type": name,
                    "level": metric.warning_level,
                    "percentage": metric.percentage,
                    "message": f"{name.capitalize()} usage at {metric.percentage}% of plan limit",
                })
        return UsageCheckResponse(
            can_create_assistant=summary.can_create_assistant,
            can_make_call=summary.can_make_call,
            can_add_phone_number=summary.phone_numbers.used < summary.phone_numbers.limit,
            minutes_remaining=summary.minutes.remaining,
            assistants_remaining=summary.assistants.remaining,
            warnings=warnings,
        )

    def ensure_can_create_assistant(self, user_id: str):
        profile = self.get_profile(user_id)
        limit = resolve_limits(profile)["max_assistants"]
        current = self.count_active_assistants(user_id)
        if current >= limit:
            raise UsageLimitError(
                f"Assistant limit reached ({current}/{limit}). Upgrade your plan to create more assistants.",
                limit_type="assistants",
                current=current,
                limit=limit,
            )

    def ensure_can_add_phone_number(self, user_id: str):
        profile = self.get_profile(user_id)
        limit = resolve_limits(profile)["max_phone_numbers"]
        current = self.count_active_phone_numbers(user_id)
        if current >= limit:
            raise UsageLimitError(
                f"Phone number limit reached ({current}/{limit}). Upgrade your plan to add more numbers.",
                limit_type="phone_numbers",
                current=current,
                limit=limit,
            )

    def validate_call(self, user_id: str, now: Optional[datetime] = None) -> CallValidation:
        profile = self.get_profile(user_id)
        limit = resolve_limits(profile)["max_minutes_monthly"]
        used = self.calculate_usage(user_id, profile, now)["minutes_used"]
        remaining = max(0, limit - used)
        if used >= limit:
            return CallValidation(
                allowed=False,
                reason=f"Monthly minute limit reached ({used}/{limit} minutes)",
                minutes_remaining=0,
            )
        return CallValidation(allowed=True, minutes_remaining=remaining)

    def can_make_call(self, user_id: str) -> bool:
        return self.validate_call(user_id).allowed

    def recalculate_usage(self, user_id: str) -> Dict[str, Any]:
        """Recompute cycle minutes from call_logs and store them on the profile"""
        try:
            usage = self.calculate_usage(user_id)
            self.supabase.table("profiles")\
                .update({"current_usage_minutes": usage["minutes_used"], "updated_at": utcnow().isoformat()})\
                .eq("id", user_id)\
                .execute()
            logger.info(f"Recalculated usage for {user_id}: {usage['minutes_used']} minutes ({usage['call_count']} calls)")
            return {
                "minutes_used": usage["minutes_used"],
                "total_seconds": usage["total_seconds"],
                "call_count": usage["call_count"],
                "billing_cycle_start": usage["cycle_start"],
            }
        except HTTPException:
            raise
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

    def check_and_enforce_limit(self, user_id: str, now: Optional[datetime] = None) -> bool:
        """Disable the user's assistants once per cycle when the minute limit is reached.

        Returns True when assistants were disabled by this call.
        """
        now = now or utcnow()
        profile = self.get_profile(user_id)
        limit = resolve_limits(profile)["max_minutes_monthly"]
        usage = self.calculate_usage(user_id, profile, now)
        used = usage["minutes_used"]

        self.supabase.table("profiles")\
            .update({"current_usage_minutes": used})\
            .eq("id", user_id)\
            .execute()

        if used < limit:
            level = warning_level(used, limit, MINUTES_WARNING_THRESHOLD, MINUTES_CRITICAL_THRESHOLD)
            if level in ("warning", "critical"):
                self.record_usage_warning(user_id, level, used, limit, now)
            return False

        enforced_at = parse_timestamp(profile.get("limit_enforced_at"))
        if enforced_at and enforced_at >= usage["cycle_start"]:
            logger.debug(f"Limit already enforced for {user_id} this cycle")
            return False

        disabled = self.disable_user_assistants(user_id)
        self.supabase.table("profiles")\
            .update({"limit_enforced_at": now.isoformat()})\
            .eq("id", user_id)\
            .execute()
        self._record_event(user_id, "limit_enforced", {
            "minutes_used": used,
            "minutes_limit": limit,
            "assistants_disabled": disabled,
        })
        logger.warning(f"Usage limit reached for {user_id} ({used}/{limit} minutes); disabled {disabled} assistant(s)")
        return True

    def disable_user_assistants(self, user_id: str, reason: str = USAGE_DISABLED_REASON) -> int:
        result = self.supabase.table("user_assistants")\
            .select("id, vapi_assistant_id, is_disabled")\
            .eq("user_id", user_id)\
            .eq("is_active", True)\
            .execute()
        count = 0
        for assistant in result.data or []:
            if assistant.get("is_disabled"):
                continue
            if assistant.get("vapi_assistant_id"):
                queue_sync_job(self.supabase, assistant["id"], assistant["vapi_assistant_id"], "disable", reason, priority=1)
            self.supabase.table("user_assistants")\
                .update({
                    "is_disabled": True,
                    "assistant_state": "disabled_usage",
                    "disabled_reason": reason,
                    "disabled_at": utcnow().isoformat(),
                })\
                .eq("id", assistant["id"])\
                .execute()
            count += 1
        return count

    def enable_user_assistants(self, user_id: str) -> int:
        result = self.supabase.table("user_assistants")\
            .select("id, vapi_assistant_id")\
            .eq("user_id", user_id)\
            .eq("is_disabled", True)\
            .eq("disabled_reason", USAGE_DISABLED_REASON)\
            .execute()
        count = 0
        for assistant in result.data or []:
            if assistant.get("vapi_assistant_id"):
                queue_sync_job(self.supabase, assistant["id"], assistant["vapi_assistant_id"], "enable", "usage_limit_reset", priority=2)
            self.supabase.table("user_assistants")\
                .update({
                    "is_disabled": False,
                    "assistant_state": "active",
                    "disabled_reason": None,
                    "disabled_at": None,
                })\
                .eq("id", assistant["id"])\
                .execute()
            count += 1
        return count

    def reset_limits(self, user_id: str) -> int:
        """Re-enable assistants disabled for usage and clear the enforcement stamp"""
        enabled = self.enable_user_assistants(user_id)
        self.supabase.table("profiles")\
            .update({"limit_enforced_at": None, "current_usage_minutes": 0})\
            .eq("id", user_id)\
            .execute()
        self._record_event(user_id, "limits_reset", {"assistants_enabled": enabled})
        logger.info(f"Reset usage limits for {user_id}; re-enabled {enabled} assistant(s)")
        return enabled

    def record_usage_warning(self, user_id: str, level: str, used: int, limit: int, now: Optional[datetime] = None) -> bool:
        """Record a usage_warning event unless one was recorded within the last 24 hours"""
        now = now or utcnow()
        since = (now - timedelta(hours=WARNING_EVENT_INTERVAL_HOURS)).isoformat()
        recent = self.supabase.table("subscription_events")\
            .select("id")\
            .eq("user_id", user_id)\
            .eq("event_type", "usage_warning")\
            .gte("created_at", since)\
            .limit(1)\
            .execute()
        if recent.data:
            return False
        self._record_event(user_id, "usage_warning", {
            "level": level,
            "minutes_used": used,
            "minutes_limit": limit,
            "percentage": round(used / limit * 100, 1) if limit else 0,
        }, now)
        logger.info(f"Usage warning ({level}) for {user_id}: {used}/{limit} minutes")
        return True

    def _record_event(self, user_id: str, event_type: str, metadata: Dict[str, Any], now: Optional[datetime] = None):
        try:
            self.supabase.table("subscription_events").insert({
                "user_id": user_id,
                "event_type": event_type,
                "metadata": metadata,
                "created_at": (now or utcnow()).isoformat(),
            }).execute()
        except Exception as e:
            logger.error(f"Failed to record {event_type} event for {user_id}: {e}")

    def system_usage_summary(self, limit: int = 100) -> Dict[str, Any]:
        """Per-user minute usage across the system, heaviest first"""
        try:
            result = self.supabase.table("profiles")\
                .select("id, email, subscription_type, current_usage_minutes, max_minutes_monthly, limit_enforced_at")\
                .order("current_usage_minutes", desc=True)\
                .limit(limit)\
                .execute()
            users = []
            for profile in result.data or []:
                plan_limit = resolve_limits(profile)["max_minutes_monthly"]
                used = int(profile.get("current_usage_minutes") or 0)
                users.append({
                    "user_id": profile["id"],
                    "email": profile.get("email"),
                    "plan": get_plan(profile.get("subscription_type"))["name"],
                    "minutes_used": used,
                    "minutes_limit": plan_limit,
                    "percentage": round(used / plan_limit * 100, 1) if plan_limit else 0.0,
                    "limit_enforced": bool(profile.get("limit_enforced_at")),
                })
            return {
                "total_users": len(users),
                "total_minutes": sum(u["minutes_used"] for u in users),
                "users_over_limit": sum(1 for u in users if u["minutes_used"] >= u["minutes_limit"]),
                "users": users,
            }
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
