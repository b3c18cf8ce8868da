"""Usage accounting and limit enforcement.

Invariants:
    - The billing cycle restarts on the monthly signup anniversary, clamped to short months
    - Usage totals equal the sum of call durations inside the current cycle only
    - Reaching the minute limit disables the user's assistants once per cycle
      through high-priority 'disable' sync jobs
    - Between 80% and 100% a usage_warning event is written at most once per 24h
    - Plan limits can be overridden by non-null profile columns
    - A cost sync covers between 1 and 90 days
"""

from datetime import datetime, timezone

import pytest

from app.config.plans import resolve_limits
from app.core.errors import UsageLimitError
from app.modules.usage.service import (
    UsageService,
    billing_cycle_end,
    billing_cycle_start,
    minutes_from_seconds,
    warning_level,
)
from conftest import USER_ID

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def seed_call(db, created_at, duration, user_id=USER_ID, status="completed"):
    return db.seed("call_logs", {
        "user_id": user_id,
        "status": status,
        "duration_seconds": duration,
        "created_at": created_at,
    })[0]


def seed_assistant(db, vapi_id="vapi-asst-1", **overrides):
    row = {
        "user_id": USER_ID,
        "name": "Front desk",
        "vapi_assistant_id": vapi_id,
        "is_active": True,
        "is_disabled": False,
        "assistant_state": "active",
        "config": {},
        "created_at": "2026-01-02T00:00:00+00:00",
    }
    row.update(overrides)
    return db.seed("user_assistants", row)[0]


# Cycle math

def test_cycle_starts_on_signup_anniversary():
    signup = utc(2026, 1, 15, 9, 30)
    assert billing_cycle_start(signup, utc(2026, 3, 20)) == utc(2026, 3, 15, 9, 30)
    assert billing_cycle_start(signup, utc(2026, 3, 10)) == utc(2026, 2, 15, 9, 30)


def test_cycle_anniversary_clamps_to_month_end():
    signup = utc(2026, 1, 31)
    start = billing_cycle_start(signup, utc(2026, 3, 15))
    assert start == utc(2026, 2, 28)
    assert billing_cycle_end(signup, start) == utc(2026, 3, 31)


def test_cycle_crosses_year_boundary():
    signup = utc(2025, 11, 20)
    assert billing_cycle_start(signup, utc(2026, 1, 5)) == utc(2025, 12, 20)


def test_cycle_before_signup_is_signup():
    signup = utc(2026, 3, 1)
    assert billing_cycle_start(signup, utc(2026, 2, 1)) == signup


def test_minutes_round_up():
    assert minutes_from_seconds(0) == 0
    assert minutes_from_seconds(1) == 1
    assert minutes_from_seconds(60) == 1
    assert minutes_from_seconds(61) == 2


def test_warning_levels():
    assert warning_level(7, 10, 0.8, 0.9) == "none"
    assert warning_level(8, 10, 0.8, 0.9) == "warning"
    assert warning_level(9, 10, 0.8, 0.9) == "critical"
    assert warning_level(10, 10, 0.8, 0.9) == "exceeded"
    # Assistant thresholds put the limit itself at critical
    assert warning_level(1, 1, 0.8, 1.0) == "critical"


def test_profile_columns_override_plan():
    assert resolve_limits({"subscription_type": "pro"})["max_minutes_monthly"] == 100
    assert resolve_limits({"subscription_type": "free", "max_minutes_monthly": 45})["max_minutes_monthly"] == 45
    assert resolve_limits({"subscription_type": "unknown"})["max_assistants"] == 1


# Usage totals

def test_usage_sums_only_current_cycle(db, profile):
    seed_call(db, "2026-03-02T10:00:00+00:00", 120)
    seed_call(db, "2026-03-05T10:00:00+00:00", 45)
    seed_call(db, "2026-02-20T10:00:00+00:00", 600)
    seed_call(db, "2026-03-06T10:00:00+00:00", 900, user_id="someone-else")

    usage = UsageService(db).calculate_usage(USER_ID, now=NOW)

    assert usage["total_seconds"] == 165
    assert usage["minutes_used"] == 3
    assert usage["call_count"] == 2
    assert usage["cycle_start"] == utc(2026, 3, 1)


def test_usage_summary_reports_metrics(db, profile):
    seed_call(db, "2026-03-02T10:00:00+00:00", 300)
    seed_call(db, "2026-03-03T10:00:00+00:00", 180, status="failed")
    seed_assistant(db)

    summary = UsageService(db).get_usage_summary(USER_ID, now=NOW)

    assert summary.minutes.used == 8
    assert summary.minutes.limit == 10
    assert summary.minutes.warning_level == "warning"
    assert summary.assistants.used == 1
    assert summary.can_create_assistant is False
    assert summary.can_make_call is True
    assert summary.calls.total == 2
    assert summary.calls.completed == 1
    assert summary.billing_cycle_end == utc(2026, 4, 1)


def test_validate_call_blocks_at_limit(db, profile):
    seed_call(db, "2026-03-02T10:00:00+00:00", 600)
    result = UsageService(db).validate_call(USER_ID, now=NOW)
    assert result.allowed is False
    assert result.minutes_remaining == 0


# Creation limits

def test_assistant_limit_raises_usage_error(db, profile):
    seed_assistant(db)
    with pytest.raises(UsageLimitError) as exc_info:
        UsageService(db).ensure_can_create_assistant(USER_ID)
    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "USAGE_LIMIT_EXCEEDED"
    assert exc_info.value.details == {"limit_type": "assistants", "current": 1, "limit": 1}


def test_deleted_assistants_do_not_count(db, profile):
    seed_assistant(db, is_active=False)
    UsageService(db).ensure_can_create_assistant(USER_ID)


def test_phone_number_limit(db, profile):
    db.seed("user_phone_numbers", {"user_id": USER_ID, "phone_number": "+14155550100", "is_active": True})
    with pytest.raises(UsageLimitError):
        UsageService(db).ensure_can_add_phone_number(USER_ID)


# Enforcement

def test_limit_disables_assistants_once_per_cycle(db, profile):
    assistant = seed_assistant(db)
    seed_call(db, "2026-03-02T10:00:00+00:00", 590)
    seed_call(db, "2026-03-03T10:00:00+00:00", 10)
    service = UsageService(db)

    assert service.check_and_enforce_limit(USER_ID, now=NOW) is True

    jobs = db.rows("vapi_sync_queue")
    assert len(jobs) == 1
    assert jobs[0]["action"] == "disable"
    assert jobs[0]["priority"] == 1
    assert jobs[0]["assistant_id"] == assistant["id"]
    stored = db.rows("user_assistants")[0]
    assert stored["is_disabled"] is True
    assert stored["disabled_reason"] == "usage_limit_exceeded"
    stored_profile = db.rows("profiles")[0]
    assert stored_profile["limit_enforced_at"] == NOW.isoformat()
    assert stored_profile["current_usage_minutes"] == 10
    assert [e["event_type"] for e in db.rows("subscription_events")] == ["limit_enforced"]

    # A later call in the same cycle does not enforce again
    seed_call(db, "2026-03-09T10:00:00+00:00", 60)
    assert service.check_and_enforce_limit(USER_ID, now=NOW) is False
    assert len(db.rows("vapi_sync_queue")) == 1


def test_limit_enforced_again_in_next_cycle(db, profile):
    seed_assistant(db)
    db.rows("profiles")[0]["limit_enforced_at"] = "2026-02-10T00:00:00+00:00"
    seed_call(db, "2026-03-02T10:00:00+00:00", 600)

    assert UsageService(db).check_and_enforce_limit(USER_ID, now=NOW) is True


def test_warning_event_written_once_per_day(db, profile):
    seed_call(db, "2026-03-02T10:00:00+00:00", 480)
    service = UsageService(db)

    assert service.check_and_enforce_limit(USER_ID, now=NOW) is False
    assert service.check_and_enforce_limit(USER_ID, now=NOW) is False

    events = db.rows("subscription_events")
    assert len(events) == 1
    assert events[0]["event_type"] == "usage_warning"
    assert events[0]["metadata"]["level"] == "warning"
    assert db.rows("vapi_sync_queue") == []


def test_reset_limits_reenables_usage_disabled_assistants(db, profile):
    seed_assistant(db, is_disabled=True, assistant_state="disabled_usage", disabled_reason="usage_limit_exceeded")
    seed_assistant(db, vapi_id="vapi-asst-2", is_disabled=True, disabled_reason="manual")
    db.rows("profiles")[0]["limit_enforced_at"] = NOW.isoformat()

    assert UsageService(db).reset_limits(USER_ID) == 1

    jobs = db.rows("vapi_sync_queue")
    assert [(j["action"], j["priority"]) for j in jobs] == [("enable", 2)]
    assert db.rows("profiles")[0]["limit_enforced_at"] is None
    manual = [a for a in db.rows("user_assistants") if a["vapi_assistant_id"] == "vapi-asst-2"][0]
    assert manual["is_disabled"] is True


def test_cost_sync_window_is_bounded(client, vapi):
    for days in (0, 91):
        res = client.post("/api/v1/usage/sync", json={"days": days})
        assert res.status_code == 400
        assert res.json()["error"]["details"][0]["field"] == "body.days"
    assert vapi.calls_to("list_calls") == []

    res = client.post("/api/v1/usage/sync", json={"days": 30})
    assert res.status_code == 200
    assert res.json()["data"]["synced_calls"] == 0
