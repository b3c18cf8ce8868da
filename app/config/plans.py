"""
Subscription plan limits.

Limits are plain constants compared against usage numbers; billing itself
(checkout, payment webhooks) lives outside this service and only writes
`profiles.subscription_type`.
"""

from typing import Dict, Any, Optional

DEFAULT_PLAN = "free"

PLANS: Dict[str, Dict[str, Any]] = {
    "free": {
        "name": "Free",
        "max_assistants": 1,
        "max_minutes_monthly": 10,
        "max_phone_numbers": 1,
        "price_cents": 0,
        "features": ["1 AI assistant", "10 minutes per month", "1 phone number", "Basic analytics"],
    },
    "pro": {
        "name": "Pro",
        "max_assistants": 10,
        "max_minutes_monthly": 100,
        "max_phone_numbers": 5,
        "price_cents": 2500,
        "features": ["10 AI assistants", "100 minutes per month", "5 phone numbers", "Lead analytics", "Team members"],
    },
}

# Fractions of the monthly minute limit
MINUTES_WARNING_THRESHOLD = 0.8
MINUTES_CRITICAL_THRESHOLD = 0.9

# Fractions of the assistant limit
ASSISTANTS_WARNING_THRESHOLD = 0.8
ASSISTANTS_CRITICAL_THRESHOLD = 1.0

# Applied to assistants disabled for exceeding the minute limit
LIMITED_MAX_DURATION_SECONDS = 10
LIMITED_FIRST_MESSAGE = (
    "I'm sorry, but this assistant has reached its monthly usage limit. "
    "Please contact the account owner. Goodbye."
)

WARNING_EVENT_INTERVAL_HOURS = 24


def get_plan(plan_name: Optional[str]) -> Dict[str, Any]:
    """Return plan definition; unknown or missing names fall back to the free plan."""
    return PLANS.get((plan_name or "").lower(), PLANS[DEFAULT_PLAN])


def resolve_limits(profile: Dict[str, Any]) -> Dict[str, int]:
    """Plan limits for a profile. Non-null profile limit columns override the plan."""
    plan = get_plan(profile.get("subscription_type"))
    limits = {}
    for key in ("max_assistants", "max_minutes_monthly", "max_phone_numbers"):
        value = profile.get(key)
        limits[key] = int(value) if value is not None else plan[key]
    return limits
