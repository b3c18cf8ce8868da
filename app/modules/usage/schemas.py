from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class UsageMetric(BaseModel):
    used: int
    limit: int
    remaining: int
    percentage: float
    warning_level: str = "none"  # none | warning | critical | exceeded


class CallStats(BaseModel):
    total: int = 0
    completed: int = 0
    success_rate: float = 0.0
    average_duration_seconds: float = 0.0
    total_duration_seconds: int = 0


class UsageSummary(BaseModel):
    user_id: str
    plan: str
    minutes: UsageMetric
    assistants: UsageMetric
    phone_numbers: UsageMetric
    calls: CallStats
    billing_cycle_start: datetime
    billing_cycle_end: datetime
    days_until_reset: int
    can_make_call: bool
    can_create_assistant: bool
    limit_enforced_at: Optional[datetime] = None


class UsageCheckResponse(BaseModel):
    can_create_assistant: bool
    can_make_call: bool
    can_add_phone_number: bool
    minutes_remaining: int
    assistants_remaining: int
    warnings: list = []


class CallValidation(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    minutes_remaining: int


class CostSyncRequest(BaseModel):
    days: int = Field(default=7, ge=1, le=90)
