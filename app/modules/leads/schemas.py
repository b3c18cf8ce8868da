from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List
from datetime import datetime

LEAD_STATUSES = ("new", "contacted", "qualified", "converted", "lost")
LEAD_TYPES = ("buyer", "seller", "investor", "renter")
INTERACTION_TYPES = ("call", "email", "text", "note", "meeting", "follow_up")

# Interactions that count as reaching out to the lead
CONTACT_INTERACTIONS = ("call", "email", "text", "meeting")

SORTABLE_COLUMNS = ("created_at", "updated_at", "score", "first_name", "last_name", "status", "next_follow_up_at")


class LeadBase(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    lead_type: Optional[str] = Field(default=None, pattern="^(buyer|seller|investor|renter)$")
    property_type: Optional[List[str]] = None
    budget_min: Optional[float] = Field(default=None, ge=0)
    budget_max: Optional[float] = Field(default=None, ge=0)
    preferred_locations: Optional[List[str]] = None
    timeline: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=2000)
    tags: Optional[List[str]] = None

    @model_validator(mode="after")
    def check_budget_range(self):
        if self.budget_min is not None and self.budget_max is not None and self.budget_min > self.budget_max:
            raise ValueError("budget_min must not exceed budget_max")
        return self


class LeadCreate(LeadBase):
    call_id: Optional[str] = None
    phone: str = Field(min_length=10, max_length=20)
    lead_source: str = Field(default="manual", max_length=100)


class LeadUpdate(LeadBase):
    phone: Optional[str] = Field(default=None, min_length=10, max_length=20)
    lead_source: Optional[str] = Field(default=None, max_length=100)
    status: Optional[str] = Field(default=None, pattern="^(new|contacted|qualified|converted|lost)$")
    score: Optional[int] = Field(default=None, ge=0, le=100)
    next_follow_up_at: Optional[datetime] = None


class InteractionCreate(BaseModel):
    interaction_type: str = Field(pattern="^(call|email|text|note|meeting|follow_up)$")
    content: Optional[str] = Field(default=None, max_length=2000)
    scheduled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
