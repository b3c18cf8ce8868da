import re
from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")


class PhoneNumberCreate(BaseModel):
    phone_number: str
    friendly_name: str = Field(min_length=1, max_length=100)
    twilio_account_sid: str = Field(min_length=1)
    twilio_auth_token: str = Field(min_length=1)
    assistant_id: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def validate_e164(cls, v: str) -> str:
        v = v.strip()
        if not E164_PATTERN.match(v):
            raise ValueError("Phone number must be in E.164 format (e.g. +14155551234)")
        return v

    @field_validator("friendly_name", "twilio_account_sid", "twilio_auth_token")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class AssignAssistantRequest(BaseModel):
    assistant_id: Optional[str] = None


class PhoneNumberResponse(BaseModel):
    id: str
    user_id: str
    phone_number: str
    friendly_name: str
    provider: str = "twilio"
    vapi_phone_id: Optional[str] = None
    assigned_assistant_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
