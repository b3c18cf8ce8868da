from pydantic import BaseModel, EmailStr, Field
from typing import Any, Dict, List, Optional


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    subscription_type: str
    message: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class PlanSummary(BaseModel):
    name: str
    features: List[str] = []
    max_assistants: int
    max_minutes_monthly: int
    max_phone_numbers: int


class MeResponse(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = {}
    profile: Optional[Dict[str, Any]] = None
    plan: PlanSummary
