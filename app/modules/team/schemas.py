from pydantic import BaseModel, EmailStr, Field
from typing import Optional

TEAM_ROLES = ("admin", "agent", "viewer")


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role: str = Field(pattern="^(admin|agent|viewer)$")
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)


class UpdateMemberRequest(BaseModel):
    role: str = Field(pattern="^(admin|agent|viewer)$")
