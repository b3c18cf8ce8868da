from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

PERSONALITIES = ("professional", "friendly", "casual")
FIELD_TYPES = ("string", "number", "boolean")

DEFAULT_MODEL_ID = "gpt-4.1-mini-2025-04-14"
DEFAULT_VOICE_ID = "Elliot"


class StructuredQuestion(BaseModel):
    question_text: str = Field(min_length=1, max_length=500)
    answer_description: str = Field(default="", max_length=500)
    structured_field_name: str = Field(min_length=1, max_length=64, pattern=r"^[A-Za-z][A-Za-z0-9_]*$")
    field_type: str = Field(default="string", pattern="^(string|number|boolean)$")
    is_required: bool = False
    display_order: int = 0


class AssistantBase(BaseModel):
    company_name: Optional[str] = Field(default=None, max_length=255)
    agent_name: Optional[str] = Field(default=None, max_length=100)
    personality: str = Field(default="professional", pattern="^(professional|friendly|casual)$")
    model_id: str = DEFAULT_MODEL_ID
    voice_id: str = DEFAULT_VOICE_ID
    first_message: Optional[str] = Field(default=None, max_length=1000)
    first_message_mode: str = Field(
        default="assistant-speaks-first",
        pattern="^(assistant-speaks-first|assistant-waits-for-user)$"
    )
    max_call_duration: int = Field(default=300, ge=10, le=3600)
    background_sound: str = Field(default="office", pattern="^(off|office)$")
    custom_instructions: Optional[str] = Field(default=None, max_length=4000)
    structured_questions: List[StructuredQuestion] = Field(default_factory=list)

    @field_validator("structured_questions")
    @classmethod
    def unique_field_names(cls, v: List[StructuredQuestion]) -> List[StructuredQuestion]:
        names = [q.structured_field_name for q in v]
        if len(names) != len(set(names)):
            raise ValueError("structured_field_name must be unique per assistant")
        return v


class AssistantCreate(AssistantBase):
    name: str = Field(min_length=1, max_length=255)


class AssistantUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    company_name: Optional[str] = Field(default=None, max_length=255)
    agent_name: Optional[str] = Field(default=None, max_length=100)
    personality: Optional[str] = Field(default=None, pattern="^(professional|friendly|casual)$")
    model_id: Optional[str] = None
    voice_id: Optional[str] = None
    first_message: Optional[str] = Field(default=None, max_length=1000)
    first_message_mode: Optional[str] = Field(
        default=None,
        pattern="^(assistant-speaks-first|assistant-waits-for-user)$"
    )
    max_call_duration: Optional[int] = Field(default=None, ge=10, le=3600)
    background_sound: Optional[str] = Field(default=None, pattern="^(off|office)$")
    custom_instructions: Optional[str] = Field(default=None, max_length=4000)
    structured_questions: Optional[List[StructuredQuestion]] = None

    # Omit a field to leave it unchanged; these columns cannot be cleared
    @field_validator(
        "name", "personality", "model_id", "voice_id", "first_message_mode",
        "max_call_duration", "background_sound", "structured_questions",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not set to null")
        return v

    @field_validator("structured_questions")
    @classmethod
    def unique_field_names(cls, v: List[StructuredQuestion]) -> List[StructuredQuestion]:
        names = [q.structured_field_name for q in v]
        if len(names) != len(set(names)):
            raise ValueError("structured_field_name must be unique per assistant")
        return v


class AssistantResponse(BaseModel):
    id: str
    user_id: str
    name: str
    vapi_assistant_id: Optional[str] = None
    personality: Optional[str] = None
    company_name: Optional[str] = None
    agent_name: Optional[str] = None
    model_id: Optional[str] = None
    voice_id: Optional[str] = None
    first_message: Optional[str] = None
    first_message_mode: Optional[str] = None
    max_call_duration: Optional[int] = None
    background_sound: Optional[str] = None
    config: Optional[dict] = None
    assistant_state: Optional[str] = None
    is_active: bool = True
    is_disabled: bool = False
    disabled_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
