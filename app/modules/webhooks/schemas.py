from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

# Event types sent by Vapi server messages
CALL_START = "call-start"
CALL_END = "call-end"
END_OF_CALL_REPORT = "end-of-call-report"
FUNCTION_CALL = "function-call"
TRANSCRIPT = "transcript"
HANG = "hang"
SPEECH_UPDATE = "speech-update"
STATUS_UPDATE = "status-update"
VOICE_INPUT = "voice-input"


class VapiEvent(BaseModel):
    """A single Vapi server message. Unknown keys are kept for handlers that need them."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str
    call_id: Optional[str] = Field(default=None, alias="callId")
    timestamp: Optional[Any] = None
    call: Optional[Dict[str, Any]] = None
    assistant: Optional[Dict[str, Any]] = None
    function_call: Optional[Dict[str, Any]] = Field(default=None, alias="functionCall")
    transcript: Optional[Any] = None
    transcript_type: Optional[str] = Field(default=None, alias="transcriptType")
    role: Optional[str] = None
    status: Optional[str] = None
    ended_reason: Optional[str] = Field(default=None, alias="endedReason")
    messages: Optional[List[Dict[str, Any]]] = None
    artifact: Optional[Dict[str, Any]] = None
    analysis: Optional[Dict[str, Any]] = None
    summary: Optional[str] = None
    recording_url: Optional[str] = Field(default=None, alias="recordingUrl")
    cost: Optional[float] = None
    cost_breakdown: Optional[Dict[str, Any]] = Field(default=None, alias="costBreakdown")
    started_at: Optional[str] = Field(default=None, alias="startedAt")
    ended_at: Optional[str] = Field(default=None, alias="endedAt")


class ResourceEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    assistant: Optional[Dict[str, Any]] = None
    phone_number: Optional[Dict[str, Any]] = Field(default=None, alias="phoneNumber")


class WebhookResult(BaseModel):
    success: bool = True
    event_type: str
    event_id: Optional[str] = None
    call_id: Optional[str] = None
    processed_at: str
    data: Dict[str, Any] = {}
    warnings: List[str] = []


class ExtractedResponse(BaseModel):
    question_text: str
    answer_value: str
    field_name: str
    answer_type: str = "string"
    confidence: float
    collected_at: str
    function_name: Optional[str] = None
    vapi_message_id: Optional[str] = None


class Sentiment(BaseModel):
    score: float = 0.0
    label: str = "neutral"
    emotional_tone: str = "neutral"


class Intent(BaseModel):
    primary: str = "information"
    secondary: List[str] = []
    confidence: float = 0.0


class Topics(BaseModel):
    key_topics: List[str] = []
    objections: List[str] = []
    pain_points: List[str] = []
    interests: List[str] = []


class Engagement(BaseModel):
    score: int = 50
    talk_time_percentage: int = 50
    questions_answered: int = 0
    total_questions: int = 0


class CallAnalysisResult(BaseModel):
    lead_score: int
    qualification_status: str  # hot_lead | qualified | needs_followup | unqualified
    lead_quality: str  # hot | warm | cold | unqualified
    sentiment: Sentiment
    intent: Intent
    topics: Topics
    engagement: Engagement
    summary: str
    next_steps: str
    confidence: float


class MakeCallReport(BaseModel):
    """Call report posted by the Make.com scenario after a call ends"""
    id: str
    assistant_id: str
    duration_seconds: int = Field(ge=0)
    caller_number: Optional[str] = None
    started_at: str
    ended_at: Optional[str] = None
    transcript: Optional[str] = None
    structured_data: Optional[Dict[str, Any]] = None
    success_evaluation: Optional[Any] = None
    summary: Optional[str] = None
    recording_url: Optional[str] = None
    cost: float = 0.0
