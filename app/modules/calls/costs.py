import math
from typing import Any, Dict, Optional

from app.core.utils import utcnow_iso


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate: four characters per token."""
    return math.ceil(len(text) / 4) if text else 0


def to_cents(cost: Any) -> int:
    try:
        return int(round(float(cost or 0) * 100))
    except (TypeError, ValueError):
        return 0


def cost_breakdown_row(call_log_id: str, user_id: str, vapi_call: Dict[str, Any], transcript: Optional[str] = None) -> Dict[str, Any]:
    """call_costs row from a Vapi call object (cost in dollars)."""
    breakdown = vapi_call.get("costBreakdown") or {}
    total = float(vapi_call.get("cost") or breakdown.get("total") or 0)
    prompt_tokens = int(breakdown.get("llmPromptTokens") or 0)
    completion_tokens = int(breakdown.get("llmCompletionTokens") or 0)
    return {
        "call_id": call_log_id,
        "user_id": user_id,
        "llm_cost": float(breakdown.get("llm") or 0),
        "stt_cost": float(breakdown.get("stt") or 0),
        "tts_cost": float(breakdown.get("tts") or 0),
        "transport_cost": float(breakdown.get("transport") or 0),
        "vapi_cost": float(breakdown.get("vapi") or 0),
        "total_cost": total,
        "llm_tokens": prompt_tokens + completion_tokens,
        "estimated_tokens": estimate_tokens(transcript if transcript is not None else vapi_call.get("transcript")),
        "updated_at": utcnow_iso(),
    }
