"""
Pulls structured answers out of a finished call.

Three sources, in decreasing confidence: function-call parameters the
assistant sent while talking (0.95), the analysis.structuredData block Vapi
produces at the end of the call (0.9), and regex matches over the caller's
own words (0.75). Only the highest-confidence answer per field is kept.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from app.core.utils import utcnow_iso
from app.modules.webhooks.schemas import ExtractedResponse

logger = logging.getLogger(__name__)

FUNCTION_CALL_CONFIDENCE = 0.95
STRUCTURED_DATA_CONFIDENCE = 0.9
TRANSCRIPT_CONFIDENCE = 0.75

TRANSCRIPT_PATTERNS = [
    ("full_name", "What is your name?",
     re.compile(r"(?:my name is|i'm|i am)\s+([a-zA-Z]+(?:\s+[a-zA-Z]+)*)", re.I)),
    ("phone_number", "What is your phone number?",
     re.compile(r"(?:my number is|phone number is|call me at)\s*([\d\s\-\(\)\+]{10,})", re.I)),
    ("email", "What is your email?",
     re.compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})", re.I)),
    ("property_type", "What type of property are you looking for?",
     re.compile(r"(?:looking for|interested in|want to buy)\s+(?:a\s+)?(house|condo|apartment|townhouse|commercial|land)", re.I)),
    ("budget", "What is your budget?",
     re.compile(r"budget\s+(?:is|of|around)?\s*\$?([\d,]+(?:\.\d{2})?)", re.I)),
    ("location", "Where are you looking?",
     re.compile(r"(?:in|around|near)\s+([A-Za-z\s]+(?:,\s*[A-Z]{2})?)", re.I)),
    ("timeline", "What is your timeline?",
     re.compile(r"(?:timeline|timeframe|when).*?(immediately|asap|next month|few months|next year|no rush)", re.I)),
]


def normalize_value(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def detect_answer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, (list, tuple)):
        return "array"
    return "string"


def deduplicate(responses: Iterable[ExtractedResponse]) -> List[ExtractedResponse]:
    """Keep the highest-confidence response per field, first seen wins ties."""
    seen: Dict[str, ExtractedResponse] = {}
    for response in responses:
        existing = seen.get(response.field_name)
        if existing is None or response.confidence > existing.confidence:
            seen[response.field_name] = response
    return list(seen.values())


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
            return parsed if isinstance(parsed, dict) else {}
        except ValueError:
            return {}
    return {}


def function_calls_in(messages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalise the function-call shapes Vapi uses into {name, parameters, id}."""
    calls = []
    for message in messages or []:
        if message.get("type") == "function-call" and message.get("functionCall"):
            fc = message["functionCall"]
            calls.append({
                "name": fc.get("name"),
                "parameters": _parse_arguments(fc.get("parameters")),
                "id": message.get("id"),
            })
        elif message.get("role") == "tool_calls":
            for tool_call in message.get("toolCalls") or []:
                fn = tool_call.get("function") or {}
                calls.append({
                    "name": fn.get("name"),
                    "parameters": _parse_arguments(fn.get("arguments")),
                    "id": tool_call.get("id"),
                })
    return calls


class LeadExtractor:
    def __init__(self, question_map: Optional[Dict[str, str]] = None):
        # field_name -> question text, from the assistant's configured questions
        self.question_map = question_map or {}

    def _question(self, field_name: str) -> str:
        return self.question_map.get(field_name) or f"Dynamic field: {field_name}"

    def extract_from_function_call(self, name: Optional[str], parameters: Dict[str, Any], message_id: Optional[str] = None) -> List[ExtractedResponse]:
        collected_at = utcnow_iso()
        responses = []
        for field_name, value in (parameters or {}).items():
            if value is None or value == "":
                continue
            responses.append(ExtractedResponse(
                question_text=self._question(field_name),
                answer_value=normalize_value(value),
                field_name=field_name,
                answer_type=detect_answer_type(value),
                confidence=FUNCTION_CALL_CONFIDENCE,
                collected_at=collected_at,
                function_name=name,
                vapi_message_id=message_id,
            ))
        logger.debug(f"Extracted {len(responses)} response(s) from function {name}")
        return responses

    def extract_from_structured_data(self, data: Optional[Dict[str, Any]]) -> List[ExtractedResponse]:
        collected_at = utcnow_iso()
        responses = []
        for field_name, value in (data or {}).items():
            if value is None or value == "" or value == []:
                continue
            responses.append(ExtractedResponse(
                question_text=self._question(field_name),
                answer_value=normalize_value(value),
                field_name=field_name,
                answer_type=detect_answer_type(value),
                confidence=STRUCTURED_DATA_CONFIDENCE,
                collected_at=collected_at,
            ))
        return responses

    def extract_from_transcript(self, user_utterances: List[str]) -> List[ExtractedResponse]:
        text = " ".join(u for u in user_utterances if u)
        if not text:
            return []
        collected_at = utcnow_iso()
        responses = []
        for field_name, question, pattern in TRANSCRIPT_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            value = match.group(1).strip()
            if not value:
                continue
            responses.append(ExtractedResponse(
                question_text=self.question_map.get(field_name) or question,
                answer_value=value,
                field_name=field_name,
                answer_type="string",
                confidence=TRANSCRIPT_CONFIDENCE,
                collected_at=collected_at,
            ))
        return responses

    def extract_from_messages(self, messages: List[Dict[str, Any]], structured_data: Optional[Dict[str, Any]] = None) -> List[ExtractedResponse]:
        responses: List[ExtractedResponse] = []
        for call in function_calls_in(messages):
            responses.extend(self.extract_from_function_call(call["name"], call["parameters"], call["id"]))
        responses.extend(self.extract_from_structured_data(structured_data))
        user_utterances = [
            m.get("message") or m.get("content") or ""
            for m in messages or []
            if m.get("role") == "user"
        ]
        responses.extend(self.extract_from_transcript(user_utterances))
        return deduplicate(responses)
