"""
Builds the system prompt, first message and Vapi structured-data schema
for an assistant from its personality and configured questions.
"""

import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

TONE_EXPANSIONS = {
    "professional": "professional, knowledgeable, and courteous",
    "friendly": "warm, approachable, and enthusiastic",
    "casual": "relaxed, conversational, and easy-going",
}

DEFAULT_AGENT_NAME = "Assistant"
DEFAULT_COMPANY_NAME = "the company"
DEFAULT_CUSTOM_INSTRUCTIONS = "Follow standard real estate best practices and be helpful to all callers."

LEAD_FUNCTION_NAME = "collectLeadData"

BASE_PROMPT = """
You are {AGENT_NAME}, an AI voice assistant answering calls for {COMPANY_NAME}.
Your tone is {TONE}.

Keep answers short and natural; you are speaking on the phone, not writing.
Never invent listings, prices or commitments on behalf of {COMPANY_NAME}.
If you cannot help, offer to have someone from {COMPANY_NAME} follow up.

{QUESTION_COLLECTION_INSTRUCTIONS}

{CUSTOM_INSTRUCTIONS}
"""

_SLOT = re.compile(r"\{([A-Z_]+)\}")


def _get(question: Any, field: str, default: Any = None) -> Any:
    if isinstance(question, dict):
        return question.get(field, default)
    return getattr(question, field, default)


def sort_questions(questions: List[Any]) -> List[Any]:
    return sorted(questions or [], key=lambda q: _get(q, "display_order", 0) or 0)


def format_question(question: Any) -> str:
    required = " [REQUIRED]" if _get(question, "is_required") else ""
    return (
        f'- ASK: "{_get(question, "question_text")}"\n'
        f"  PURPOSE: {_get(question, 'answer_description', '')}\n"
        f"  SAVE AS: {_get(question, 'structured_field_name')} ({_get(question, 'field_type', 'string')}){required}"
    )


def build_question_instructions(questions: List[Any]) -> str:
    if not questions:
        return "Collect basic contact information naturally during the conversation when appropriate."

    ordered = sort_questions(questions)
    required = [q for q in ordered if _get(q, "is_required")]
    optional = [q for q in ordered if not _get(q, "is_required")]

    sections = [
        "INFORMATION TO COLLECT:\nYou must gather the following information naturally during your conversation."
    ]
    if required:
        sections.append(
            "REQUIRED INFORMATION (Must collect before ending call):\n"
            + "\n".join(format_question(q) for q in required)
        )
    if optional:
        sections.append(
            "OPTIONAL INFORMATION (Collect if naturally fits the conversation):\n"
            + "\n".join(format_question(q) for q in optional)
        )
    example = ",\n  ".join(f'{_get(q, "structured_field_name")}: "value"' for q in ordered)
    sections.append(
        "COLLECTION GUIDELINES:\n"
        "- Ask questions conversationally, not like filling out a form\n"
        "- Don't ask all questions at once; let the conversation guide you\n"
        f"- Use the {LEAD_FUNCTION_NAME} function whenever you gather any information\n"
        "- For required fields, gently circle back if not collected before ending\n"
        "- If someone seems reluctant to share, respect their privacy\n\n"
        f"IMPORTANT: Call the {LEAD_FUNCTION_NAME} function with collected data like this:\n"
        f"{LEAD_FUNCTION_NAME}({{\n  {example}\n}})"
    )
    return "\n\n".join(sections)


def build_custom_instructions(custom: Optional[str]) -> str:
    if not custom or not custom.strip():
        return DEFAULT_CUSTOM_INSTRUCTIONS
    return (
        "ADDITIONAL INSTRUCTIONS FROM USER:\n"
        f"{custom.strip()}\n\n"
        "Remember to follow these custom guidelines while maintaining your professional demeanor."
    )


def clean_prompt(prompt: str) -> str:
    """Strip every line and collapse runs of blank lines to one"""
    lines = [line.strip() for line in prompt.split("\n")]
    text = "\n".join(lines).strip()
    return re.sub(r"\n{3,}", "\n\n", text)


def build_system_prompt(
    company_name: Optional[str],
    agent_name: Optional[str] = None,
    personality: str = "professional",
    questions: Optional[List[Any]] = None,
    custom_instructions: Optional[str] = None,
    template: str = BASE_PROMPT,
) -> str:
    replacements = {
        "AGENT_NAME": agent_name or DEFAULT_AGENT_NAME,
        "COMPANY_NAME": company_name or DEFAULT_COMPANY_NAME,
        "TONE": TONE_EXPANSIONS.get(personality, TONE_EXPANSIONS["professional"]),
        "CUSTOM_INSTRUCTIONS": build_custom_instructions(custom_instructions),
        "QUESTION_COLLECTION_INSTRUCTIONS": build_question_instructions(questions or []),
    }
    prompt = _SLOT.sub(lambda m: replacements.get(m.group(1), m.group(0)), template)
    prompt = clean_prompt(prompt)

    leftover = [slot for slot in _SLOT.findall(prompt) if slot not in replacements]
    if leftover:
        logger.warning(f"Unreplaced prompt placeholders: {', '.join(sorted(set(leftover)))}")
    return prompt


def build_first_message(company_name: Optional[str], agent_name: Optional[str] = None) -> str:
    return (
        f"Hello! Thank you for calling {company_name or DEFAULT_COMPANY_NAME}. "
        f"This is {agent_name or DEFAULT_AGENT_NAME}, your AI assistant. How can I help you today?"
    )


def _schema_type(field_type: Optional[str]) -> str:
    return field_type if field_type in ("boolean", "number") else "string"


def build_structured_data_schema(questions: List[Any]) -> Dict[str, Any]:
    """JSON schema for Vapi's analysisPlan.structuredDataSchema"""
    properties: Dict[str, Any] = {}
    required: List[str] = []
    for q in sort_questions(questions):
        name = _get(q, "structured_field_name")
        properties[name] = {
            "type": _schema_type(_get(q, "field_type")),
            "description": _get(q, "answer_description") or _get(q, "question_text"),
        }
        if _get(q, "is_required"):
            required.append(name)
    return {"type": "object", "properties": properties, "required": required}


def build_lead_function(questions: List[Any]) -> Dict[str, Any]:
    """Function tool the model calls while collecting answers during the call"""
    return {
        "name": LEAD_FUNCTION_NAME,
        "description": (
            "Call this function to save any lead information collected during the conversation. "
            "Call it multiple times as you gather information."
        ),
        "parameters": build_structured_data_schema(questions),
    }
