import re
from datetime import datetime, timezone
from typing import Optional

_MASK_DIGITS = re.compile(r"\d(?=\d{4})")
# Characters that would end a quoted PostgREST value or act as LIKE wildcards
_SEARCH_STRIP = re.compile(r'[\\"%*]')


def mask_phone(number: Optional[str]) -> str:
    """Mask all but the last four digits of a phone number for log output."""
    if not number:
        return ""
    return _MASK_DIGITS.sub("*", number)


def mask_sid(sid: Optional[str]) -> str:
    return f"{sid[:8]}..." if sid else ""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 string (or epoch milliseconds) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def ilike_any(columns, term: str) -> str:
    """PostgREST `or` filter matching `term` as a substring of any of `columns`.

    Values are double-quoted, so commas, dots and parentheses in the term are
    matched literally instead of being read as filter syntax.
    """
    cleaned = _SEARCH_STRIP.sub("", term).strip()
    return ",".join(f'{column}.ilike."%{cleaned}%"' for column in columns)
