"""Input validation for free-text fields on the completion workflow."""

from __future__ import annotations

import re

DISPUTE_REASON_MIN = 10
DISPUTE_REASON_MAX = 1000

_SCRIPT_TAG = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]*>")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)


def sanitize_text(value: str | None, max_length: int = DISPUTE_REASON_MAX) -> str:
    """Strip markup and script vectors, then trim and clip."""
    if not value:
        return ""
    cleaned = _SCRIPT_TAG.sub("", value.strip())
    cleaned = _HTML_TAG.sub("", cleaned)
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()[:max_length]


def validate_dispute_reason(reason: str | None) -> str | None:
    """Return an error message, or None when the reason is acceptable."""
    trimmed = (reason or "").strip()
    if len(trimmed) < DISPUTE_REASON_MIN:
        return f"Dispute reason must be at least {DISPUTE_REASON_MIN} characters"
    if len(trimmed) > DISPUTE_REASON_MAX:
        return f"Dispute reason cannot exceed {DISPUTE_REASON_MAX} characters"
    return None


def clean_note(note: str | None) -> str | None:
    """Empty or whitespace-only notes are treated as absent."""
    if note is None or not note.strip():
        return None
    return note.strip()
