"""
Purpose: Normalize mention text for display in alerts and logs.
Constraints: Pure helpers only; no side effects.
"""

# Imports
import re
from textwrap import shorten

_STRONG_TAG = re.compile(r"</?strong>", re.IGNORECASE)

ELLIPSIS = "..."


# Helpers
def preview_text(text: str, width: int = 120) -> str:
    """Single-line preview for log lines."""
    if not text:
        return "(no body text)"
    return shorten(" ".join(text.split()), width=width, placeholder=ELLIPSIS)


def strong_to_markdown(text: str) -> str:
    """Turn <strong> highlight tags into chat-markdown asterisks."""
    return _STRONG_TAG.sub("*", text or "")


def truncate_content(text: str, max_length: int = 300) -> str:
    """Cut text to max_length characters, appending an ellipsis marker when anything was dropped."""
    text = text or ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + ELLIPSIS
