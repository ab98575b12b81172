"""
Purpose: Whole-word, case-insensitive keyword matching.
Constraints: Pure helpers only; no side effects.
"""

# Imports
import re
from functools import lru_cache
from typing import Optional, Sequence


@lru_cache(maxsize=2048)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


# Public API
def match(text: str, keywords: Sequence[str]) -> Optional[str]:
    """Return the first keyword (in input order) found as a whole word in text, else None.

    "AI" matches "Our AI product" but not "born again".
    """
    if not text:
        return None
    for keyword in keywords:
        if not keyword or not keyword.strip():
            continue
        if _keyword_pattern(keyword.strip()).search(text):
            return keyword
    return None
