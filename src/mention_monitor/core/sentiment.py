"""
Purpose: Lexicon-based sentiment scoring for mention text.
Constraints: Pure scoring; label derives from the score sign only.
"""

from __future__ import annotations

from functools import lru_cache

from afinn import Afinn

from mention_monitor.core.models import SentimentLabel, SentimentResult


@lru_cache(maxsize=1)
def _lexicon() -> Afinn:
    # Word list load is the expensive part; the scorer holds no per-call state.
    return Afinn(language="en")


def label_for(score_value: int) -> SentimentLabel:
    if score_value > 0:
        return "positive"
    if score_value < 0:
        return "negative"
    return "neutral"


def score(text: str) -> SentimentResult:
    """Sum of AFINN word valences (integers from -5 to +5) over the text, labelled by sign."""
    if not text or not text.strip():
        return SentimentResult(score=0, label="neutral")
    total = int(round(_lexicon().score(text)))
    return SentimentResult(score=total, label=label_for(total))
