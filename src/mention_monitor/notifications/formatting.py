"""
Purpose: Build the channel-neutral alert for a scored mention.
Constraints: Pure formatting; channels render this into their own wire payloads.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from mention_monitor.core.models import Brand, Mention, utcnow
from mention_monitor.core.text_normalization import strong_to_markdown, truncate_content

SENTIMENT_STYLES: Dict[str, Dict[str, str]] = {
    "positive": {"emoji": "😊", "color": "#36a64f", "text": "Positive"},
    "negative": {"emoji": "😞", "color": "#ff0000", "text": "Negative"},
    "neutral": {"emoji": "😐", "color": "#808080", "text": "Neutral"},
}


@dataclass(frozen=True)
class AlertMessage:
    brand_id: str
    brand_name: str
    mention_key: str
    keyword: str
    sentiment_label: str
    sentiment_score: int
    emoji: str
    color: str
    sentiment_text: str
    source_container: str
    author: str
    url: str
    content: str
    title: Optional[str]
    detected_at: datetime

    @property
    def headline(self) -> str:
        return f"New {self.sentiment_label} mention of {self.brand_name}"

    def as_text(self) -> str:
        lines = [
            self.headline,
            f"Brand: {self.brand_name}",
            f"Keyword Matched: {self.keyword}",
            f"Sentiment: {self.emoji} {self.sentiment_text}",
            f"Subreddit: r/{self.source_container}",
            f"Author: u/{self.author}",
        ]
        if self.title:
            lines.append(f"Thread: {self.title}")
        lines += [
            f"Content:\n{self.content}",
            f"View on Reddit:\n{self.url}",
            f"Mention detected at {self.detected_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        ]
        return "\n".join(lines)


def build_alert(brand: Brand, mention: Mention, max_length: int = 300, now: Optional[datetime] = None) -> AlertMessage:
    label = mention.sentiment.label if mention.sentiment else "neutral"
    style = SENTIMENT_STYLES[label]
    return AlertMessage(
        brand_id=brand.id,
        brand_name=brand.name,
        mention_key=f"{mention.brand_id}:{mention.content_id}",
        keyword=mention.keyword_matched,
        sentiment_label=label,
        sentiment_score=mention.sentiment.score if mention.sentiment else 0,
        emoji=style["emoji"],
        color=style["color"],
        sentiment_text=style["text"],
        source_container=mention.source_container,
        author=mention.author,
        url=mention.source_url,
        content=truncate_content(strong_to_markdown(mention.content), max_length),
        title=mention.title,
        detected_at=now or utcnow(),
    )
