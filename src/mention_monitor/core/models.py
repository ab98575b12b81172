"""
Purpose: Shared data models for cross-module communication.
Constraints: Data containers only; no I/O.
"""

# Imports
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Public API
class ContentKind(str, Enum):
    POST = "post"
    COMMENT = "comment"


class ContentItem(BaseModel):
    """One post or comment fetched from the feed, normalized at the client boundary."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: ContentKind
    author: str = "deleted"
    source_container: str = ""
    body: str = ""
    title: Optional[str] = None
    url: str = ""
    created_at: datetime
    score: int = 0
    reply_count: int = 0

    @property
    def fullname(self) -> str:
        prefix = "t1" if self.kind == ContentKind.COMMENT else "t3"
        return f"{prefix}_{self.id}"

    @property
    def searchable_text(self) -> str:
        # A comment's title is its parent thread's; only the comment body is its own text.
        if self.kind == ContentKind.COMMENT:
            return self.body
        return " ".join(part for part in (self.title or "", self.body) if part)


SentimentLabel = Literal["positive", "negative", "neutral"]


class SentimentResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: int
    label: SentimentLabel


class Mention(BaseModel):
    """A content item matched against one brand keyword."""

    id: Optional[int] = None
    brand_id: str
    keyword_matched: str
    content_id: str
    content: str = ""
    title: Optional[str] = None
    source_container: str = ""
    author: str = "deleted"
    source_url: str = ""
    content_kind: ContentKind = ContentKind.COMMENT
    sentiment: Optional[SentimentResult] = None
    is_processed: bool = False
    is_notified: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_content(cls, brand_id: str, keyword: str, item: ContentItem) -> "Mention":
        return cls(
            brand_id=brand_id,
            keyword_matched=keyword,
            content_id=item.id,
            content=item.body,
            title=item.title,
            source_container=item.source_container,
            author=item.author,
            source_url=item.url,
            content_kind=item.kind,
        )


class Keyword(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    text: str
    type: str = "keyword"


class ChannelConfig(BaseModel):
    """Per-brand outbound channel settings; `type` selects the channel implementation."""

    model_config = ConfigDict(extra="allow")

    type: str
    name: str = ""
    enabled: bool = False
    webhook_url: str = ""
    recipients: List[str] = Field(default_factory=list)
    routing_key: str = ""

    @property
    def label(self) -> str:
        return self.name or self.type


class Brand(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    keywords: List[Keyword] = Field(default_factory=list)
    channels: List[ChannelConfig] = Field(default_factory=list)

    @property
    def keyword_texts(self) -> List[str]:
        return [kw.text for kw in self.keywords if kw.text and kw.text.strip()]


class FeedCursor(BaseModel):
    """Newest item seen by the last successful fetch."""

    fullname: str
    created_at: datetime
