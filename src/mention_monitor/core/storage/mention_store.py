"""
Purpose: Mention persistence interface and an in-memory implementation.
Constraints: Storage only; no network calls.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from mention_monitor.core.models import ContentKind, FeedCursor, Mention, SentimentResult


class MentionStore(ABC):
    """Durable mention storage. `(brand_id, content_id)` is unique at the storage layer."""

    @abstractmethod
    def upsert_mention(self, mention: Mention) -> Tuple[Mention, bool]:
        """Insert unless the key exists; returns (stored mention, created). Duplicates are not errors."""

    @abstractmethod
    def find_unprocessed(self, kind: ContentKind, limit: int) -> List[Mention]:
        """Oldest-first mentions of `kind` with is_processed false."""

    @abstractmethod
    def update_sentiment(self, mention_id: int, result: SentimentResult) -> bool:
        """Store sentiment and flip is_processed in one write; False if already processed or missing."""

    @abstractmethod
    def find_unnotified(self, limit: int) -> List[Mention]:
        """Oldest-first scored mentions whose alert has not been dispatched yet."""

    @abstractmethod
    def mark_notified(self, mention_id: int) -> bool:
        """Record that the mention was dispatched; False if already marked or missing."""

    @abstractmethod
    def get_mention(self, mention_id: int) -> Optional[Mention]:
        ...

    @abstractmethod
    def get_cursor(self, name: str = "recent") -> Optional[FeedCursor]:
        ...

    @abstractmethod
    def save_cursor(self, cursor: FeedCursor, name: str = "recent") -> None:
        ...

    def close(self) -> None:
        pass


class InMemoryMentionStore(MentionStore):
    """Dict-backed store for dry runs and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rows: Dict[int, Mention] = {}
        self._keys: Dict[Tuple[str, str], int] = {}
        self._cursors: Dict[str, FeedCursor] = {}
        self._next_id = 1

    def upsert_mention(self, mention: Mention) -> Tuple[Mention, bool]:
        key = (mention.brand_id, mention.content_id)
        with self._lock:
            existing_id = self._keys.get(key)
            if existing_id is not None:
                return self._rows[existing_id].model_copy(), False
            stored = mention.model_copy(update={"id": self._next_id})
            self._rows[self._next_id] = stored
            self._keys[key] = self._next_id
            self._next_id += 1
            return stored.model_copy(), True

    def find_unprocessed(self, kind: ContentKind, limit: int) -> List[Mention]:
        with self._lock:
            rows = [
                m.model_copy()
                for _, m in sorted(self._rows.items())
                if not m.is_processed and m.content_kind == ContentKind(kind)
            ]
        return rows[:limit]

    def update_sentiment(self, mention_id: int, result: SentimentResult) -> bool:
        with self._lock:
            current = self._rows.get(mention_id)
            if current is None or current.is_processed:
                return False
            self._rows[mention_id] = current.model_copy(update={"sentiment": result, "is_processed": True})
            return True

    def find_unnotified(self, limit: int) -> List[Mention]:
        with self._lock:
            rows = [m.model_copy() for _, m in sorted(self._rows.items()) if m.is_processed and not m.is_notified]
        return rows[:limit]

    def mark_notified(self, mention_id: int) -> bool:
        with self._lock:
            current = self._rows.get(mention_id)
            if current is None or current.is_notified:
                return False
            self._rows[mention_id] = current.model_copy(update={"is_notified": True})
            return True

    def get_mention(self, mention_id: int) -> Optional[Mention]:
        with self._lock:
            found = self._rows.get(mention_id)
            return found.model_copy() if found else None

    def get_cursor(self, name: str = "recent") -> Optional[FeedCursor]:
        with self._lock:
            return self._cursors.get(name)

    def save_cursor(self, cursor: FeedCursor, name: str = "recent") -> None:
        with self._lock:
            self._cursors[name] = cursor

    def all_mentions(self) -> List[Mention]:
        with self._lock:
            return [m.model_copy() for _, m in sorted(self._rows.items())]
