"""
Purpose: SQLite-backed mention store; the unique index on (brand_id, content_id) is the
cross-run consistency guarantee, so overlapping runs cannot create duplicates.
Constraints: Storage only; no network calls.

Tables:
  mentions(id INTEGER PRIMARY KEY, brand_id, content_id, ..., is_processed, is_notified,
           UNIQUE(brand_id, content_id))
  feed_cursor(name TEXT PRIMARY KEY, fullname TEXT, created_at TEXT)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple, Union

from mention_monitor.core.models import ContentKind, FeedCursor, Mention, SentimentResult
from mention_monitor.core.storage.mention_store import MentionStore

logger = logging.getLogger(__name__)

_DDL = [
    "PRAGMA journal_mode=WAL;",
    """
    CREATE TABLE IF NOT EXISTS mentions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        brand_id TEXT NOT NULL,
        keyword_matched TEXT NOT NULL,
        content_id TEXT NOT NULL,
        content TEXT NOT NULL DEFAULT '',
        title TEXT,
        source_container TEXT NOT NULL DEFAULT '',
        author TEXT NOT NULL DEFAULT 'deleted',
        source_url TEXT NOT NULL DEFAULT '',
        content_kind TEXT NOT NULL,
        sentiment_score INTEGER,
        sentiment_label TEXT,
        is_processed INTEGER NOT NULL DEFAULT 0,
        is_notified INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_mentions_brand_content ON mentions(brand_id, content_id)",
    "CREATE INDEX IF NOT EXISTS ix_mentions_pending ON mentions(is_processed, content_kind, id)",
    "CREATE TABLE IF NOT EXISTS feed_cursor (name TEXT PRIMARY KEY, fullname TEXT NOT NULL, created_at TEXT NOT NULL)",
]


class SqliteMentionStore(MentionStore):
    def __init__(self, path: Union[str, Path] = "data/mentions.sqlite3", timeout: float = 10.0):
        self.path = Path(path)
        if str(path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        # `timeout` bounds waits on a database locked by an overlapping run.
        self._conn = sqlite3.connect(str(path), timeout=timeout, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            for stmt in _DDL:
                cur.execute(stmt)
            columns = {row["name"] for row in cur.execute("PRAGMA table_info(mentions)")}
            if "is_notified" not in columns:
                # Stores created before notification tracking: treat scored rows as already alerted.
                cur.execute("ALTER TABLE mentions ADD COLUMN is_notified INTEGER NOT NULL DEFAULT 0")
                cur.execute("UPDATE mentions SET is_notified=1 WHERE is_processed=1")
                logger.info("Added is_notified column to %s", self.path)
            cur.execute("CREATE INDEX IF NOT EXISTS ix_mentions_unnotified ON mentions(is_processed, is_notified, id)")
            self._conn.commit()

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(sql, tuple(params))
            self._conn.commit()
            return cur

    def upsert_mention(self, mention: Mention) -> Tuple[Mention, bool]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                INSERT INTO mentions(brand_id, keyword_matched, content_id, content, title,
                    source_container, author, source_url, content_kind, sentiment_score,
                    sentiment_label, is_processed, is_notified, created_at)
                VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?)
                ON CONFLICT(brand_id, content_id) DO NOTHING
                """,
                (
                    mention.brand_id,
                    mention.keyword_matched,
                    mention.content_id,
                    mention.content,
                    mention.title,
                    mention.source_container,
                    mention.author,
                    mention.source_url,
                    ContentKind(mention.content_kind).value,
                    mention.sentiment.score if mention.sentiment else None,
                    mention.sentiment.label if mention.sentiment else None,
                    int(mention.is_processed),
                    int(mention.is_notified),
                    mention.created_at.isoformat(),
                ),
            )
            created = cur.rowcount == 1
            self._conn.commit()
            cur.execute(
                "SELECT * FROM mentions WHERE brand_id=? AND content_id=?",
                (mention.brand_id, mention.content_id),
            )
            row = cur.fetchone()
        if not created:
            logger.debug("Mention %s/%s already stored", mention.brand_id, mention.content_id)
        return _row_to_mention(row), created

    def find_unprocessed(self, kind: ContentKind, limit: int) -> List[Mention]:
        cur = self._execute(
            "SELECT * FROM mentions WHERE is_processed=0 AND content_kind=? ORDER BY id LIMIT ?",
            (ContentKind(kind).value, int(limit)),
        )
        return [_row_to_mention(row) for row in cur.fetchall()]

    def update_sentiment(self, mention_id: int, result: SentimentResult) -> bool:
        cur = self._execute(
            "UPDATE mentions SET sentiment_score=?, sentiment_label=?, is_processed=1 WHERE id=? AND is_processed=0",
            (result.score, result.label, mention_id),
        )
        return cur.rowcount == 1

    def find_unnotified(self, limit: int) -> List[Mention]:
        cur = self._execute(
            "SELECT * FROM mentions WHERE is_processed=1 AND is_notified=0 ORDER BY id LIMIT ?",
            (int(limit),),
        )
        return [_row_to_mention(row) for row in cur.fetchall()]

    def mark_notified(self, mention_id: int) -> bool:
        cur = self._execute("UPDATE mentions SET is_notified=1 WHERE id=? AND is_notified=0", (mention_id,))
        return cur.rowcount == 1

    def get_mention(self, mention_id: int) -> Optional[Mention]:
        row = self._execute("SELECT * FROM mentions WHERE id=?", (mention_id,)).fetchone()
        return _row_to_mention(row) if row else None

    def get_cursor(self, name: str = "recent") -> Optional[FeedCursor]:
        row = self._execute("SELECT fullname, created_at FROM feed_cursor WHERE name=?", (name,)).fetchone()
        if not row:
            return None
        return FeedCursor(fullname=row["fullname"], created_at=datetime.fromisoformat(row["created_at"]))

    def save_cursor(self, cursor: FeedCursor, name: str = "recent") -> None:
        self._execute(
            "INSERT INTO feed_cursor(name, fullname, created_at) VALUES(?,?,?) "
            "ON CONFLICT(name) DO UPDATE SET fullname=excluded.fullname, created_at=excluded.created_at",
            (name, cursor.fullname, cursor.created_at.isoformat()),
        )

    def count_mentions(self) -> int:
        return int(self._execute("SELECT COUNT(*) FROM mentions").fetchone()[0])

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def _row_to_mention(row: sqlite3.Row) -> Mention:
    sentiment = None
    if row["sentiment_label"] is not None:
        sentiment = SentimentResult(score=int(row["sentiment_score"] or 0), label=row["sentiment_label"])
    return Mention(
        id=row["id"],
        brand_id=row["brand_id"],
        keyword_matched=row["keyword_matched"],
        content_id=row["content_id"],
        content=row["content"],
        title=row["title"],
        source_container=row["source_container"],
        author=row["author"],
        source_url=row["source_url"],
        content_kind=ContentKind(row["content_kind"]),
        sentiment=sentiment,
        is_processed=bool(row["is_processed"]),
        is_notified=bool(row["is_notified"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )
