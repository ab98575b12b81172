"""
Purpose: One pass of the mention pipeline: fetch -> match and persist -> score pending -> notify.
Constraints: Safe to re-run on a timer; a run never raises for feed, store or delivery failures.

Feed policy: every run fetches the newest page (no pagination). A persisted cursor
(newest fullname and timestamp seen) filters out items already handled, and a page whose
oldest item is newer than the cursor is reported as a possible gap. The unique
(brand_id, content_id) index in the store is what keeps overlapping windows from
producing duplicates.
"""

# Imports
from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from mention_monitor.core.brands import BrandConfigProvider
from mention_monitor.core.config_models import PipelineSettings
from mention_monitor.core.errors import FeedError, FeedErrorKind
from mention_monitor.core.keyword_matcher import match as match_keyword
from mention_monitor.core.logging import UnifiedLogger
from mention_monitor.core.metrics import get_metrics
from mention_monitor.core.models import Brand, ContentItem, ContentKind, FeedCursor, Mention, SentimentResult, utcnow
from mention_monitor.core.result import Err, ErrorKind
from mention_monitor.core.sentiment import score as score_text
from mention_monitor.core.storage.mention_store import MentionStore
from mention_monitor.core.text_normalization import preview_text
from mention_monitor.notifications.dispatcher import NotificationDispatcher
from mention_monitor.reddit_api.feed_client import FeedClient

_FEED_ERROR_KINDS = {
    FeedErrorKind.TRANSIENT: ErrorKind.TRANSIENT_NETWORK,
    FeedErrorKind.RATE_LIMITED: ErrorKind.TRANSIENT_NETWORK,
    FeedErrorKind.AUTHORIZATION: ErrorKind.AUTHORIZATION,
    FeedErrorKind.VALIDATION: ErrorKind.VALIDATION,
}

# Process-wide: overlapping timer invocations in one process skip instead of racing.
_RUN_GUARD = threading.Lock()


class RunState(str, Enum):
    START = "start"
    FETCH = "fetch"
    MATCH_AND_PERSIST = "match_and_persist"
    SCORE_PENDING = "score_pending"
    NOTIFY = "notify"
    DONE = "done"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class RunSummary:
    run_id: str
    state: RunState = RunState.START
    fetched: int = 0
    skipped_seen: int = 0
    possible_gap: bool = False
    matched: int = 0
    inserted: int = 0
    duplicates: int = 0
    scored: int = 0
    notified: int = 0
    notification_failures: int = 0
    budget_exhausted: bool = False
    errors: List[Err] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.state in (RunState.DONE, RunState.SKIPPED) and not self.errors

    def fail(self, error: Err) -> None:
        self.errors.append(error)
        self.state = RunState.ERROR

    def as_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["state"] = self.state.value
        data["errors"] = [err.as_dict() for err in self.errors]
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


class RunBudget:
    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._deadline = clock() + seconds

    def exhausted(self) -> bool:
        return self._clock() >= self._deadline


MatchHit = Tuple[Brand, str]


# Public API
class PollingOrchestrator:
    """Drives pipeline runs; owns the Mention lifecycle from creation to notification."""

    def __init__(
        self,
        feed: FeedClient,
        store: MentionStore,
        brands: BrandConfigProvider,
        dispatcher: NotificationDispatcher,
        settings: Optional[PipelineSettings] = None,
        *,
        fetch_limit: Optional[int] = None,
        matcher: Callable[[str, Sequence[str]], Optional[str]] = match_keyword,
        scorer: Callable[[str], SentimentResult] = score_text,
        clock: Callable[[], float] = time.monotonic,
        run_guard: Optional[threading.Lock] = None,
        logger: Optional[UnifiedLogger] = None,
    ):
        self.feed = feed
        self.store = store
        self.brands = brands
        self.dispatcher = dispatcher
        self.settings = settings or PipelineSettings()
        self.fetch_limit = fetch_limit
        self.matcher = matcher
        self.scorer = scorer
        self._clock = clock
        self._guard = run_guard or _RUN_GUARD
        self.log = logger or UnifiedLogger("mention_monitor.orchestrator")
        self.logger = self.log.get_logger()
        self._pending_cursor: Optional[FeedCursor] = None

    # -- run control -------------------------------------------------------

    def run_once(self) -> RunSummary:
        summary = RunSummary(run_id=uuid.uuid4().hex[:12])
        if not self._guard.acquire(blocking=False):
            self.logger.warning("Previous run still in progress; skipping this invocation")
            summary.state = RunState.SKIPPED
            summary.finished_at = utcnow()
            return summary
        try:
            with self.log.time_operation("pipeline.run"):
                self._run(summary)
        except Exception as exc:  # last line of defence; the scheduler must keep ticking
            self.log.log_error_with_context(exc, {"run_id": summary.run_id, "state": summary.state.value})
            summary.fail(Err(ErrorKind.INTERNAL, f"{type(exc).__name__}: {exc}"))
        finally:
            self._guard.release()
            summary.finished_at = utcnow()
        self.log.log_activity(
            "pipeline.run",
            summary.as_dict(),
            level="INFO" if summary.state != RunState.ERROR else "ERROR",
        )
        return summary

    def run_forever(
        self,
        interval: Optional[float] = None,
        stop_event: Optional[threading.Event] = None,
        max_runs: Optional[int] = None,
    ) -> int:
        """Run on a fixed interval until stopped; returns the number of runs performed."""
        interval = interval if interval is not None else self.settings.poll_interval_seconds
        stop_event = stop_event or threading.Event()
        runs = 0
        while not stop_event.is_set():
            self.run_once()
            runs += 1
            if max_runs is not None and runs >= max_runs:
                break
            stop_event.wait(interval)
        return runs

    def _run(self, summary: RunSummary) -> None:
        budget = RunBudget(self.settings.run_budget_seconds, self._clock)

        summary.state = RunState.FETCH
        items = self.fetch(summary)
        if summary.state == RunState.ERROR:
            return

        summary.state = RunState.MATCH_AND_PERSIST
        brands = self.brands.list_brands()
        if not brands:
            self.logger.warning("No brands configured; nothing to match")
        self.match_and_persist(items, brands, summary, budget)
        if summary.budget_exhausted:
            self._stop_for_budget(summary)
            return

        summary.state = RunState.SCORE_PENDING
        self.score_pending(summary, budget)
        if summary.budget_exhausted:
            self._stop_for_budget(summary)
            return

        # Alerts come from the store, so mentions scored by an interrupted run are picked up here.
        summary.state = RunState.NOTIFY
        self.notify_mentions(self.store.find_unnotified(self.settings.score_batch_size), summary, budget)
        if summary.budget_exhausted:
            self._stop_for_budget(summary)
            return
        summary.state = RunState.DONE

    def _stop_for_budget(self, summary: RunSummary) -> None:
        self.logger.warning(
            "Run %s exceeded its %.0fs budget during %s; stopping at checkpoint",
            summary.run_id,
            self.settings.run_budget_seconds,
            summary.state.value,
        )
        summary.state = RunState.DONE

    # -- stages ------------------------------------------------------------

    def fetch(self, summary: RunSummary) -> List[ContentItem]:
        try:
            recent = self.feed.fetch_recent(self.fetch_limit)
        except FeedError as exc:
            summary.fail(Err(_FEED_ERROR_KINDS[exc.kind], str(exc)))
            return []
        summary.fetched = len(recent)
        get_metrics().record("feed.items", count=len(recent))
        items = self._filter_seen(recent, summary)

        if self.settings.search_posts:
            items.extend(self._search_brand_keywords(summary))
        return items

    def _filter_seen(self, items: List[ContentItem], summary: RunSummary) -> List[ContentItem]:
        if not items:
            return []
        newest = max(items, key=lambda item: item.created_at)
        cursor = self.store.get_cursor()
        fresh = items
        if cursor is not None:
            fresh = [
                item
                for item in items
                if item.created_at >= cursor.created_at and item.fullname != cursor.fullname
            ]
            summary.skipped_seen = len(items) - len(fresh)
            oldest = min(item.created_at for item in items)
            if oldest > cursor.created_at and all(item.fullname != cursor.fullname for item in items):
                summary.possible_gap = True
                get_metrics().record_failure("feed.possible_gap")
                self.logger.warning(
                    "Possible gap: oldest fetched item (%s) is newer than the last cursor (%s)",
                    oldest.isoformat(),
                    cursor.created_at.isoformat(),
                )
        self._pending_cursor = FeedCursor(fullname=newest.fullname, created_at=newest.created_at)
        return fresh

    def _search_brand_keywords(self, summary: RunSummary) -> List[ContentItem]:
        found: List[ContentItem] = []
        seen_ids = set()
        for brand in self.brands.list_brands():
            for keyword in brand.keyword_texts:
                try:
                    results = self.feed.search(keyword)
                except FeedError as exc:
                    # A failed query costs that query only.
                    summary.errors.append(Err(_FEED_ERROR_KINDS[exc.kind], str(exc)))
                    continue
                for item in results:
                    if item.fullname not in seen_ids:
                        seen_ids.add(item.fullname)
                        found.append(item)
        summary.fetched += len(found)
        return found

    def find_matches(self, items: Sequence[ContentItem], brands: Sequence[Brand]) -> List[Tuple[ContentItem, List[MatchHit]]]:
        """Run the matcher over items x brands; output keeps fetch order."""

        def hits_for(item: ContentItem) -> Tuple[ContentItem, List[MatchHit]]:
            text = item.searchable_text
            hits: List[MatchHit] = []
            for brand in brands:
                keyword = self.matcher(text, brand.keyword_texts)
                if keyword:
                    hits.append((brand, keyword))
            return item, hits

        workers = self.settings.match_workers
        if workers <= 1 or len(items) < 2:
            return [hits_for(item) for item in items]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="match") as pool:
            return list(pool.map(hits_for, items))

    def match_and_persist(
        self,
        items: Sequence[ContentItem],
        brands: Sequence[Brand],
        summary: Optional[RunSummary] = None,
        budget: Optional[RunBudget] = None,
    ) -> List[Mention]:
        summary = summary or RunSummary(run_id="adhoc")
        inserted: List[Mention] = []
        completed = True
        for item, hits in self.find_matches(items, brands):
            for brand, keyword in hits:
                summary.matched += 1
                stored, created = self.store.upsert_mention(Mention.from_content(brand.id, keyword, item))
                if created:
                    summary.inserted += 1
                    inserted.append(stored)
                    get_metrics().record("mention.inserted")
                    self.logger.info(
                        "New %s mention for brand %s (keyword %r) in r/%s: %s",
                        item.kind.value,
                        brand.id,
                        keyword,
                        item.source_container,
                        preview_text(item.body),
                    )
                else:
                    summary.duplicates += 1
            if budget is not None and budget.exhausted():
                summary.budget_exhausted = True
                completed = False
                break

        if completed and self._pending_cursor is not None:
            self.store.save_cursor(self._pending_cursor)
            self._pending_cursor = None
        return inserted

    def score_pending(self, summary: Optional[RunSummary] = None, budget: Optional[RunBudget] = None) -> List[Mention]:
        """Score unprocessed mentions; the flag flips in the same write as the sentiment."""
        summary = summary or RunSummary(run_id="adhoc")
        scored: List[Mention] = []
        for kind in self.settings.score_kinds:
            pending = self.store.find_unprocessed(ContentKind(kind), self.settings.score_batch_size)
            if pending:
                self.logger.info("📊 Updating sentiment for %s %s mentions", len(pending), kind)
            for mention in pending:
                result = self.scorer(_scoring_text(mention))
                try:
                    updated = self.store.update_sentiment(mention.id, result)
                except Exception as exc:
                    self.log.log_error_with_context(exc, {"mention_id": mention.id, "stage": "score"})
                    summary.errors.append(Err(ErrorKind.INTERNAL, f"update_sentiment({mention.id}): {exc}"))
                    continue
                if updated:
                    summary.scored += 1
                    get_metrics().record("mention.scored")
                    scored.append(mention.model_copy(update={"sentiment": result, "is_processed": True}))
                    self.logger.debug("Updated sentiment for mention %s: %s (%s)", mention.id, result.label, result.score)
                if budget is not None and budget.exhausted():
                    summary.budget_exhausted = True
                    return scored
        return scored

    def notify_mentions(
        self,
        mentions: Sequence[Mention],
        summary: Optional[RunSummary] = None,
        budget: Optional[RunBudget] = None,
    ) -> None:
        """Dispatch each mention, then mark it notified.

        A mention whose dispatch raised stays unnotified and is retried by the next run.
        Per-channel failures still mark it, so channels that did deliver are not sent twice.
        """
        summary = summary or RunSummary(run_id="adhoc")
        for mention in mentions:
            try:
                results = self.dispatcher.notify(mention.brand_id, mention)
            except Exception as exc:
                self.log.log_error_with_context(exc, {"mention_id": mention.id, "stage": "notify"})
                summary.notification_failures += 1
                summary.errors.append(Err(ErrorKind.NOTIFICATION_DELIVERY, f"mention {mention.id}: {exc}"))
            else:
                for channel, result in results.items():
                    if result.is_ok:
                        summary.notified += 1
                    else:
                        summary.notification_failures += 1
                        self.logger.warning("Delivery to %s failed for mention %s: %s", channel, mention.id, result.detail)
                if mention.id is not None:
                    self.store.mark_notified(mention.id)
            if budget is not None and budget.exhausted():
                summary.budget_exhausted = True
                return


def _scoring_text(mention: Mention) -> str:
    # Post matches often live in the title; comments are scored on their body alone.
    if mention.content_kind == ContentKind.POST:
        return " ".join(part for part in (mention.title or "", mention.content) if part)
    return mention.content or ""
