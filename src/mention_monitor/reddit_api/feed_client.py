"""
Purpose: Rate-limited, retrying, timeout-bounded access to the Reddit feed.
Constraints: Read-only API access; every item leaves this module as a ContentItem.

Errors are classified into FeedErrorKind here, where the HTTP status or prawcore
exception type is still known; nothing downstream inspects error messages.
"""

# Imports
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, TypeVar

import praw
import prawcore
import requests

from mention_monitor.core.config_models import ApiCreds, FeedSettings
from mention_monitor.core.errors import FeedError, FeedErrorKind
from mention_monitor.core.metrics import get_metrics
from mention_monitor.core.models import ContentItem, ContentKind
from mention_monitor.core.rate_limiter import RequestThrottle
from mention_monitor.core.utils.deadline import DeadlineExceeded, call_with_deadline
from mention_monitor.core.utils.retry import retry
from mention_monitor.notifications.operator_alerts import OperatorAlerts
from mention_monitor.reddit_api.auth import TokenProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")

REDDIT_WEB = "https://www.reddit.com"

_AUTH_STATUSES = {401, 403}


# Helpers
def _status_kind(status: Optional[int]) -> FeedErrorKind:
    if status in _AUTH_STATUSES:
        return FeedErrorKind.AUTHORIZATION
    if status == 429:
        return FeedErrorKind.RATE_LIMITED
    if status is not None and status >= 500:
        return FeedErrorKind.TRANSIENT
    return FeedErrorKind.VALIDATION


def classify_exception(exc: BaseException, operation: str) -> Optional[FeedError]:
    """Map transport/library exceptions to a FeedError; None for exceptions we do not own."""
    if isinstance(exc, FeedError):
        return exc
    if isinstance(exc, (prawcore.exceptions.OAuthException, prawcore.exceptions.InvalidToken)):
        return FeedError(FeedErrorKind.AUTHORIZATION, f"{operation}: {exc}", operation=operation)
    if isinstance(exc, prawcore.exceptions.Forbidden):
        return FeedError(FeedErrorKind.AUTHORIZATION, f"{operation}: {exc}", status=403, operation=operation)
    if isinstance(exc, prawcore.exceptions.TooManyRequests):
        return FeedError(FeedErrorKind.RATE_LIMITED, f"{operation}: {exc}", status=429, operation=operation)
    if isinstance(exc, prawcore.exceptions.ResponseException):
        status = getattr(exc.response, "status_code", None)
        return FeedError(_status_kind(status), f"{operation}: {exc}", status=status, operation=operation)
    if isinstance(exc, prawcore.exceptions.RequestException):
        return FeedError(FeedErrorKind.TRANSIENT, f"{operation}: {exc}", operation=operation)
    if isinstance(exc, requests.HTTPError):
        status = getattr(exc.response, "status_code", None)
        return FeedError(_status_kind(status), f"{operation}: {exc}", status=status, operation=operation)
    if isinstance(exc, (requests.Timeout, requests.ConnectionError, DeadlineExceeded)):
        return FeedError(FeedErrorKind.TRANSIENT, f"{operation}: {exc}", operation=operation)
    return None


def _timestamp(value: Any) -> datetime:
    return datetime.fromtimestamp(float(value or 0), tz=timezone.utc)


def _permalink_url(permalink: str) -> str:
    if not permalink:
        return ""
    if permalink.startswith("http"):
        return permalink
    return f"{REDDIT_WEB}{permalink}"


def normalize_listing_child(child: Mapping[str, Any]) -> ContentItem:
    """Map one `{"kind": ..., "data": {...}}` listing child (comment or link) to a ContentItem."""
    data = child["data"]
    if child.get("kind") == "t3":
        return ContentItem(
            id=str(data["id"]),
            kind=ContentKind.POST,
            author=data.get("author") or "deleted",
            source_container=data.get("subreddit") or "",
            title=data.get("title"),
            body=data.get("selftext") or "",
            url=_permalink_url(data.get("permalink", "")),
            created_at=_timestamp(data.get("created_utc")),
            score=int(data.get("score") or 0),
            reply_count=int(data.get("num_comments") or 0),
        )
    return ContentItem(
        id=str(data["id"]),
        kind=ContentKind.COMMENT,
        author=data.get("author") or "deleted",
        source_container=data.get("subreddit") or "",
        title=data.get("link_title"),
        body=data.get("body") or "",
        url=_permalink_url(data.get("permalink", "")),
        created_at=_timestamp(data.get("created_utc")),
        score=int(data.get("score") or 0),
        reply_count=int(data.get("num_comments") or 0),
    )


def normalize_submission(post: Any) -> ContentItem:
    """Map a praw Submission (or any object with the same attributes) to a ContentItem."""
    author = getattr(post, "author", None)
    subreddit = getattr(post, "subreddit", None)
    return ContentItem(
        id=str(post.id),
        kind=ContentKind.POST,
        author=getattr(author, "name", None) or (author if isinstance(author, str) else None) or "deleted",
        source_container=getattr(subreddit, "display_name", None) or str(subreddit or ""),
        title=getattr(post, "title", None),
        body=getattr(post, "selftext", "") or "",
        url=_permalink_url(getattr(post, "permalink", "") or ""),
        created_at=_timestamp(getattr(post, "created_utc", 0)),
        score=int(getattr(post, "score", 0) or 0),
        reply_count=int(getattr(post, "num_comments", 0) or 0),
    )


# Public API
class FeedClient:
    """Reddit feed access owned by the composition root and reused for the process lifetime.

    The HTTP session and the praw client are created on first use. Every outbound request
    passes through one RequestThrottle, so calls from several threads are serialized.
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        settings: Optional[FeedSettings] = None,
        *,
        creds: Optional[ApiCreds] = None,
        session: Optional[requests.Session] = None,
        reddit: Optional[praw.Reddit] = None,
        throttle: Optional[RequestThrottle] = None,
        operator_alerts: Optional[OperatorAlerts] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.token_provider = token_provider
        self.settings = settings or FeedSettings()
        self.creds = creds or ApiCreds()
        self.throttle = throttle or RequestThrottle(self.settings.request_spacing, sleep=sleep)
        self.operator_alerts = operator_alerts
        self._session = session
        self._reddit = reddit
        self._sleep = sleep

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            session = requests.Session()
            session.headers.update({"Accept": "application/json", "User-Agent": self.creds.user_agent})
            session.trust_env = False
            self._session = session
        return self._session

    @property
    def reddit(self) -> praw.Reddit:
        if self._reddit is None:
            self._reddit = praw.Reddit(
                client_id=self.creds.client_id,
                client_secret=self.creds.client_secret,
                username=self.creds.username,
                password=self.creds.password,
                user_agent=self.creds.user_agent,
                requestor_kwargs={"timeout": self.settings.search_timeout},
                check_for_updates=False,
            )
        return self._reddit

    def fetch_recent(self, limit: Optional[int] = None) -> List[ContentItem]:
        """Newest comments across all subreddits; always the most recent page, no pagination."""
        limit = limit or self.settings.fetch_limit
        return self._call(
            "fetch_recent",
            lambda: self._fetch_recent_once(limit),
            base_delay=self.settings.listing_base_delay,
            timeout=self.settings.listing_timeout,
        )

    def search(self, query: str, limit: Optional[int] = None, source_container: Optional[str] = None) -> List[ContentItem]:
        """Exact-phrase search for posts, newest first, within the configured time filter."""
        limit = limit or self.settings.search_limit
        return self._call(
            "search",
            lambda: self._search_once(query, limit, source_container),
            base_delay=self.settings.search_base_delay,
            timeout=self.settings.search_timeout,
        )

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _fetch_recent_once(self, limit: int) -> List[ContentItem]:
        token = self.token_provider.get_access_token()
        url = f"{self.settings.base_url}/r/all/comments"
        resp = self.session.get(
            url,
            params={"limit": limit, "raw_json": 1},
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.settings.listing_timeout,
            allow_redirects=True,
        )
        resp.raise_for_status()
        try:
            payload = resp.json()
        except ValueError as exc:
            raise FeedError(FeedErrorKind.VALIDATION, f"fetch_recent: response is not JSON: {exc}", operation="fetch_recent")
        children = (payload.get("data") or {}).get("children") if isinstance(payload, dict) else None
        if not isinstance(children, list):
            raise FeedError(
                FeedErrorKind.VALIDATION,
                "fetch_recent: invalid response format from Reddit API",
                status=resp.status_code,
                operation="fetch_recent",
            )
        logger.debug("Listing page before=%s after=%s", payload["data"].get("before"), payload["data"].get("after"))
        return self._normalize_each(children, normalize_listing_child)

    def _search_once(self, query: str, limit: int, source_container: Optional[str]) -> List[ContentItem]:
        subreddit = self.reddit.subreddit(source_container or "all")
        posts = list(
            subreddit.search(
                f'"{query}"',
                sort="new",
                syntax="lucene",
                time_filter=self.settings.search_time_filter,
                limit=limit,
            )
        )
        logger.info("Found %s posts for %r", len(posts), query)
        return self._normalize_each(posts, normalize_submission)

    def _normalize_each(self, raw_items: List[Any], normalizer: Callable[[Any], ContentItem]) -> List[ContentItem]:
        items: List[ContentItem] = []
        for raw in raw_items:
            try:
                items.append(normalizer(raw))
            except (KeyError, TypeError, ValueError) as exc:
                # One malformed item must not sink the page.
                logger.warning("Skipping malformed feed item: %s", exc)
                get_metrics().record_failure("feed.malformed_item")
        return items

    def _call(self, operation: str, func: Callable[[], T], base_delay: float, timeout: float) -> T:
        def attempt() -> T:
            self.throttle.wait()
            try:
                # Socket timeouts bound each read; this bounds the whole attempt.
                return call_with_deadline(func, timeout, name=f"feed.{operation}")
            except Exception as exc:
                classified = classify_exception(exc, operation)
                if classified is None or classified is exc:
                    raise
                raise classified from exc

        def on_retry(attempt_no: int, exc: BaseException, delay: float) -> None:
            if isinstance(exc, FeedError) and exc.kind == FeedErrorKind.RATE_LIMITED:
                logger.warning("Rate limit detected on %s, will retry with backoff", operation)
            logger.info(
                "Retry attempt %s/%s for %s after %.0fms delay (%s)",
                attempt_no,
                self.settings.max_retries + 1,
                operation,
                delay * 1000,
                exc,
            )
            get_metrics().record(f"feed.{operation}.retry")

        try:
            result = retry(
                attempt,
                attempts=self.settings.max_retries + 1,
                base_delay=base_delay,
                jitter=self.settings.jitter,
                exceptions=(FeedError,),
                should_retry=lambda exc: isinstance(exc, FeedError) and exc.retryable,
                on_retry=on_retry,
                sleep=self._sleep,
            )
        except FeedError as exc:
            get_metrics().record_failure(f"feed.{operation}")
            logger.error("%s failed (%s): %s", operation, exc.kind.value, exc)
            if exc.kind == FeedErrorKind.AUTHORIZATION:
                self._alert_operators(operation, exc)
            raise
        get_metrics().record(f"feed.{operation}")
        return result

    def _alert_operators(self, operation: str, exc: FeedError) -> None:
        if self.operator_alerts is None:
            return
        message = f"Reddit authorization failure on {operation}; credentials need attention. Error: {exc}"
        try:
            self.operator_alerts.notify_operators(message)
        except Exception as alert_exc:  # the feed error is what the caller needs to see
            logger.error("Operator alert failed: %s", alert_exc)

