import threading
from types import SimpleNamespace

import prawcore
import pytest
import requests

from mention_monitor.core.config_models import FeedSettings
from mention_monitor.core.errors import FeedError, FeedErrorKind
from mention_monitor.core.models import ContentKind
from mention_monitor.reddit_api.auth import StaticTokenProvider
from mention_monitor.reddit_api.feed_client import FeedClient, classify_exception, normalize_listing_child


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text_only=False):
        self.status_code = status_code
        self._payload = payload
        self._text_only = text_only

    def json(self):
        if self._text_only:
            raise ValueError("Expecting value")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Replays queued responses (or raises queued exceptions) for each GET."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        pass


class RecordingAlerts:
    def __init__(self):
        self.messages = []

    def notify_operators(self, message):
        self.messages.append(message)


def _listing(*children):
    return {"data": {"children": list(children), "before": None, "after": "t1_zzz"}}


def _comment(cid, body="Acme is great", created=1700000000):
    return {
        "kind": "t1",
        "data": {
            "id": cid,
            "author": "alice",
            "subreddit": "python",
            "body": body,
            "link_title": "Favourite tools?",
            "permalink": f"/r/python/comments/abc/x/{cid}/",
            "created_utc": created,
            "score": 3,
        },
    }


def _client(session, sleeps=None, alerts=None, **settings):
    settings.setdefault("request_spacing", 0)
    settings.setdefault("jitter", 0)
    sleeps = sleeps if sleeps is not None else []
    return FeedClient(
        StaticTokenProvider("token-123"),
        FeedSettings(**settings),
        session=session,
        operator_alerts=alerts,
        sleep=sleeps.append,
    )


def test_fetch_recent_normalizes_comments():
    session = FakeSession(FakeResponse(payload=_listing(_comment("c1"), _comment("c2", body="other"))))
    items = _client(session).fetch_recent()

    assert [item.id for item in items] == ["c1", "c2"]
    first = items[0]
    assert first.kind == ContentKind.COMMENT
    assert first.author == "alice"
    assert first.source_container == "python"
    assert first.title == "Favourite tools?"
    assert first.url == "https://www.reddit.com/r/python/comments/abc/x/c1/"
    assert first.fullname == "t1_c1"

    url, kwargs = session.calls[0]
    assert url == "https://oauth.reddit.com/r/all/comments"
    assert kwargs["params"] == {"limit": 100, "raw_json": 1}
    assert kwargs["headers"]["Authorization"] == "Bearer token-123"
    assert kwargs["timeout"] == 25.0


def test_malformed_items_are_skipped():
    broken = {"kind": "t1", "data": {"body": "no id here"}}
    session = FakeSession(FakeResponse(payload=_listing(broken, _comment("ok"))))
    items = _client(session).fetch_recent()
    assert [item.id for item in items] == ["ok"]


def test_listing_link_child_becomes_post():
    child = {
        "kind": "t3",
        "data": {"id": "p1", "title": "Acme launch", "selftext": "", "subreddit": "tech", "created_utc": 1700000000},
    }
    item = normalize_listing_child(child)
    assert item.kind == ContentKind.POST
    assert item.searchable_text == "Acme launch"
    assert item.author == "deleted"


def test_transient_errors_use_every_attempt_with_backoff():
    sleeps = []
    session = FakeSession(FakeResponse(status_code=503))
    client = _client(session, sleeps=sleeps, max_retries=3, listing_base_delay=1.0)

    with pytest.raises(FeedError) as excinfo:
        client.fetch_recent()

    assert excinfo.value.kind == FeedErrorKind.TRANSIENT
    assert excinfo.value.status == 503
    assert len(session.calls) == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert sum(sleeps) >= 1.0 + 2.0 + 4.0


def test_rate_limited_then_success():
    sleeps = []
    session = FakeSession(FakeResponse(status_code=429), FakeResponse(payload=_listing(_comment("c1"))))
    items = _client(session, sleeps=sleeps).fetch_recent()
    assert [item.id for item in items] == ["c1"]
    assert len(session.calls) == 2
    assert len(sleeps) == 1


def test_timeout_is_retried_as_transient():
    session = FakeSession(requests.Timeout("read timed out"), FakeResponse(payload=_listing()))
    assert _client(session).fetch_recent() == []
    assert len(session.calls) == 2


@pytest.mark.parametrize("status", [401, 403])
def test_authorization_failure_short_circuits_and_alerts(status):
    sleeps = []
    alerts = RecordingAlerts()
    session = FakeSession(FakeResponse(status_code=status))

    with pytest.raises(FeedError) as excinfo:
        _client(session, sleeps=sleeps, alerts=alerts).fetch_recent()

    assert excinfo.value.kind == FeedErrorKind.AUTHORIZATION
    assert len(session.calls) == 1
    assert sleeps == []
    assert len(alerts.messages) == 1
    assert "authorization" in alerts.messages[0].lower()


def test_alert_failure_does_not_mask_feed_error():
    class BrokenAlerts:
        def notify_operators(self, message):
            raise RuntimeError("telegram down")

    session = FakeSession(FakeResponse(status_code=401))
    with pytest.raises(FeedError) as excinfo:
        _client(session, alerts=BrokenAlerts()).fetch_recent()
    assert excinfo.value.kind == FeedErrorKind.AUTHORIZATION


def test_non_json_response_is_validation_error():
    sleeps = []
    session = FakeSession(FakeResponse(text_only=True))
    with pytest.raises(FeedError) as excinfo:
        _client(session, sleeps=sleeps).fetch_recent()
    assert excinfo.value.kind == FeedErrorKind.VALIDATION
    assert len(session.calls) == 1
    assert sleeps == []


def test_missing_children_is_validation_error():
    session = FakeSession(FakeResponse(payload={"data": {}}))
    with pytest.raises(FeedError) as excinfo:
        _client(session).fetch_recent()
    assert excinfo.value.kind == FeedErrorKind.VALIDATION


def test_client_error_status_is_not_retried():
    session = FakeSession(FakeResponse(status_code=404))
    with pytest.raises(FeedError) as excinfo:
        _client(session).fetch_recent()
    assert excinfo.value.kind == FeedErrorKind.VALIDATION
    assert len(session.calls) == 1


def test_requests_pass_through_throttle():
    class CountingThrottle:
        def __init__(self):
            self.waits = 0

        def wait(self):
            self.waits += 1
            return 0.0

    throttle = CountingThrottle()
    session = FakeSession(FakeResponse(status_code=500), FakeResponse(payload=_listing()))
    client = FeedClient(
        StaticTokenProvider("t"),
        FeedSettings(jitter=0),
        session=session,
        throttle=throttle,
        sleep=lambda _s: None,
    )
    client.fetch_recent()
    assert throttle.waits == 2


class FakeSubreddit:
    def __init__(self, posts):
        self.posts = posts
        self.search_calls = []

    def search(self, query, **kwargs):
        self.search_calls.append((query, kwargs))
        return iter(self.posts)


class FakeReddit:
    def __init__(self, posts):
        self.subreddit_obj = FakeSubreddit(posts)
        self.names = []

    def subreddit(self, name):
        self.names.append(name)
        return self.subreddit_obj


def test_search_uses_exact_phrase_newest_first():
    post = SimpleNamespace(
        id="p9",
        author=SimpleNamespace(name="bob"),
        subreddit=SimpleNamespace(display_name="startups"),
        title="Acme Analytics review",
        selftext="Long body",
        permalink="/r/startups/comments/p9/acme/",
        created_utc=1700000100,
        score=12,
        num_comments=4,
    )
    reddit = FakeReddit([post])
    client = FeedClient(StaticTokenProvider("t"), FeedSettings(request_spacing=0), reddit=reddit, sleep=lambda _s: None)

    items = client.search("Acme Analytics")

    assert reddit.names == ["all"]
    query, kwargs = reddit.subreddit_obj.search_calls[0]
    assert query == '"Acme Analytics"'
    assert kwargs["sort"] == "new"
    assert kwargs["time_filter"] == "month"
    assert kwargs["limit"] == 100
    assert items[0].kind == ContentKind.POST
    assert items[0].author == "bob"
    assert items[0].source_container == "startups"
    assert items[0].reply_count == 4


def test_classify_prawcore_request_exception_as_transient():
    exc = prawcore.exceptions.RequestException(ConnectionError("reset"), (), {})
    classified = classify_exception(exc, "search")
    assert classified.kind == FeedErrorKind.TRANSIENT
    assert classified.retryable


def test_classify_unknown_exception_returns_none():
    assert classify_exception(ZeroDivisionError(), "fetch_recent") is None


def test_comment_text_excludes_thread_title():
    session = FakeSession(FakeResponse(payload=_listing(_comment("c9", body="lol same here"))))
    item = _client(session).fetch_recent()[0]
    assert item.title == "Favourite tools?"
    assert item.searchable_text == "lol same here"


class StalledSession(FakeSession):
    """Accepts the connection and then never finishes the response."""

    def __init__(self):
        super().__init__(FakeResponse(payload=_listing()))
        self.release = threading.Event()

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        self.release.wait(5)
        return self.outcomes[0]


def test_attempt_exceeding_wall_clock_timeout_is_transient():
    session = StalledSession()
    client = _client(session, max_retries=0, listing_timeout=0.2)
    try:
        with pytest.raises(FeedError) as excinfo:
            client.fetch_recent()
    finally:
        session.release.set()

    assert excinfo.value.kind == FeedErrorKind.TRANSIENT
    assert "did not finish within 0.2 seconds" in str(excinfo.value)
    assert len(session.calls) == 1
