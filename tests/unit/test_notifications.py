import threading
from datetime import datetime, timezone

import pytest

from mention_monitor.core.brands import StaticBrandConfigProvider
from mention_monitor.core.config_models import NotificationSettings, OperatorAlertSettings
from mention_monitor.core.models import Brand, ChannelConfig, ContentKind, Keyword, Mention, SentimentResult
from mention_monitor.core.result import ErrorKind
from mention_monitor.notifications.channels import (
    ChannelRegistry,
    JsonWebhookChannel,
    LoggingChannel,
    NotificationChannel,
    PagerDutyChannel,
    SlackWebhookChannel,
    default_registry,
    dry_run_registry,
)
from mention_monitor.notifications.dispatcher import NotificationDispatcher
from mention_monitor.notifications.formatting import build_alert
from mention_monitor.notifications.operator_alerts import (
    LoggingOperatorAlerts,
    TelegramOperatorAlerts,
    build_operator_alerts,
)

FIXED_NOW = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)


class RecordingChannel(NotificationChannel):
    def __init__(self, sent):
        self.sent = sent

    def send(self, message):
        self.sent.append(message)


class FailingChannel(NotificationChannel):
    def send(self, message):
        raise RuntimeError("webhook returned 500")


class BlockingChannel(NotificationChannel):
    def __init__(self, release):
        self.release = release

    def send(self, message):
        self.release.wait(5)


class FakeSession:
    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        session = self

        class _Resp:
            status_code = session.status_code

            def raise_for_status(self):
                if self.status_code >= 400:
                    raise RuntimeError(f"HTTP {self.status_code}")

        return _Resp()


def _brand(*channels):
    return Brand(id="acme", name="Acme", keywords=[Keyword(text="Acme")], channels=list(channels))


def _mention(label="positive", content="Acme is <strong>great</strong>"):
    return Mention(
        id=7,
        brand_id="acme",
        keyword_matched="Acme",
        content_id="c1",
        content=content,
        source_container="python",
        author="alice",
        source_url="https://www.reddit.com/r/python/comments/c1/",
        content_kind=ContentKind.COMMENT,
        sentiment=SentimentResult(score=3 if label == "positive" else -3, label=label),
        is_processed=True,
    )


def _dispatcher(brand, factories, **settings):
    registry = factories if isinstance(factories, ChannelRegistry) else ChannelRegistry(factories)
    return NotificationDispatcher(
        StaticBrandConfigProvider([brand]),
        NotificationSettings(**settings),
        registry,
        clock=lambda: FIXED_NOW,
    )


def test_build_alert_truncates_and_converts_highlights():
    alert = build_alert(_brand(), _mention(content="x" * 350), max_length=300, now=FIXED_NOW)
    assert alert.content == "x" * 300 + "..."

    short = build_alert(_brand(), _mention(), now=FIXED_NOW)
    assert short.content == "Acme is *great*"
    assert short.emoji == "😊"
    assert short.color == "#36a64f"
    assert short.mention_key == "acme:c1"


def test_build_alert_negative_and_unscored_styles():
    negative = build_alert(_brand(), _mention(label="negative"), now=FIXED_NOW)
    assert (negative.emoji, negative.color) == ("😞", "#ff0000")

    unscored = build_alert(_brand(), _mention().model_copy(update={"sentiment": None}), now=FIXED_NOW)
    assert unscored.sentiment_label == "neutral"
    assert unscored.color == "#808080"


def test_slack_payload_carries_color_and_fields():
    alert = build_alert(_brand(), _mention(), now=FIXED_NOW)
    payload = SlackWebhookChannel("https://hooks.slack.com/services/T/B/X").render(alert)
    assert payload["attachments"][0]["color"] == "#36a64f"
    texts = [block["text"]["text"] for block in payload["blocks"] if block["type"] == "section"]
    assert any(text.endswith("Brand: Acme") for text in texts)
    assert any(text.endswith("Author: u/alice") for text in texts)
    assert payload["blocks"][-1] == {"type": "divider"}


def test_pagerduty_uses_mention_key_for_dedup():
    alert = build_alert(_brand(), _mention(label="negative"), now=FIXED_NOW)
    payload = PagerDutyChannel("routing-key").render(alert)
    assert payload["dedup_key"] == "acme:c1"
    assert payload["payload"]["severity"] == "warning"


def test_json_webhook_posts_alert_fields():
    session = FakeSession()
    alert = build_alert(_brand(), _mention(), now=FIXED_NOW)
    JsonWebhookChannel("https://example.com/hook", timeout=5, session=session).send(alert)
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://example.com/hook")
    assert kwargs["timeout"] == 5
    assert kwargs["json"]["detected_at"] == FIXED_NOW.isoformat()
    assert kwargs["json"]["brand_name"] == "Acme"


def test_channel_failure_is_isolated():
    sent = []
    brand = _brand(
        ChannelConfig(type="broken", enabled=True),
        ChannelConfig(type="record", enabled=True),
    )
    dispatcher = _dispatcher(brand, {"broken": lambda cfg, s: FailingChannel(), "record": lambda cfg, s: RecordingChannel(sent)})
    results = dispatcher.notify("acme", _mention())

    assert results["record"].is_ok
    assert not results["broken"].is_ok
    assert results["broken"].kind == ErrorKind.NOTIFICATION_DELIVERY
    assert "webhook returned 500" in results["broken"].detail
    assert len(sent) == 1


def test_slow_channel_times_out_without_blocking_others():
    sent = []
    release = threading.Event()
    brand = _brand(
        ChannelConfig(type="slow", enabled=True),
        ChannelConfig(type="record", enabled=True),
    )
    dispatcher = _dispatcher(
        brand,
        {"slow": lambda cfg, s: BlockingChannel(release), "record": lambda cfg, s: RecordingChannel(sent)},
        timeout_seconds=0.2,
    )
    try:
        results = dispatcher.notify("acme", _mention())
    finally:
        release.set()

    assert not results["slow"].is_ok
    assert "timeout" in results["slow"].detail
    assert results["record"].is_ok
    assert len(sent) == 1


def test_hung_channels_do_not_starve_later_channels():
    sent = []
    release = threading.Event()
    hung = [ChannelConfig(type="slow", name=f"slow{i}", enabled=True) for i in range(6)]
    brand = _brand(*hung, ChannelConfig(type="record", enabled=True))
    dispatcher = _dispatcher(
        brand,
        {"slow": lambda cfg, s: BlockingChannel(release), "record": lambda cfg, s: RecordingChannel(sent)},
        timeout_seconds=0.2,
    )
    try:
        results = dispatcher.notify("acme", _mention())
        # A later mention still gets through while the earlier sends are stuck.
        second = dispatcher.notify("acme", _mention())
    finally:
        release.set()

    assert all(not results[f"slow{i}"].is_ok for i in range(6))
    assert results["record"].is_ok
    assert second["record"].is_ok
    assert len(sent) == 2


def test_disabled_and_unconfigured_channels_are_skipped():
    sent = []
    brand = _brand(
        ChannelConfig(type="record", enabled=False),
        ChannelConfig(type="slack", enabled=True, webhook_url=""),
        ChannelConfig(type="unknown", enabled=True),
        ChannelConfig(type="record", name="ops", enabled=True),
    )
    registry = default_registry()
    registry.register("record", lambda cfg, s: RecordingChannel(sent))
    dispatcher = _dispatcher(brand, registry)
    results = dispatcher.notify("acme", _mention())

    assert list(results) == ["ops"]
    assert len(sent) == 1


def test_duplicate_channel_labels_get_suffix():
    sent = []
    brand = _brand(ChannelConfig(type="record", enabled=True), ChannelConfig(type="record", enabled=True))
    results = _dispatcher(brand, {"record": lambda cfg, s: RecordingChannel(sent)}).notify("acme", _mention())
    assert sorted(results) == ["record", "record#2"]


def test_unknown_brand_yields_no_results():
    assert _dispatcher(_brand(), {}).notify("missing", _mention()) == {}


def test_default_factories_require_destination():
    registry = default_registry()
    settings = NotificationSettings()
    assert registry.create(ChannelConfig(type="slack", enabled=True), settings) is None
    assert registry.create(ChannelConfig(type="email", enabled=True, recipients=["a@b.c"]), settings) is None
    slack = registry.create(ChannelConfig(type="Slack", enabled=True, webhook_url="https://hooks.example"), settings)
    assert isinstance(slack, SlackWebhookChannel)
    assert registry.types == ["email", "pagerduty", "slack", "webhook"]


def test_dry_run_registry_logs_every_type():
    registry = dry_run_registry()
    channel = registry.create(ChannelConfig(type="pagerduty", enabled=True), NotificationSettings())
    assert isinstance(channel, LoggingChannel)
    channel.send(build_alert(_brand(), _mention(), now=FIXED_NOW))


def test_operator_alerts_selection():
    assert isinstance(build_operator_alerts(OperatorAlertSettings()), LoggingOperatorAlerts)
    configured = build_operator_alerts(OperatorAlertSettings(telegram_bot_token="123:abc", telegram_chat_id="42"))
    assert isinstance(configured, TelegramOperatorAlerts)


def test_telegram_alert_posts_message():
    session = FakeSession()
    TelegramOperatorAlerts("123:abc", "42", timeout=3, session=session).notify_operators("creds revoked")
    method, url, kwargs = session.requests[0]
    assert url == "https://api.telegram.org/bot123:abc/sendMessage"
    assert kwargs["json"]["chat_id"] == "42"
    assert kwargs["json"]["text"] == "creds revoked"


def test_telegram_alert_raises_on_http_error():
    with pytest.raises(RuntimeError):
        TelegramOperatorAlerts("123:abc", "42", session=FakeSession(status_code=400)).notify_operators("x")
