"""
Purpose: Outbound notification channels (chat webhook, generic webhook, email, paging).
Constraints: One send per call; raise on failure and let the dispatcher isolate it.
"""

# Imports
from __future__ import annotations

import logging
import smtplib
from abc import ABC, abstractmethod
from dataclasses import asdict
from email.message import EmailMessage
from typing import Any, Callable, Dict, List, Optional

import requests

from mention_monitor.core.config_models import NotificationSettings, SmtpSettings
from mention_monitor.core.models import ChannelConfig
from mention_monitor.core.utils.http import post_json
from mention_monitor.notifications.formatting import AlertMessage

logger = logging.getLogger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"


# Public API
class NotificationChannel(ABC):
    name = "channel"

    @abstractmethod
    def send(self, message: AlertMessage) -> None:
        """Deliver one alert; raise on any failure."""


class SlackWebhookChannel(NotificationChannel):
    """Slack incoming webhook with block-kit sections."""

    name = "slack"

    def __init__(self, webhook_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session

    def render(self, message: AlertMessage) -> Dict[str, Any]:
        def section(text: str) -> Dict[str, Any]:
            return {"type": "section", "text": {"type": "mrkdwn", "text": text}}

        return {
            "text": message.headline,
            "attachments": [{"color": message.color}],
            "blocks": [
                section(f"🏷️ Brand: {message.brand_name}"),
                section(f"🔑 Keyword Matched: {message.keyword}"),
                section(f"📊 Sentiment: {message.emoji} {message.sentiment_text}"),
                section(f"📱 Subreddit: r/{message.source_container}"),
                section(f"👤 Author: u/{message.author}"),
                section(f"📝 Content:\n{message.content}"),
                section(f"🔗 View on Reddit:\n{message.url}"),
                {
                    "type": "context",
                    "elements": [
                        {
                            "type": "mrkdwn",
                            "text": f"⏰ Mention detected at {message.detected_at.strftime('%Y-%m-%d %H:%M:%S %Z')}",
                        }
                    ],
                },
                {"type": "divider"},
            ],
        }

    def send(self, message: AlertMessage) -> None:
        post_json(self.webhook_url, self.render(message), timeout=self.timeout, session=self.session)


class JsonWebhookChannel(NotificationChannel):
    """Plain JSON POST of the alert fields, for custom receivers."""

    name = "webhook"

    def __init__(self, webhook_url: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session

    def render(self, message: AlertMessage) -> Dict[str, Any]:
        payload = asdict(message)
        payload["detected_at"] = message.detected_at.isoformat()
        payload["headline"] = message.headline
        return payload

    def send(self, message: AlertMessage) -> None:
        post_json(self.webhook_url, self.render(message), timeout=self.timeout, session=self.session)


class PagerDutyChannel(NotificationChannel):
    """PagerDuty Events v2; the mention key is the dedup key so re-sends do not page twice."""

    name = "pagerduty"

    def __init__(self, routing_key: str, timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.routing_key = routing_key
        self.timeout = timeout
        self.session = session

    def render(self, message: AlertMessage) -> Dict[str, Any]:
        return {
            "routing_key": self.routing_key,
            "event_action": "trigger",
            "dedup_key": message.mention_key,
            "payload": {
                "summary": f"{message.headline}: {message.keyword} in r/{message.source_container}"[:1024],
                "source": "reddit",
                "severity": "warning" if message.sentiment_label == "negative" else "info",
                "timestamp": message.detected_at.isoformat(),
                "custom_details": {
                    "author": message.author,
                    "content": message.content,
                    "sentiment_score": message.sentiment_score,
                },
            },
            "links": [{"href": message.url, "text": "View on Reddit"}] if message.url else [],
        }

    def send(self, message: AlertMessage) -> None:
        post_json(PAGERDUTY_EVENTS_URL, self.render(message), timeout=self.timeout, session=self.session)


class EmailChannel(NotificationChannel):
    name = "email"

    def __init__(self, smtp: SmtpSettings, recipients: List[str], timeout: float = 30.0):
        self.smtp = smtp
        self.recipients = recipients
        self.timeout = timeout

    def render(self, message: AlertMessage) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = f"{message.emoji} {message.headline}"
        msg["From"] = self.smtp.sender or self.smtp.username
        msg["To"] = ", ".join(self.recipients)
        msg.set_content(message.as_text())
        return msg

    def send(self, message: AlertMessage) -> None:
        with smtplib.SMTP(self.smtp.host, self.smtp.port, timeout=self.timeout) as server:
            if self.smtp.use_tls:
                server.starttls()
            if self.smtp.username and self.smtp.password:
                server.login(self.smtp.username, self.smtp.password)
            server.send_message(self.render(message))


ChannelFactory = Callable[[ChannelConfig, NotificationSettings], Optional[NotificationChannel]]


def _slack(cfg: ChannelConfig, settings: NotificationSettings) -> Optional[NotificationChannel]:
    return SlackWebhookChannel(cfg.webhook_url, settings.timeout_seconds) if cfg.webhook_url else None


def _webhook(cfg: ChannelConfig, settings: NotificationSettings) -> Optional[NotificationChannel]:
    return JsonWebhookChannel(cfg.webhook_url, settings.timeout_seconds) if cfg.webhook_url else None


def _pagerduty(cfg: ChannelConfig, settings: NotificationSettings) -> Optional[NotificationChannel]:
    return PagerDutyChannel(cfg.routing_key, settings.timeout_seconds) if cfg.routing_key else None


def _email(cfg: ChannelConfig, settings: NotificationSettings) -> Optional[NotificationChannel]:
    if not cfg.recipients or not settings.smtp.host:
        return None
    return EmailChannel(settings.smtp, list(cfg.recipients), settings.timeout_seconds)


class ChannelRegistry:
    """Maps ChannelConfig.type to a factory; a factory returns None when the config is incomplete."""

    def __init__(self, factories: Optional[Dict[str, ChannelFactory]] = None):
        self._factories: Dict[str, ChannelFactory] = dict(factories or {})

    def register(self, channel_type: str, factory: ChannelFactory) -> None:
        self._factories[channel_type.lower()] = factory

    def create(self, cfg: ChannelConfig, settings: NotificationSettings) -> Optional[NotificationChannel]:
        factory = self._factories.get(cfg.type.lower())
        if factory is None:
            logger.warning("Unknown notification channel type %r", cfg.type)
            return None
        return factory(cfg, settings)

    @property
    def types(self) -> List[str]:
        return sorted(self._factories)


def default_registry() -> ChannelRegistry:
    return ChannelRegistry({"slack": _slack, "webhook": _webhook, "pagerduty": _pagerduty, "email": _email})


class LoggingChannel(NotificationChannel):
    """Writes the alert to the log instead of delivering it."""

    name = "log"

    def __init__(self, label: str = "log"):
        self.label = label

    def send(self, message: AlertMessage) -> None:
        logger.info("[dry-run:%s] %s", self.label, message.as_text())


def dry_run_registry() -> ChannelRegistry:
    """Every standard channel type resolves to a LoggingChannel, whatever its config."""
    registry = ChannelRegistry()
    for channel_type in default_registry().types:
        registry.register(channel_type, lambda cfg, settings: LoggingChannel(cfg.label))
    return registry
