"""
Purpose: Out-of-band alerts to operators for systemic failures (e.g. revoked API credentials).
Constraints: Distinct from per-mention brand notifications; never used for mention content.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from mention_monitor.core.config_models import OperatorAlertSettings
from mention_monitor.core.utils.http import post_json

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class OperatorAlerts(ABC):
    @abstractmethod
    def notify_operators(self, message: str) -> None:
        ...


class LoggingOperatorAlerts(OperatorAlerts):
    """Fallback when no operator channel is configured: alerts land in the error log."""

    def notify_operators(self, message: str) -> None:
        logger.error("OPERATOR ALERT: %s", message)


class TelegramOperatorAlerts(OperatorAlerts):
    def __init__(self, bot_token: str, chat_id: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.session = session

    def notify_operators(self, message: str) -> None:
        post_json(
            f"{TELEGRAM_API}/bot{self.bot_token}/sendMessage",
            {"chat_id": self.chat_id, "text": message, "disable_web_page_preview": True},
            timeout=self.timeout,
            session=self.session,
        )
        logger.info("Operator alert sent via Telegram")


def build_operator_alerts(settings: OperatorAlertSettings) -> OperatorAlerts:
    if settings.telegram_enabled:
        return TelegramOperatorAlerts(settings.telegram_bot_token, settings.telegram_chat_id, settings.timeout_seconds)
    return LoggingOperatorAlerts()
