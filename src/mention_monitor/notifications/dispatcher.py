"""
Purpose: Send one scored mention to every enabled channel of its brand.
Constraints: Channels fail independently; nothing raised here aborts other channels or mentions.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from mention_monitor.core.brands import BrandConfigProvider
from mention_monitor.core.config_models import NotificationSettings
from mention_monitor.core.errors import NotificationDeliveryError
from mention_monitor.core.metrics import get_metrics
from mention_monitor.core.models import Mention, utcnow
from mention_monitor.core.result import Err, ErrorKind, Ok, Result
from mention_monitor.core.utils.deadline import DeadlineExceeded, call_with_deadline
from mention_monitor.notifications.channels import ChannelRegistry, NotificationChannel, default_registry
from mention_monitor.notifications.formatting import AlertMessage, build_alert

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fan a mention out to its brand's channels, each bounded by its own timeout.

    `notify` returns a result per attempted channel. Disabled or incomplete channels are
    skipped and do not appear in the results. Every send runs on its own worker thread,
    so a channel that hangs past its timeout cannot hold up the channels after it.
    """

    def __init__(
        self,
        brands: BrandConfigProvider,
        settings: Optional[NotificationSettings] = None,
        registry: Optional[ChannelRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.brands = brands
        self.settings = settings or NotificationSettings()
        self.registry = registry or default_registry()
        self._clock = clock

    def notify(self, brand_id: str, mention: Mention) -> Dict[str, Result]:
        brand = self.brands.get_brand(brand_id)
        if brand is None:
            logger.warning("Notifications not configured for unknown brand: %s", brand_id)
            return {}

        message = build_alert(brand, mention, self.settings.max_content_length, now=self._clock())
        results: Dict[str, Result] = {}
        for cfg in brand.channels:
            if not cfg.enabled:
                logger.debug("Channel %s disabled for brand %s", cfg.label, brand_id)
                continue
            channel = self.registry.create(cfg, self.settings)
            if channel is None:
                logger.debug("Channel %s not configured for brand %s", cfg.label, brand_id)
                continue
            label = cfg.label
            suffix = 2
            while label in results:
                label = f"{cfg.label}#{suffix}"
                suffix += 1
            results[label] = self._deliver(label, channel, message)
        return results

    def _deliver(self, label: str, channel: NotificationChannel, message: AlertMessage) -> Result:
        timeout = self.settings.timeout_seconds
        try:
            call_with_deadline(lambda: channel.send(message), timeout, name=f"notify-{label}")
        except DeadlineExceeded:
            error = NotificationDeliveryError(label, f"notification timeout after {timeout:g} seconds")
            return self._failed(label, message, error)
        except Exception as exc:
            return self._failed(label, message, NotificationDeliveryError(label, str(exc)))
        logger.info("✅ %s notification sent for %s mention", label, message.brand_name)
        get_metrics().record(f"notify.{label}")
        return Ok(label)

    def _failed(self, label: str, message: AlertMessage, error: NotificationDeliveryError) -> Err:
        logger.error("❌ Error sending %s notification for %s: %s", label, message.mention_key, error)
        get_metrics().record_failure(f"notify.{label}")
        return Err(ErrorKind.NOTIFICATION_DELIVERY, str(error))
