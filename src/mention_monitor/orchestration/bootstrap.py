"""
Purpose: Composition root; builds the feed client, store, dispatcher and orchestrator once.
Constraints: Wiring only; no pipeline logic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from mention_monitor.core.brands import BrandConfigProvider, JsonBrandConfigProvider
from mention_monitor.core.config import ConfigManager
from mention_monitor.core.storage.mention_store import InMemoryMentionStore, MentionStore
from mention_monitor.core.storage.sqlite_store import SqliteMentionStore
from mention_monitor.notifications.channels import ChannelRegistry, default_registry, dry_run_registry
from mention_monitor.notifications.dispatcher import NotificationDispatcher
from mention_monitor.notifications.operator_alerts import build_operator_alerts
from mention_monitor.orchestration.polling import PollingOrchestrator
from mention_monitor.reddit_api.auth import PrawcoreTokenProvider, TokenProvider
from mention_monitor.reddit_api.feed_client import FeedClient

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    orchestrator: PollingOrchestrator
    feed: FeedClient
    store: MentionStore
    dispatcher: NotificationDispatcher

    def close(self) -> None:
        self.feed.close()
        self.store.close()


def build_pipeline(
    config: ConfigManager,
    *,
    dry_run: bool = False,
    token_provider: Optional[TokenProvider] = None,
    brands: Optional[BrandConfigProvider] = None,
    store: Optional[MentionStore] = None,
    registry: Optional[ChannelRegistry] = None,
    feed: Optional[FeedClient] = None,
) -> Pipeline:
    """Wire every component from config; explicit arguments replace the configured defaults."""
    if feed is None:
        token_provider = token_provider or PrawcoreTokenProvider(config.api_creds, timeout=config.feed.listing_timeout)
        feed = FeedClient(
            token_provider,
            config.feed,
            creds=config.api_creds,
            operator_alerts=build_operator_alerts(config.operator_alerts),
        )
    if store is None:
        if dry_run:
            store = InMemoryMentionStore()
        else:
            store = SqliteMentionStore(
                config.resolve_path(config.pipeline.store_path),
                timeout=config.pipeline.store_timeout,
            )
    brands = brands or JsonBrandConfigProvider(config.resolve_path(config.pipeline.brands_path))
    if registry is None:
        registry = dry_run_registry() if dry_run else default_registry()
    dispatcher = NotificationDispatcher(brands, config.notifications, registry)
    orchestrator = PollingOrchestrator(feed, store, brands, dispatcher, config.pipeline)
    logger.info("Pipeline ready (dry_run=%s, store=%s)", dry_run, type(store).__name__)
    return Pipeline(orchestrator=orchestrator, feed=feed, store=store, dispatcher=dispatcher)
