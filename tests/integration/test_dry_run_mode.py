import json

import requests

from mention_monitor.core.config import ConfigManager
from mention_monitor.core.config_models import FeedSettings
from mention_monitor.core.storage.mention_store import InMemoryMentionStore
from mention_monitor.core.storage.sqlite_store import SqliteMentionStore
from mention_monitor.orchestration.bootstrap import build_pipeline
from mention_monitor.orchestration.polling import RunState
from mention_monitor.reddit_api.auth import StaticTokenProvider
from mention_monitor.reddit_api.feed_client import FeedClient


class ListingSession:
    def __init__(self, children):
        self.children = children

    def get(self, url, **kwargs):
        response = requests.Response()
        response.status_code = 200
        response._content = json.dumps({"data": {"children": self.children}}).encode("utf-8")
        return response

    def close(self):
        pass


def _children():
    return [
        {
            "kind": "t1",
            "data": {
                "id": "k1",
                "author": "carol",
                "subreddit": "dataengineering",
                "body": "Switched to Acme Analytics last month and I love it",
                "permalink": "/r/dataengineering/comments/z/x/k1/",
                "created_utc": 1714564800,
            },
        },
        {
            "kind": "t1",
            "data": {
                "id": "k2",
                "author": "dave",
                "subreddit": "python",
                "body": "Unrelated comment",
                "permalink": "/r/python/comments/z/x/k2/",
                "created_utc": 1714564860,
            },
        },
    ]


def _write_config(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "brands.json").write_text(
        json.dumps(
            [
                {
                    "id": "acme",
                    "name": "Acme Analytics",
                    "keywords": [{"text": "Acme Analytics"}],
                    "channels": [{"type": "slack", "enabled": True, "webhook_url": "https://hooks.example/acme"}],
                }
            ]
        ),
        encoding="utf-8",
    )
    return ConfigManager(config_dir)


def _feed():
    return FeedClient(
        StaticTokenProvider("token"),
        FeedSettings(request_spacing=0),
        session=ListingSession(_children()),
        sleep=lambda _s: None,
    )


def test_dry_run_pipeline_logs_alerts_instead_of_sending(tmp_path):
    pipeline = build_pipeline(_write_config(tmp_path), dry_run=True, feed=_feed())
    try:
        summary = pipeline.orchestrator.run_once()
    finally:
        pipeline.close()

    assert isinstance(pipeline.store, InMemoryMentionStore)
    assert summary.state == RunState.DONE
    assert summary.inserted == 1
    assert summary.scored == 1
    assert summary.notified == 1
    assert not (tmp_path / "data").exists()


def test_pipeline_persists_to_sqlite_between_runs(tmp_path):
    config = _write_config(tmp_path)
    first = build_pipeline(config, dry_run=True, feed=_feed(), store=SqliteMentionStore(tmp_path / "m.sqlite3"))
    try:
        assert first.orchestrator.run_once().inserted == 1
    finally:
        first.close()

    second = build_pipeline(config, dry_run=True, feed=_feed(), store=SqliteMentionStore(tmp_path / "m.sqlite3"))
    try:
        summary = second.orchestrator.run_once()
    finally:
        second.close()
    assert summary.inserted == 0
    assert summary.skipped_seen == 2
