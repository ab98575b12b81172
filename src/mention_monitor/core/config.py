"""
Purpose: Load environment and JSON configuration for the monitor.
Constraints: Pure config I/O only; no network side effects.
"""

# Imports
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from mention_monitor.core.config_models import (
    ApiCreds,
    FeedSettings,
    NotificationSettings,
    OperatorAlertSettings,
    PipelineSettings,
    SmtpSettings,
)

logger = logging.getLogger(__name__)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "y", "on")


# Environment overrides: variable name -> (section, field, caster)
_ENV_OVERRIDES = {
    "FEED_MAX_RETRIES": ("feed", "max_retries", int),
    "FEED_FETCH_LIMIT": ("feed", "fetch_limit", int),
    "FEED_REQUEST_SPACING": ("feed", "request_spacing", float),
    "FEED_LISTING_TIMEOUT": ("feed", "listing_timeout", float),
    "FEED_SEARCH_TIMEOUT": ("feed", "search_timeout", float),
    "SCORE_BATCH_SIZE": ("pipeline", "score_batch_size", int),
    "RUN_BUDGET_SECONDS": ("pipeline", "run_budget_seconds", float),
    "MATCH_WORKERS": ("pipeline", "match_workers", int),
    "SEARCH_POSTS": ("pipeline", "search_posts", _env_bool),
    "POLL_INTERVAL_SECONDS": ("pipeline", "poll_interval_seconds", float),
    "MENTION_STORE_PATH": ("pipeline", "store_path", str),
    "BRANDS_PATH": ("pipeline", "brands_path", str),
    "NOTIFICATION_TIMEOUT": ("notifications", "timeout_seconds", float),
}


# Public API
class ConfigManager:
    """Environment credentials plus settings.json sections, validated into pydantic models."""

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir or os.getenv("MONITOR_CONFIG_DIR") or Path.cwd() / "config")
        self.api_creds = ApiCreds()
        self.feed = FeedSettings()
        self.pipeline = PipelineSettings()
        self.notifications = NotificationSettings()
        self.operator_alerts = OperatorAlertSettings()

    def load_all(self) -> "ConfigManager":
        self.load_env()
        self.load_settings()
        self.apply_env_overrides()
        return self

    def load_env(self) -> "ConfigManager":
        """Load the first env file found, then read credentials from the environment."""
        env_files = [
            self.config_dir / "credentials.env",
            Path.cwd() / ".env",
            Path.home() / ".mention_monitor.env",
        ]
        for env_file in env_files:
            if env_file.exists():
                load_dotenv(env_file)
                logger.info("Loaded environment from: %s", env_file)
                break
        else:
            logger.debug("No .env file found; using process environment only")

        self.api_creds = ApiCreds(
            client_id=os.getenv("REDDIT_CLIENT_ID", ""),
            client_secret=os.getenv("REDDIT_CLIENT_SECRET", ""),
            username=os.getenv("REDDIT_USERNAME", ""),
            password=os.getenv("REDDIT_PASSWORD", ""),
            user_agent=os.getenv("REDDIT_USER_AGENT", "RedditMentionMonitor/1.0.0"),
        )
        self.operator_alerts = OperatorAlertSettings(
            telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            telegram_chat_id=os.getenv("TELEGRAM_CHAT_ID", ""),
        )
        smtp = SmtpSettings(
            host=os.getenv("SMTP_HOST", ""),
            port=int(os.getenv("SMTP_PORT", "587") or 587),
            username=os.getenv("SMTP_USERNAME", ""),
            password=os.getenv("SMTP_PASSWORD", ""),
            sender=os.getenv("ALERT_EMAIL_FROM", os.getenv("SMTP_USERNAME", "")),
            use_tls=_env_bool(os.getenv("SMTP_USE_TLS", "1")),
        )
        self.notifications = self.notifications.model_copy(update={"smtp": smtp})
        return self

    def load_json(self, filename: str, default: Any = None) -> Any:
        path = self.config_dir / filename
        if not path.exists():
            return default
        try:
            with path.open("r", encoding="utf-8") as handle:
                content = handle.read().strip()
            return json.loads(content) if content else default
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Error reading %s: %s. Using defaults.", path, exc)
            return default

    def load_settings(self) -> "ConfigManager":
        """Load optional feed/pipeline/notifications sections from settings.json."""
        raw = self.load_json("settings.json", default={}) or {}
        if not isinstance(raw, dict):
            logger.warning("settings.json should contain a JSON object; using defaults")
            return self
        self.feed = self._section(raw, "feed", FeedSettings, self.feed)
        self.pipeline = self._section(raw, "pipeline", PipelineSettings, self.pipeline)
        notifications = raw.get("notifications") or {}
        if isinstance(notifications, dict):
            merged = {**notifications, "smtp": {**self.notifications.smtp.model_dump(), **(notifications.get("smtp") or {})}}
            self.notifications = self._section({"notifications": merged}, "notifications", NotificationSettings, self.notifications)
        return self

    def apply_env_overrides(self) -> "ConfigManager":
        updates: Dict[str, Dict[str, Any]] = {}
        for env_name, (section, field, caster) in _ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is None or value.strip() == "":
                continue
            try:
                updates.setdefault(section, {})[field] = caster(value)
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", env_name, value)
        for section, fields in updates.items():
            current: BaseModel = getattr(self, section)
            try:
                setattr(self, section, type(current)(**{**current.model_dump(), **fields}))
            except ValidationError as exc:
                logger.warning("Invalid %s overrides from environment: %s", section, exc)
        return self

    def resolve_path(self, value: str) -> Path:
        """Resolve a settings path relative to the config directory's parent."""
        path = Path(value)
        if path.is_absolute():
            return path
        return self.config_dir.parent / path

    def _section(self, raw: Dict[str, Any], key: str, model: type, current: BaseModel) -> Any:
        data = raw.get(key)
        if not data:
            return current
        try:
            return model(**{**current.model_dump(), **data})
        except (TypeError, ValidationError) as exc:
            logger.warning("Invalid '%s' section in settings.json: %s", key, exc)
            return current

    def summary(self) -> Dict[str, Any]:
        """Configuration snapshot with secrets masked, for startup logging."""
        creds = self.api_creds.model_dump()
        for key, value in creds.items():
            if value and ("secret" in key or "password" in key):
                creds[key] = "***" + value[-3:] if len(value) > 3 else "***"
        return {
            "credentials": creds,
            "feed": self.feed.model_dump(),
            "pipeline": self.pipeline.model_dump(),
            "notifications": {
                "timeout_seconds": self.notifications.timeout_seconds,
                "max_content_length": self.notifications.max_content_length,
                "smtp_host": self.notifications.smtp.host,
            },
            "operator_alerts": {"telegram": self.operator_alerts.telegram_enabled},
        }
