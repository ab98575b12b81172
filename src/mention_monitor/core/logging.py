"""
Purpose: Process-wide logging setup for the monitor, with secret redaction and structured events.
Constraints: Logging only; handlers are installed once per process.
"""

# Imports
import json
import logging
import os
import re
import sys
import threading
import time
import traceback
from contextlib import contextmanager
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from mention_monitor.core.metrics import get_metrics

_REDACTED = "[redacted]"

_TOKEN_PATTERNS = [
    re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-_.~+/]{12,}=*"),
    re.compile(r"\beyJ[a-zA-Z0-9_\-]+=*\.[a-zA-Z0-9_\-]+=*\.[a-zA-Z0-9_\-]+=*\b"),
    re.compile(r"https://hooks\.slack\.com/services/[^\s\"']+"),
    re.compile(r"\bbot\d{6,}:[A-Za-z0-9_-]{20,}\b"),
]

_EXTRA_FIELDS = ("action", "details", "brand_id", "run_id", "channel")


def _truthy_env(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in ("0", "false", "no", "off")


def _redact_text(text: str) -> str:
    if not text:
        return text
    redacted = text
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(_REDACTED, redacted)
    return redacted


def _redact_obj(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, dict):
        return {k: _redact_obj(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_obj(v) for v in value)
    return value


# Public API
class UnifiedLogger:
    """Process-wide logging setup plus structured helpers for pipeline events."""

    _lock = threading.Lock()
    _global_initialized = False
    _sentry_initialized = False

    def __init__(self, name: str = "mention_monitor", log_level: Optional[str] = None):
        self.name = name
        if log_level is None:
            log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        level = getattr(logging, log_level.upper(), logging.INFO)

        with self._lock:
            self.logger = logging.getLogger(name)
            self.logger.setLevel(level)
            if not UnifiedLogger._global_initialized:
                logs_dir = Path(os.getenv("LOG_DIR", "logs"))
                self._ensure_root_logger(logs_dir, level)
                self._maybe_init_sentry()
                UnifiedLogger._global_initialized = True
            self.logger.propagate = True

    def get_logger(self) -> logging.Logger:
        return self.logger

    def log_activity(self, action: str, details: Dict[str, Any], level: str = "INFO") -> None:
        """Log a pipeline event with structured details attached to the record."""
        log_level = getattr(logging, level.upper(), logging.INFO)
        self.logger.log(log_level, "ACTIVITY: %s", action, extra={"action": action, "details": details})
        get_metrics().record(f"activity.{action}", success=log_level < logging.ERROR)

    def log_error_with_context(self, error: BaseException, context: Dict[str, Any], level: str = "ERROR") -> None:
        details = {
            "timestamp": datetime.now().isoformat(),
            "error_type": type(error).__name__,
            "error_message": str(error),
            "context": context,
        }
        if self.logger.isEnabledFor(logging.DEBUG):
            details["traceback"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        self.logger.log(
            getattr(logging, level.upper(), logging.ERROR),
            "ERROR: %s: %s",
            type(error).__name__,
            error,
            extra={"details": details},
        )
        get_metrics().record_failure("exception")

    @contextmanager
    def time_operation(self, operation_name: str) -> Iterator[None]:
        start = time.monotonic()
        try:
            yield
        finally:
            duration = time.monotonic() - start
            self.logger.info("PERFORMANCE: %s took %.2fs", operation_name, duration)
            get_metrics().record_duration(operation_name, duration)

    def _ensure_root_logger(self, logs_dir: Path, level: int) -> None:
        if not _truthy_env("ENABLE_ROOT_LOGGER", "1"):
            return
        root_logger = logging.getLogger()
        if root_logger.handlers:
            return

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(
            getattr(logging, os.getenv("CONSOLE_LOG_LEVEL", "INFO").upper(), logging.INFO)
        )
        console_handler.setFormatter(
            _RedactingFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
        )
        root_logger.addHandler(console_handler)

        if _truthy_env("ENABLE_FILE_LOGGING", "1"):
            logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d")
            file_handler = RotatingFileHandler(
                logs_dir / f"monitor_{stamp}.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(
                _RedactingFormatter(
                    logging.Formatter(
                        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
                    )
                )
            )
            root_logger.addHandler(file_handler)

            if _truthy_env("ENABLE_JSON_LOGGING", "0"):
                json_handler = RotatingFileHandler(
                    logs_dir / f"monitor_json_{stamp}.log",
                    maxBytes=5 * 1024 * 1024,
                    backupCount=3,
                    encoding="utf-8",
                )
                json_handler.setLevel(level)
                json_handler.setFormatter(_RedactingJsonFormatter())
                root_logger.addHandler(json_handler)

        if _truthy_env("METRICS_ENABLED", "1"):
            root_logger.addHandler(_MetricsHandler())
        root_logger.setLevel(level)

    def _maybe_init_sentry(self) -> None:
        if UnifiedLogger._sentry_initialized:
            return
        dsn = os.getenv("SENTRY_DSN", "").strip()
        if not dsn:
            return
        try:
            import sentry_sdk
            from sentry_sdk.integrations.logging import LoggingIntegration
        except ImportError:
            self.logger.warning("SENTRY_DSN is set but sentry-sdk is not installed")
            return

        sentry_sdk.init(
            dsn=dsn,
            environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
            release=os.getenv("SENTRY_RELEASE"),
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
            integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        )
        UnifiedLogger._sentry_initialized = True


def setup_logger(name: str = "mention_monitor", log_level: Optional[str] = None) -> logging.Logger:
    return UnifiedLogger(name=name, log_level=log_level).get_logger()


class _MetricsHandler(logging.Handler):
    """Count log records per level."""

    def emit(self, record: logging.LogRecord) -> None:
        metrics = get_metrics()
        metrics.record(f"log.{record.levelname.lower()}", success=record.levelno < logging.ERROR)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, base: logging.Formatter):
        super().__init__(base._fmt, base.datefmt)
        self._base = base

    def format(self, record: logging.LogRecord) -> str:
        return _redact_text(self._base.format(record))


class _RedactingJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_text(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = _redact_obj(getattr(record, field))
        return json.dumps(log_obj, default=str)
