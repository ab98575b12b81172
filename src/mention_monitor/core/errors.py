"""
Purpose: Exception types shared by the feed client, dispatcher and config layer.
Constraints: Definitions only; classification happens where the error originates.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FeedErrorKind(str, Enum):
    TRANSIENT = "transient"
    RATE_LIMITED = "rate_limited"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"

    @property
    def retryable(self) -> bool:
        return self in (FeedErrorKind.TRANSIENT, FeedErrorKind.RATE_LIMITED)


class MonitorError(Exception):
    """Base class for errors raised by the monitor."""


class ConfigError(MonitorError):
    pass


class FeedError(MonitorError):
    """Feed API failure tagged with a kind at the point of origin."""

    def __init__(
        self,
        kind: FeedErrorKind,
        message: str,
        status: Optional[int] = None,
        operation: str = "",
    ):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.operation = operation

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def __repr__(self) -> str:
        return f"FeedError(kind={self.kind.value!r}, status={self.status!r}, message={str(self)!r})"


class NotificationDeliveryError(MonitorError):
    """A single channel failed to deliver a message."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel
