"""
Purpose: Tagged result values so callers branch on a discriminant instead of exception internals.
Constraints: Data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    TRANSIENT_NETWORK = "transient_network"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOTIFICATION_DELIVERY = "notification_delivery"
    NOT_CONFIGURED = "not_configured"
    INTERNAL = "internal"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T = None  # type: ignore[assignment]

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str = ""

    @property
    def is_ok(self) -> bool:
        return False

    def as_dict(self) -> dict:
        return {"kind": self.kind.value, "detail": self.detail}


Result = Union[Ok[Any], Err]
