"""Orderwatch core domain models.

Wire-facing payloads are :mod:`pydantic` models (validated on the way in);
mutable in-process state bags are plain dataclasses.

Typical usage::

    from orderwatch.core.models import Credentials, Order

    creds = Credentials(username="a", password="b")
    orders = [Order.model_validate(raw) for raw in payload]
    pending = [o for o in orders if o.is_pending]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator

__all__ = [
    "PENDING_STATUS",
    "Credentials",
    "RestaurantInfo",
    "LoginResult",
    "Order",
    "SessionState",
    "Session",
    "PollCycleState",
    "HealthStatus",
    "HealthVerdict",
]

logger = logging.getLogger(__name__)

#: ``Status`` value the backend uses for a not-yet-confirmed order.
PENDING_STATUS: int = 0


# ---------------------------------------------------------------------------
# Credentials & login payloads
# ---------------------------------------------------------------------------


class Credentials(BaseModel):
    """Backend login credentials supplied from outside the process.

    Frozen: replaced wholesale, never mutated.  The password is a
    :class:`~pydantic.SecretStr` so it never leaks through ``repr`` or logs.
    """

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1)
    password: SecretStr

    @field_validator("password")
    @classmethod
    def _password_not_blank(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("password must not be empty")
        return v


class RestaurantInfo(BaseModel):
    """Companion metadata returned by Authenticate and persisted next to the token."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str | None = Field(default=None, alias="RestaurantName")
    can_edit_menu: bool | None = Field(default=None, alias="CanEditMenu")


class LoginResult(BaseModel):
    """Successful Authenticate response."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    token: str = Field(..., min_length=1, alias="Token")
    restaurant_name: str | None = Field(default=None, alias="RestaurantName")
    can_edit_menu: bool | None = Field(default=None, alias="CanEditMenu")

    @property
    def restaurant(self) -> RestaurantInfo:
        return RestaurantInfo(name=self.restaurant_name, can_edit_menu=self.can_edit_menu)


class Order(BaseModel):
    """One element of the GetOrders array.

    Only ``Status`` matters to the engine; every other field is kept
    verbatim (``extra="allow"``) for logging and future use.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    status: int = Field(..., alias="Status")

    @property
    def is_pending(self) -> bool:
        """``True`` if the order has not been acknowledged yet."""
        return self.status == PENDING_STATUS


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionState(StrEnum):
    """Authentication state as observed by callers of the session manager."""

    UNAUTHENTICATED = "unauthenticated"
    """No login attempted yet in this process generation."""

    VALID = "valid"
    """Last login or verification succeeded."""

    UNVERIFIED = "unverified"
    """Token restored from the store; not yet confirmed by the backend."""

    INVALID = "invalid"
    """Last login / verification failed, or the token was invalidated."""


@dataclass
class Session:
    """Mutable session record owned exclusively by the session manager.

    Attributes:
        token: Current backend token, or ``None``.
        token_obtained_at: When the token was issued (UTC), or ``None``.
        state: Current :class:`SessionState`.
    """

    token: str | None = None
    token_obtained_at: datetime | None = None
    state: SessionState = SessionState.UNAUTHENTICATED


# ---------------------------------------------------------------------------
# Poll cycle
# ---------------------------------------------------------------------------


@dataclass
class PollCycleState:
    """State shared between the poller and the orchestrator.

    Attributes:
        busy: Advisory non-reentrant guard around one order check.
        retry_count: Consecutive failed checks; reset on any success.
        last_success_at: Completion time (UTC) of the last successful check.
    """

    busy: bool = False
    retry_count: int = 0
    last_success_at: datetime | None = None


# ---------------------------------------------------------------------------
# Liveness
# ---------------------------------------------------------------------------


class HealthStatus(StrEnum):
    """Outcome class of a liveness check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class HealthVerdict:
    """Result of one :meth:`~orderwatch.orchestrator.liveness.LivenessMonitor.check`."""

    status: HealthStatus
    reason: str = ""

    @classmethod
    def healthy(cls) -> HealthVerdict:
        return cls(HealthStatus.HEALTHY)

    @classmethod
    def degraded(cls, reason: str) -> HealthVerdict:
        return cls(HealthStatus.DEGRADED, reason)

    @classmethod
    def unreachable(cls, reason: str) -> HealthVerdict:
        return cls(HealthStatus.UNREACHABLE, reason)

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    def as_dict(self) -> dict[str, Any]:
        return {"status": self.status.value, "reason": self.reason}
