"""Orderwatch exception taxonomy.

Every custom exception inherits from :class:`OrderwatchError`.  Exceptions are
organised by architectural layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    OrderwatchError
    ├── ConfigError
    ├── StorageError
    ├── TransportError
    ├── AuthError
    │   ├── MissingCredentialsError
    │   └── AuthRejectedError
    ├── PollError
    │   ├── PollUnauthorizedError
    │   └── PollServerError
    ├── NotificationError
    │   └── TelegramError
    └── OrchestratorError
        └── FatalRestartError

Retry semantics
---------------
* :class:`TransportError` and :class:`PollServerError` are *transient* and
  are absorbed by :class:`~orderwatch.core.retry.RetryPolicy`.
* :class:`MissingCredentialsError` and :class:`AuthRejectedError` are never
  retried.  A 4xx rejection also stops further logins until new credentials
  arrive, and ends the poll cycle.
* :class:`PollUnauthorizedError` triggers exactly one forced token refresh.
* :class:`FatalRestartError` is escalated to the hosting process.

Usage:

    from orderwatch.core.exceptions import AuthRejectedError

    raise AuthRejectedError(401, "Authenticate returned 401")
"""

from __future__ import annotations

__all__ = [
    "OrderwatchError",
    # Config
    "ConfigError",
    # Storage
    "StorageError",
    # Transport
    "TransportError",
    # Auth
    "AuthError",
    "MissingCredentialsError",
    "AuthRejectedError",
    # Poll
    "PollError",
    "PollUnauthorizedError",
    "PollServerError",
    # Notification
    "NotificationError",
    "TelegramError",
    # Orchestrator
    "OrchestratorError",
    "FatalRestartError",
]

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class OrderwatchError(Exception):
    """Root exception for all Orderwatch errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(OrderwatchError):
    """Raised when the application configuration is invalid or incomplete."""


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(OrderwatchError):
    """Raised when a durable-store read or write fails."""


# ---------------------------------------------------------------------------
# Transport layer
# ---------------------------------------------------------------------------


class TransportError(OrderwatchError):
    """Network-level failure: connection refused, DNS, or timeout.

    Timeouts are folded into this class and are retryable
    exactly like any other transport fault.

    Args:
        method: HTTP verb of the failed request.
        url: Request URL or path.
        message: Human-readable error description.
    """

    def __init__(self, method: str, url: str, message: str) -> None:
        self.method = method
        self.url = url
        super().__init__(f"{method} {url} failed: {message}")


# ---------------------------------------------------------------------------
# Auth layer
# ---------------------------------------------------------------------------


class AuthError(OrderwatchError):
    """Base class for authentication failures."""


class MissingCredentialsError(AuthError):
    """Raised when login is attempted before credentials or key are supplied.

    A caller error; never retried.
    """

    def __init__(self, message: str = "Credentials and security key are required") -> None:
        super().__init__(message)


class AuthRejectedError(AuthError):
    """Raised when the backend explicitly rejects an authentication attempt.

    Covers non-2xx responses and 2xx responses without a ``Token`` field.
    Never retried.

    Args:
        status_code: HTTP status returned by the backend.
        message: Optional detail.
    """

    def __init__(self, status_code: int, message: str = "") -> None:
        self.status_code = status_code
        detail = f": {message}" if message else ""
        super().__init__(f"Authentication rejected (HTTP {status_code}){detail}")

    @property
    def credentials_refused(self) -> bool:
        """``True`` for a 4xx answer: the credentials themselves were refused."""
        return 400 <= self.status_code < 500


# ---------------------------------------------------------------------------
# Poll layer
# ---------------------------------------------------------------------------


class PollError(OrderwatchError):
    """Base class for order-fetch failures."""


class PollUnauthorizedError(PollError):
    """GetOrders answered HTTP 401 even after a forced token refresh."""

    def __init__(self, message: str = "Order fetch unauthorized") -> None:
        super().__init__(message)


class PollServerError(PollError):
    """GetOrders answered with a non-success, non-401 status.

    Treated as transient and retried by the poller's retry policy.

    Args:
        status_code: HTTP status returned by the backend.
    """

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Order fetch failed with HTTP {status_code}")


# ---------------------------------------------------------------------------
# Notification layer
# ---------------------------------------------------------------------------


class NotificationError(OrderwatchError):
    """Base class for notification delivery errors."""


class TelegramError(NotificationError):
    """Raised when the Telegram Bot API returns an error or is unreachable.

    Args:
        message: Human-readable error description.
        status_code: HTTP status code from the Telegram API, if available.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Telegram error{detail}: {message}")


# ---------------------------------------------------------------------------
# Orchestrator layer
# ---------------------------------------------------------------------------


class OrchestratorError(OrderwatchError):
    """Raised for errors originating in the scheduling layer."""


class FatalRestartError(OrchestratorError):
    """The primary cycle exhausted its internal retry ceiling.

    Not handled internally: the host process is expected to exit and be
    restarted by its supervisor.

    Args:
        retry_count: Number of consecutive failed checks observed.
    """

    def __init__(self, retry_count: int) -> None:
        self.retry_count = retry_count
        super().__init__(
            f"Poll cycle failed {retry_count} consecutive times — "
            "requesting a full process restart"
        )
