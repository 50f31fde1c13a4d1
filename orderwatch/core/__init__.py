"""Core domain models, settings, logging configuration, and shared utilities."""

from orderwatch.core.exceptions import (
    AuthError,
    AuthRejectedError,
    ConfigError,
    FatalRestartError,
    MissingCredentialsError,
    NotificationError,
    OrchestratorError,
    OrderwatchError,
    PollError,
    PollServerError,
    PollUnauthorizedError,
    StorageError,
    TelegramError,
    TransportError,
)
from orderwatch.core.logging_config import JsonFormatter, configure_logging
from orderwatch.core.models import (
    Credentials,
    HealthStatus,
    HealthVerdict,
    LoginResult,
    Order,
    PollCycleState,
    RestaurantInfo,
    Session,
    SessionState,
)
from orderwatch.core.retry import RetryPolicy
from orderwatch.core.settings import Settings

__all__ = [
    # Logging
    "configure_logging",
    "JsonFormatter",
    # Domain models
    "Credentials",
    "RestaurantInfo",
    "LoginResult",
    "Order",
    "Session",
    "SessionState",
    "PollCycleState",
    "HealthStatus",
    "HealthVerdict",
    # Retry
    "RetryPolicy",
    # Settings
    "Settings",
    # Exceptions — base
    "OrderwatchError",
    "ConfigError",
    "StorageError",
    "TransportError",
    # Exceptions — auth
    "AuthError",
    "MissingCredentialsError",
    "AuthRejectedError",
    # Exceptions — poll
    "PollError",
    "PollUnauthorizedError",
    "PollServerError",
    # Exceptions — notification
    "NotificationError",
    "TelegramError",
    # Exceptions — orchestrator
    "OrchestratorError",
    "FatalRestartError",
]
