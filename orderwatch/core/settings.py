"""Orderwatch application settings loaded from environment and ``.env`` files.

Uses :mod:`pydantic_settings` to parse environment variables (and optionally
an ``.env`` file) into a validated settings object.  The field name is the
**lowercase** version of the env-var name (e.g. ``SECURITY_KEY`` →
``security_key``).

Typical usage::

    from orderwatch.core.settings import Settings

    settings = Settings()                   # loads from env + .env
    print(settings.credentials_configured)  # True / False
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = ["Settings"]

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Central application configuration.

    Values are loaded in priority order:

    1. Actual environment variables (highest priority).
    2. ``.env`` file in the working directory.
    3. Field defaults (lowest priority).

    Credentials default to empty so settings always load, but both run
    modes refuse to start without them (see
    :func:`~orderwatch.orchestrator.runner.credentials_payload`).  Telegram
    may be left empty in dry-run mode.  ``LOG_LEVEL`` and ``LOG_FORMAT``
    apply unless overridden on the command line.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------
    api_base_url: str = Field(
        default="https://app.ghazaresan.com",
        description="Base URL of the order-management API.",
    )
    api_referer: str = Field(
        default="https://portal.ghazaresan.com/",
        description="Referer header sent with authenticated calls ('' disables).",
    )
    security_key: str = Field(
        default="",
        description="Shared installation secret sent as the SecurityKey header.",
    )
    username: str = Field(default="", description="Backend login user name.")
    password: str = Field(default="", description="Backend login password.")
    request_timeout: float = Field(
        default=15.0,
        gt=0.0,
        description="Per-request timeout in seconds for business calls.",
    )
    probe_timeout: float = Field(
        default=5.0,
        gt=0.0,
        description="Short timeout in seconds for the health probe.",
    )

    # ------------------------------------------------------------------
    # Retry policy
    # ------------------------------------------------------------------
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per login / fetch before giving up.",
    )
    retry_base_delay: float = Field(
        default=5.0,
        ge=0.0,
        description="Base delay in seconds; doubled after every failed attempt.",
    )
    retry_jitter_ratio: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Random jitter as a fraction of each retry delay.",
    )

    # ------------------------------------------------------------------
    # Primary cycle
    # ------------------------------------------------------------------
    poll_interval: float = Field(
        default=20.0,
        gt=0.0,
        description="Seconds between successful order checks.",
    )
    restart_base_delay: float = Field(
        default=5.0,
        gt=0.0,
        description="Base of the exponential delay after a failed check.",
    )
    restart_max_delay: float = Field(
        default=300.0,
        gt=0.0,
        description="Ceiling of the delay after a failed check.",
    )
    max_restart_attempts: int = Field(
        default=10,
        ge=1,
        description="Consecutive failed checks tolerated before a process restart.",
    )

    # ------------------------------------------------------------------
    # Liveness monitors (periods are staggered on purpose)
    # ------------------------------------------------------------------
    heartbeat_interval: float = Field(default=30.0, gt=0.0)
    health_probe_interval: float = Field(default=23.0, gt=0.0)
    watchdog_interval: float = Field(default=45.0, gt=0.0)
    watchdog_safety_factor: float = Field(
        default=3.0,
        ge=1.0,
        description="Watchdog fires when no signal for interval × factor.",
    )
    keepalive_interval: float = Field(default=20.0, gt=0.0)
    keepalive_url: str = Field(
        default="",
        description="External liveness endpoint for the keep-alive ping ('' disables).",
    )
    wake_interval: float = Field(default=25.0, gt=0.0)

    # ------------------------------------------------------------------
    # Notification
    # ------------------------------------------------------------------
    telegram_bot_token: str = Field(default="", description="Bot token from @BotFather.")
    telegram_chat_id: str = Field(default="", description="Chat ID for order alerts.")
    notification_title: str = Field(default="سفارش جدید")
    notification_body: str = Field(
        default="{count} سفارش جدید در انتظار تایید دارید",
        description="Body template; '{count}' is replaced with the pending count.",
    )
    order_list_url: str = Field(
        default="https://portal.ghazaresan.com/orderlist",
        description="Link attached to every notification.",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------
    store_path: str = Field(
        default="data/orderwatch.db",
        description="Path to the SQLite key-value store.",
    )

    # ------------------------------------------------------------------
    # Runtime flags
    # ------------------------------------------------------------------
    dry_run: bool = Field(
        default=False,
        description="Log notifications instead of sending them.",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["text", "json"] = "text"

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_base_url must be an http(s) URL, got {v!r}")
        return v

    @field_validator("log_level", "log_format", mode="before")
    @classmethod
    def _normalise_case(cls, v: object, info: ValidationInfo) -> object:
        if not isinstance(v, str):
            return v
        return v.upper() if info.field_name == "log_level" else v.lower()

    # ------------------------------------------------------------------
    # Model validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def _validate_restart_delays(self) -> Settings:
        """Ensure base ≤ max for the cycle backoff."""
        if self.restart_base_delay > self.restart_max_delay:
            raise ValueError(
                f"restart_base_delay ({self.restart_base_delay}) "
                f"> restart_max_delay ({self.restart_max_delay})"
            )
        return self

    # ------------------------------------------------------------------
    # Derived helpers
    # ------------------------------------------------------------------

    @property
    def store_path_resolved(self) -> Path:
        """Return the store path as a resolved :class:`~pathlib.Path`."""
        return Path(self.store_path).resolve()

    @property
    def credentials_configured(self) -> bool:
        """``True`` if user name, password and security key are all set."""
        return bool(self.username and self.password and self.security_key)

    @property
    def telegram_configured(self) -> bool:
        """``True`` if both Telegram credentials are set."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)
