"""Unit tests for the core layer.

Covers:
- :class:`~orderwatch.core.settings.Settings` defaults, env loading and
  validation.
- :class:`~orderwatch.core.run_context.RunContext` flags.
- Domain models: credentials, login result, orders, health verdicts.
- :class:`~orderwatch.core.retry.RetryPolicy` attempt budget, delay
  schedule, and error propagation.
"""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from orderwatch.core.exceptions import AuthRejectedError, TransportError
from orderwatch.core.models import (
    Credentials,
    HealthStatus,
    HealthVerdict,
    LoginResult,
    Order,
    PollCycleState,
    Session,
    SessionState,
)
from orderwatch.core.retry import RetryPolicy, backoff_delay
from orderwatch.core.run_context import RunContext
from orderwatch.core.settings import Settings

logger = logging.getLogger(__name__)


def _transport_error() -> TransportError:
    return TransportError("POST", "/api/x", "ConnectError: refused")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.mark.usefixtures("clean_env")
class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert s.api_base_url == "https://app.ghazaresan.com"
        assert s.poll_interval == 20.0
        assert s.retry_max_attempts == 3
        assert s.retry_base_delay == 5.0
        assert s.heartbeat_interval == 30.0
        assert s.health_probe_interval == 23.0
        assert s.watchdog_interval == 45.0
        assert s.wake_interval == 25.0
        assert s.keepalive_interval == 20.0
        assert s.credentials_configured is False
        assert s.telegram_configured is False

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("USERNAME", "chef")
        monkeypatch.setenv("PASSWORD", "secret")
        monkeypatch.setenv("SECURITY_KEY", "K")
        monkeypatch.setenv("POLL_INTERVAL", "7.5")
        s = Settings()
        assert s.credentials_configured is True
        assert s.poll_interval == 7.5

    def test_trailing_slash_stripped(self) -> None:
        assert Settings(api_base_url="https://api.example.com/").api_base_url == "https://api.example.com"

    def test_non_http_base_url_rejected(self) -> None:
        with pytest.raises(ValidationError, match="http"):
            Settings(api_base_url="ftp://example.com")

    def test_log_level_normalised(self) -> None:
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_format_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_restart_base_above_max_rejected(self) -> None:
        with pytest.raises(ValidationError, match="restart_base_delay"):
            Settings(restart_base_delay=600, restart_max_delay=300)

    def test_watchdog_safety_factor_below_one_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(watchdog_safety_factor=0.5)

    def test_telegram_configured(self) -> None:
        assert Settings(telegram_bot_token="1:A", telegram_chat_id="42").telegram_configured


# ---------------------------------------------------------------------------
# RunContext
# ---------------------------------------------------------------------------


class TestRunContext:
    def test_live_mode_notifies(self) -> None:
        ctx = RunContext()
        assert ctx.should_notify is True
        assert ctx.mode_label == "live"

    def test_dry_run_does_not_notify(self) -> None:
        ctx = RunContext(dry_run=True, once=True)
        assert ctx.should_notify is False
        assert ctx.mode_label == "dry-run/once"
        assert "dry-run/once" in str(ctx)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class TestModels:
    def test_credentials_hide_password(self) -> None:
        creds = Credentials(username="a", password="b")
        assert "b" not in repr(creds.password)
        assert creds.password.get_secret_value() == "b"

    @pytest.mark.parametrize(("username", "password"), [("", "b"), ("a", "")])
    def test_credentials_require_both_fields(self, username: str, password: str) -> None:
        with pytest.raises(ValidationError):
            Credentials(username=username, password=password)

    def test_login_result_from_wire(self) -> None:
        result = LoginResult.model_validate(
            {"Token": "T1", "RestaurantName": "Kabab", "CanEditMenu": True, "Other": 1}
        )
        assert result.token == "T1"
        assert result.restaurant.name == "Kabab"
        assert result.restaurant.can_edit_menu is True

    def test_login_result_requires_token(self) -> None:
        with pytest.raises(ValidationError):
            LoginResult.model_validate({"RestaurantName": "Kabab"})

    def test_order_pending_only_for_status_zero(self) -> None:
        orders = [Order.model_validate({"Status": s, "Id": i}) for i, s in enumerate([0, 1, 0, 2])]
        assert [o.is_pending for o in orders] == [True, False, True, False]
        assert orders[0].model_extra == {"Id": 0}

    def test_session_defaults_unauthenticated(self) -> None:
        session = Session()
        assert session.token is None
        assert session.state is SessionState.UNAUTHENTICATED

    def test_poll_cycle_state_defaults(self) -> None:
        state = PollCycleState()
        assert state.busy is False
        assert state.retry_count == 0
        assert state.last_success_at is None

    def test_health_verdict_constructors(self) -> None:
        assert HealthVerdict.healthy().is_healthy
        degraded = HealthVerdict.degraded("slow")
        assert degraded.status is HealthStatus.DEGRADED
        assert not degraded.is_healthy
        assert HealthVerdict.unreachable("gone").as_dict() == {
            "status": "unreachable",
            "reason": "gone",
        }


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------


class TestBackoffDelay:
    def test_doubles_per_attempt(self) -> None:
        assert [backoff_delay(i, 5.0) for i in range(4)] == [5.0, 10.0, 20.0, 40.0]


class TestRetryPolicy:
    async def test_success_first_try_does_not_sleep(self) -> None:
        sleep = AsyncMock()
        op = AsyncMock(return_value="ok")
        policy = RetryPolicy(3, 5.0, jitter_ratio=0, sleep=sleep)

        assert await policy.execute(op) == "ok"
        assert op.await_count == 1
        sleep.assert_not_awaited()

    async def test_retries_transient_then_succeeds(self) -> None:
        sleep = AsyncMock()
        op = AsyncMock(side_effect=[_transport_error(), _transport_error(), "ok"])
        policy = RetryPolicy(3, 5.0, jitter_ratio=0, sleep=sleep)

        assert await policy.execute(op) == "ok"
        assert op.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [5.0, 10.0]

    async def test_exhaustion_raises_last_error(self) -> None:
        sleep = AsyncMock()
        errors = [TransportError("GET", "/x", f"fail {i}") for i in range(3)]
        op = AsyncMock(side_effect=errors)
        policy = RetryPolicy(3, 1.0, jitter_ratio=0, sleep=sleep)

        with pytest.raises(TransportError, match="fail 2"):
            await policy.execute(op)
        assert op.await_count == 3
        assert sleep.await_count == 2

    async def test_non_retryable_error_propagates_immediately(self) -> None:
        sleep = AsyncMock()
        op = AsyncMock(side_effect=AuthRejectedError(401))
        policy = RetryPolicy(3, 1.0, jitter_ratio=0, sleep=sleep)

        with pytest.raises(AuthRejectedError):
            await policy.execute(op)
        assert op.await_count == 1
        sleep.assert_not_awaited()

    async def test_per_call_overrides(self) -> None:
        sleep = AsyncMock()
        op = AsyncMock(side_effect=[_transport_error(), "ok"])
        policy = RetryPolicy(1, 5.0, jitter_ratio=0, sleep=sleep)

        assert await policy.execute(op, max_attempts=2, base_delay=0.5) == "ok"
        sleep.assert_awaited_once_with(0.5)

    async def test_jitter_stays_within_ratio(self) -> None:
        sleep = AsyncMock()
        op = AsyncMock(side_effect=[_transport_error(), "ok"])
        policy = RetryPolicy(2, 10.0, jitter_ratio=0.1, sleep=sleep)

        await policy.execute(op)
        delay = sleep.await_args.args[0]
        assert 10.0 <= delay <= 11.0

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_delay": -1.0}])
    def test_invalid_configuration_rejected(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
