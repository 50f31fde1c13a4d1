"""Unit tests for :class:`~orderwatch.orchestrator.host.ServiceHost`."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderwatch.core.exceptions import AuthRejectedError, MissingCredentialsError
from orderwatch.core.models import Credentials
from orderwatch.orchestrator.engine import Orchestrator
from orderwatch.orchestrator.host import MessageKind, ServiceHost
from orderwatch.orchestrator.liveness import WakeHintMonitor


def _make_orchestrator() -> MagicMock:
    orchestrator = MagicMock(spec=Orchestrator)
    orchestrator.supervisor = MagicMock()
    orchestrator.on_credentials_provided = AsyncMock()
    orchestrator.force_check = AsyncMock(return_value=True)
    orchestrator.on_connectivity_lost = AsyncMock()
    orchestrator.on_connectivity_restored = AsyncMock()
    return orchestrator


class TestLifecycle:
    async def test_install_then_activate_starts_always_on_monitors(self) -> None:
        orchestrator = _make_orchestrator()
        wake = WakeHintMonitor(25)
        host = ServiceHost(orchestrator, always_on_monitors=[wake])

        await host.on_install()
        await host.on_activate()
        await host.on_activate()

        assert host.installed and host.activated
        orchestrator.supervisor.start.assert_called_once_with(wake)

    async def test_connectivity_change_is_forwarded(self) -> None:
        orchestrator = _make_orchestrator()
        host = ServiceHost(orchestrator)

        await host.on_connectivity_change(False)
        await host.on_connectivity_change(True)

        orchestrator.on_connectivity_lost.assert_awaited_once()
        orchestrator.on_connectivity_restored.assert_awaited_once()


class TestMessages:
    async def test_credentials_message(self) -> None:
        orchestrator = _make_orchestrator()
        host = ServiceHost(orchestrator)

        await host.on_message(
            MessageKind.CREDENTIALS,
            {"username": "a", "password": "b", "security_key": "K"},
        )

        orchestrator.on_credentials_provided.assert_awaited_once()
        creds, key = orchestrator.on_credentials_provided.await_args.args
        assert creds == Credentials(username="a", password="b")
        assert key == "K"

    async def test_credentials_fall_back_to_default_security_key(self) -> None:
        orchestrator = _make_orchestrator()
        host = ServiceHost(orchestrator, default_security_key="DEFAULT")

        await host.on_message("CREDENTIALS", {"username": "a", "password": "b"})

        assert orchestrator.on_credentials_provided.await_args.args[1] == "DEFAULT"

    @pytest.mark.parametrize(
        "payload",
        [
            {"password": "b", "security_key": "K"},
            {"username": "a", "security_key": "K"},
            {"username": "a", "password": "b"},
            None,
        ],
    )
    async def test_incomplete_credentials_rejected(self, payload: dict | None) -> None:
        orchestrator = _make_orchestrator()
        host = ServiceHost(orchestrator)

        with pytest.raises(MissingCredentialsError):
            await host.on_message(MessageKind.CREDENTIALS, payload)
        orchestrator.on_credentials_provided.assert_not_awaited()

    async def test_backend_rejection_propagates(self) -> None:
        orchestrator = _make_orchestrator()
        orchestrator.on_credentials_provided.side_effect = AuthRejectedError(401)
        host = ServiceHost(orchestrator, default_security_key="K")

        with pytest.raises(AuthRejectedError):
            await host.on_message(MessageKind.CREDENTIALS, {"username": "a", "password": "b"})

    async def test_force_check_message(self) -> None:
        orchestrator = _make_orchestrator()
        await ServiceHost(orchestrator).on_message(MessageKind.FORCE_CHECK)
        orchestrator.force_check.assert_awaited_once()

    async def test_keep_alive_message_only_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        orchestrator = _make_orchestrator()
        with caplog.at_level(logging.INFO, logger="orderwatch.orchestrator.host"):
            await ServiceHost(orchestrator).on_message("keep-alive")
        assert "Keep-alive" in caplog.text
        orchestrator.force_check.assert_not_awaited()

    async def test_unknown_kind_ignored(self, caplog: pytest.LogCaptureFixture) -> None:
        orchestrator = _make_orchestrator()
        with caplog.at_level(logging.WARNING, logger="orderwatch.orchestrator.host"):
            await ServiceHost(orchestrator).on_message("REBOOT", {"x": 1})
        assert "unknown message kind" in caplog.text
        orchestrator.on_credentials_provided.assert_not_awaited()
