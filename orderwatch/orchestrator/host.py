"""Host lifecycle adapter.

:class:`ServiceHost` translates the host's lifecycle and messaging events
(install, activate, inbound message, connectivity change) into calls on the
:class:`~orderwatch.orchestrator.engine.Orchestrator`.  It holds no polling
state of its own.

Inbound messages
~~~~~~~~~~~~~~~~
==============  =========================================================
kind            payload / effect
==============  =========================================================
CREDENTIALS     ``username``, ``password``, optional ``security_key`` →
                :meth:`Orchestrator.on_credentials_provided`
FORCE_CHECK     none → :meth:`Orchestrator.force_check`
keep-alive      none → logged only
==============  =========================================================
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import ValidationError

from orderwatch.core.exceptions import MissingCredentialsError
from orderwatch.core.models import Credentials
from orderwatch.orchestrator.engine import Orchestrator
from orderwatch.orchestrator.liveness import LivenessMonitor

__all__ = ["MessageKind", "ServiceHost"]

logger = logging.getLogger(__name__)


class MessageKind(StrEnum):
    """Inbound message types understood by :meth:`ServiceHost.on_message`."""

    CREDENTIALS = "CREDENTIALS"
    FORCE_CHECK = "FORCE_CHECK"
    KEEP_ALIVE = "keep-alive"


class ServiceHost:
    """Adapter between host events and the orchestrator.

    Args:
        orchestrator: The engine to drive.
        always_on_monitors: Non-escalating monitors (keep-alive, wake)
            started at activation, before any credentials exist.
        default_security_key: Used when a CREDENTIALS message carries none.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        always_on_monitors: Sequence[LivenessMonitor] = (),
        default_security_key: str = "",
    ) -> None:
        self._orchestrator = orchestrator
        self._always_on = list(always_on_monitors)
        self._default_security_key = default_security_key
        self.installed = False
        self.activated = False

    @property
    def orchestrator(self) -> Orchestrator:
        return self._orchestrator

    async def on_install(self) -> None:
        logger.info("Service installing.")
        self.installed = True

    async def on_activate(self) -> None:
        """Start the always-on monitors.  A repeat activation is a no-op."""
        if self.activated:
            logger.debug("Service already active.")
            return
        for monitor in self._always_on:
            self._orchestrator.supervisor.start(monitor)
        self.activated = True
        logger.info("Service active (%d always-on monitor(s)).", len(self._always_on))

    async def on_message(self, kind: str, payload: Mapping[str, Any] | None = None) -> None:
        """Dispatch one inbound message.

        Raises:
            MissingCredentialsError: A CREDENTIALS message lacks a field.
            AuthError: The backend rejected the supplied credentials.
            TransportError: The backend could not be reached for login.
        """
        data = payload or {}
        if kind == MessageKind.CREDENTIALS:
            await self._on_credentials(data)
        elif kind == MessageKind.FORCE_CHECK:
            await self._orchestrator.force_check()
        elif kind == MessageKind.KEEP_ALIVE:
            logger.info("Keep-alive ping received.")
        else:
            logger.warning("Ignoring unknown message kind %r.", kind)

    async def on_connectivity_change(self, is_online: bool) -> None:
        if is_online:
            await self._orchestrator.on_connectivity_restored()
        else:
            await self._orchestrator.on_connectivity_lost()

    async def _on_credentials(self, data: Mapping[str, Any]) -> None:
        try:
            credentials = Credentials(
                username=data.get("username", ""),
                password=data.get("password", ""),
            )
        except ValidationError as exc:
            raise MissingCredentialsError(f"invalid CREDENTIALS message: {exc.error_count()} error(s)") from exc

        security_key = data.get("security_key") or self._default_security_key
        if not security_key:
            raise MissingCredentialsError("no security key supplied")
        await self._orchestrator.on_credentials_provided(credentials, security_key)
