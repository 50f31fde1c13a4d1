"""Integration tests: new-order alerts delivered through the real Bot API.

Exercises :class:`~orderwatch.notifiers.telegram.TelegramClient` and
:class:`~orderwatch.notifiers.notifier.Notifier` against the live Telegram
endpoint.

Default behaviour
-----------------
Every test here is marked ``@pytest.mark.integration`` and excluded from the
default run (``addopts = "-m 'not integration'"`` in ``pyproject.toml``).

Run on demand::

    pytest -m integration

Credentials
-----------
Live tests are skipped unless ``TELEGRAM_BOT_TOKEN`` and ``TELEGRAM_CHAT_ID``
are set in the environment or in a ``.env`` file in the project root.
"""

from __future__ import annotations

import logging
import os

import pytest
from dotenv import load_dotenv

from orderwatch.core.run_context import RunContext
from orderwatch.notifiers.notifier import Notifier
from orderwatch.notifiers.telegram import TelegramClient
from orderwatch.orchestrator.poller import NEW_ORDER_TAG

__all__: list[str] = []

logger = logging.getLogger(__name__)

load_dotenv()

_TELEGRAM_CONFIGURED: bool = bool(
    os.environ.get("TELEGRAM_BOT_TOKEN") and os.environ.get("TELEGRAM_CHAT_ID")
)

_skip_if_unconfigured = pytest.mark.skipif(
    not _TELEGRAM_CONFIGURED,
    reason=(
        "TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set to run Telegram "
        "integration tests. Add them to .env or export them in your shell."
    ),
)

_TITLE = "[Orderwatch Integration Test] New order"
_BODY = "2 orders waiting. Automated test message, safe to ignore."
_OPTIONS = {"renotify": True, "url": "https://portal.example.com/orderlist"}


@pytest.mark.integration
class TestTelegramIntegration:
    async def test_dry_run_never_sends(self, caplog: pytest.LogCaptureFixture) -> None:
        """Runs without credentials: the alert is rendered and logged only."""
        async with TelegramClient(token="placeholder:dry_run_token", chat_id="0", timeout=1.0) as client:
            notifier = Notifier(client=client, ctx=RunContext(dry_run=True))
            with caplog.at_level(logging.INFO, logger="orderwatch.notifiers.notifier"):
                result = await notifier.notify(_TITLE, _BODY, NEW_ORDER_TAG, _OPTIONS)

        assert result is True
        assert any("[dry-run]" in r.message for r in caplog.records)

    @_skip_if_unconfigured
    async def test_live_send(self) -> None:
        chat_id = os.environ["TELEGRAM_CHAT_ID"]
        async with TelegramClient(token=os.environ["TELEGRAM_BOT_TOKEN"], chat_id=chat_id) as client:
            notifier = Notifier(client=client, ctx=RunContext())
            assert await notifier.notify(_TITLE, _BODY, NEW_ORDER_TAG, _OPTIONS) is True
        logger.info("Live alert delivered to chat %s.", chat_id)

    @_skip_if_unconfigured
    async def test_live_renotify_sends_twice(self) -> None:
        async with TelegramClient(
            token=os.environ["TELEGRAM_BOT_TOKEN"],
            chat_id=os.environ["TELEGRAM_CHAT_ID"],
        ) as client:
            notifier = Notifier(client=client, ctx=RunContext())
            first = await notifier.notify(_TITLE, _BODY, NEW_ORDER_TAG, _OPTIONS)
            second = await notifier.notify(_TITLE, _BODY, NEW_ORDER_TAG, _OPTIONS)

        assert (first, second) == (True, True)
