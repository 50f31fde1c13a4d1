"""New-order notification dispatch.

:class:`NotificationDispatcher` is the contract the poller depends on:
``notify(title, body, tag, options)``.  :class:`Notifier` is the concrete
dispatcher.  It owns the decision of *whether* to deliver (based on
:class:`~orderwatch.core.run_context.RunContext` and tag dedupe) and
delegates transport to :class:`~orderwatch.notifiers.telegram.TelegramClient`.

Tag dedupe
----------
A notification whose ``tag`` was already delivered replaces the previous
one (on Telegram that means it is skipped) unless
``options["renotify"]`` is true, in which case it is delivered again.
New-order alerts are sent with ``renotify=True`` so each check that finds
pending orders alerts the operator.

Typical usage::

    async with TelegramClient(token=..., chat_id=...) as client:
        notifier = Notifier(client=client, ctx=RunContext())
        await notifier.notify("New order", "2 orders waiting", "new-order",
                              {"renotify": True})
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from orderwatch.core.exceptions import NotificationError
from orderwatch.core.run_context import RunContext
from orderwatch.notifiers.telegram import TelegramClient

__all__ = ["NotificationDispatcher", "Notifier", "format_notification"]

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Anything that can present a notification to the operator."""

    async def notify(
        self,
        title: str,
        body: str,
        tag: str,
        options: dict[str, Any] | None = None,
    ) -> bool: ...


def format_notification(title: str, body: str, options: dict[str, Any] | None = None) -> str:
    """Render a notification as plain text: title, body, optional link."""
    lines = [title, body]
    url = (options or {}).get("url")
    if url:
        lines.append(str(url))
    return "\n".join(lines)


class Notifier:
    """Concrete :class:`NotificationDispatcher` over Telegram.

    * **dry-run** (``ctx.dry_run=True``) — logs the rendered text at
      ``INFO`` instead of sending.  ``client`` may be ``None``.
    * **live** — sends through ``client``.

    Args:
        client: Open :class:`TelegramClient`; lifecycle owned by the caller.
            Required in live mode.
        ctx: Runtime operating mode flags.

    Raises:
        ValueError: If live mode is requested without a client.
    """

    def __init__(self, client: TelegramClient | None, ctx: RunContext) -> None:
        if ctx.should_notify and client is None:
            raise ValueError("Notifier requires a TelegramClient in live mode.")
        self._client = client
        self._ctx = ctx
        self._delivered_tags: set[str] = set()

    async def notify(
        self,
        title: str,
        body: str,
        tag: str,
        options: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver one notification.

        Returns:
            ``True`` if delivered (or logged in dry-run), ``False`` if
            suppressed by tag dedupe.

        Raises:
            NotificationError: If the transport fails after its retries.
        """
        opts = options or {}
        if tag in self._delivered_tags and not opts.get("renotify", False):
            logger.debug("Notification %r already shown — not renotifying.", tag)
            return False

        text = format_notification(title, body, opts)

        if not self._ctx.should_notify:
            logger.info("[dry-run] Would notify (tag=%s):\n%s", tag, text)
            self._delivered_tags.add(tag)
            return True

        assert self._client is not None  # noqa: S101
        try:
            await self._client.send_message(text)
        except NotificationError as exc:
            logger.error("Failed to deliver notification %r: %s", tag, exc)
            raise
        self._delivered_tags.add(tag)
        logger.info("Notification delivered (tag=%s).", tag)
        return True
