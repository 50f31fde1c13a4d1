"""Telegram Bot API transport for new-order alerts.

:class:`TelegramClient` sends plain-text messages through ``sendMessage``.
It is assembled from the same two pieces as the backend client:

* :class:`~orderwatch.api.http_client.ApiHttpClient` for the connection
  pool, the timeout budget and the mapping of network faults to
  :class:`~orderwatch.core.exceptions.TransportError`;
* :class:`~orderwatch.core.retry.RetryPolicy` for bounded retries on
  network faults, HTTP 429 and 5xx.  A 429 ``retry_after`` overrides the
  computed backoff.

Whatever goes wrong surfaces as
:class:`~orderwatch.core.exceptions.TelegramError`.  The bot token lives in
the transport's base URL, so request logs only ever show ``/sendMessage``.

Typical usage::

    async with TelegramClient(token="123:ABC", chat_id="-1001234") as client:
        await client.send_message("New order waiting")
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Final

import httpx

from orderwatch.api.http_client import ApiHttpClient
from orderwatch.core.exceptions import TelegramError, TransportError
from orderwatch.core.retry import RetryPolicy

__all__ = ["TelegramClient"]

logger = logging.getLogger(__name__)

_TELEGRAM_BASE_URL: Final[str] = "https://api.telegram.org"
_SEND_PATH: Final[str] = "/sendMessage"

#: Statuses worth another attempt.
_TRANSIENT_STATUS: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})


class _TransientSendError(TelegramError):
    """Internal: 429 / 5xx answer.  Converted before leaving the client."""

    def __init__(self, status_code: int, retry_after: float = 0.0) -> None:
        self.retry_after = retry_after
        super().__init__(f"transient HTTP {status_code}", status_code=status_code)


def _retry_after(exc: BaseException) -> float | None:
    return exc.retry_after if isinstance(exc, _TransientSendError) else None


class TelegramClient:
    """Sends messages to one chat.

    Args:
        token: Bot token from @BotFather.
        chat_id: Destination chat.
        timeout: Seconds allowed per HTTP attempt.
        max_attempts: Attempts per message, including the first.
        sleep: Back-off sleep override, forwarded to the retry policy.

    Raises:
        ValueError: If ``token`` or ``chat_id`` is empty, or
            ``max_attempts`` < 1.
    """

    def __init__(
        self,
        token: str,
        chat_id: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 4,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        if not token or not chat_id:
            raise ValueError("TelegramClient needs both a bot token and a chat_id.")
        self._chat_id = chat_id
        self._api = ApiHttpClient(base_url=f"{_TELEGRAM_BASE_URL}/bot{token}", default_timeout=timeout)
        self._retry = RetryPolicy(
            max_attempts,
            1.0,
            jitter_ratio=0.5,
            retry_on=(_TransientSendError, TransportError),
            delay_hint=_retry_after,
            sleep=sleep,
        )

    async def __aenter__(self) -> TelegramClient:
        await self._api.__aenter__()
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.close()

    async def send_message(self, text: str) -> None:
        """Deliver *text* to the configured chat.

        Raises:
            TelegramError: Rejected by the Bot API, or still failing once
                the retry budget is spent.
        """
        try:
            await self._retry.execute(lambda: self._post(text))
        except _TransientSendError as exc:
            raise TelegramError(
                f"gave up after {self._retry.max_attempts} attempts",
                status_code=exc.status_code,
            ) from exc
        except TransportError as exc:
            raise TelegramError(f"network error: {exc}") from exc

    async def close(self) -> None:
        await self._api.close()

    async def _post(self, text: str) -> None:
        response = await self._api.request(
            "POST",
            _SEND_PATH,
            json={"chat_id": self._chat_id, "text": text, "disable_web_page_preview": True},
        )
        status = response.status_code
        if status == httpx.codes.OK:
            body = _json_body(response)
            if not body.get("ok"):
                raise TelegramError(f"ok=false: {body.get('description', '(no description)')}", status_code=status)
            return
        if status in _TRANSIENT_STATUS:
            raise _TransientSendError(status, _parse_retry_after(response))
        raise TelegramError(str(_json_body(response).get("description") or response.text or status), status_code=status)


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _parse_retry_after(response: httpx.Response) -> float:
    """``parameters.retry_after`` of a 429 (at least 1 s); ``0`` otherwise."""
    if response.status_code != httpx.codes.TOO_MANY_REQUESTS:
        return 0.0
    retry_after = _json_body(response).get("parameters", {}).get("retry_after")
    try:
        return max(float(retry_after), 1.0)
    except (TypeError, ValueError):
        return 1.0
