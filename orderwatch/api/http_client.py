"""Async HTTP transport shared by every backend call.

Wraps :class:`httpx.AsyncClient` with:

* **Per-request timeouts** — every call carries its own
  :class:`httpx.Timeout`, independent of whichever schedule invoked it.
* **Error mapping** — any :class:`httpx.TransportError` (connect failures,
  DNS, and every timeout flavour) becomes
  :class:`~orderwatch.core.exceptions.TransportError`, which the retry
  policy treats as transient.

Unlike a general-purpose client this transport does **not** retry and does
**not** raise on HTTP status codes: the session manager and poller each
classify statuses themselves (401 means something different to each), and
retry budgets belong to :class:`~orderwatch.core.retry.RetryPolicy`.

Typical usage::

    async with ApiHttpClient(base_url="https://app.example.com") as http:
        response = await http.request("GET", "/api/Authorization/Verify",
                                      headers={"Authorization": token},
                                      timeout=5.0)
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Final

import httpx

from orderwatch.core.exceptions import TransportError

__all__ = ["ApiHttpClient"]

logger = logging.getLogger(__name__)

#: Default total timeout in seconds when a call does not pass its own.
_DEFAULT_TIMEOUT: Final[float] = 15.0

#: Connection-establishment cap; never longer than the total timeout.
_MAX_CONNECT_TIMEOUT: Final[float] = 10.0


def _timeout(total: float) -> httpx.Timeout:
    return httpx.Timeout(total, connect=min(total, _MAX_CONNECT_TIMEOUT))


class ApiHttpClient:
    """Thin async transport: one request in, one response (or error) out.

    Use as an ``async with`` context manager to guarantee the connection
    pool is closed on exit, or call :meth:`close` explicitly.

    Args:
        base_url: Prepended to relative request paths.  Absolute URLs
            (e.g. an external keep-alive endpoint) bypass it.
        default_timeout: Timeout for calls that do not pass their own.
        headers: Default headers merged into every request.
    """

    def __init__(
        self,
        *,
        base_url: str = "",
        default_timeout: float = _DEFAULT_TIMEOUT,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._base_url = base_url
        self._default_timeout = default_timeout
        self._default_headers: dict[str, str] = headers or {}
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ApiHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Perform exactly one HTTP request.

        Args:
            method: HTTP verb.
            url: Path relative to ``base_url`` or an absolute URL.
            headers: Per-request headers (override the defaults).
            json: JSON-serialisable body, if any.
            timeout: Total seconds allowed for this call.

        Returns:
            The :class:`httpx.Response`, whatever its status code.

        Raises:
            TransportError: On any network-level failure or timeout.
        """
        client = await self._ensure_client()
        effective = timeout if timeout is not None else self._default_timeout

        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                json=json,
                timeout=_timeout(effective),
            )
        except httpx.TransportError as exc:
            logger.debug("Transport error on %s %s.", method, url, exc_info=True)
            raise TransportError(method, url, f"{type(exc).__name__}: {exc}") from exc

        logger.debug(
            "HTTP %s %s → %d (%.0f ms)",
            method,
            url,
            response.status_code,
            response.elapsed.total_seconds() * 1000 if response.elapsed else 0,
        )
        return response

    async def close(self) -> None:
        """Close the underlying client.  Safe to call repeatedly."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("ApiHttpClient session closed.")
        self._http = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=_timeout(self._default_timeout),
                headers={
                    "Accept": "application/json",
                    "User-Agent": "orderwatch/0.1",
                    **self._default_headers,
                },
            )
            logger.debug("ApiHttpClient session opened (base_url=%r).", self._base_url or "(none)")
        return self._http
