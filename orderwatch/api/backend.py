"""Wire contract with the order-management backend.

Three endpoints, preserved byte-for-byte:

``POST /api/Authorization/Authenticate``
    JSON ``{"UserName": ..., "Password": ...}`` with header ``SecurityKey``.
    Success body carries ``Token`` and optionally ``RestaurantName`` and
    ``CanEditMenu``.

``GET /api/Authorization/Verify``
    Header ``Authorization: <token>``.  Any 2xx means the token is valid.

``POST /api/Orders/GetOrders``
    Headers ``authorizationcode: <token>`` and ``securitykey: <key>``, body
    ``{}``.  Returns an array of orders, each with a ``Status`` field.

:class:`OrderBackend` turns HTTP outcomes into typed results or the
exceptions in :mod:`orderwatch.core.exceptions`; it performs no retries and
holds no session state.
"""

from __future__ import annotations

import logging
from typing import Any, Final

import httpx
from pydantic import ValidationError

from orderwatch.api.http_client import ApiHttpClient
from orderwatch.core.exceptions import (
    AuthRejectedError,
    PollServerError,
    PollUnauthorizedError,
)
from orderwatch.core.models import Credentials, LoginResult, Order

__all__ = [
    "AUTHENTICATE_PATH",
    "VERIFY_PATH",
    "GET_ORDERS_PATH",
    "OrderBackend",
]

logger = logging.getLogger(__name__)

AUTHENTICATE_PATH: Final[str] = "/api/Authorization/Authenticate"
VERIFY_PATH: Final[str] = "/api/Authorization/Verify"
GET_ORDERS_PATH: Final[str] = "/api/Orders/GetOrders"


class OrderBackend:
    """Typed client for the three backend endpoints plus the keep-alive ping.

    Args:
        http: Open :class:`ApiHttpClient`; lifecycle owned by the caller.
        referer: Value for the ``Referer`` header, or ``""`` to omit it.
        request_timeout: Timeout for authenticate / get-orders calls.
    """

    def __init__(
        self,
        http: ApiHttpClient,
        *,
        referer: str = "",
        request_timeout: float = 15.0,
    ) -> None:
        self._http = http
        self._referer = referer
        self._request_timeout = request_timeout

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **extra}
        if self._referer:
            headers["Referer"] = self._referer
        return headers

    async def authenticate(self, credentials: Credentials, security_key: str) -> LoginResult:
        """Exchange credentials for a token.

        Raises:
            AuthRejectedError: Non-2xx status, unparsable body, or no ``Token``.
            TransportError: Network failure or timeout.
        """
        response = await self._http.request(
            "POST",
            AUTHENTICATE_PATH,
            headers=self._headers(SecurityKey=security_key),
            json={
                "UserName": credentials.username,
                "Password": credentials.password.get_secret_value(),
            },
            timeout=self._request_timeout,
        )
        if not response.is_success:
            raise AuthRejectedError(response.status_code)

        body = _json_or_none(response)
        if not isinstance(body, dict):
            raise AuthRejectedError(response.status_code, "response body is not a JSON object")
        try:
            return LoginResult.model_validate(body)
        except ValidationError as exc:
            raise AuthRejectedError(response.status_code, "no token received in response") from exc

    async def verify(self, token: str, *, timeout: float | None = None) -> bool:
        """Return ``True`` if the backend accepts *token*.

        Raises:
            TransportError: Network failure or timeout.
        """
        response = await self._http.request(
            "GET",
            VERIFY_PATH,
            headers={"Authorization": token},
            timeout=timeout if timeout is not None else self._request_timeout,
        )
        if not response.is_success:
            logger.debug("Verify answered HTTP %d.", response.status_code)
        return response.is_success

    async def get_orders(self, token: str, security_key: str) -> list[Order]:
        """Fetch the current order list.

        A 2xx body that is not a JSON array is logged and treated as empty.

        Raises:
            PollUnauthorizedError: HTTP 401 (single attempt, no refresh here).
            PollServerError: Any other non-2xx status or an unparsable body.
            TransportError: Network failure or timeout.
        """
        response = await self._http.request(
            "POST",
            GET_ORDERS_PATH,
            headers=self._headers(authorizationcode=token, securitykey=security_key),
            json={},
            timeout=self._request_timeout,
        )
        if response.status_code == httpx.codes.UNAUTHORIZED:
            raise PollUnauthorizedError()
        if not response.is_success:
            raise PollServerError(response.status_code)

        body = _json_or_none(response)
        if body is None:
            raise PollServerError(response.status_code)
        if not isinstance(body, list):
            logger.warning("GetOrders returned %s instead of an array — treating as empty.",
                           type(body).__name__)
            return []

        orders: list[Order] = []
        for raw in body:
            try:
                orders.append(Order.model_validate(raw))
            except ValidationError:
                logger.warning("Skipping malformed order record: %.200r", raw)
        return orders

    async def ping(self, url: str, *, timeout: float | None = None) -> int:
        """POST an empty keep-alive signal to *url* and return the status code.

        Raises:
            TransportError: Network failure or timeout.
        """
        response = await self._http.request("POST", url, timeout=timeout)
        return response.status_code


def _json_or_none(response: httpx.Response) -> Any | None:
    try:
        return response.json()
    except ValueError:
        logger.debug("Response body is not JSON: %.200r", response.text)
        return None
