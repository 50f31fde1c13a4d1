"""Authentication session ownership: credentials, token, and its lifecycle.

:class:`SessionManager` is the only component allowed to mutate the
:class:`~orderwatch.core.models.Session` or the credentials.  Everyone else
reads :attr:`SessionManager.token` / :attr:`SessionManager.state` or asks
for a fresh token through :meth:`verify` / :meth:`refresh`.

State machine
~~~~~~~~~~~~~
::

    UNAUTHENTICATED ──login ok──▶ VALID ◀──login ok── INVALID
                                    │                    ▲
                                    └──verify fail / 401─┘
    (restored from store) UNVERIFIED ──verify ok──▶ VALID

``INVALID`` is also entered when login exhausts its retry budget.

Fail-closed
~~~~~~~~~~~
Every failed login deletes the persisted token, so the store never holds a
token whose login failed.

Single-flight
~~~~~~~~~~~~~
Logins are serialised with an :class:`asyncio.Lock`.  A caller that queued
behind a login which succeeded reuses that token instead of hitting the
Authenticate endpoint again; the first success wins.
The same holds for a :meth:`verify` whose token was replaced while its
check was in flight: the stale token is only invalidated under the lock.

Refused credentials
~~~~~~~~~~~~~~~~~~~
Once Authenticate answers 4xx, every further :meth:`login` fails at once
without a request until :meth:`set_credentials` supplies new credentials.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from orderwatch.api.backend import OrderBackend
from orderwatch.core import events
from orderwatch.core.exceptions import (
    AuthRejectedError,
    MissingCredentialsError,
    StorageError,
    TransportError,
)
from orderwatch.core.models import Credentials, RestaurantInfo, Session, SessionState
from orderwatch.core.retry import RetryPolicy
from orderwatch.storage.store import (
    RESTAURANT_INFO_KEY,
    TOKEN_KEY,
    TOKEN_OBTAINED_AT_KEY,
    PersistentStore,
)

__all__ = ["SessionManager"]

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionManager:
    """Owns credentials, security key and the current token.

    Args:
        backend: Wire client used for Authenticate / Verify.
        store: Durable store where the token and its metadata live.
        retry_policy: Policy wrapping Authenticate.  Only transient errors
            should be listed in its ``retry_on``; rejections are never
            retried.
        clock: Returns "now" as an aware datetime.  Override in tests.
    """

    def __init__(
        self,
        backend: OrderBackend,
        store: PersistentStore,
        retry_policy: RetryPolicy,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._store = store
        self._retry = retry_policy
        self._clock = clock
        self._session = Session()
        self._credentials: Credentials | None = None
        self._security_key: str = ""
        self._restaurant: RestaurantInfo | None = None
        self._login_lock = asyncio.Lock()
        self._login_generation = 0
        self._refused: AuthRejectedError | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def token(self) -> str | None:
        return self._session.token

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def token_obtained_at(self) -> datetime | None:
        return self._session.token_obtained_at

    @property
    def security_key(self) -> str:
        return self._security_key

    @property
    def restaurant(self) -> RestaurantInfo | None:
        return self._restaurant

    @property
    def has_credentials(self) -> bool:
        return self._credentials is not None and bool(self._security_key)

    @property
    def credentials_refused(self) -> bool:
        """``True`` once the backend refused the current credentials."""
        return self._refused is not None

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_credentials(self, credentials: Credentials, security_key: str) -> None:
        """Replace the credentials and security key held in memory."""
        self._credentials = credentials
        self._security_key = security_key
        self._refused = None
        logger.info("Credentials set for user %r.", credentials.username)

    async def restore(self) -> SessionState:
        """Load a token persisted by a previous process generation.

        A token without its ``obtained-at`` companion (the process died
        between the two writes) is still loaded; it is ``UNVERIFIED`` like
        any restored token, and the next :meth:`verify` settles it.

        Returns:
            The resulting :class:`SessionState`.
        """
        raw_token = await self._store.get(TOKEN_KEY)
        if not raw_token:
            logger.debug("No persisted token to restore.")
            return self._session.state

        raw_at = await self._store.get(TOKEN_OBTAINED_AT_KEY)
        obtained_at: datetime | None = None
        if raw_at:
            try:
                obtained_at = datetime.fromisoformat(raw_at.decode())
            except ValueError:
                logger.warning("Ignoring unparsable token timestamp %r.", raw_at)

        raw_info = await self._store.get(RESTAURANT_INFO_KEY)
        if raw_info:
            try:
                self._restaurant = RestaurantInfo.model_validate(json.loads(raw_info))
            except (ValueError, ValidationError):
                logger.warning("Ignoring unparsable restaurant info in store.")

        self._session.token = raw_token.decode()
        self._session.token_obtained_at = obtained_at
        self._session.state = SessionState.UNVERIFIED
        logger.info(
            "Restored persisted token (obtained_at=%s); awaiting verification.",
            obtained_at.isoformat() if obtained_at else "unknown",
        )
        return self._session.state

    async def login(self) -> str:
        """Authenticate with the stored credentials and persist the token.

        Returns:
            The new token.

        Raises:
            MissingCredentialsError: Credentials or key not supplied.
            AuthRejectedError: The backend refused the credentials, now or
                on an earlier attempt with the same credentials.
            TransportError: Network failures outlasted the retry budget.
        """
        return await self._single_flight(self._login_generation)

    async def _single_flight(self, generation: int, invalidate_reason: str | None = None) -> str:
        async with self._login_lock:
            if (
                self._login_generation != generation
                and self._session.state is SessionState.VALID
                and self._session.token
            ):
                logger.debug("Reusing token from a login that completed while waiting.")
                return self._session.token
            if invalidate_reason is not None:
                await self.invalidate(invalidate_reason)
            return await self._login_locked()

    async def _login_locked(self) -> str:
        if self._refused is not None:
            logger.debug("Not retrying refused credentials: %s", self._refused)
            await self._drop_token()
            raise AuthRejectedError(self._refused.status_code, "credentials already refused")
        credentials = self._credentials
        security_key = self._security_key
        try:
            if credentials is None or not security_key:
                raise MissingCredentialsError()
            result = await self._retry.execute(
                lambda: self._backend.authenticate(credentials, security_key)
            )
            obtained_at = self._clock()
            await self._store.put(TOKEN_KEY, result.token.encode())
            await self._store.put(TOKEN_OBTAINED_AT_KEY, obtained_at.isoformat().encode())
            await self._store.put(
                RESTAURANT_INFO_KEY,
                result.restaurant.model_dump_json(by_alias=True).encode(),
            )
        except Exception as exc:
            logger.warning(
                "Login failed: %s",
                exc,
                extra={"event": events.LOGIN_FAILED},
            )
            if isinstance(exc, AuthRejectedError) and exc.credentials_refused:
                self._refused = exc
            await self._drop_token()
            raise

        self._session.token = result.token
        self._session.token_obtained_at = obtained_at
        self._session.state = SessionState.VALID
        self._restaurant = result.restaurant
        self._login_generation += 1
        logger.info(
            "Login succeeded (restaurant=%r).",
            result.restaurant_name,
            extra={"event": events.LOGIN_OK},
        )
        return result.token

    async def verify(self) -> str:
        """Return a token believed valid as of now.

        With no token (in memory or persisted) this is a plain
        :meth:`login`.  Otherwise the token is checked against the Verify
        endpoint; any failure, transport errors included, invalidates it
        and falls through to a fresh login.  When a concurrent login
        replaced the token while the check was in flight, that token is
        returned instead.

        Raises:
            AuthError: If the fallback login fails.
            TransportError: If the fallback login cannot reach the backend.
        """
        generation = self._login_generation
        token = self._session.token
        if token is None:
            raw = await self._store.get(TOKEN_KEY)
            token = raw.decode() if raw else None
        if token is None:
            return await self._single_flight(generation)

        try:
            ok = await self._backend.verify(token)
            reason = "rejected by backend"
        except TransportError as exc:
            ok = False
            reason = str(exc)

        if ok:
            self._session.token = token
            self._session.state = SessionState.VALID
            logger.debug("Token verified.", extra={"event": events.VERIFY_OK})
            return token

        logger.info(
            "Token verification failed (%s) — logging in again.",
            reason,
            extra={"event": events.VERIFY_FAILED},
        )
        return await self._single_flight(generation, f"verify failed: {reason}")

    async def refresh(self) -> str:
        """Force a new login regardless of the current state."""
        return await self.login()

    async def invalidate(self, reason: str) -> None:
        """Drop the token from memory and the store; state becomes INVALID."""
        logger.info(
            "Invalidating session token: %s",
            reason,
            extra={"event": events.TOKEN_INVALIDATED},
        )
        await self._drop_token()

    async def _drop_token(self) -> None:
        self._session.token = None
        self._session.token_obtained_at = None
        self._session.state = SessionState.INVALID
        try:
            await self._store.delete(TOKEN_KEY)
            await self._store.delete(TOKEN_OBTAINED_AT_KEY)
        except StorageError:
            logger.error("Failed to delete persisted token.", exc_info=True)
