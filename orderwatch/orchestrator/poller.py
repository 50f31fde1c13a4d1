"""One order check: fetch the order list, count pending orders, notify once.

:class:`OrderPoller` performs a single check per call of
:meth:`OrderPoller.check_for_new_orders`.  It does not schedule itself;
the orchestrator's cycle task and :meth:`Orchestrator.force_check` do.

A check is non-reentrant: while one is in flight
:attr:`PollCycleState.busy` is set and a concurrent call returns a skipped
:class:`PollResult` without touching the network.  The flag is cleared on
every exit path, cancellation included.

Error handling
~~~~~~~~~~~~~~
* HTTP 401 from GetOrders → exactly one :meth:`SessionManager.refresh`
  and one more fetch with the new token.
* Transient failures (transport / 5xx) → the poller's :class:`RetryPolicy`.
* Anything left over → the session token is invalidated (fail-closed) and
  the error propagates to the caller, which owns the backoff decision.

Typical usage::

    poller = OrderPoller(backend, dispatcher, state, retry_policy)
    result = await poller.check_for_new_orders(session)
    if result.pending:
        ...
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final

from orderwatch.api.backend import OrderBackend
from orderwatch.core import events
from orderwatch.core.exceptions import NotificationError, PollUnauthorizedError, StorageError
from orderwatch.core.logging_config import CHECK_ID_CTX
from orderwatch.core.models import Order, PollCycleState
from orderwatch.core.retry import RetryPolicy
from orderwatch.notifiers.notifier import NotificationDispatcher
from orderwatch.orchestrator.liveness import LivenessSignals
from orderwatch.session.manager import SessionManager

__all__ = ["PollResult", "OrderPoller", "NEW_ORDER_TAG", "POLL_SIGNAL"]

logger = logging.getLogger(__name__)

#: Notification tag shared by every new-order alert.
NEW_ORDER_TAG: Final[str] = "new-order"

#: Liveness-signal name recorded after each successful check.
POLL_SIGNAL: Final[str] = "poll"

_DEFAULT_TITLE: Final[str] = "New order"
_DEFAULT_BODY: Final[str] = "{count} new order(s) awaiting confirmation"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _is_pending(order: Order) -> bool:
    return order.is_pending


@dataclass(frozen=True)
class PollResult:
    """Outcome of one :meth:`OrderPoller.check_for_new_orders` call.

    Attributes:
        skipped: ``True`` if another check was already in flight.
        total: Orders returned by the backend.
        pending: Orders satisfying the pending predicate.
        notified: Whether a notification was delivered for this check.
    """

    skipped: bool = False
    total: int = 0
    pending: int = 0
    notified: bool = False


class OrderPoller:
    """Performs single order checks against the backend.

    Args:
        backend: Wire client for GetOrders.
        dispatcher: Where new-order notifications go.
        state: Shared :class:`PollCycleState`; the orchestrator reads
            ``retry_count`` from the same object.
        retry_policy: Transient-failure policy for GetOrders.
        signals: Optional liveness recorder; ``"poll"`` is recorded on
            success.
        title: Notification title.
        body_template: Notification body; ``{count}`` is substituted.
        order_list_url: Link attached to the notification, if any.
        is_pending: Predicate selecting pending orders.
        clock: Aware-datetime "now" provider.
    """

    def __init__(
        self,
        backend: OrderBackend,
        dispatcher: NotificationDispatcher,
        state: PollCycleState,
        retry_policy: RetryPolicy,
        *,
        signals: LivenessSignals | None = None,
        title: str = _DEFAULT_TITLE,
        body_template: str = _DEFAULT_BODY,
        order_list_url: str = "",
        is_pending: Callable[[Order], bool] = _is_pending,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._backend = backend
        self._dispatcher = dispatcher
        self._state = state
        self._retry = retry_policy
        self._signals = signals
        self._title = title
        self._body_template = body_template
        self._order_list_url = order_list_url
        self._is_pending = is_pending
        self._clock = clock

    @property
    def state(self) -> PollCycleState:
        return self._state

    async def check_for_new_orders(self, session: SessionManager) -> PollResult:
        """Run one order check.

        Returns:
            A :class:`PollResult`; ``skipped=True`` when a check was already
            running.

        Raises:
            OrderwatchError: After the session token has been invalidated,
                when the check could not complete.
        """
        if self._state.busy:
            logger.info(
                "Order check already in flight — skipping.",
                extra={"event": events.CHECK_SKIPPED_BUSY},
            )
            return PollResult(skipped=True)

        self._state.busy = True
        ctx_token = CHECK_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            return await self._check(session)
        finally:
            self._state.busy = False
            CHECK_ID_CTX.reset(ctx_token)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check(self, session: SessionManager) -> PollResult:
        logger.debug("Order check started.", extra={"event": events.CHECK_START})
        try:
            orders = await self._fetch_with_refresh(session)
        except Exception as exc:
            logger.warning(
                "Order check failed: %s",
                exc,
                extra={"event": events.CHECK_FAILED},
            )
            await session.invalidate(f"order check failed: {type(exc).__name__}")
            raise

        pending = sum(1 for order in orders if self._is_pending(order))
        notified = False
        if pending:
            logger.info(
                "%d pending order(s) of %d.",
                pending,
                len(orders),
                extra={"event": events.ORDERS_PENDING},
            )
            notified = await self._notify(pending)

        self._state.retry_count = 0
        self._state.last_success_at = self._clock()
        if self._signals is not None:
            try:
                await self._signals.record(POLL_SIGNAL)
            except StorageError:
                logger.warning("Could not record poll liveness signal.", exc_info=True)

        logger.info(
            "Order check complete: total=%d pending=%d",
            len(orders),
            pending,
            extra={"event": events.CHECK_OK},
        )
        return PollResult(total=len(orders), pending=pending, notified=notified)

    async def _fetch_with_refresh(self, session: SessionManager) -> list[Order]:
        token = session.token or await session.verify()
        try:
            return await self._fetch(token, session.security_key)
        except PollUnauthorizedError:
            logger.info("GetOrders answered 401 — refreshing token once.")
            token = await session.refresh()
            return await self._fetch(token, session.security_key)

    async def _fetch(self, token: str, security_key: str) -> list[Order]:
        return await self._retry.execute(lambda: self._backend.get_orders(token, security_key))

    async def _notify(self, pending: int) -> bool:
        options: dict[str, object] = {"renotify": True}
        if self._order_list_url:
            options["url"] = self._order_list_url
        try:
            return await self._dispatcher.notify(
                self._title,
                self._body_template.format(count=pending),
                NEW_ORDER_TAG,
                options,
            )
        except NotificationError:
            # Delivery failure does not fail the check or touch the session.
            logger.error("New-order notification was not delivered.", exc_info=True)
            return False
