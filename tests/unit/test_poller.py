"""Unit tests for :class:`~orderwatch.orchestrator.poller.OrderPoller`.

The session manager and backend are mocks; liveness signals use a real
in-memory store so the ``poll`` signal can be read back.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderwatch.api.backend import OrderBackend
from orderwatch.core.exceptions import (
    PollServerError,
    PollUnauthorizedError,
    TelegramError,
    TransportError,
)
from orderwatch.core.logging_config import CHECK_ID_CTX
from orderwatch.core.models import Order, PollCycleState
from orderwatch.core.retry import RetryPolicy
from orderwatch.orchestrator.liveness import LivenessSignals
from orderwatch.orchestrator.poller import NEW_ORDER_TAG, OrderPoller, PollResult
from orderwatch.session.manager import SessionManager
from orderwatch.storage.store import SqliteStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _orders(*statuses: int) -> list[Order]:
    return [Order.model_validate({"Status": s}) for s in statuses]


def _make_session(token: str | None = "T1") -> MagicMock:
    session = MagicMock(spec=SessionManager)
    session.token = token
    session.security_key = "K"
    session.verify = AsyncMock(return_value="T1")
    session.refresh = AsyncMock(return_value="T2")
    session.invalidate = AsyncMock()
    return session


def _make_poller(
    *,
    get_orders: object,
    state: PollCycleState | None = None,
    signals: LivenessSignals | None = None,
    dispatcher: MagicMock | None = None,
    clock: object = None,
) -> tuple[OrderPoller, MagicMock, MagicMock]:
    backend = MagicMock(spec=OrderBackend)
    backend.get_orders = AsyncMock(side_effect=get_orders)
    if dispatcher is None:
        dispatcher = MagicMock()
        dispatcher.notify = AsyncMock(return_value=True)
    kwargs = {"clock": clock} if clock is not None else {}
    poller = OrderPoller(
        backend,
        dispatcher,
        state or PollCycleState(),
        RetryPolicy(3, 0.0, jitter_ratio=0, retry_on=(TransportError, PollServerError), sleep=AsyncMock()),
        signals=signals,
        title="New order",
        body_template="{count} pending",
        order_list_url="https://portal.example.com/orderlist",
        **kwargs,
    )
    return poller, backend, dispatcher


# ---------------------------------------------------------------------------
# Pending detection & notification
# ---------------------------------------------------------------------------


class TestPendingNotification:
    async def test_two_pending_orders_produce_one_notification(self) -> None:
        poller, _, dispatcher = _make_poller(get_orders=[_orders(0, 1, 0)])

        result = await poller.check_for_new_orders(_make_session())

        assert result == PollResult(total=3, pending=2, notified=True)
        dispatcher.notify.assert_awaited_once_with(
            "New order",
            "2 pending",
            NEW_ORDER_TAG,
            {"renotify": True, "url": "https://portal.example.com/orderlist"},
        )

    async def test_empty_list_notifies_nothing(self) -> None:
        poller, _, dispatcher = _make_poller(get_orders=[[]])

        result = await poller.check_for_new_orders(_make_session())

        assert result == PollResult(total=0, pending=0)
        dispatcher.notify.assert_not_awaited()

    async def test_no_pending_notifies_nothing(self) -> None:
        poller, _, dispatcher = _make_poller(get_orders=[_orders(1, 2)])
        await poller.check_for_new_orders(_make_session())
        dispatcher.notify.assert_not_awaited()

    async def test_custom_pending_predicate(self) -> None:
        backend = MagicMock(spec=OrderBackend)
        backend.get_orders = AsyncMock(return_value=_orders(0, 1, 2))
        dispatcher = MagicMock()
        dispatcher.notify = AsyncMock(return_value=True)
        poller = OrderPoller(
            backend,
            dispatcher,
            PollCycleState(),
            RetryPolicy(sleep=AsyncMock()),
            is_pending=lambda order: order.status == 2,
        )

        result = await poller.check_for_new_orders(_make_session())
        assert result.pending == 1

    async def test_notification_failure_does_not_fail_the_check(self) -> None:
        dispatcher = MagicMock()
        dispatcher.notify = AsyncMock(side_effect=TelegramError("down", status_code=500))
        state = PollCycleState(retry_count=2)
        poller, _, _ = _make_poller(get_orders=[_orders(0)], dispatcher=dispatcher, state=state)
        session = _make_session()

        result = await poller.check_for_new_orders(session)

        assert result.pending == 1
        assert result.notified is False
        assert state.retry_count == 0
        session.invalidate.assert_not_awaited()


# ---------------------------------------------------------------------------
# Success bookkeeping
# ---------------------------------------------------------------------------


class TestSuccessBookkeeping:
    async def test_success_resets_retry_count_and_records_signal(
        self, store: SqliteStore, clock
    ) -> None:
        state = PollCycleState(retry_count=4)
        signals = LivenessSignals(store, clock=clock)
        poller, _, _ = _make_poller(get_orders=[[]], state=state, signals=signals, clock=clock)

        await poller.check_for_new_orders(_make_session())

        assert state.retry_count == 0
        assert state.last_success_at == clock.now
        assert await signals.last("poll") == clock.now
        assert await signals.last() == clock.now

    async def test_check_id_bound_during_fetch_only(self) -> None:
        seen: list[str] = []

        async def _get_orders(*_args: object) -> list[Order]:
            seen.append(CHECK_ID_CTX.get())
            return []

        poller, _, _ = _make_poller(get_orders=_get_orders)
        await poller.check_for_new_orders(_make_session())

        assert len(seen) == 1 and seen[0] != "-"
        assert CHECK_ID_CTX.get() == "-"

    async def test_missing_token_asks_session_to_verify(self) -> None:
        poller, backend, _ = _make_poller(get_orders=[[]])
        session = _make_session(token=None)

        await poller.check_for_new_orders(session)

        session.verify.assert_awaited_once()
        backend.get_orders.assert_awaited_once_with("T1", "K")


# ---------------------------------------------------------------------------
# Busy guard
# ---------------------------------------------------------------------------


class TestBusyGuard:
    async def test_overlapping_call_is_skipped(self) -> None:
        release = asyncio.Event()

        async def _slow_get_orders(*_args: object) -> list[Order]:
            await release.wait()
            return _orders(0)

        poller, backend, dispatcher = _make_poller(get_orders=_slow_get_orders)
        session = _make_session()

        first = asyncio.create_task(poller.check_for_new_orders(session))
        await asyncio.sleep(0)
        assert poller.state.busy is True

        second = await poller.check_for_new_orders(session)
        assert second == PollResult(skipped=True)

        release.set()
        assert (await first).pending == 1
        assert backend.get_orders.await_count == 1
        dispatcher.notify.assert_awaited_once()
        assert poller.state.busy is False

    async def test_busy_cleared_after_failure(self) -> None:
        poller, _, _ = _make_poller(get_orders=PollUnauthorizedError())
        with pytest.raises(PollUnauthorizedError):
            await poller.check_for_new_orders(_make_session())
        assert poller.state.busy is False

    async def test_busy_cleared_after_cancellation(self) -> None:
        async def _hang(*_args: object) -> list[Order]:
            await asyncio.Event().wait()
            return []

        poller, _, _ = _make_poller(get_orders=_hang)
        session = _make_session()
        task = asyncio.create_task(poller.check_for_new_orders(session))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert poller.state.busy is False
        session.invalidate.assert_not_awaited()


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestFailureHandling:
    async def test_401_refreshes_once_and_retries(self) -> None:
        poller, backend, dispatcher = _make_poller(
            get_orders=[PollUnauthorizedError(), _orders(0)]
        )
        session = _make_session()

        result = await poller.check_for_new_orders(session)

        assert result.pending == 1
        session.refresh.assert_awaited_once()
        assert [c.args for c in backend.get_orders.await_args_list] == [("T1", "K"), ("T2", "K")]
        dispatcher.notify.assert_awaited_once()

    async def test_second_401_invalidates_and_raises(self) -> None:
        poller, backend, _ = _make_poller(
            get_orders=[PollUnauthorizedError(), PollUnauthorizedError()]
        )
        session = _make_session()

        with pytest.raises(PollUnauthorizedError):
            await poller.check_for_new_orders(session)

        session.refresh.assert_awaited_once()
        assert backend.get_orders.await_count == 2
        session.invalidate.assert_awaited_once()

    async def test_server_errors_retried_by_policy(self) -> None:
        poller, backend, _ = _make_poller(
            get_orders=[PollServerError(502), PollServerError(503), _orders()]
        )
        result = await poller.check_for_new_orders(_make_session())
        assert result.total == 0
        assert backend.get_orders.await_count == 3

    async def test_exhausted_transport_errors_fail_closed(self) -> None:
        err = TransportError("POST", "/api/Orders/GetOrders", "timeout")
        state = PollCycleState(retry_count=1)
        poller, backend, dispatcher = _make_poller(get_orders=[err, err, err], state=state)
        session = _make_session()

        with pytest.raises(TransportError):
            await poller.check_for_new_orders(session)

        assert backend.get_orders.await_count == 3
        session.invalidate.assert_awaited_once()
        dispatcher.notify.assert_not_awaited()
        assert state.retry_count == 1
        assert state.last_success_at is None
