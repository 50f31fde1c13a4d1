"""Bounded exponential-backoff retry policy.

:class:`RetryPolicy` wraps one fallible coroutine factory and re-invokes it
until it succeeds or the attempt budget is spent:

* attempt ``i`` (0-based) fails with a *retryable* exception → sleep
  ``base_delay * 2**i`` plus uniform jitter of up to ``jitter_ratio`` of
  that delay, then retry;
* a non-retryable exception propagates immediately, untouched;
* after the last attempt the final exception propagates.

Retries are driven by :class:`tenacity.AsyncRetrying`, the same engine the
Telegram client uses.

Typical usage::

    from orderwatch.core.retry import RetryPolicy

    policy = RetryPolicy(max_attempts=3, base_delay=5.0)
    token = await policy.execute(lambda: backend.authenticate(creds, key))
"""

from __future__ import annotations

import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, Final, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from orderwatch.core.exceptions import TransportError

__all__ = ["RetryPolicy", "backoff_delay"]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEFAULT_MAX_ATTEMPTS: Final[int] = 3
_DEFAULT_BASE_DELAY: Final[float] = 5.0
_DEFAULT_JITTER_RATIO: Final[float] = 0.1


def backoff_delay(attempt_index: int, base_delay: float) -> float:
    """Return the un-jittered delay after the failed attempt *attempt_index*.

    >>> [backoff_delay(i, 5.0) for i in range(3)]
    [5.0, 10.0, 20.0]
    """
    return base_delay * (2.0**attempt_index)


class RetryPolicy:
    """Retry a coroutine factory with exponential backoff.

    Args:
        max_attempts: Total attempts including the first (≥ 1).
        base_delay: Delay in seconds after the first failure.
        jitter_ratio: Maximum extra random delay as a fraction of the
            computed delay.  ``0`` disables jitter.
        retry_on: Exception types considered transient.
        delay_hint: Optional callable returning a server-requested delay for
            a failed attempt's exception (e.g. HTTP 429 ``retry_after``);
            ``None`` or ``0`` falls back to the computed backoff.
        sleep: Optional awaitable sleep override (tests inject a recorder).

    Raises:
        ValueError: If ``max_attempts`` < 1 or a delay is negative.
    """

    def __init__(
        self,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        base_delay: float = _DEFAULT_BASE_DELAY,
        *,
        jitter_ratio: float = _DEFAULT_JITTER_RATIO,
        retry_on: tuple[type[BaseException], ...] = (TransportError,),
        delay_hint: Callable[[BaseException], float | None] | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")
        if base_delay < 0 or jitter_ratio < 0:
            raise ValueError("base_delay and jitter_ratio must be ≥ 0.")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.jitter_ratio = jitter_ratio
        self.retry_on = retry_on
        self._delay_hint = delay_hint
        self._sleep = sleep

    def _wait(self, base_delay: float) -> Callable[[RetryCallState], float]:
        def _compute(retry_state: RetryCallState) -> float:
            if self._delay_hint is not None and retry_state.outcome is not None:
                exc = retry_state.outcome.exception()
                hinted = self._delay_hint(exc) if exc is not None else None
                if hinted:
                    return hinted
            delay = backoff_delay(retry_state.attempt_number - 1, base_delay)
            if self.jitter_ratio:
                delay += random.uniform(0.0, delay * self.jitter_ratio)
            return delay

        return _compute

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> T:
        """Run *operation* under this policy and return its result.

        Args:
            operation: Zero-argument callable returning a fresh awaitable on
                every call.
            max_attempts: Per-call override of :attr:`max_attempts`.
            base_delay: Per-call override of :attr:`base_delay`.

        Returns:
            Whatever *operation* returns on its first successful attempt.

        Raises:
            Exception: The last exception raised by *operation* once the
                budget is spent, or the first non-retryable one.
        """
        attempts = max_attempts or self.max_attempts
        delay = self.base_delay if base_delay is None else base_delay

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "Attempt %d/%d failed (%s: %s) — retrying in %.1f s…",
                rs.attempt_number,
                attempts,
                type(exc).__name__ if exc else "?",
                exc,
                rs.upcoming_sleep,
            )

        kwargs: dict[str, Any] = {}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep

        async for attempt in AsyncRetrying(
            wait=self._wait(delay),
            stop=stop_after_attempt(attempts),
            retry=retry_if_exception_type(self.retry_on),
            reraise=True,
            before_sleep=_before_sleep,
            **kwargs,
        ):
            with attempt:
                result = await operation()
        return result
