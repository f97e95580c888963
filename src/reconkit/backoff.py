"""
Backoff - Retry policies for resource operations, watches and CRD polling.

A ``BackoffPolicy`` is an immutable description. Every call to
``retry_notify`` builds a fresh ``tenacity.AsyncRetrying`` from it, so the
stateful part of the policy (attempt count, elapsed time) never leaks between
operations.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from reconkit.errors import CanceledError, ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Notifier = Callable[[BaseException, float], None]


async def sleep(seconds: float, cancel: Optional[asyncio.Event] = None) -> bool:
    """
    Sleep for the given duration unless the cancel token is set earlier.

    Returns:
        True if the sleep was interrupted by the cancel token.
    """
    if cancel is None:
        await asyncio.sleep(seconds)
        return False
    if cancel.is_set():
        return True
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff bounded by a number of attempts and/or elapsed time.

    The wait before retry n is ``initial_interval * multiplier ** (n - 1)``,
    capped at ``max_interval``.
    """

    max_attempts: Optional[int] = 3
    max_elapsed: Optional[float] = None
    initial_interval: float = 1.0
    max_interval: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts is None and self.max_elapsed is None:
            raise ConfigurationError(
                "backoff policy needs max_attempts or max_elapsed"
            )
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.max_elapsed is not None and self.max_elapsed < 0:
            raise ConfigurationError("max_elapsed must not be negative")

    @classmethod
    def no_retry(cls) -> "BackoffPolicy":
        """A policy which gives up after the first failure."""
        return cls(max_attempts=1, initial_interval=0.0)

    def stop(self):
        stops = []
        if self.max_attempts is not None:
            stops.append(stop_after_attempt(self.max_attempts))
        if self.max_elapsed is not None:
            stops.append(stop_after_delay(self.max_elapsed))
        condition = stops[0]
        for other in stops[1:]:
            condition = condition | other
        return condition

    def wait(self):
        return wait_exponential(
            multiplier=self.initial_interval,
            exp_base=self.multiplier,
            max=self.max_interval,
        )


async def retry_notify(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    notify: Optional[Notifier] = None,
    cancel: Optional[asyncio.Event] = None,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """
    Run ``operation`` until it succeeds or the policy gives up.

    Args:
        operation: Zero-argument coroutine function to run.
        policy: The backoff policy bounding the retries.
        notify: Called with the error and the upcoming wait before each retry.
        cancel: Cancel token. Once set no further attempt is made.
        retry_on: Predicate deciding whether an error is retried. Errors for
            which it returns False are raised immediately. Defaults to all.

    Returns:
        The result of the first successful attempt.

    Raises:
        CanceledError: If the cancel token was set before an attempt.
        Exception: The last error once the policy stops.
    """

    def should_retry(err: BaseException) -> bool:
        if isinstance(err, CanceledError):
            return False
        return retry_on is None or retry_on(err)

    def before_sleep(state: RetryCallState) -> None:
        if notify is None or state.outcome is None:
            return
        wait = state.next_action.sleep if state.next_action else 0.0
        notify(state.outcome.exception(), wait)

    async def cancellable_sleep(seconds: float) -> None:
        await sleep(seconds, cancel)

    retrying = AsyncRetrying(
        sleep=cancellable_sleep,
        stop=policy.stop(),
        wait=policy.wait(),
        retry=retry_if_exception(should_retry),
        before_sleep=before_sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            if cancel is not None and cancel.is_set():
                raise CanceledError("backoff canceled")
            return await operation()

    # Unreachable: tenacity either returns from the block above or re-raises.
    raise RuntimeError("retry loop exited without result")
