"""Unit tests for backoff policies and retry_notify."""

import asyncio

import pytest

from reconkit.backoff import BackoffPolicy, retry_notify, sleep
from reconkit.errors import CanceledError, ConfigurationError


def fast_policy(**kwargs) -> BackoffPolicy:
    kwargs.setdefault("max_attempts", 3)
    kwargs.setdefault("initial_interval", 0.0)
    kwargs.setdefault("max_interval", 0.0)
    return BackoffPolicy(**kwargs)


class Flaky:
    """Coroutine callable failing a number of times before succeeding."""

    def __init__(self, failures: int, error: Exception = None):
        self.failures = failures
        self.error = error or RuntimeError("flaky")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestBackoffPolicy:
    """Tests for BackoffPolicy construction."""

    def test_defaults(self):
        policy = BackoffPolicy()
        assert policy.max_attempts == 3
        assert policy.max_elapsed is None

    def test_requires_a_bound(self):
        with pytest.raises(ConfigurationError):
            BackoffPolicy(max_attempts=None, max_elapsed=None)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ConfigurationError):
            BackoffPolicy(max_attempts=0)

    def test_elapsed_only(self):
        policy = BackoffPolicy(max_attempts=None, max_elapsed=5.0)
        assert policy.stop() is not None

    def test_no_retry(self):
        assert BackoffPolicy.no_retry().max_attempts == 1


@pytest.mark.asyncio
class TestRetryNotify:
    """Tests for retry_notify."""

    async def test_success_first_attempt(self):
        op = Flaky(0)
        assert await retry_notify(op, fast_policy()) == "ok"
        assert op.calls == 1

    async def test_retries_until_success(self):
        op = Flaky(2)
        notified = []
        result = await retry_notify(
            op, fast_policy(), notify=lambda e, w: notified.append(str(e))
        )
        assert result == "ok"
        assert op.calls == 3
        assert notified == ["flaky", "flaky"]

    async def test_gives_up_with_last_error(self):
        op = Flaky(10)
        with pytest.raises(RuntimeError, match="flaky"):
            await retry_notify(op, fast_policy(max_attempts=3))
        assert op.calls == 3

    async def test_retry_on_predicate(self):
        op = Flaky(10, error=ValueError("permanent"))
        with pytest.raises(ValueError):
            await retry_notify(
                op,
                fast_policy(),
                retry_on=lambda e: not isinstance(e, ValueError),
            )
        assert op.calls == 1

    async def test_canceled_before_first_attempt(self):
        cancel = asyncio.Event()
        cancel.set()
        op = Flaky(0)
        with pytest.raises(CanceledError):
            await retry_notify(op, fast_policy(), cancel=cancel)
        assert op.calls == 0

    async def test_cancel_interrupts_wait(self):
        cancel = asyncio.Event()
        op = Flaky(10)
        policy = BackoffPolicy(max_attempts=5, initial_interval=30.0, max_interval=30.0)

        def on_retry(err, wait):
            cancel.set()

        with pytest.raises(CanceledError):
            await asyncio.wait_for(
                retry_notify(op, policy, notify=on_retry, cancel=cancel), timeout=2.0
            )
        assert op.calls == 1

    async def test_max_elapsed_bound(self):
        op = Flaky(1000)
        policy = BackoffPolicy(
            max_attempts=None, max_elapsed=0.2, initial_interval=0.05, max_interval=0.05
        )
        with pytest.raises(RuntimeError):
            await retry_notify(op, policy)
        assert 1 < op.calls < 20


@pytest.mark.asyncio
class TestSleep:
    """Tests for the cancellable sleep."""

    async def test_sleep_without_cancel(self):
        assert await sleep(0.01) is False

    async def test_sleep_times_out(self):
        assert await sleep(0.01, asyncio.Event()) is False

    async def test_sleep_interrupted(self):
        cancel = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, cancel.set)
        assert await sleep(10, cancel) is True

    async def test_sleep_already_canceled(self):
        cancel = asyncio.Event()
        cancel.set()
        assert await sleep(10, cancel) is True
