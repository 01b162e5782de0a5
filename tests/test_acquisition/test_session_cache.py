"""Tests for the session cache and single-flight acquisition."""

import asyncio
import gc
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from filings.acquisition.errors import SessionUnavailableError
from filings.acquisition.fingerprint import FingerprintGenerator
from filings.acquisition.retry import RetryOrchestrator
from filings.acquisition.session_cache import SessionCache
from filings.models.config import RetryConfig
from filings.models.session import Session

START = datetime(2025, 6, 20, 6, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_session(acquired_at: datetime = START, ttl_seconds: int = 300) -> Session:
    return Session(
        cookie_jar=(("nsit", "abc"), ("nseappid", "xyz")),
        fingerprint=FingerprintGenerator(seed=1).generate(),
        acquired_at=acquired_at,
        cache_expires_at=acquired_at + timedelta(seconds=ttl_seconds),
    )


def make_acquirer(*results, delay: float = 0.0) -> MagicMock:
    """Acquirer whose acquire() yields the given results in order."""
    remaining = list(results)

    async def acquire():
        if delay:
            await asyncio.sleep(delay)
        result = remaining.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    acquirer = MagicMock()
    acquirer.acquire = AsyncMock(side_effect=acquire)
    return acquirer


class TestSessionCache:
    """Tests for SessionCache."""

    @pytest.mark.asyncio
    async def test_cold_cache_acquires(self):
        session = make_session()
        cache = SessionCache(make_acquirer(session), clock=FakeClock())
        assert cache.current is None
        assert await cache.get_or_acquire() is session
        assert cache.current is session

    @pytest.mark.asyncio
    async def test_warm_cache_reuses_session(self):
        acquirer = make_acquirer(make_session())
        cache = SessionCache(acquirer, clock=FakeClock())

        first = await cache.get_or_acquire()
        second = await cache.get_or_acquire()

        assert first is second
        assert acquirer.acquire.await_count == 1
        assert cache.stats.hits == 1
        assert cache.stats.misses == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_acquisition(self):
        session = make_session()
        acquirer = make_acquirer(session, delay=0.05)
        cache = SessionCache(acquirer, clock=FakeClock())

        results = await asyncio.gather(*(cache.get_or_acquire() for _ in range(10)))

        assert acquirer.acquire.await_count == 1
        assert all(result is session for result in results)
        assert cache.stats.acquisitions == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self):
        error = SessionUnavailableError("browser crashed")
        acquirer = make_acquirer(error, make_session(), delay=0.05)
        cache = SessionCache(acquirer, clock=FakeClock())

        results = await asyncio.gather(
            *(cache.get_or_acquire() for _ in range(5)), return_exceptions=True
        )

        assert all(result is error for result in results)
        assert acquirer.acquire.await_count == 1
        assert cache.stats.failures == 1

        # The failure is not cached; the next caller starts a new acquisition
        await cache.get_or_acquire()
        assert acquirer.acquire.await_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_acquisition(self):
        session = make_session()
        acquirer = make_acquirer(session, delay=0.05)
        cache = SessionCache(acquirer, clock=FakeClock())

        cancelled = asyncio.ensure_future(cache.get_or_acquire())
        survivor = asyncio.ensure_future(cache.get_or_acquire())
        await asyncio.sleep(0.01)
        cancelled.cancel()

        assert await survivor is session
        assert cancelled.cancelled()
        assert acquirer.acquire.await_count == 1

    @pytest.mark.asyncio
    async def test_expired_session_triggers_acquisition(self):
        clock = FakeClock()
        acquirer = make_acquirer(
            make_session(START, ttl_seconds=300),
            make_session(START + timedelta(seconds=300), ttl_seconds=300),
        )
        cache = SessionCache(acquirer, clock=clock)

        first = await cache.get_or_acquire()
        clock.now = START + timedelta(seconds=300)
        assert cache.current is None
        second = await cache.get_or_acquire()

        assert first is not second
        assert acquirer.acquire.await_count == 2

    @pytest.mark.asyncio
    async def test_invalidate(self):
        acquirer = make_acquirer(make_session(), make_session())
        cache = SessionCache(acquirer, clock=FakeClock())

        first = await cache.get_or_acquire()
        cache.invalidate()
        second = await cache.get_or_acquire()

        assert first is not second
        assert cache.stats.invalidations == 1

    def test_invalidate_empty_cache(self):
        cache = SessionCache(make_acquirer(), clock=FakeClock())
        cache.invalidate()
        assert cache.stats.invalidations == 0

    @pytest.mark.asyncio
    async def test_invalidate_ignores_replaced_session(self):
        acquirer = make_acquirer(make_session(), make_session())
        cache = SessionCache(acquirer, clock=FakeClock())

        stale = await cache.get_or_acquire()
        cache.invalidate(stale)
        fresh = await cache.get_or_acquire()
        cache.invalidate(stale)

        assert cache.current is fresh
        assert cache.stats.invalidations == 1

    @pytest.mark.asyncio
    async def test_failure_after_all_callers_cancelled_is_not_reported(self):
        loop = asyncio.get_running_loop()
        reported = []
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            acquirer = make_acquirer(SessionUnavailableError("browser crashed"), delay=0.05)
            cache = SessionCache(acquirer, clock=FakeClock())

            caller = asyncio.ensure_future(cache.get_or_acquire())
            await asyncio.sleep(0.01)
            caller.cancel()
            await asyncio.sleep(0.1)
            gc.collect()

            assert caller.cancelled()
            assert cache.stats.failures == 1
            assert reported == []
        finally:
            loop.set_exception_handler(None)

    @pytest.mark.asyncio
    async def test_acquisition_retried(self):
        session = make_session()
        acquirer = make_acquirer(SessionUnavailableError("flaky"), session)
        retry = RetryOrchestrator(RetryConfig(max_attempts=2, initial_delay_seconds=0.0))
        cache = SessionCache(acquirer, retry=retry, clock=FakeClock())

        assert await cache.get_or_acquire() is session
        assert acquirer.acquire.await_count == 2
