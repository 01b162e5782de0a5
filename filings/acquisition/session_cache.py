"""Process-wide session cache with TTL and single-flight acquisition."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from filings.acquisition.retry import RetryOrchestrator
from filings.acquisition.session import SessionAcquirer
from filings.models.session import Session

logger = logging.getLogger(__name__)


@dataclass
class SessionCacheStats:
    """Statistics for session cache behavior."""

    hits: int = 0
    misses: int = 0
    acquisitions: int = 0
    failures: int = 0
    invalidations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "acquisitions": self.acquisitions,
            "failures": self.failures,
            "invalidations": self.invalidations,
        }


class SessionCache:
    """
    Holds the single current Session and coalesces concurrent acquisitions.

    Readers that find a live session return it without any synchronization.
    On a miss, the first caller starts one acquisition task; every caller
    arriving while it runs awaits that same task and gets the same Session
    (or the same exception). The shared task is shielded so one caller being
    cancelled does not abort the acquisition for the others.

    Usage:
        cache = SessionCache(SessionAcquirer(config), retry=RetryOrchestrator(...))
        session = await cache.get_or_acquire()
        ...
        cache.invalidate(session)  # after the data endpoint rejects it
    """

    def __init__(
        self,
        acquirer: SessionAcquirer,
        retry: Optional[RetryOrchestrator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.acquirer = acquirer
        self.retry = retry
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._session: Optional[Session] = None
        self._inflight: Optional[asyncio.Task] = None
        self._stats = SessionCacheStats()

    @property
    def current(self) -> Optional[Session]:
        """The cached session if it is still within its cache lifetime."""
        session = self._session
        if session is not None and not session.is_expired(self._clock()):
            return session
        return None

    @property
    def stats(self) -> SessionCacheStats:
        return self._stats

    async def get_or_acquire(self) -> Session:
        """Return the current session, acquiring one if needed."""
        session = self.current
        if session is not None:
            self._stats.hits += 1
            return session

        self._stats.misses += 1
        if self._inflight is None:
            logger.info("No valid cached session, starting acquisition")
            self._inflight = asyncio.ensure_future(self._acquire())
            self._inflight.add_done_callback(_retrieve_outcome)
        else:
            logger.debug("Joining in-flight session acquisition")

        return await asyncio.shield(self._inflight)

    async def _acquire(self) -> Session:
        try:
            if self.retry is not None:
                session = await self.retry.run(self.acquirer.acquire)
            else:
                session = await self.acquirer.acquire()
        except BaseException:
            self._stats.failures += 1
            raise
        finally:
            self._inflight = None

        self._stats.acquisitions += 1
        self._session = session
        return session

    def invalidate(self, session: Optional[Session] = None) -> None:
        """
        Discard the cached session so the next caller acquires a fresh one.

        When `session` is given, the cache is cleared only if it still holds
        that session. A caller reporting a stale rejection therefore cannot
        drop a replacement another caller already acquired.
        """
        if session is not None and self._session is not session:
            logger.debug("Rejected session already replaced, keeping current one")
            return
        if self._session is not None:
            logger.info("Invalidating cached session")
            self._stats.invalidations += 1
        self._session = None


def _retrieve_outcome(task: asyncio.Future) -> None:
    # Marks a failure as retrieved even when every waiter was cancelled
    if not task.cancelled():
        task.exception()
