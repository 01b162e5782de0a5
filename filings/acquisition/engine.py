"""Acquisition engine: symbol in, recent announcements out."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Union

from pydantic import ValidationError

from filings.acquisition.client import AnnouncementClient
from filings.acquisition.errors import (
    AccessDeniedError,
    AcquisitionError,
    UnknownAcquisitionError,
    classify_exception,
)
from filings.acquisition.resolver import SymbolResolver
from filings.acquisition.retry import RetryOrchestrator
from filings.acquisition.session import SessionAcquirer
from filings.acquisition.session_cache import SessionCache
from filings.models.announcement import (
    AcquisitionRequest,
    AcquisitionResult,
    AnnouncementRecord,
    SymbolQuery,
)
from filings.models.config import EngineConfig
from filings.models.session import Session

logger = logging.getLogger(__name__)


class AcquisitionEngine:
    """
    Main orchestrator for announcement acquisition.

    This engine coordinates:
    1. Symbol resolution (fast path or the site's own autocomplete)
    2. Session reuse through the shared session cache
    3. Data retrieval with bounded retries
    4. Session invalidation when the endpoint rejects the cookies

    Usage:
        async with AcquisitionEngine.create(EngineConfig()) as engine:
            result = await engine.run("Reliance Industries")

        # Or at the request/response boundary:
        payload = await engine.handle({"symbol": "TCS", "forceRefresh": True})
    """

    def __init__(
        self,
        config: EngineConfig,
        session_cache: SessionCache,
        resolver: SymbolResolver,
        client: AnnouncementClient,
        fetch_retry: Optional[RetryOrchestrator] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.session_cache = session_cache
        self.resolver = resolver
        self.client = client
        self.fetch_retry = fetch_retry or RetryOrchestrator(
            config.fetch_retry, name="announcement fetch"
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def create(cls, config: Optional[EngineConfig] = None) -> "AcquisitionEngine":
        """Wire the default components for a configuration."""
        config = config or EngineConfig()
        acquirer = SessionAcquirer(config)
        session_cache = SessionCache(
            acquirer,
            retry=RetryOrchestrator(config.session_retry, name="session acquisition"),
        )
        return cls(
            config=config,
            session_cache=session_cache,
            resolver=SymbolResolver(config),
            client=AnnouncementClient(config.api),
            fetch_retry=RetryOrchestrator(config.fetch_retry, name="announcement fetch"),
        )

    async def __aenter__(self) -> "AcquisitionEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP session."""
        await self.client.close()

    def stats(self) -> dict[str, dict[str, Any]]:
        """Session and response cache statistics."""
        return {
            "session": self.session_cache.stats.to_dict(),
            "responses": self.client.cache.get_stats().to_dict(),
        }

    async def run(
        self,
        symbol_or_name: str,
        issuer: Optional[str] = None,
        force_refresh: bool = False,
    ) -> AcquisitionResult:
        """Acquire recent announcements for a company.

        Args:
            symbol_or_name: Ticker or free-text company name.
            issuer: Optional issuer name hint for the data endpoint.
            force_refresh: Discard the current session and cached results first.

        Returns:
            AcquisitionResult with announcements from the recency window.

        Raises:
            AcquisitionError: Classified failure after retries are exhausted.
        """
        started_at = self._clock()
        start_time = time.time()
        query = SymbolQuery.from_input(symbol_or_name)
        logger.info(f"Acquisition requested for: {query.raw_input!r}")

        if force_refresh:
            logger.info("Force refresh: discarding cached session")
            self.session_cache.invalidate()

        symbol = await self._resolve(query)

        if force_refresh:
            self.client.invalidate(symbol)

        records, session = await self._fetch(symbol, issuer)

        result = AcquisitionResult(
            symbol=symbol,
            announcements=records,
            fetched_at=self._clock(),
            session_metadata=session.metadata(cached=session.acquired_at < started_at),
        )
        logger.info(
            f"Acquisition complete for {symbol}: {result.count} announcements "
            f"in {time.time() - start_time:.1f}s"
        )
        return result

    async def _resolve(self, query: SymbolQuery) -> str:
        session = None
        if query.normalized_input and self.resolver.match_exact(query) is None:
            # Interactive resolution rides on the cached session's cookies
            session = await self.session_cache.get_or_acquire()
        return await self.resolver.resolve(query, session)

    async def _fetch(
        self,
        symbol: str,
        issuer: Optional[str],
    ) -> tuple[list[AnnouncementRecord], Session]:
        """
        Retrieve with retry, reading the session from the cache on every attempt.

        Session acquisition sits outside the retried block, so its failures
        are retried only by the cache's own policy.
        """
        records: list[AnnouncementRecord] = []
        async for attempt in self.fetch_retry.attempts():
            session = await self.session_cache.get_or_acquire()
            with attempt:
                records = await self._fetch_once(symbol, session, issuer)
        return records, session

    async def _fetch_once(
        self,
        symbol: str,
        session: Session,
        issuer: Optional[str],
    ) -> list[AnnouncementRecord]:
        try:
            return await self.client.fetch(symbol, session, issuer=issuer)
        except AccessDeniedError:
            # Only drops the cache if it still holds the rejected session
            self.session_cache.invalidate(session)
            raise

    async def handle(self, request: Union[AcquisitionRequest, dict[str, Any]]) -> dict[str, Any]:
        """Request/response boundary.

        Returns the success payload, or ``{"errorKind", "message"}`` for any
        failure. Never raises for acquisition failures.
        """
        try:
            if not isinstance(request, AcquisitionRequest):
                request = AcquisitionRequest.model_validate(request)
        except ValidationError as e:
            error = UnknownAcquisitionError(f"Invalid request: {e.errors()[0]['msg']}")
            logger.error(f"Rejected request: {error.message}")
            return error.to_payload()

        try:
            result = await self.run(
                request.symbol,
                issuer=request.issuer,
                force_refresh=request.force_refresh,
            )
        except AcquisitionError as e:
            logger.error(f"Acquisition failed for {request.symbol!r}: {e!r}")
            return e.to_payload()
        except Exception as e:
            error = classify_exception(e)
            logger.exception(f"Unexpected failure for {request.symbol!r}")
            return error.to_payload()

        return result.to_payload()
