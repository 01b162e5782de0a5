"""HTTP client for the exchange's corporate announcements endpoint."""

import asyncio
import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

import aiohttp

from filings.acquisition.errors import (
    AccessDeniedError,
    AcquisitionTimeoutError,
    NetworkFailureError,
    UnknownAcquisitionError,
)
from filings.models.announcement import AnnouncementRecord
from filings.models.config import ApiConfig
from filings.models.session import Session
from filings.processing.announcements import IST, extract_records, filter_and_project
from filings.processing.cache import ResponseCache

logger = logging.getLogger(__name__)


def build_api_headers(session: Session, referer: str) -> dict[str, str]:
    """
    Headers for a data call made on behalf of a browser session.

    The user agent and language must match the fingerprint that earned the
    cookies; a mismatch is itself a detection signal.
    """
    fingerprint = session.fingerprint
    return {
        "User-Agent": fingerprint.user_agent,
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": fingerprint.accept_language,
        "Accept-Encoding": "gzip, deflate",
        "Connection": "keep-alive",
        "Cookie": session.cookie_header(),
        "Referer": referer,
        "Sec-Fetch-Dest": "empty",
        "Sec-Fetch-Mode": "cors",
        "Sec-Fetch-Site": "same-origin",
        "X-Requested-With": "XMLHttpRequest",
    }


class AnnouncementClient:
    """
    Retrieves, filters and caches recent announcements for a symbol.

    Usage:
        async with AnnouncementClient(ApiConfig()) as client:
            records = await client.fetch("RELIANCE", session)
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        cache: Optional[ResponseCache] = None,
        http_session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or ApiConfig()
        self.cache: ResponseCache = cache or ResponseCache(
            default_ttl_seconds=self.config.response_cache_ttl_seconds,
            max_entries=self.config.max_cache_entries,
        )
        self._session = http_session
        self._owns_session = http_session is None
        self._clock = clock or (lambda: datetime.now(IST))
        self.request_count = 0

    async def __aenter__(self) -> "AnnouncementClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            # Cookies travel in an explicit header; keep the jar out of the way
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
            self._owns_session = True
        return self._session

    @staticmethod
    def cache_key(symbol: str, issuer: Optional[str] = None) -> str:
        key = f"announcements:{symbol.strip().lower()}"
        if issuer:
            key += f":{issuer.strip().lower()}"
        return key

    def invalidate(self, symbol: str) -> int:
        """Drop cached results for a symbol (all issuer variants)."""
        return self.cache.invalidate_prefix(self.cache_key(symbol))

    async def fetch(
        self,
        symbol: str,
        session: Session,
        issuer: Optional[str] = None,
    ) -> list[AnnouncementRecord]:
        """Fetch recent announcements for a symbol.

        Args:
            symbol: Canonical exchange symbol.
            session: Cookie session and fingerprint to present.
            issuer: Optional issuer name hint passed through to the endpoint.

        Returns:
            Records from the recency window, newest first. An unknown symbol
            (HTTP 404) yields an empty list.

        Raises:
            AccessDeniedError: HTTP 403 or a non-JSON body (session rejected).
            NetworkFailureError: Transport failure, HTTP 429 or 5xx.
            AcquisitionTimeoutError: The request exceeded its timeout.
            UnknownAcquisitionError: Any other non-success status.
        """
        symbol = symbol.strip().upper()
        key = self.cache_key(symbol, issuer)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Returning cached announcements for: {symbol}")
            return list(cached)

        params = {"index": self.config.index, "symbol": symbol}
        if issuer:
            params["issuer"] = issuer

        payload = await self._get_json(symbol, params, build_api_headers(session, self.config.referer))
        if payload is None:
            logger.info(f"No announcements found for symbol: {symbol}")
            return []

        raw_records = extract_records(payload)
        records = filter_and_project(
            raw_records,
            now=self._clock(),
            window_days=self.config.recency_window_days,
        )
        logger.info(
            f"Received {len(raw_records)} announcements for {symbol}, "
            f"{len(records)} from the last {self.config.recency_window_days} days"
        )

        self.cache.set(key, tuple(records))
        return records

    async def _get_json(
        self,
        symbol: str,
        params: dict[str, str],
        headers: dict[str, str],
    ) -> Optional[Any]:
        """Issue the GET and classify the outcome. Returns None for HTTP 404."""
        http = self._ensure_session()
        self.request_count += 1
        start_time = time.time()

        try:
            async with http.get(
                self.config.api_url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_seconds),
            ) as response:
                status = response.status
                logger.debug(
                    f"GET {self.config.api_url} symbol={symbol} -> {status} "
                    f"({(time.time() - start_time) * 1000:.0f}ms)"
                )

                if status == 404:
                    return None
                if status == 403:
                    raise AccessDeniedError(
                        "Access forbidden - session cookies may be invalid or expired",
                        status_code=status,
                    )
                if status == 429 or status >= 500:
                    raise NetworkFailureError(
                        f"Upstream returned HTTP {status}", status_code=status
                    )
                if status != 200:
                    raise UnknownAcquisitionError(
                        f"Upstream returned HTTP {status}", status_code=status
                    )

                body = await response.text()
        except asyncio.TimeoutError as e:
            raise AcquisitionTimeoutError(
                f"Announcements request timed out after {self.config.timeout_seconds:.0f}s"
            ) from e
        except aiohttp.ClientError as e:
            raise NetworkFailureError(f"Network error fetching announcements: {e}") from e

        try:
            return json.loads(body)
        except ValueError as e:
            # Bot-check pages come back as HTML with a 200
            raise AccessDeniedError(
                "Endpoint returned a non-JSON body; session was likely rejected",
                status_code=200,
            ) from e
