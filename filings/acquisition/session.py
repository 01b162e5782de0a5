"""Session acquisition: drive a stealth browser through the landing flow for cookies."""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Sequence

from playwright.async_api import Error as PlaywrightError, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from filings.acquisition.browser import (
    BrowserManager,
    PageInteractionHelper,
    strategies_from_selectors,
)
from filings.acquisition.errors import (
    AcquisitionError,
    AcquisitionTimeoutError,
    SessionUnavailableError,
)
from filings.acquisition.fingerprint import FingerprintGenerator
from filings.models.config import EngineConfig
from filings.models.session import FingerprintProfile, Session

logger = logging.getLogger(__name__)


def compute_cache_expiry(
    acquired_at: datetime,
    cookies: Sequence[dict[str, Any]],
    ttl_seconds: int,
    safety_margin_seconds: int,
) -> datetime:
    """Pick a cache expiry strictly earlier than every real cookie expiry.

    Session cookies (``expires`` <= 0) only bound the expiry by the TTL.
    """
    expiry = acquired_at + timedelta(seconds=ttl_seconds)
    margin = timedelta(seconds=max(safety_margin_seconds, 1))

    for cookie in cookies:
        expires = cookie.get("expires") or -1
        if expires <= 0:
            continue
        real_expiry = datetime.fromtimestamp(expires, tz=timezone.utc)
        expiry = min(expiry, real_expiry - margin)

    return expiry


class SessionAcquirer:
    """
    Obtains a valid cookie session from the target site.

    Each attempt uses a freshly generated fingerprint and its own browser,
    which is torn down on every exit path (success, failure, timeout or
    cancellation).

    Usage:
        acquirer = SessionAcquirer(EngineConfig())
        session = await acquirer.acquire()
        headers = {"Cookie": session.cookie_header()}
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        fingerprints: Optional[FingerprintGenerator] = None,
        browser_factory: Callable[..., BrowserManager] = BrowserManager,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or EngineConfig()
        self.fingerprints = fingerprints or FingerprintGenerator()
        self._browser_factory = browser_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.acquisition_count = 0

    async def acquire(self) -> Session:
        """Acquire a fresh session.

        Raises:
            SessionUnavailableError: Browser failed to start, challenge never
                cleared, or no cookies were issued.
            AcquisitionTimeoutError: Navigation or the overall budget timed out.
        """
        self.acquisition_count += 1
        fingerprint = self.fingerprints.generate()
        budget = self.config.session.acquire_timeout_seconds
        start_time = time.time()

        logger.info(f"Acquiring session (attempt #{self.acquisition_count})")
        try:
            session = await asyncio.wait_for(self._acquire(fingerprint), timeout=budget)
        except asyncio.TimeoutError as e:
            raise AcquisitionTimeoutError(
                f"Session acquisition exceeded {budget:.0f}s"
            ) from e

        logger.info(
            f"Session acquired: {session.cookie_count} cookies in "
            f"{time.time() - start_time:.1f}s, cached until "
            f"{session.cache_expires_at.isoformat()}"
        )
        return session

    async def _acquire(self, fingerprint: FingerprintProfile) -> Session:
        manager = self._browser_factory(self.config.browser)
        try:
            async with manager:
                async with manager.get_page(fingerprint) as page:
                    await self._walk_landing_flow(page)
                    cookies = await page.context.cookies()
        except AcquisitionError:
            raise
        except PlaywrightTimeoutError as e:
            raise AcquisitionTimeoutError(f"Browser navigation timed out: {e}") from e
        except PlaywrightError as e:
            raise SessionUnavailableError(f"Browser session failed: {e}") from e

        if not cookies:
            raise SessionUnavailableError("No cookies were issued by the landing flow")

        acquired_at = self._clock()
        return Session(
            cookie_jar=tuple((cookie["name"], cookie["value"]) for cookie in cookies),
            fingerprint=fingerprint,
            acquired_at=acquired_at,
            cache_expires_at=compute_cache_expiry(
                acquired_at,
                cookies,
                self.config.session.session_ttl_seconds,
                self.config.session.cookie_safety_margin_seconds,
            ),
        )

    async def _walk_landing_flow(self, page: Page) -> None:
        """Visit the landing pages, clearing challenges and consent on the way."""
        session_config = self.config.session
        helper = PageInteractionHelper(page, self.config.browser)
        consent = strategies_from_selectors(session_config.consent_selectors)

        for i, url in enumerate(session_config.landing_urls):
            logger.debug(f"Navigating to: {url}")
            await page.goto(
                url,
                wait_until="domcontentloaded",
                timeout=self.config.browser.navigation_timeout_ms,
            )

            if not await helper.wait_out_challenge(session_config.challenge_markers):
                raise SessionUnavailableError(
                    f"Browser-check interstitial did not clear on {url}"
                )

            if i == 0:
                dismissed = await helper.click_first(
                    consent, timeout_ms=session_config.consent_timeout_ms
                )
                if dismissed:
                    logger.info(f"Dismissed consent dialog via {dismissed.selector}")

            await helper.settle()

            if self.config.browser.simulate_human:
                await helper.simulate_human_movement()
