"""Browser management for Playwright-driven session work."""

import asyncio
import json
import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional, Sequence

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from filings.models.config import BrowserConfig
from filings.models.session import FingerprintProfile

logger = logging.getLogger(__name__)


# Stealth script template; placeholders are filled per fingerprint.
STEALTH_JS_TEMPLATE = """
(() => {
    // Remove the webdriver flag
    Object.defineProperty(navigator, 'webdriver', {
        get: () => undefined,
    });

    // Realistic plugin list
    Object.defineProperty(navigator, 'plugins', {
        get: () => ({
            length: 4,
            0: { name: 'Chrome PDF Plugin' },
            1: { name: 'Chrome PDF Viewer' },
            2: { name: 'Native Client' },
            3: { name: 'WebKit built-in PDF' },
        }),
    });

    Object.defineProperty(navigator, 'languages', {
        get: () => __LANGUAGES__,
    });

    Object.defineProperty(navigator, 'hardwareConcurrency', {
        get: () => __HARDWARE_CONCURRENCY__,
    });

    Object.defineProperty(navigator, 'platform', {
        get: () => __PLATFORM__,
    });

    // Chrome runtime object present in real Chrome
    window.chrome = window.chrome || { runtime: {} };

    // Known automation globals
    for (const key of Object.keys(window)) {
        if (key.startsWith('cdc_') || key.startsWith('__playwright') || key.startsWith('__pw')) {
            try { delete window[key]; } catch (e) {}
        }
    }

    // Notification permission query consistent with a real browser
    const originalQuery = window.navigator.permissions && window.navigator.permissions.query;
    if (originalQuery) {
        window.navigator.permissions.query = (parameters) => (
            parameters.name === 'notifications' ?
                Promise.resolve({ state: Notification.permission }) :
                originalQuery(parameters)
        );
    }
})();
"""


def build_stealth_script(fingerprint: FingerprintProfile) -> str:
    """Render the stealth init script for a fingerprint."""
    return (
        STEALTH_JS_TEMPLATE
        .replace("__LANGUAGES__", json.dumps(fingerprint.navigator_languages))
        .replace("__HARDWARE_CONCURRENCY__", str(fingerprint.hardware_concurrency))
        .replace("__PLATFORM__", json.dumps(fingerprint.platform))
    )


async def random_pause(delay_range_ms: Sequence[int]) -> None:
    """Sleep for a random duration within an inclusive millisecond range."""
    low, high = delay_range_ms
    if high <= 0:
        return
    await asyncio.sleep(random.randint(low, high) / 1000)


class BrowserManager:
    """
    Manages a Playwright browser instance with guaranteed teardown.

    Features:
    - Anti-automation launch flags
    - Fingerprint-bound contexts with stealth init script
    - Scoped pages that always close their context
    - stop() releases page contexts, browser and driver on every exit path
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        """Initialize the browser manager.

        Args:
            config: Browser configuration. Uses defaults if not provided.
        """
        self.config = config or BrowserConfig()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._contexts: list[BrowserContext] = []

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Start the Playwright driver and launch the browser."""
        if self._playwright is not None:
            logger.warning("Browser manager already started")
            return

        logger.info(f"Starting {self.config.browser_type} browser (headless={self.config.headless})")
        self._playwright = await async_playwright().start()

        browser_type = getattr(self._playwright, self.config.browser_type)

        launch_options = {
            "headless": self.config.headless,
            "slow_mo": self.config.slow_mo,
            "args": list(self.config.launch_args),
            "ignore_default_args": list(self.config.ignore_default_args),
            "timeout": self.config.launch_timeout_ms,
        }

        if self.config.proxy_server:
            launch_options["proxy"] = {
                "server": self.config.proxy_server,
            }
            if self.config.proxy_username:
                launch_options["proxy"]["username"] = self.config.proxy_username
                launch_options["proxy"]["password"] = self.config.proxy_password

        self._browser = await browser_type.launch(**launch_options)
        logger.info("Browser launched successfully")

    async def stop(self) -> None:
        """Stop the browser and release every resource, even on partial failure."""
        logger.debug("Stopping browser manager")

        for context in self._contexts:
            try:
                await context.close()
            except Exception as e:
                logger.warning(f"Error closing context: {e}")
        self._contexts.clear()

        if self._browser:
            try:
                await self._browser.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping playwright driver: {e}")
            self._playwright = None

        logger.debug("Browser manager stopped")

    async def create_context(
        self,
        fingerprint: FingerprintProfile,
        cookies: Optional[Sequence[tuple[str, str]]] = None,
        cookie_url: Optional[str] = None,
    ) -> BrowserContext:
        """Create an isolated context that presents the given fingerprint.

        Args:
            fingerprint: Browser identity for the context.
            cookies: Optional (name, value) pairs to preload.
            cookie_url: URL the preloaded cookies belong to.

        Returns:
            A new BrowserContext instance.

        Raises:
            RuntimeError: If browser is not started.
        """
        if not self._browser:
            raise RuntimeError("Browser not started. Call start() first.")

        context = await self._browser.new_context(
            user_agent=fingerprint.user_agent,
            viewport=fingerprint.viewport,
            locale=fingerprint.locale,
            timezone_id=fingerprint.timezone,
            geolocation={
                "latitude": fingerprint.geolocation.latitude,
                "longitude": fingerprint.geolocation.longitude,
            },
            permissions=["geolocation"],
            extra_http_headers={"Accept-Language": fingerprint.accept_language},
            ignore_https_errors=self.config.ignore_https_errors,
        )
        self._contexts.append(context)

        if self.config.stealth_mode:
            await context.add_init_script(script=build_stealth_script(fingerprint))

        if cookies:
            await context.add_cookies([
                {"name": name, "value": value, "url": cookie_url}
                for name, value in cookies
            ])

        return context

    @asynccontextmanager
    async def get_page(
        self,
        fingerprint: FingerprintProfile,
        cookies: Optional[Sequence[tuple[str, str]]] = None,
        cookie_url: Optional[str] = None,
    ) -> AsyncGenerator[Page, None]:
        """Context manager for a fingerprinted page with automatic cleanup.

        Example:
            async with manager.get_page(fingerprint) as page:
                await page.goto("https://www.nseindia.com/")
                cookies = await page.context.cookies()
        """
        context = await self.create_context(fingerprint, cookies, cookie_url)
        page = None
        try:
            page = await context.new_page()
            page.set_default_navigation_timeout(self.config.navigation_timeout_ms)
            page.set_default_timeout(self.config.default_timeout_ms)
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"Error closing page: {e}")
            try:
                await context.close()
            except Exception as e:
                logger.debug(f"Error closing context: {e}")
            if context in self._contexts:
                self._contexts.remove(context)

    async def __aenter__(self) -> "BrowserManager":
        """Async context manager entry; a failed launch still releases the driver."""
        try:
            await self.start()
        except BaseException:
            await self.stop()
            raise
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()


@dataclass(frozen=True)
class LocatorStrategy:
    """One way of finding an element; yields a match or nothing."""

    selector: str
    state: str = "visible"
    name: Optional[str] = None

    async def locate(self, page: Page, timeout_ms: int) -> Optional[ElementHandle]:
        try:
            return await page.wait_for_selector(
                self.selector, state=self.state, timeout=timeout_ms
            )
        except PlaywrightError:
            return None


def strategies_from_selectors(selectors: Sequence[str], state: str = "visible") -> list[LocatorStrategy]:
    return [LocatorStrategy(selector=selector, state=state) for selector in selectors]


class PageInteractionHelper:
    """Helper class for human-like page interactions."""

    def __init__(self, page: Page, config: Optional[BrowserConfig] = None):
        """Initialize with a page instance.

        Args:
            page: Playwright Page instance.
            config: Browser configuration for pacing and timeouts.
        """
        self.page = page
        self.config = config or BrowserConfig()

    async def first_match(
        self,
        strategies: Sequence[LocatorStrategy],
        timeout_ms: Optional[int] = None,
    ) -> Optional[tuple[LocatorStrategy, ElementHandle]]:
        """Evaluate locator strategies in priority order; the first hit wins.

        Returns:
            The winning strategy and its element, or None if nothing matched.
        """
        timeout_ms = timeout_ms or self.config.element_timeout_ms
        for strategy in strategies:
            element = await strategy.locate(self.page, timeout_ms)
            if element is not None:
                logger.debug(f"Locator matched: {strategy.name or strategy.selector}")
                return strategy, element
            logger.debug(f"Locator missed: {strategy.name or strategy.selector}")
        return None

    async def click_first(
        self,
        strategies: Sequence[LocatorStrategy],
        timeout_ms: Optional[int] = None,
    ) -> Optional[LocatorStrategy]:
        """Click the first element any strategy finds.

        Returns:
            The strategy that matched, or None if nothing was clicked.
        """
        match = await self.first_match(strategies, timeout_ms)
        if match is None:
            return None
        strategy, element = match
        try:
            await element.click()
        except PlaywrightError as e:
            logger.debug(f"Matched element not clickable ({strategy.selector}): {e}")
            return None
        return strategy

    async def human_type(self, element: ElementHandle, text: str) -> None:
        """Clear an input and type into it one character at a time."""
        await element.focus()
        await random_pause((200, 400))
        await element.fill("")
        for char in text:
            await self.page.keyboard.type(char)
            await random_pause(self.config.typing_delay_ms)

    async def settle(self) -> None:
        """Wait for network idle (best effort) and a randomized pause."""
        try:
            await self.page.wait_for_load_state(
                "networkidle", timeout=self.config.network_idle_timeout_ms
            )
        except PlaywrightError:
            # Long-polling sites may never go idle
            logger.debug("Network did not go idle; continuing")
        await random_pause(self.config.settle_delay_ms)

    async def is_challenge_page(self, markers: Sequence[str]) -> bool:
        """Check whether the page is an interstitial bot-check screen."""
        try:
            title = await self.page.title()
        except PlaywrightError:
            return False
        return any(marker.lower() in title.lower() for marker in markers)

    async def wait_out_challenge(self, markers: Sequence[str]) -> bool:
        """Wait a bounded time for an interstitial challenge to clear.

        Returns:
            True if the page is no longer a challenge page.
        """
        if not await self.is_challenge_page(markers):
            return True

        logger.info("Detected browser-check interstitial, waiting...")
        deadline = asyncio.get_running_loop().time() + self.config.challenge_wait_ms / 1000
        while asyncio.get_running_loop().time() < deadline:
            await asyncio.sleep(1.0)
            if not await self.is_challenge_page(markers):
                logger.info("Interstitial cleared")
                return True

        logger.warning("Interstitial did not clear within the allowed wait")
        return False

    async def simulate_human_movement(self) -> None:
        """Move the mouse and scroll a little, like a person reading."""
        try:
            viewport = self.page.viewport_size or {"width": 1366, "height": 768}
            x = random.randint(0, viewport["width"] - 1)
            y = random.randint(0, viewport["height"] - 1)
            await self.page.mouse.move(x, y, steps=10)
            await random_pause((300, 800))
            await self.page.evaluate(
                "(amount) => window.scrollBy(0, amount)", random.randint(100, 600)
            )
            await random_pause((300, 800))
        except PlaywrightError as e:
            logger.debug(f"Human movement simulation failed, continuing: {e}")
