"""Configuration models for the filings acquisition engine."""

import os
from typing import Any, Optional

from pydantic import BaseModel, Field


NSE_BASE_URL = "https://www.nseindia.com"


class BrowserConfig(BaseModel):
    """Configuration for the Playwright browser instance."""

    # Browser selection
    browser_type: str = "chromium"  # chromium, firefox, webkit
    headless: bool = True
    slow_mo: int = 0  # Slow down operations by this many ms

    # Launch flags
    launch_args: list[str] = Field(
        default_factory=lambda: [
            "--no-sandbox",
            "--disable-setuid-sandbox",
            "--disable-dev-shm-usage",
            "--disable-blink-features=AutomationControlled",
            "--disable-infobars",
            "--no-first-run",
            "--no-zygote",
            "--disable-gpu",
            "--disable-background-timer-throttling",
            "--disable-renderer-backgrounding",
            "--disable-features=TranslateUI",
        ]
    )
    ignore_default_args: list[str] = Field(
        default_factory=lambda: ["--enable-automation"]
    )
    ignore_https_errors: bool = True

    # Timeouts
    launch_timeout_ms: int = 15000
    navigation_timeout_ms: int = 30000
    default_timeout_ms: int = 15000
    element_timeout_ms: int = 3000  # Per locator strategy
    suggestion_timeout_ms: int = 8000  # Autocomplete candidates
    network_idle_timeout_ms: int = 10000
    challenge_wait_ms: int = 15000  # Extra wait for "checking your browser"

    # Human-like pacing
    settle_delay_ms: tuple[int, int] = (2000, 4000)
    typing_delay_ms: tuple[int, int] = (100, 200)
    simulate_human: bool = True

    # Anti-detection
    stealth_mode: bool = True

    # Proxy
    proxy_server: Optional[str] = None
    proxy_username: Optional[str] = None
    proxy_password: Optional[str] = None


class SessionConfig(BaseModel):
    """Configuration for session acquisition and caching."""

    base_url: str = NSE_BASE_URL
    landing_urls: list[str] = Field(
        default_factory=lambda: [
            f"{NSE_BASE_URL}/",
            f"{NSE_BASE_URL}/companies-listing/corporate-filings-announcements",
        ]
    )
    announcements_url: str = (
        f"{NSE_BASE_URL}/companies-listing/corporate-filings-announcements"
    )

    # Cache lifetime: never outlive the cookies themselves
    session_ttl_seconds: int = Field(default=300, ge=1)
    cookie_safety_margin_seconds: int = Field(default=60, ge=0)

    # Whole acquisition budget (launch + navigation + consent + settle)
    acquire_timeout_seconds: float = Field(default=90.0, gt=0)

    # Consent handling, evaluated in order, first match wins
    consent_selectors: list[str] = Field(
        default_factory=lambda: [
            "#onetrust-accept-btn-handler",
            "button[id*='accept']",
            "button[class*='accept']",
            "button:has-text('Accept')",
            "button:has-text('I Agree')",
            "button:has-text('OK')",
            ".cookie-accept",
            ".accept-cookies",
            "#cookie-accept",
        ]
    )

    consent_timeout_ms: int = 1000  # Per consent selector

    # Interstitial challenge detection (page title markers)
    challenge_markers: list[str] = Field(
        default_factory=lambda: ["Just a moment", "Checking your browser"]
    )


class ApiConfig(BaseModel):
    """Configuration for the announcements data endpoint."""

    api_url: str = f"{NSE_BASE_URL}/api/corporate-announcements"
    referer: str = (
        f"{NSE_BASE_URL}/companies-listing/corporate-filings-announcements"
    )
    index: str = "equities"
    timeout_seconds: float = Field(default=15.0, gt=0)

    # Response caching
    response_cache_ttl_seconds: int = Field(default=1800, ge=0)
    max_cache_entries: int = Field(default=256, ge=1)

    # Recency window
    recency_window_days: int = Field(default=7, ge=1)


class RetryConfig(BaseModel):
    """Configuration for retry behavior."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    initial_delay_seconds: float = Field(default=2.0, ge=0.0)
    max_delay_seconds: float = Field(default=30.0, ge=0.0)
    exponential_base: float = Field(default=2.0, ge=1.0, le=4.0)


class EngineConfig(BaseModel):
    """
    Complete configuration for the acquisition engine.

    Combines all configuration aspects for one target site.
    """

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    # Session acquisition launches a browser, so it gets fewer attempts
    session_retry: RetryConfig = Field(
        default_factory=lambda: RetryConfig(max_attempts=2, initial_delay_seconds=2.0)
    )
    fetch_retry: RetryConfig = Field(default_factory=RetryConfig)

    # Minimum interval between requests for the same symbol (caller boundary)
    request_interval_seconds: float = Field(default=10.0, ge=0.0)

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Create a config, applying FILINGS_* environment variables."""
        config = cls(**overrides)
        env = os.environ

        if "FILINGS_HEADLESS" in env:
            config.browser.headless = env["FILINGS_HEADLESS"].lower() not in ("0", "false", "no")
        if "FILINGS_PROXY_SERVER" in env:
            config.browser.proxy_server = env["FILINGS_PROXY_SERVER"]
            config.browser.proxy_username = env.get("FILINGS_PROXY_USERNAME")
            config.browser.proxy_password = env.get("FILINGS_PROXY_PASSWORD")
        if "FILINGS_NAVIGATION_TIMEOUT_MS" in env:
            config.browser.navigation_timeout_ms = int(env["FILINGS_NAVIGATION_TIMEOUT_MS"])
        if "FILINGS_SESSION_TTL_SECONDS" in env:
            config.session.session_ttl_seconds = int(env["FILINGS_SESSION_TTL_SECONDS"])
        if "FILINGS_RESPONSE_CACHE_TTL_SECONDS" in env:
            config.api.response_cache_ttl_seconds = int(env["FILINGS_RESPONSE_CACHE_TTL_SECONDS"])
        if "FILINGS_API_TIMEOUT_SECONDS" in env:
            config.api.timeout_seconds = float(env["FILINGS_API_TIMEOUT_SECONDS"])
        if "FILINGS_FETCH_MAX_ATTEMPTS" in env:
            config.fetch_retry.max_attempts = int(env["FILINGS_FETCH_MAX_ATTEMPTS"])

        return config
