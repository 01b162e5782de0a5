"""Session-related data models: browser identity and cookie sessions."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class GeoLocation(BaseModel):
    """Geolocation reported to the target site."""

    latitude: float
    longitude: float

    model_config = {"frozen": True}


class FingerprintProfile(BaseModel):
    """
    A randomized but internally consistent browser identity.

    Immutable once generated. A profile is bound to exactly one Session and
    is recreated for every acquisition attempt.
    """

    user_agent: str
    viewport_width: int
    viewport_height: int
    locale: str
    timezone: str
    geolocation: GeoLocation
    accept_language: str = "en-US,en;q=0.9"
    hardware_concurrency: int = 8

    model_config = {"frozen": True}

    @property
    def viewport(self) -> dict[str, int]:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @property
    def navigator_languages(self) -> list[str]:
        """Languages as navigator.languages would report them."""
        languages = []
        for part in self.accept_language.split(","):
            language = part.split(";")[0].strip()
            if language and language not in languages:
                languages.append(language)
        return languages

    @property
    def platform(self) -> str:
        if "Macintosh" in self.user_agent:
            return "MacIntel"
        if "Linux" in self.user_agent:
            return "Linux x86_64"
        return "Win32"


class SessionMetadata(BaseModel):
    """Session details reported alongside a result."""

    cookie_count: int
    user_agent: str
    acquired_at: datetime
    expires_at: datetime
    cached: bool = False


class Session(BaseModel):
    """
    A cookie jar plus the fingerprint that produced it.

    Read-only after creation. ``cache_expires_at`` is always strictly earlier
    than the real expiry of every cookie in the jar.
    """

    cookie_jar: tuple[tuple[str, str], ...]
    fingerprint: FingerprintProfile
    acquired_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    cache_expires_at: datetime

    model_config = {"frozen": True}

    @property
    def cookie_count(self) -> int:
        return len(self.cookie_jar)

    def cookie_header(self) -> str:
        """Format the jar as a Cookie request header value."""
        return "; ".join(f"{name}={value}" for name, value in self.cookie_jar)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.cache_expires_at

    def metadata(self, cached: bool = False) -> SessionMetadata:
        return SessionMetadata(
            cookie_count=self.cookie_count,
            user_agent=self.fingerprint.user_agent,
            acquired_at=self.acquired_at,
            expires_at=self.cache_expires_at,
            cached=cached,
        )
