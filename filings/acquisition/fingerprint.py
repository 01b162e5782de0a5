"""Browser fingerprint generation for session acquisition."""

import logging
import random
from typing import Optional

from filings.models.session import FingerprintProfile, GeoLocation

logger = logging.getLogger(__name__)


USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
]

VIEWPORTS = [
    (1920, 1080),
    (1366, 768),
    (1440, 900),
    (1536, 864),
    (1600, 900),
]

HARDWARE_CONCURRENCY = [4, 8, 12, 16]

# (locale, timezone, latitude, longitude, accept-language)
# All tuples sit in IST so the timezone never contradicts the geolocation.
REGIONS = [
    ("en-IN", "Asia/Kolkata", 19.0760, 72.8777, "en-IN,en-GB;q=0.9,en-US;q=0.8,en;q=0.7"),  # Mumbai
    ("en-IN", "Asia/Kolkata", 28.6139, 77.2090, "en-IN,en;q=0.9,hi;q=0.8"),  # Delhi
    ("en-US", "Asia/Kolkata", 12.9716, 77.5946, "en-US,en;q=0.9,hi;q=0.8"),  # Bangalore
    ("en-US", "Asia/Kolkata", 18.5204, 73.8567, "en-US,en;q=0.9"),  # Pune
    ("en-GB", "Asia/Kolkata", 13.0827, 80.2707, "en-GB,en;q=0.9,ta;q=0.7"),  # Chennai
]


class FingerprintGenerator:
    """
    Produces randomized but internally consistent browser identities.

    Sampling is uniform over fixed pools. Locale, timezone, geolocation and
    Accept-Language are drawn together as one tuple so they always agree.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random(seed)

    def generate(self) -> FingerprintProfile:
        user_agent = self._rng.choice(USER_AGENTS)
        width, height = self._rng.choice(VIEWPORTS)
        locale, timezone_id, latitude, longitude, accept_language = self._rng.choice(REGIONS)

        profile = FingerprintProfile(
            user_agent=user_agent,
            viewport_width=width,
            viewport_height=height,
            locale=locale,
            timezone=timezone_id,
            geolocation=GeoLocation(latitude=latitude, longitude=longitude),
            accept_language=accept_language,
            hardware_concurrency=self._rng.choice(HARDWARE_CONCURRENCY),
        )
        logger.debug(
            f"Generated fingerprint: {width}x{height}, {locale}, "
            f"UA={user_agent[:50]}..."
        )
        return profile
