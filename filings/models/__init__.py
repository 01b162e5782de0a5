"""Data models for the filings acquisition engine."""

from filings.models.announcement import (
    AcquisitionRequest,
    AcquisitionResult,
    AnnouncementRecord,
    SymbolCandidate,
    SymbolQuery,
)
from filings.models.config import (
    ApiConfig,
    BrowserConfig,
    EngineConfig,
    RetryConfig,
    SessionConfig,
)
from filings.models.session import (
    FingerprintProfile,
    GeoLocation,
    Session,
    SessionMetadata,
)

__all__ = [
    # Announcement models
    "AcquisitionRequest",
    "AcquisitionResult",
    "AnnouncementRecord",
    "SymbolCandidate",
    "SymbolQuery",
    # Session models
    "FingerprintProfile",
    "GeoLocation",
    "Session",
    "SessionMetadata",
    # Config models
    "ApiConfig",
    "BrowserConfig",
    "EngineConfig",
    "RetryConfig",
    "SessionConfig",
]
