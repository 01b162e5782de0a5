"""Announcement acquisition: browser sessions, symbol resolution and data retrieval."""

from filings.acquisition.browser import BrowserManager
from filings.acquisition.client import AnnouncementClient
from filings.acquisition.engine import AcquisitionEngine
from filings.acquisition.errors import AcquisitionError, ErrorKind
from filings.acquisition.fingerprint import FingerprintGenerator
from filings.acquisition.resolver import SymbolResolver
from filings.acquisition.retry import RetryOrchestrator
from filings.acquisition.session import SessionAcquirer
from filings.acquisition.session_cache import SessionCache
from filings.acquisition.throttle import SymbolThrottle

__all__ = [
    "AcquisitionEngine",
    "AcquisitionError",
    "AnnouncementClient",
    "BrowserManager",
    "ErrorKind",
    "FingerprintGenerator",
    "RetryOrchestrator",
    "SessionAcquirer",
    "SessionCache",
    "SymbolResolver",
    "SymbolThrottle",
]
