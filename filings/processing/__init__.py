"""
Announcement processing: timestamp parsing, recency filtering and response caching.

Usage:
    from filings.processing import ResponseCache, filter_and_project

    records = filter_and_project(raw_records, now=datetime.now(IST))
    cache = ResponseCache(default_ttl_seconds=1800)
    cache.set("announcements:reliance", tuple(records))
"""

from .announcements import (
    IST,
    extract_records,
    filter_and_project,
    parse_broadcast_timestamp,
    within_window,
)
from .cache import CacheEntry, CacheStats, ResponseCache

__all__ = [
    # Announcements
    "IST",
    "extract_records",
    "filter_and_project",
    "parse_broadcast_timestamp",
    "within_window",
    # Caching
    "ResponseCache",
    "CacheStats",
    "CacheEntry",
]
