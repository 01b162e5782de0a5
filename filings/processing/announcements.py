"""Parsing, recency filtering and projection of raw announcement payloads."""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from filings.models.announcement import AnnouncementRecord

logger = logging.getLogger(__name__)


# Exchange timestamps are published in India Standard Time
IST = timezone(timedelta(hours=5, minutes=30), name="IST")

BROADCAST_FORMATS = [
    "%d-%b-%Y %H:%M:%S",  # 18-Jun-2025 19:08:25
    "%d-%b-%Y %H:%M",
    "%d-%b-%Y",
    "%Y-%m-%d %H:%M:%S",
    "%d-%m-%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
]

# Upstream field -> AnnouncementRecord field
FIELD_MAP = {
    "symbol": "symbol",
    "desc": "subject",
    "attchmntFile": "attachment_url",
    "smIndustry": "industry",
    "attchmntText": "attachment_text",
    "fileSize": "file_size_label",
}

BROADCAST_FIELD = "exchdisstime"

_MONTH_CASE = re.compile(r"-([A-Za-z]{3})-")


def parse_broadcast_timestamp(text: Optional[str]) -> Optional[datetime]:
    """Parse the exchange's broadcast date-time text into an IST-aware datetime.

    Month abbreviations are matched case-insensitively. Returns None for
    empty or unparseable input.
    """
    if not text:
        return None

    cleaned = " ".join(str(text).split())
    cleaned = _MONTH_CASE.sub(lambda m: f"-{m.group(1).capitalize()}-", cleaned)

    for fmt in BROADCAST_FORMATS:
        try:
            parsed = datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=IST)

    logger.debug(f"Unparseable broadcast timestamp: {text!r}")
    return None


def within_window(timestamp: datetime, now: datetime, days: int = 7) -> bool:
    """True if timestamp is no older than `days` days before now."""
    return timestamp >= now - timedelta(days=days)


def project_record(raw: dict[str, Any], timestamp: datetime) -> AnnouncementRecord:
    """Project an upstream record onto the fixed AnnouncementRecord field set."""
    values = {
        target: str(raw.get(source) or "").strip()
        for source, target in FIELD_MAP.items()
    }
    return AnnouncementRecord(broadcast_timestamp=timestamp, **values)


def extract_records(payload: Any) -> list[dict[str, Any]]:
    """Pull the list of raw announcement dicts out of a JSON payload."""
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def filter_and_project(
    raw_records: Iterable[dict[str, Any]],
    now: datetime,
    window_days: int = 7,
) -> list[AnnouncementRecord]:
    """
    Keep records broadcast within the window, project, dedupe, sort newest first.

    Records with a missing or unparseable broadcast timestamp are dropped.
    Duplicates share (symbol, attachmentUrl); the first occurrence wins.
    Records without an attachment are only collapsed when subject and
    timestamp also match.
    """
    records: dict[tuple[str, ...], AnnouncementRecord] = {}
    total = 0

    for raw in raw_records:
        total += 1
        timestamp = parse_broadcast_timestamp(raw.get(BROADCAST_FIELD))
        if timestamp is None or not within_window(timestamp, now, window_days):
            continue

        record = project_record(raw, timestamp)
        key = record.dedup_key if record.attachment_url else (
            record.symbol, record.subject, timestamp.isoformat()
        )
        records.setdefault(key, record)

    result = sorted(records.values(), key=lambda r: r.broadcast_timestamp, reverse=True)
    logger.debug(f"Kept {len(result)}/{total} announcements from the last {window_days} days")
    return result
