"""Announcement, symbol and result models."""

import re
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from filings.models.session import SessionMetadata


class SymbolQuery(BaseModel):
    """A user-supplied company name or ticker, created per request."""

    raw_input: str
    normalized_input: str

    model_config = {"frozen": True}

    @classmethod
    def from_input(cls, text: str) -> "SymbolQuery":
        normalized = re.sub(r"\s+", " ", (text or "").strip()).upper()
        return cls(raw_input=text or "", normalized_input=normalized)


class SymbolCandidate(BaseModel):
    """One autocomplete suggestion rendered while resolving a query."""

    display_text: str
    company_name_part: str = ""
    symbol_part: str = ""

    model_config = {"frozen": True}

    @classmethod
    def from_text(
        cls,
        display_text: str,
        company_name: Optional[str] = None,
        symbol: Optional[str] = None,
    ) -> "SymbolCandidate":
        """Build a candidate from rendered text.

        Explicit name/symbol parts win; otherwise "Name | SYMBOL" is split on
        the pipe, and a bare "Name SYMBOL" uses its last token as the symbol.
        """
        text = " ".join((display_text or "").split())
        if company_name or symbol:
            return cls(
                display_text=text,
                company_name_part=(company_name or "").strip(),
                symbol_part=(symbol or "").strip(),
            )
        if "|" in text:
            name, _, sym = text.rpartition("|")
            return cls(
                display_text=text,
                company_name_part=name.strip(),
                symbol_part=sym.strip(),
            )
        name, _, sym = text.rpartition(" ")
        if not name:
            return cls(display_text=text, company_name_part="", symbol_part=text)
        return cls(display_text=text, company_name_part=name, symbol_part=sym)


class AnnouncementRecord(BaseModel):
    """
    A single corporate announcement, projected onto the fixed field set.

    Serialized (``model_dump(by_alias=True)``) under exactly seven names:
    symbol, subject, attachmentUrl, industry, attachmentText, fileSizeLabel,
    broadcastTimestamp.
    """

    symbol: str
    subject: str = ""
    attachment_url: str = Field(default="", alias="attachmentUrl")
    industry: str = ""
    attachment_text: str = Field(default="", alias="attachmentText")
    file_size_label: str = Field(default="", alias="fileSizeLabel")
    broadcast_timestamp: datetime = Field(alias="broadcastTimestamp")

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.symbol, self.attachment_url)


class AcquisitionRequest(BaseModel):
    """Caller-facing request accepted by the engine boundary."""

    symbol: str
    issuer: Optional[str] = None
    force_refresh: bool = Field(default=False, alias="forceRefresh")

    model_config = {"populate_by_name": True}


class AcquisitionResult(BaseModel):
    """Outcome of one successful engine invocation (not retained by the engine)."""

    symbol: str
    announcements: list[AnnouncementRecord] = Field(default_factory=list)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    session_metadata: Optional[SessionMetadata] = None

    @property
    def count(self) -> int:
        return len(self.announcements)

    def to_payload(self) -> dict[str, Any]:
        """Success payload for the caller-facing boundary."""
        return {
            "symbol": self.symbol,
            "announcements": [
                record.model_dump(mode="json", by_alias=True)
                for record in self.announcements
            ],
            "count": self.count,
            "fetchedAt": self.fetched_at.isoformat(),
        }
