"""Tests for the announcements HTTP client."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from filings.acquisition.client import AnnouncementClient, build_api_headers
from filings.acquisition.errors import (
    AccessDeniedError,
    AcquisitionTimeoutError,
    ErrorKind,
    NetworkFailureError,
    UnknownAcquisitionError,
)
from filings.acquisition.fingerprint import FingerprintGenerator
from filings.models.config import ApiConfig
from filings.models.session import Session
from filings.processing.announcements import IST

NOW = datetime(2025, 6, 20, 12, 0, 0, tzinfo=IST)

ANNOUNCEMENTS = [
    {
        "symbol": "RELIANCE",
        "desc": "Outcome of Board Meeting",
        "attchmntFile": "https://nsearchives.nseindia.com/corporate/RELIANCE_18062025190825.pdf",
        "smIndustry": "Refineries",
        "attchmntText": "Reliance Industries Limited has informed the Exchange about the outcome",
        "fileSize": "245 KB",
        "exchdisstime": "18-Jun-2025 19:08:25",
    },
    {
        "symbol": "RELIANCE",
        "desc": "Analysts/Institutional Investor Meet/Con. Call Updates",
        "attchmntFile": "https://nsearchives.nseindia.com/corporate/RELIANCE_02062025101500.pdf",
        "smIndustry": "Refineries",
        "attchmntText": "Schedule of analyst meet",
        "fileSize": "120 KB",
        "exchdisstime": "02-Jun-2025 10:15:00",
    },
]


class FakeResponse:
    """Async context manager mimicking an aiohttp response."""

    def __init__(self, status: int = 200, body: str = ""):
        self.status = status
        self._body = body

    async def text(self) -> str:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def make_http(*responses) -> MagicMock:
    http = MagicMock()
    http.get = MagicMock(side_effect=list(responses))
    http.close = AsyncMock()
    return http


def make_session() -> Session:
    now = datetime.now(timezone.utc)
    return Session(
        cookie_jar=(("nsit", "abc"), ("nseappid", "xyz")),
        fingerprint=FingerprintGenerator(seed=5).generate(),
        acquired_at=now,
        cache_expires_at=now + timedelta(minutes=5),
    )


def make_client(http: MagicMock, **config) -> AnnouncementClient:
    return AnnouncementClient(ApiConfig(**config), http_session=http, clock=lambda: NOW)


class TestBuildApiHeaders:
    """Tests for build_api_headers."""

    def test_headers_match_fingerprint(self):
        session = make_session()
        headers = build_api_headers(session, "https://www.nseindia.com/companies-listing")
        assert headers["User-Agent"] == session.fingerprint.user_agent
        assert headers["Accept-Language"] == session.fingerprint.accept_language
        assert headers["Cookie"] == "nsit=abc; nseappid=xyz"
        assert headers["Referer"] == "https://www.nseindia.com/companies-listing"
        assert headers["X-Requested-With"] == "XMLHttpRequest"


class TestAnnouncementClient:
    """Tests for AnnouncementClient.fetch."""

    @pytest.mark.asyncio
    async def test_fetch_filters_recent(self):
        http = make_http(FakeResponse(200, json.dumps(ANNOUNCEMENTS)))
        client = make_client(http)

        records = await client.fetch("reliance", make_session())

        assert len(records) == 1
        assert records[0].subject == "Outcome of Board Meeting"
        assert records[0].broadcast_timestamp == datetime(2025, 6, 18, 19, 8, 25, tzinfo=IST)

        kwargs = http.get.call_args.kwargs
        assert kwargs["params"] == {"index": "equities", "symbol": "RELIANCE"}
        assert kwargs["headers"]["Cookie"] == "nsit=abc; nseappid=xyz"

    @pytest.mark.asyncio
    async def test_issuer_passed_through(self):
        http = make_http(FakeResponse(200, "[]"))
        client = make_client(http)
        await client.fetch("TCS", make_session(), issuer="Tata Consultancy Services Limited")
        assert http.get.call_args.kwargs["params"]["issuer"] == "Tata Consultancy Services Limited"

    @pytest.mark.asyncio
    async def test_second_fetch_served_from_cache(self):
        http = make_http(FakeResponse(200, json.dumps(ANNOUNCEMENTS)))
        client = make_client(http)
        session = make_session()

        first = await client.fetch("RELIANCE", session)
        second = await client.fetch("RELIANCE", session)

        assert first == second
        assert http.get.call_count == 1
        assert client.request_count == 1

    @pytest.mark.asyncio
    async def test_invalidate_forces_request(self):
        http = make_http(
            FakeResponse(200, json.dumps(ANNOUNCEMENTS)),
            FakeResponse(200, json.dumps(ANNOUNCEMENTS)),
        )
        client = make_client(http)
        session = make_session()

        await client.fetch("RELIANCE", session)
        assert client.invalidate("RELIANCE") == 1
        await client.fetch("RELIANCE", session)

        assert http.get.call_count == 2

    @pytest.mark.asyncio
    async def test_wrapped_payload(self):
        http = make_http(FakeResponse(200, json.dumps({"data": ANNOUNCEMENTS})))
        records = await make_client(http).fetch("RELIANCE", make_session())
        assert len(records) == 1

    @pytest.mark.asyncio
    async def test_not_found_is_empty_and_not_cached(self):
        http = make_http(FakeResponse(404), FakeResponse(404))
        client = make_client(http)

        assert await client.fetch("NOSUCH", make_session()) == []
        assert await client.fetch("NOSUCH", make_session()) == []
        assert http.get.call_count == 2

    @pytest.mark.asyncio
    async def test_forbidden(self):
        http = make_http(FakeResponse(403, "Access Denied"))
        with pytest.raises(AccessDeniedError) as exc_info:
            await make_client(http).fetch("RELIANCE", make_session())
        assert exc_info.value.status_code == 403
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_html_body_is_access_denied(self):
        http = make_http(FakeResponse(200, "<html><title>Access Denied</title></html>"))
        with pytest.raises(AccessDeniedError):
            await make_client(http).fetch("RELIANCE", make_session())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503])
    async def test_upstream_failures(self, status):
        http = make_http(FakeResponse(status))
        with pytest.raises(NetworkFailureError) as exc_info:
            await make_client(http).fetch("RELIANCE", make_session())
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_other_client_error(self):
        http = make_http(FakeResponse(400))
        with pytest.raises(UnknownAcquisitionError) as exc_info:
            await make_client(http).fetch("RELIANCE", make_session())
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_timeout(self):
        http = make_http(asyncio.TimeoutError())
        with pytest.raises(AcquisitionTimeoutError) as exc_info:
            await make_client(http).fetch("RELIANCE", make_session())
        assert exc_info.value.kind == ErrorKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self):
        http = make_http(aiohttp.ClientConnectionError("Connection reset by peer"))
        with pytest.raises(NetworkFailureError):
            await make_client(http).fetch("RELIANCE", make_session())

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self):
        http = make_http()
        async with make_client(http):
            pass
        http.close.assert_not_awaited()

    def test_cache_key(self):
        assert AnnouncementClient.cache_key(" TCS ") == "announcements:tcs"
        assert AnnouncementClient.cache_key("TCS", "Tata") == "announcements:tcs:tata"
