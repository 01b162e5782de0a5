"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from filings.acquisition.errors import (
    AcquisitionTimeoutError,
    NetworkFailureError,
    SymbolNotResolvedError,
)
from filings.main import app, exit_code_for
from filings.models.announcement import AcquisitionResult

runner = CliRunner()


def make_engine_class(run_side_effect=None):
    """Patched AcquisitionEngine whose create() yields an async-context engine."""
    engine = MagicMock()
    engine.run = AsyncMock(
        side_effect=run_side_effect,
        return_value=AcquisitionResult(symbol="TCS"),
    )
    engine.__aenter__ = AsyncMock(return_value=engine)
    engine.__aexit__ = AsyncMock(return_value=False)

    engine_class = MagicMock()
    engine_class.create = MagicMock(return_value=engine)
    return engine_class, engine


class TestExitCodes:
    """Tests for error kind to exit code mapping."""

    def test_mapping(self):
        assert exit_code_for(SymbolNotResolvedError("x")) == 2
        assert exit_code_for(AcquisitionTimeoutError("x")) == 3
        assert exit_code_for(NetworkFailureError("x")) == 1


class TestResolveCommand:
    """Tests for the resolve command."""

    def test_ticker_fast_path(self):
        result = runner.invoke(app, ["resolve", "infy"])
        assert result.exit_code == 0
        assert "INFY" in result.output

    def test_empty_query(self):
        result = runner.invoke(app, ["resolve", "  "])
        assert result.exit_code == 2


class TestFetchCommand:
    """Tests for the fetch command."""

    def test_fetch_writes_output(self, tmp_path):
        engine_class, engine = make_engine_class()
        output = tmp_path / "tcs.json"

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "TCS", "--output", str(output)])

        assert result.exit_code == 0
        engine.run.assert_awaited_once_with("TCS", issuer=None, force_refresh=False)
        payload = json.loads(output.read_text())
        assert payload["symbol"] == "TCS"
        assert payload["count"] == 0

    def test_repeated_symbol_throttled(self):
        engine_class, engine = make_engine_class()

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "TCS", "tcs"])

        assert result.exit_code == 0
        assert engine.run.await_count == 1

    def test_unresolved_exit_code(self):
        engine_class, _ = make_engine_class(SymbolNotResolvedError("No symbol suggestions"))

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "Nonexistent Company"])

        assert result.exit_code == 2

    def test_timeout_exit_code(self):
        engine_class, _ = make_engine_class(AcquisitionTimeoutError("Session acquisition exceeded 90s"))

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "RELIANCE", "--force-refresh"])

        assert result.exit_code == 3

    def test_failure_does_not_abort_batch(self, tmp_path):
        engine_class, engine = make_engine_class(
            [NetworkFailureError("HTTP 503"), AcquisitionResult(symbol="TCS")]
        )
        output = tmp_path / "batch.json"

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "RELIANCE", "TCS", "--output", str(output)])

        assert result.exit_code == 1
        assert engine.run.await_count == 2
        payloads = json.loads(output.read_text())
        assert payloads[0] == {
            "query": "RELIANCE",
            "errorKind": "NetworkFailure",
            "message": "HTTP 503",
        }
        assert payloads[1]["symbol"] == "TCS"

    def test_exit_code_from_first_failure(self):
        engine_class, engine = make_engine_class(
            [SymbolNotResolvedError("No symbol suggestions"), AcquisitionTimeoutError("slow")]
        )

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "Nonexistent Company", "RELIANCE"])

        assert result.exit_code == 2
        assert engine.run.await_count == 2

    def test_verbose_shows_cache_stats(self):
        engine_class, engine = make_engine_class()
        engine.stats = MagicMock(
            return_value={"session": {"acquisitions": 1}, "responses": {"hits": 0}}
        )

        with patch("filings.main.AcquisitionEngine", engine_class):
            result = runner.invoke(app, ["fetch", "TCS", "--verbose"])

        assert result.exit_code == 0
        assert "Cache Statistics" in result.output
