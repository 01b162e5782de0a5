"""CLI interface for the corporate filings acquisition engine."""

import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
import typer

# Load environment variables from .env file
load_dotenv()
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from filings.acquisition.browser import BrowserManager
from filings.acquisition.engine import AcquisitionEngine
from filings.acquisition.errors import AcquisitionError, ErrorKind, classify_exception
from filings.acquisition.fingerprint import FingerprintGenerator
from filings.acquisition.resolver import SymbolResolver
from filings.acquisition.session import SessionAcquirer
from filings.acquisition.throttle import SymbolThrottle
from filings.models.announcement import AcquisitionResult, SymbolQuery
from filings.models.config import EngineConfig

# Initialize CLI app
app = typer.Typer(
    name="filings",
    help="Recent corporate announcements for NSE-listed companies",
    add_completion=False,
)

console = Console()

EXIT_CODES = {
    ErrorKind.SYMBOL_NOT_RESOLVED: 2,
    ErrorKind.TIMEOUT: 3,
}


def setup_logging(verbose: bool = False) -> None:
    """Set up logging with rich formatting."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def exit_code_for(error: AcquisitionError) -> int:
    return EXIT_CODES.get(error.kind, 1)


def fail(error: BaseException, verbose: bool, action: str) -> None:
    """Report a failure and exit with the code for its kind."""
    classified = classify_exception(error)
    console.print(f"\n[red]{action} failed ({classified.kind.value}): {classified.message}[/red]")
    if verbose and not isinstance(error, AcquisitionError):
        console.print_exception()
    sys.exit(exit_code_for(classified))


@app.command()
def fetch(
    symbols: list[str] = typer.Argument(..., help="Ticker(s) or company name(s)"),
    issuer: Optional[str] = typer.Option(
        None, "--issuer", "-i", help="Issuer name hint passed to the endpoint"
    ),
    force_refresh: bool = typer.Option(
        False, "--force-refresh", "-f", help="Discard the cached session before fetching"
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="Output file path for the result payload (JSON)"
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the result payload as JSON"
    ),
    headless: bool = typer.Option(
        True, "--headless/--no-headless", help="Run browser in headless mode"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Fetch announcements from the last 7 days.

    Each symbol is fetched independently: a failure is reported and recorded
    in the output, and the remaining symbols are still fetched. The exit code
    reflects the first failure. Repeated requests for the same company within
    the minimum interval are skipped; the session is shared across all
    symbols of one invocation.

    Example:
        filings fetch RELIANCE "Tata Consultancy" --output filings.json
    """
    setup_logging(verbose)

    config = EngineConfig.from_env()
    config.browser.headless = headless
    throttle = SymbolThrottle(config.request_interval_seconds)
    failures: list[AcquisitionError] = []

    async def run_fetch() -> list[dict[str, Any]]:
        payloads = []
        async with AcquisitionEngine.create(config) as engine:
            for symbol in symbols:
                retry_after = throttle.try_acquire(symbol)
                if retry_after:
                    console.print(
                        f"[yellow]Skipping {symbol!r}: requested again too soon, "
                        f"retry after {retry_after}s[/yellow]"
                    )
                    continue
                try:
                    result = await engine.run(symbol, issuer=issuer, force_refresh=force_refresh)
                except Exception as e:
                    classified = classify_exception(e)
                    failures.append(classified)
                    console.print(
                        f"[red]Fetch failed for {symbol!r} "
                        f"({classified.kind.value}): {classified.message}[/red]"
                    )
                    if verbose and not isinstance(e, AcquisitionError):
                        console.print_exception()
                    payloads.append({"query": symbol, **classified.to_payload()})
                    continue
                if as_json:
                    console.print_json(json.dumps(result.to_payload()))
                else:
                    display_result(result)
                payloads.append(result.to_payload())
            if verbose:
                display_stats(engine.stats())
        return payloads

    try:
        payloads = asyncio.run(run_fetch())
    except KeyboardInterrupt:
        console.print("\n[yellow]Fetch cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        fail(e, verbose, "Fetch")

    if output:
        output_path = Path(output)
        data = payloads[0] if len(payloads) == 1 else payloads
        with open(output_path, "w") as f:
            json.dump(data, f, indent=2)
        console.print(f"\n[green]Results saved to: {output_path}[/green]")

    if failures:
        console.print(f"\n[red]{len(failures)} of {len(payloads)} fetches failed[/red]")
        sys.exit(exit_code_for(failures[0]))


@app.command()
def resolve(
    query: str = typer.Argument(..., help="Company name or ticker"),
    headless: bool = typer.Option(
        True, "--headless/--no-headless", help="Run browser in headless mode"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Resolve a company name to its NSE symbol.

    Example:
        filings resolve "Reliance Industries"
    """
    setup_logging(verbose)

    config = EngineConfig.from_env()
    config.browser.headless = headless
    symbol_query = SymbolQuery.from_input(query)
    resolver = SymbolResolver(config)

    async def run_resolve() -> str:
        session = None
        if symbol_query.normalized_input and resolver.match_exact(symbol_query) is None:
            session = await SessionAcquirer(config).acquire()
        return await resolver.resolve(symbol_query, session)

    try:
        symbol = asyncio.run(run_resolve())
    except Exception as e:
        fail(e, verbose, "Resolution")

    console.print(f"[bold]{query}[/bold] -> [green]{symbol}[/green]")


@app.command()
def session(
    headless: bool = typer.Option(
        True, "--headless/--no-headless", help="Run browser in headless mode"
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Acquire a session and show its details.

    Example:
        filings session --no-headless
    """
    setup_logging(verbose)

    config = EngineConfig.from_env()
    config.browser.headless = headless

    try:
        acquired = asyncio.run(SessionAcquirer(config).acquire())
    except Exception as e:
        fail(e, verbose, "Session acquisition")

    table = Table(title="Session")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Cookies", str(acquired.cookie_count))
    table.add_row("Cookie Names", ", ".join(name for name, _ in acquired.cookie_jar))
    table.add_row("User Agent", acquired.fingerprint.user_agent)
    table.add_row("Viewport", f"{acquired.fingerprint.viewport_width}x{acquired.fingerprint.viewport_height}")
    table.add_row("Locale", acquired.fingerprint.locale)
    table.add_row("Acquired At", acquired.acquired_at.isoformat())
    table.add_row("Cached Until", acquired.cache_expires_at.isoformat())

    console.print(table)


@app.command()
def diagnose(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose logging"
    ),
) -> None:
    """
    Browser self-test: launch, context creation and navigation timings.

    Example:
        filings diagnose
    """
    setup_logging(verbose)

    config = EngineConfig.from_env()
    checks: list[tuple[str, bool, str]] = []

    async def run_diagnostics() -> None:
        manager = BrowserManager(config.browser)
        fingerprint = FingerprintGenerator().generate()
        try:
            start = time.time()
            await manager.start()
            checks.append(("Browser Launch", True, f"{(time.time() - start) * 1000:.0f}ms"))

            start = time.time()
            async with manager.get_page(fingerprint) as page:
                checks.append(("Context Creation", True, f"{(time.time() - start) * 1000:.0f}ms"))

                start = time.time()
                await page.goto(
                    config.session.base_url,
                    wait_until="domcontentloaded",
                    timeout=config.browser.navigation_timeout_ms,
                )
                title = await page.title()
                checks.append((
                    "Navigation",
                    True,
                    f"{(time.time() - start) * 1000:.0f}ms, title={title!r}",
                ))
        except Exception as e:
            step = ("Browser Launch", "Context Creation", "Navigation")[min(len(checks), 2)]
            checks.append((step, False, str(e).splitlines()[0] if str(e) else repr(e)))
        finally:
            await manager.stop()

    total_start = time.time()
    asyncio.run(run_diagnostics())

    table = Table(title="Browser Diagnostics")
    table.add_column("Test", style="cyan")
    table.add_column("Result", style="white")
    table.add_column("Details", style="white")
    for name, ok, details in checks:
        table.add_row(name, "[green]PASS[/green]" if ok else "[red]FAIL[/red]", details)
    console.print(table)

    success = all(ok for _, ok, _ in checks)
    console.print(f"\nTotal time: {time.time() - total_start:.1f}s")
    if not success:
        sys.exit(1)


def display_result(result: AcquisitionResult) -> None:
    """Display an acquisition result in a formatted way."""
    metadata = result.session_metadata
    summary = f"""
[bold]Symbol:[/bold] {result.symbol}
[bold]Announcements:[/bold] {result.count}
[bold]Fetched At:[/bold] {result.fetched_at.isoformat()}
[bold]Session:[/bold] {'cached' if metadata and metadata.cached else 'fresh'}{f', {metadata.cookie_count} cookies' if metadata else ''}
"""
    console.print(Panel(summary, title="Corporate Announcements", border_style="green"))

    if not result.announcements:
        console.print("[yellow]No announcements in the last 7 days[/yellow]")
        return

    table = Table(title=f"{result.symbol} Announcements")
    table.add_column("Broadcast", style="cyan", no_wrap=True)
    table.add_column("Subject", style="white")
    table.add_column("Size", style="dim")
    table.add_column("Attachment", style="blue")

    for record in result.announcements:
        table.add_row(
            record.broadcast_timestamp.strftime("%d-%b-%Y %H:%M"),
            record.subject,
            record.file_size_label,
            record.attachment_url,
        )

    console.print(table)


def display_stats(stats: dict[str, dict[str, Any]]) -> None:
    """Display session and response cache statistics."""
    table = Table(title="Cache Statistics")
    table.add_column("Cache", style="cyan")
    table.add_column("Statistic", style="white")
    table.add_column("Value", style="white")
    for cache_name, values in stats.items():
        for name, value in values.items():
            table.add_row(cache_name, name, str(value))
    console.print(table)


@app.callback()
def main():
    """
    Corporate Filings Acquisition Engine

    Fetch recent NSE corporate announcements by company name or symbol.
    Sessions are acquired with a stealth browser and reused across requests.
    """
    pass


if __name__ == "__main__":
    app()
