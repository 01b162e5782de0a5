"""Resolve free-text company names or tickers to the exchange's canonical symbol."""

import logging
import re
from enum import IntEnum
from typing import Callable, Optional, Sequence

from playwright.async_api import ElementHandle, Error as PlaywrightError, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from filings.acquisition.browser import (
    BrowserManager,
    PageInteractionHelper,
    random_pause,
    strategies_from_selectors,
)
from filings.acquisition.errors import (
    AcquisitionError,
    AcquisitionTimeoutError,
    SessionUnavailableError,
    SymbolNotResolvedError,
)
from filings.models.announcement import SymbolCandidate, SymbolQuery
from filings.models.config import EngineConfig
from filings.models.session import Session

logger = logging.getLogger(__name__)


SYMBOL_PATTERN = re.compile(r"^[A-Z0-9&.\-]{1,20}$")

MAX_CANDIDATES = 10

SEARCH_INPUT_SELECTORS = [
    "input[placeholder='Company Name or Symbol']",
    "input[placeholder*='Company Name or Symbol']",
    "input[placeholder*='Company Name']",
    "input[placeholder*='Symbol']",
    "input[placeholder*='Company']",
    "input[name*='company']",
    "input[id*='company']",
    ".search-input",
]

SUGGESTION_SELECTORS = [
    ".autocompleteList.tt-suggestion",
    ".tt-suggestion",
    ".autocompleteList",
    "[role='listbox'] [role='option']",
    ".autocomplete-suggestions li",
    ".dropdown-menu .dropdown-item",
    ".search-suggestions li",
]


class MatchTier(IntEnum):
    """How well a candidate matches the query; higher is better."""

    NONE = 0
    SUBSTRING = 1
    NAME_PREFIX = 2
    SYMBOL_CONTAINS = 3
    EXACT_SYMBOL = 4


def score_candidate(candidate: SymbolCandidate, term: str) -> MatchTier:
    """Score one candidate against a normalized (upper-case) search term."""
    term = term.lower()
    symbol = candidate.symbol_part.lower()
    name = candidate.company_name_part.lower()
    text = candidate.display_text.lower()

    if not term:
        return MatchTier.NONE
    if symbol and symbol == term:
        return MatchTier.EXACT_SYMBOL
    if symbol and (term in symbol or symbol in term):
        return MatchTier.SYMBOL_CONTAINS
    if (name and name.startswith(term)) or text.startswith(term):
        return MatchTier.NAME_PREFIX
    if term in text or (name and term in name):
        return MatchTier.SUBSTRING
    return MatchTier.NONE


def rank_candidates(
    candidates: Sequence[SymbolCandidate],
    term: str,
) -> Optional[SymbolCandidate]:
    """
    Pick the best candidate for a search term.

    Exact symbol beats symbol containment, which beats a company-name prefix,
    which beats a substring anywhere. Ties keep render order. When nothing
    scores, the first rendered candidate is returned.
    """
    if not candidates:
        return None

    best = candidates[0]
    best_tier = MatchTier.NONE
    for candidate in candidates[:MAX_CANDIDATES]:
        tier = score_candidate(candidate, term)
        logger.debug(f"Candidate {candidate.display_text!r}: {tier.name}")
        if tier > best_tier:
            best, best_tier = candidate, tier
            if tier == MatchTier.EXACT_SYMBOL:
                break

    if best_tier == MatchTier.NONE:
        logger.info(f"No scored match for {term!r}, using first candidate")
    return best


class SymbolResolver:
    """
    Maps a SymbolQuery to the site's canonical symbol.

    Strategies, in order:
    1. Exact-match fast path: input already shaped like a ticker.
    2. Interactive: drive the site's own autocomplete with human-paced typing
       and rank the rendered suggestions.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        browser_factory: Callable[..., BrowserManager] = BrowserManager,
    ):
        self.config = config or EngineConfig()
        self._browser_factory = browser_factory
        self.search_input_strategies = strategies_from_selectors(SEARCH_INPUT_SELECTORS)
        self.suggestion_strategies = strategies_from_selectors(SUGGESTION_SELECTORS)

    @staticmethod
    def match_exact(query: SymbolQuery) -> Optional[str]:
        """Accept the input directly if it already looks like a valid ticker."""
        if SYMBOL_PATTERN.match(query.normalized_input):
            return query.normalized_input
        return None

    async def resolve(self, query: SymbolQuery, session: Optional[Session] = None) -> str:
        """Resolve a query to a canonical symbol.

        Raises:
            SymbolNotResolvedError: No candidates rendered within the bounded wait,
                or the interactive path is needed but no session was given.
            AcquisitionTimeoutError: Navigation to the search page timed out.
        """
        if not query.normalized_input:
            raise SymbolNotResolvedError("Empty company name or symbol")

        symbol = self.match_exact(query)
        if symbol is not None:
            logger.debug(f"Exact-match fast path accepted: {symbol}")
            return symbol

        if session is None:
            raise SymbolNotResolvedError(
                f"{query.raw_input!r} is not a ticker and no session is available "
                f"for interactive resolution"
            )

        candidate = await self._resolve_interactively(query, session)
        logger.info(
            f"Resolved {query.raw_input!r} -> {candidate.symbol_part} "
            f"({candidate.display_text!r})"
        )
        return candidate.symbol_part.upper()

    async def _resolve_interactively(self, query: SymbolQuery, session: Session) -> SymbolCandidate:
        manager = self._browser_factory(self.config.browser)
        try:
            async with manager:
                async with manager.get_page(
                    session.fingerprint,
                    cookies=session.cookie_jar,
                    cookie_url=self.config.session.base_url,
                ) as page:
                    candidates = await self._collect_candidates(page, query)
        except AcquisitionError:
            raise
        except PlaywrightTimeoutError as e:
            raise AcquisitionTimeoutError(f"Search page timed out: {e}") from e
        except PlaywrightError as e:
            raise SessionUnavailableError(f"Browser failed during symbol search: {e}") from e

        candidate = rank_candidates(candidates, query.normalized_input)
        if candidate is None or not candidate.symbol_part:
            raise SymbolNotResolvedError(f"No symbol suggestions for {query.raw_input!r}")
        return candidate

    async def _collect_candidates(self, page: Page, query: SymbolQuery) -> list[SymbolCandidate]:
        helper = PageInteractionHelper(page, self.config.browser)

        await page.goto(
            self.config.session.announcements_url,
            wait_until="domcontentloaded",
            timeout=self.config.browser.navigation_timeout_ms,
        )
        await helper.wait_out_challenge(self.config.session.challenge_markers)
        await random_pause(self.config.browser.settle_delay_ms)

        match = await helper.first_match(self.search_input_strategies)
        if match is None:
            raise SymbolNotResolvedError("Company search input not found on the page")
        _, search_input = match

        logger.debug(f"Typing {query.normalized_input!r} into company search")
        await helper.human_type(search_input, query.normalized_input)

        suggestion = await helper.first_match(
            self.suggestion_strategies,
            timeout_ms=self.config.browser.suggestion_timeout_ms,
        )
        if suggestion is None:
            raise SymbolNotResolvedError(
                f"No suggestions rendered for {query.raw_input!r}"
            )
        strategy, _ = suggestion

        elements = await page.query_selector_all(strategy.selector)
        candidates = []
        for element in elements[:MAX_CANDIDATES]:
            candidate = await self._read_candidate(element)
            if candidate is not None:
                candidates.append(candidate)

        logger.debug(f"Read {len(candidates)} suggestion candidates")
        return candidates

    @staticmethod
    async def _read_candidate(element: ElementHandle) -> Optional[SymbolCandidate]:
        """Read a suggestion; the site renders the name in `.lt` and the symbol in a sibling span."""
        try:
            text = (await element.text_content() or "").strip()
            if not text:
                return None
            name_el = await element.query_selector(".lt")
            symbol_el = await element.query_selector("span:not(.lt)")
            name = (await name_el.text_content() or "").strip() if name_el else None
            symbol = (await symbol_el.text_content() or "").strip() if symbol_el else None
        except PlaywrightError as e:
            logger.debug(f"Could not read suggestion: {e}")
            return None
        return SymbolCandidate.from_text(text, company_name=name, symbol=symbol)
