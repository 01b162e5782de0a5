"""Per-symbol minimum request interval, enforced at the caller boundary."""

import logging
import math
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SymbolThrottle:
    """
    Allows at most one request per symbol every ``interval_seconds``.

    Keys are normalized the same way for names and tickers, so
    "Reliance  Industries" and "reliance industries" share a slot.

    State lives in this instance only; nothing is shared across processes.
    The CLI builds one per invocation, so there it skips repeats within a
    single `fetch` batch. A long-running host should keep one instance for
    its lifetime to throttle across requests.

    Usage:
        throttle = SymbolThrottle(10.0)
        retry_after = throttle.try_acquire("RELIANCE")
        if retry_after:
            print(f"Wait {retry_after}s")
    """

    def __init__(
        self,
        interval_seconds: float = 10.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.interval_seconds = interval_seconds
        self._clock = clock or time.monotonic
        self._last_request: dict[str, float] = {}

    @staticmethod
    def normalize(symbol: str) -> str:
        return "_".join(symbol.strip().lower().split())

    def retry_after(self, symbol: str) -> int:
        """Whole seconds until the symbol may be requested again (0 if allowed)."""
        last = self._last_request.get(self.normalize(symbol))
        if last is None:
            return 0
        remaining = self.interval_seconds - (self._clock() - last)
        return max(0, math.ceil(remaining))

    def try_acquire(self, symbol: str) -> int:
        """Claim the slot for a symbol.

        Returns:
            0 if the request may proceed (the slot is recorded), otherwise the
            number of seconds to wait. A rejected request does not reset the slot.
        """
        wait = self.retry_after(symbol)
        if wait:
            logger.warning(f"Request for {symbol!r} throttled, retry after {wait}s")
            return wait

        self._prune()
        self._last_request[self.normalize(symbol)] = self._clock()
        logger.debug(f"Request for {symbol!r} approved")
        return 0

    def _prune(self) -> None:
        now = self._clock()
        stale = [
            key for key, last in self._last_request.items()
            if now - last >= self.interval_seconds
        ]
        for key in stale:
            del self._last_request[key]
