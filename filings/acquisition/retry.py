"""Bounded exponential-backoff retry around fallible acquisition steps."""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from filings.acquisition.errors import is_retryable
from filings.models.config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryOrchestrator:
    """
    Wraps an async operation with classified, bounded retries.

    Only errors whose classification says they are retryable are retried.
    After the final attempt the last classified error is re-raised unchanged.

    Usage:
        retry = RetryOrchestrator(RetryConfig(max_attempts=3), name="fetch")
        records = await retry.run(client.fetch, symbol, session)
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        name: str = "operation",
        predicate: Callable[[BaseException], bool] = is_retryable,
    ):
        self.config = config or RetryConfig()
        self.name = name
        self.predicate = predicate

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"{self.name} attempt {retry_state.attempt_number}/"
            f"{self.config.max_attempts} failed: {exc!r}; retrying in {delay:.1f}s"
        )

    def attempts(self) -> AsyncRetrying:
        """
        Attempt iterator for callers that need work outside the retried block.

        Exceptions raised inside `with attempt:` are classified and retried;
        anything raised outside it propagates immediately.
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(
                multiplier=self.config.initial_delay_seconds,
                exp_base=self.config.exponential_base,
                max=self.config.max_delay_seconds,
            ),
            retry=retry_if_exception(self.predicate),
            before_sleep=self._log_retry,
            reraise=True,
        )

    async def run(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute the operation with retry logic."""
        async for attempt in self.attempts():
            with attempt:
                return await operation(*args, **kwargs)

        # AsyncRetrying either returns from the loop body or re-raises
        raise RuntimeError(f"{self.name}: retry loop exited without a result")
