"""Error taxonomy for the acquisition engine."""

import asyncio
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Stable, distinguishable failure classes surfaced to callers."""

    SESSION_UNAVAILABLE = "SessionUnavailable"
    ACCESS_DENIED = "AccessDenied"
    TIMEOUT = "Timeout"
    NETWORK_FAILURE = "NetworkFailure"
    SYMBOL_NOT_RESOLVED = "SymbolNotResolved"
    UNKNOWN = "Unknown"


class AcquisitionError(Exception):
    """Base class for classified acquisition failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        retryable: Optional[bool] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        """Error payload for the caller-facing boundary."""
        return {"errorKind": self.kind.value, "message": self.message}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"message={self.message!r}, retryable={self.retryable})"
        )


class SessionUnavailableError(AcquisitionError):
    """The browser/session layer failed outright."""

    kind = ErrorKind.SESSION_UNAVAILABLE
    default_retryable = True


class AccessDeniedError(AcquisitionError):
    """The data endpoint rejected the session (usually stale cookies)."""

    kind = ErrorKind.ACCESS_DENIED
    default_retryable = True


class AcquisitionTimeoutError(AcquisitionError):
    """A bounded wait was exceeded."""

    kind = ErrorKind.TIMEOUT
    default_retryable = True


class NetworkFailureError(AcquisitionError):
    """Transport-level failure, upstream 5xx, or upstream rate limiting."""

    kind = ErrorKind.NETWORK_FAILURE
    default_retryable = True


class SymbolNotResolvedError(AcquisitionError):
    """No plausible symbol was found for the input."""

    kind = ErrorKind.SYMBOL_NOT_RESOLVED


class UnknownAcquisitionError(AcquisitionError):
    """Unclassified failure."""

    kind = ErrorKind.UNKNOWN


def is_retryable(exc: BaseException) -> bool:
    """Retry predicate: only classified, retryable errors are retried."""
    return isinstance(exc, AcquisitionError) and exc.retryable


def classify_exception(exc: BaseException) -> AcquisitionError:
    """Map a stray exception onto the taxonomy.

    Already-classified errors are returned unchanged.
    """
    if isinstance(exc, AcquisitionError):
        return exc
    if isinstance(exc, asyncio.TimeoutError):
        return AcquisitionTimeoutError(f"Operation timed out: {exc}")
    if isinstance(exc, (ConnectionError, OSError)):
        return NetworkFailureError(f"Network failure: {exc}")
    return UnknownAcquisitionError(f"Unexpected error: {exc}")
