"""
Error Classification

Defines how failures of the external signer are classified.
Every failure maps to exactly one ErrorKind, which decides whether the
executor retries, switches to the alternate execution path, or stops.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorKind(str, Enum):
    """Classification of an execution failure."""

    USER_REJECTED = "UserRejected"                      # Signer declined; terminal
    RETRYABLE_TRANSIENT = "RetryableTransient"          # Network/timeout; retry
    ALTERNATE_PATH_ELIGIBLE = "AlternatePathEligible"   # Primary path unusable; try alternate once
    FATAL = "Fatal"                                     # Malformed payload or contract rejection; terminal

    @property
    def is_terminal(self) -> bool:
        return self in (ErrorKind.USER_REJECTED, ErrorKind.FATAL)


@dataclass
class ErrorContext:
    """Additional context about a classified error."""

    kind: ErrorKind = ErrorKind.FATAL
    message: str = ""
    retry_after_seconds: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SignerError(Exception):
    """
    Base class for failures reported by a signer client.

    Subclasses fix the kind; a client raises the subclass that matches what
    the signer told it.
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after
        self.context = ErrorContext(
            kind=self.kind,
            message=message,
            retry_after_seconds=retry_after,
            details=details or {},
        )


class UserRejectedError(SignerError):
    """The signer explicitly declined the transaction."""

    kind = ErrorKind.USER_REJECTED

    def __init__(self, message: str = "Transaction rejected by user", **kwargs: Any):
        super().__init__(message, **kwargs)


class TransientSignerError(SignerError):
    """Network or availability failure that may succeed on retry."""

    kind = ErrorKind.RETRYABLE_TRANSIENT


class PathUnavailableError(SignerError):
    """The primary call surface is unavailable or misconfigured."""

    kind = ErrorKind.ALTERNATE_PATH_ELIGIBLE


class ContractRejectedError(SignerError):
    """The payload was malformed or the contract rejected the call."""

    kind = ErrorKind.FATAL


# Message fragments, checked in order
_USER_REJECTED_PATTERNS = (
    "rejected",
    "user denied",
    "user abort",
    "declined",
)
_ALTERNATE_PATH_PATTERNS = (
    "multicall",
    "option::unwrap failed",
    "method not found",
    "not supported",
    "no compatible wallet execution method",
)
_TRANSIENT_PATTERNS = (
    "timeout",
    "timed out",
    "network",
    "connection",
    "econnreset",
    "socket",
    "nonce",
    "rate limit",
    "too many requests",
    "429",
    "503",
    "502",
)


def classify_error(error: BaseException) -> ErrorContext:
    """
    Classify an exception raised by a signer call.

    Typed signer errors carry their own kind. Timeouts and transport
    failures are transient. Anything else is classified by message; an
    unrecognised failure is Fatal so that a funds-moving call is never
    repeated on a guess.
    """
    if isinstance(error, SignerError):
        return error.context

    message = str(error) or error.__class__.__name__

    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorContext(kind=ErrorKind.RETRYABLE_TRANSIENT, message=message or "timeout")

    if isinstance(error, (httpx.TransportError, ConnectionError)):
        return ErrorContext(kind=ErrorKind.RETRYABLE_TRANSIENT, message=message)

    lowered = message.lower()

    if any(p in lowered for p in _USER_REJECTED_PATTERNS):
        return ErrorContext(kind=ErrorKind.USER_REJECTED, message=message)

    if any(p in lowered for p in _ALTERNATE_PATH_PATTERNS):
        return ErrorContext(kind=ErrorKind.ALTERNATE_PATH_ELIGIBLE, message=message)

    if any(p in lowered for p in _TRANSIENT_PATTERNS):
        return ErrorContext(kind=ErrorKind.RETRYABLE_TRANSIENT, message=message)

    return ErrorContext(kind=ErrorKind.FATAL, message=message)
