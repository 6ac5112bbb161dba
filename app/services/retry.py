"""Retry wrapper with exponential backoff for calls into external backends.

Errors are classified into an :class:`ErrorKind` by exception type and status
code. Only transient kinds are retried; anything else, and the last failed
attempt, propagates to the caller unchanged.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Awaitable, Callable, TypeVar

import httpx
from botocore.exceptions import ClientError, ConnectionClosedError, EndpointConnectionError, ReadTimeoutError
from sqlalchemy.exc import DisconnectionError, OperationalError

from ..config import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(StrEnum):
    DEADLINE_EXCEEDED = "deadline_exceeded"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    UNAVAILABLE = "unavailable"
    NETWORK = "network"
    FATAL = "fatal"


RETRYABLE_KINDS: frozenset[ErrorKind] = frozenset(
    {
        ErrorKind.DEADLINE_EXCEEDED,
        ErrorKind.RESOURCE_EXHAUSTED,
        ErrorKind.UNAVAILABLE,
        ErrorKind.NETWORK,
    }
)


class BackendError(RuntimeError):
    """Raised by transport code that already knows what kind of failure happened."""

    def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.FATAL) -> None:
        super().__init__(message)
        self.kind = kind


_HTTP_STATUS_KINDS: dict[int, ErrorKind] = {
    408: ErrorKind.DEADLINE_EXCEEDED,
    429: ErrorKind.RESOURCE_EXHAUSTED,
    502: ErrorKind.UNAVAILABLE,
    503: ErrorKind.UNAVAILABLE,
    504: ErrorKind.DEADLINE_EXCEEDED,
}

_S3_CODE_KINDS: dict[str, ErrorKind] = {
    "SlowDown": ErrorKind.RESOURCE_EXHAUSTED,
    "Throttling": ErrorKind.RESOURCE_EXHAUSTED,
    "ThrottlingException": ErrorKind.RESOURCE_EXHAUSTED,
    "RequestTimeout": ErrorKind.DEADLINE_EXCEEDED,
    "ServiceUnavailable": ErrorKind.UNAVAILABLE,
    "InternalError": ErrorKind.UNAVAILABLE,
}


def kind_for_status(status_code: int) -> ErrorKind:
    return _HTTP_STATUS_KINDS.get(status_code, ErrorKind.FATAL)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception raised by a backend call onto an :class:`ErrorKind`."""

    if isinstance(exc, BackendError):
        return exc.kind
    if isinstance(exc, httpx.TimeoutException):
        return ErrorKind.DEADLINE_EXCEEDED
    if isinstance(exc, httpx.HTTPStatusError):
        return kind_for_status(exc.response.status_code)
    if isinstance(exc, httpx.TransportError):
        return ErrorKind.NETWORK
    if isinstance(exc, (EndpointConnectionError, ConnectionClosedError)):
        return ErrorKind.NETWORK
    if isinstance(exc, ReadTimeoutError):
        return ErrorKind.DEADLINE_EXCEEDED
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        return _S3_CODE_KINDS.get(code, ErrorKind.FATAL)
    if isinstance(exc, (OperationalError, DisconnectionError)):
        return ErrorKind.UNAVAILABLE
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return ErrorKind.DEADLINE_EXCEEDED
    if isinstance(exc, ConnectionError):
        return ErrorKind.NETWORK
    # Wrapped transport errors keep the kind of what they wrap.
    if exc.__cause__ is not None:
        return classify_error(exc.__cause__)
    return ErrorKind.FATAL


def is_retryable(exc: BaseException) -> bool:
    return classify_error(exc) in RETRYABLE_KINDS


_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.DEADLINE_EXCEEDED: "The request took too long. Please try again.",
    ErrorKind.RESOURCE_EXHAUSTED: "Too many requests. Please wait a moment and try again.",
    ErrorKind.UNAVAILABLE: "Service temporarily unavailable. Please try again in a moment.",
    ErrorKind.NETWORK: "Network connection error. Please check your internet connection.",
    ErrorKind.FATAL: "Something went wrong. Please try again.",
}


def user_facing_message(exc: BaseException) -> str:
    return _USER_MESSAGES[classify_error(exc)]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff settings; ``max_attempts`` counts the first try."""

    max_attempts: int = 4
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def delay_for(self, retry_number: int) -> float:
        """Return the pause before retry ``retry_number`` (1-based)."""

        if retry_number <= 0:
            return 0.0
        delay = self.initial_delay * (self.multiplier ** (retry_number - 1))
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay,
            max_delay=settings.retry_max_delay,
        )


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    operation_name: str = "operation",
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation`` until it succeeds or a non-retryable error occurs."""

    policy = policy or RetryPolicy.from_settings()
    if policy.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            kind = classify_error(exc)
            if kind not in RETRYABLE_KINDS:
                raise
            if attempt >= policy.max_attempts:
                logger.warning("%s failed after %d attempts (%s)", operation_name, attempt, kind)
                raise
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed on attempt %d/%d (%s); retrying in %.1fs",
                operation_name,
                attempt,
                policy.max_attempts,
                kind,
                delay,
            )
            await sleep(delay)
            attempt += 1


__all__ = [
    "BackendError",
    "ErrorKind",
    "RETRYABLE_KINDS",
    "RetryPolicy",
    "classify_error",
    "execute_with_retry",
    "is_retryable",
    "kind_for_status",
    "user_facing_message",
]
