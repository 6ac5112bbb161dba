"""HTTP client for the backend's server-side functions (block and unblock)."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any
from uuid import UUID

import httpx

from ..config import get_settings
from ..services.rate_limiter import RateLimiter
from ..services.retry import RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)


class FunctionCallError(RuntimeError):
    """Raised when a server-side function cannot be reached or reports failure."""


class FunctionsNotConfiguredError(FunctionCallError):
    """Raised when FUNCTIONS_BASE_URL is not set."""


@lru_cache(maxsize=1)
def get_function_limiter() -> RateLimiter:
    return RateLimiter.from_settings()


async def call_function(
    name: str,
    payload: dict[str, Any],
    *,
    caller_id: UUID,
    transport: httpx.AsyncBaseTransport | None = None,
    policy: RetryPolicy | None = None,
    limiter: RateLimiter | None = None,
) -> dict[str, Any]:
    """Invoke function ``name`` with ``payload`` and return its ``result`` object.

    Transient failures are retried with backoff and every attempt goes through
    the outbound rate limiter. Whatever still fails surfaces as
    :class:`FunctionCallError`.
    """

    settings = get_settings()
    if not settings.functions_base_url:
        raise FunctionsNotConfiguredError("FUNCTIONS_BASE_URL is not configured")

    url = f"{settings.functions_base_url.rstrip('/')}/{name}"
    gate = limiter or get_function_limiter()
    headers = {"X-Caller-Id": str(caller_id)}

    async def _attempt() -> Any:
        async with gate.slot():
            async with httpx.AsyncClient(timeout=settings.functions_timeout, transport=transport) as client:
                response = await client.post(url, json={"data": payload}, headers=headers)
                response.raise_for_status()
                return response.json()

    try:
        data = await execute_with_retry(_attempt, operation_name=f"function {name}", policy=policy)
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Server-side function %s failed: %s", name, exc)
        raise FunctionCallError(f"Function {name} failed") from exc

    result = data.get("result", data) if isinstance(data, dict) else None
    if not isinstance(result, dict):
        raise FunctionCallError(f"Function {name} returned an invalid response")
    return result


__all__ = ["FunctionCallError", "FunctionsNotConfiguredError", "call_function", "get_function_limiter"]
