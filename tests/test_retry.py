"""Backoff schedule and error classification for backend calls."""
from __future__ import annotations

import asyncio

import httpx
import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from app.services.retry import (
    BackendError,
    ErrorKind,
    RetryPolicy,
    classify_error,
    execute_with_retry,
    is_retryable,
    user_facing_message,
)


class FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://backend.test/fn")
    return httpx.HTTPStatusError("boom", request=request, response=httpx.Response(code, request=request))


def test_default_policy_doubles_from_one_second():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]
    assert RetryPolicy(max_delay=3.0).delay_for(5) == 3.0


def test_transient_failures_are_retried_until_success():
    sleep = FakeSleep()
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise BackendError("busy", kind=ErrorKind.UNAVAILABLE)
        return "ok"

    result = asyncio.run(execute_with_retry(flaky, policy=RetryPolicy(), sleep=sleep))

    assert result == "ok"
    assert len(attempts) == 3
    assert sleep.delays == [1.0, 2.0]


def test_gives_up_after_four_attempts():
    sleep = FakeSleep()
    attempts = []

    async def always_down():
        attempts.append(1)
        raise httpx.ConnectError("offline")

    with pytest.raises(httpx.ConnectError):
        asyncio.run(execute_with_retry(always_down, policy=RetryPolicy(), sleep=sleep))

    assert len(attempts) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


def test_fatal_errors_propagate_immediately():
    sleep = FakeSleep()
    attempts = []

    async def forbidden():
        attempts.append(1)
        raise _status_error(403)

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(execute_with_retry(forbidden, sleep=sleep, policy=RetryPolicy()))

    assert len(attempts) == 1
    assert sleep.delays == []


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (httpx.ReadTimeout("slow"), ErrorKind.DEADLINE_EXCEEDED),
        (_status_error(429), ErrorKind.RESOURCE_EXHAUSTED),
        (_status_error(503), ErrorKind.UNAVAILABLE),
        (_status_error(404), ErrorKind.FATAL),
        (httpx.ConnectError("down"), ErrorKind.NETWORK),
        (EndpointConnectionError(endpoint_url="https://s3.test"), ErrorKind.NETWORK),
        (ClientError({"Error": {"Code": "SlowDown"}}, "PutObject"), ErrorKind.RESOURCE_EXHAUSTED),
        (ClientError({"Error": {"Code": "AccessDenied"}}, "PutObject"), ErrorKind.FATAL),
        (ValueError("bad input"), ErrorKind.FATAL),
    ],
)
def test_classify_error(exc, kind):
    assert classify_error(exc) is kind


def test_wrapped_errors_keep_their_cause_kind():
    try:
        try:
            raise httpx.ConnectError("down")
        except httpx.ConnectError as inner:
            raise RuntimeError("upload failed") from inner
    except RuntimeError as outer:
        assert is_retryable(outer)
        assert user_facing_message(outer).startswith("Network connection error")


def test_invalid_policy_is_rejected():
    async def noop():
        return None

    with pytest.raises(ValueError):
        asyncio.run(execute_with_retry(noop, policy=RetryPolicy(max_attempts=0)))
