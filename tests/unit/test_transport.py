"""Unit tests for the retrying HTTP transport."""

from __future__ import annotations

import httpx
import pytest

from sitg_bot.transport import RetryPolicy, is_retryable_status, request_with_retry


class _Script:
    """MockTransport handler replaying a fixed sequence of results."""

    def __init__(self, *results: int | Exception) -> None:
        self._results = list(results)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return httpx.Response(result, request=request)


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def _send(
    script: _Script, sleep: _RecordingSleep, attempts: int = 3
) -> httpx.Response:
    async with httpx.AsyncClient(transport=httpx.MockTransport(script)) as client:
        return await request_with_retry(
            client,
            "GET",
            "https://example.test/thing",
            policy=RetryPolicy(attempts=attempts, base_delay_s=0.5),
            sleep=sleep,
        )


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        (408, True),
        (425, True),
        (429, True),
        (500, True),
        (503, True),
        (404, False),
        (422, False),
        (200, False),
    ],
)
def test_is_retryable_status(status: int, expected: bool) -> None:  # noqa: FBT001
    """Timeouts, throttling and server errors are retryable."""
    assert is_retryable_status(status) is expected, f"status {status}"


@pytest.mark.asyncio
async def test_returns_success_without_retry() -> None:
    """A 2xx response is returned on the first attempt."""
    script, sleep = _Script(200), _RecordingSleep()
    response = await _send(script, sleep)
    assert response.status_code == 200, "expected success"
    assert script.calls == 1, "expected a single attempt"
    assert sleep.delays == [], "no backoff expected"


@pytest.mark.asyncio
async def test_non_retryable_status_returned_immediately() -> None:
    """A 404 is authoritative and is not retried."""
    script, sleep = _Script(404, 200), _RecordingSleep()
    response = await _send(script, sleep)
    assert response.status_code == 404, "expected the 404 back"
    assert script.calls == 1, "404 must not be retried"


@pytest.mark.asyncio
async def test_retries_server_errors_with_exponential_backoff() -> None:
    """Retryable statuses back off 0.5s then 1.0s before succeeding."""
    script, sleep = _Script(503, 429, 200), _RecordingSleep()
    response = await _send(script, sleep)
    assert response.status_code == 200, "expected eventual success"
    assert sleep.delays == [0.5, 1.0], "expected doubling backoff"


@pytest.mark.asyncio
async def test_last_retryable_response_is_returned() -> None:
    """When attempts run out the final response is returned, not raised."""
    script, sleep = _Script(500, 502, 503), _RecordingSleep()
    response = await _send(script, sleep)
    assert response.status_code == 503, "expected the last response"
    assert script.calls == 3, "expected every attempt to be used"


@pytest.mark.asyncio
async def test_transport_errors_are_retried_then_raised() -> None:
    """Connection failures are retried and the last one propagates."""
    script = _Script(httpx.ConnectError("down"), httpx.ConnectError("still down"))
    sleep = _RecordingSleep()
    with pytest.raises(httpx.ConnectError, match="still down"):
        await _send(script, sleep, attempts=2)
    assert sleep.delays == [0.5], "expected one backoff between attempts"


@pytest.mark.asyncio
async def test_transport_error_then_success() -> None:
    """A transient timeout followed by success returns the success."""
    script = _Script(httpx.ReadTimeout("slow"), 201)
    response = await _send(script, _RecordingSleep())
    assert response.status_code == 201, "expected success after timeout"


def test_policy_rejects_zero_attempts() -> None:
    """A policy that would never send a request is rejected."""
    with pytest.raises(ValueError, match="attempts must be positive"):
        RetryPolicy(attempts=0)
