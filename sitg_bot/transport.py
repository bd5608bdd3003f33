"""Bounded exponential-backoff retry for outbound HTTP calls.

Both the GitHub and backend clients send every request through
:func:`request_with_retry`. A response is retried when its status is 408,
425, 429 or any 5xx; transport failures (DNS, connect, timeouts) raised by
httpx are retried too. Once attempts run out the last response is returned
as-is, so callers must treat any returned response as authoritative even
when it is not successful, and the last transport error is re-raised.

Usage
-----
Send a request with a custom policy::

    response = await request_with_retry(
        client, "GET", url, policy=RetryPolicy(attempts=5, base_delay_s=0.5)
    )

"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import httpx

from sitg_bot.logging import format_event, get_logger, log_warning

logger = get_logger(__name__)

RETRYABLE_STATUSES: frozenset[int] = frozenset({408, 425, 429})
_SERVER_ERROR_THRESHOLD = 500

Sleep: typ.TypeAlias = typ.Callable[[float], typ.Awaitable[None]]


@dataclasses.dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry knobs for :func:`request_with_retry`.

    Attributes
    ----------
    attempts
        Total number of attempts, including the first. Must be positive.
    base_delay_s
        Delay before the second attempt; each later delay doubles it.

    """

    attempts: int = 3
    base_delay_s: float = 0.2

    def __post_init__(self) -> None:
        """Reject policies that would never send a request."""
        if self.attempts < 1:
            msg = f"attempts must be positive, got {self.attempts}"
            raise ValueError(msg)
        if self.base_delay_s < 0:
            msg = f"base_delay_s must not be negative, got {self.base_delay_s}"
            raise ValueError(msg)

    def delay_for(self, attempt: int) -> float:
        """Return the backoff before retrying after zero-based ``attempt``."""
        return self.base_delay_s * (2**attempt)


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable_status(status_code: int) -> bool:
    """Return True for statuses worth retrying."""
    return status_code in RETRYABLE_STATUSES or status_code >= _SERVER_ERROR_THRESHOLD


async def request_with_retry(  # noqa: PLR0913
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Sleep = asyncio.sleep,
    **kwargs: typ.Any,  # noqa: ANN401 - forwarded verbatim to httpx
) -> httpx.Response:
    """Send ``method url`` through ``client``, retrying transient failures.

    Non-retryable statuses are returned on the first attempt. Backoff is
    deterministic: ``base_delay_s * 2**attempt`` with no jitter.
    """
    last_attempt = policy.attempts - 1
    for attempt in range(policy.attempts):
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if attempt == last_attempt:
                raise
            log_warning(
                logger,
                format_event(
                    "http.retry",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    error_type=type(exc).__name__,
                ),
            )
        else:
            if attempt == last_attempt or not is_retryable_status(
                response.status_code
            ):
                return response
            log_warning(
                logger,
                format_event(
                    "http.retry",
                    method=method,
                    url=url,
                    attempt=attempt + 1,
                    status=response.status_code,
                ),
            )
            await response.aclose()
        await sleep(policy.delay_for(attempt))

    # range(policy.attempts) always returns or raises on the last attempt.
    msg = "unreachable: retry loop exited without a result"
    raise AssertionError(msg)


__all__ = [
    "DEFAULT_RETRY_POLICY",
    "RETRYABLE_STATUSES",
    "RetryPolicy",
    "Sleep",
    "is_retryable_status",
    "request_with_retry",
]
