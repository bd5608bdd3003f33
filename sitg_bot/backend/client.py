"""Signed HTTP client for the backend's internal API.

Every request carries three headers: the bot's key id, a unix timestamp
and an HMAC over ``"<timestamp>.<message>"`` where ``message`` is specific
to the call (see :func:`sitg_bot.crypto.sign_internal_request`). Calls go
through :func:`sitg_bot.transport.request_with_retry`; a response that is
still unsuccessful after retries raises :class:`BackendAPIError`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

import httpx
import msgspec

from sitg_bot.common.time import unix_seconds, utcnow
from sitg_bot.crypto import sign_internal_request
from sitg_bot.transport import DEFAULT_RETRY_POLICY, RetryPolicy, request_with_retry

from .errors import BackendAPIError, BackendResponseShapeError
from .models import (
    BotActionResult,
    DeadlineCheckResponse,
    IngestResponse,
    decode_claimed_actions,
)

T = typ.TypeVar("T")

if typ.TYPE_CHECKING:
    from sitg_bot.common.time import Clock
    from sitg_bot.transport import Sleep
    from sitg_bot.webhook.models import InstallationSyncEvent, PullRequestEvent

    from .models import ActionOutcome, ClaimedAction, FailureCode

HEADER_KEY_ID = "x-stc-key-id"
HEADER_TIMESTAMP = "x-stc-timestamp"
HEADER_SIGNATURE = "x-stc-signature"

INTERNAL_API_PREFIX = "/internal/v2"
LEGACY_API_PREFIX = "/internal/v1"

_JSON_CONTENT_TYPE = "application/json"


@dataclasses.dataclass(frozen=True, slots=True)
class BackendConfig:
    """Connection and signing settings for :class:`BackendClient`."""

    base_url: str
    bot_key_id: str
    internal_hmac_secret: str
    service_token: str | None = None
    timeout_s: float = 10.0


class _ClaimRequest(msgspec.Struct, kw_only=True):
    worker_id: str
    limit: int


class BackendClient:
    """Pushes webhook events, claims outbox actions and reports outcomes."""

    def __init__(  # noqa: PLR0913
        self,
        config: BackendConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = utcnow,
    ) -> None:
        """Store settings and create an HTTP client unless one is injected."""
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._clock = clock
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=config.timeout_s)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    def signed_headers(self, message: str) -> dict[str, str]:
        """Return the internal-auth headers binding a request to ``message``."""
        timestamp = unix_seconds(self._clock())
        headers = {
            HEADER_KEY_ID: self._config.bot_key_id,
            HEADER_TIMESTAMP: str(timestamp),
            HEADER_SIGNATURE: sign_internal_request(
                self._config.internal_hmac_secret, timestamp, message
            ),
        }
        if self._config.service_token:
            headers["authorization"] = f"Bearer {self._config.service_token}"
        return headers

    async def _post(
        self,
        path: str,
        *,
        message: str,
        body: object | None = None,
    ) -> httpx.Response:
        headers = self.signed_headers(message)
        content = b""
        if body is not None:
            headers["content-type"] = _JSON_CONTENT_TYPE
            content = msgspec.json.encode(body)
        response = await request_with_retry(
            self._client,
            "POST",
            f"{self._base_url}{path}",
            policy=self._retry_policy,
            sleep=self._sleep,
            headers=headers,
            content=content,
        )
        if not response.is_success:
            raise BackendAPIError.http_error(path, response.status_code)
        return response

    async def post_pull_request_event(self, event: PullRequestEvent) -> IngestResponse:
        """Forward a normalized pull request event."""
        path = f"{INTERNAL_API_PREFIX}/github/events/pull-request"
        response = await self._post(path, message=event.delivery_id, body=event)
        return _decode_reply(response.content, IngestResponse, endpoint=path)

    async def post_installation_sync_event(
        self, event: InstallationSyncEvent
    ) -> IngestResponse:
        """Forward a normalized installation or installation-repositories event."""
        path = f"{INTERNAL_API_PREFIX}/github/events/installation-sync"
        response = await self._post(path, message=event.delivery_id, body=event)
        return _decode_reply(response.content, IngestResponse, endpoint=path)

    async def claim_bot_actions(self, worker_id: str, limit: int) -> list[ClaimedAction]:
        """Claim up to ``limit`` pending actions for ``worker_id``.

        Actions that fail validation are returned as
        :class:`~sitg_bot.backend.models.MalformedBotAction` so the rest of
        the batch is still executed.
        """
        path = f"{INTERNAL_API_PREFIX}/bot-actions/claim"
        response = await self._post(
            path,
            message=f"bot-actions-claim:{worker_id}",
            body=_ClaimRequest(worker_id=worker_id, limit=limit),
        )
        try:
            return decode_claimed_actions(response.content)
        except msgspec.DecodeError as exc:
            raise BackendResponseShapeError.invalid(path, str(exc)) from exc

    async def post_bot_action_result(  # noqa: PLR0913
        self,
        action_id: str,
        worker_id: str,
        outcome: ActionOutcome,
        failure_code: FailureCode | None = None,
        failure_message: str | None = None,
    ) -> None:
        """Report the outcome of one claimed action."""
        path = f"{INTERNAL_API_PREFIX}/bot-actions/{action_id}/result"
        await self._post(
            path,
            message=f"bot-action-result:{action_id}:{worker_id}:{outcome}",
            body=BotActionResult(
                worker_id=worker_id,
                outcome=outcome,
                failure_code=failure_code,
                failure_message=failure_message,
            ),
        )

    async def deadline_check(self, challenge_id: str) -> DeadlineCheckResponse:
        """Ask whether a legacy challenge's deadline should close its PR."""
        path = f"{LEGACY_API_PREFIX}/challenges/{challenge_id}/deadline-check"
        response = await self._post(path, message=challenge_id)
        return _decode_reply(response.content, DeadlineCheckResponse, endpoint=path)


def _decode_reply(content: bytes, type_: type[T], *, endpoint: str) -> T:
    try:
        return msgspec.json.decode(content, type=type_)
    except msgspec.DecodeError as exc:
        raise BackendResponseShapeError.invalid(endpoint, str(exc)) from exc


__all__ = [
    "HEADER_KEY_ID",
    "HEADER_SIGNATURE",
    "HEADER_TIMESTAMP",
    "INTERNAL_API_PREFIX",
    "LEGACY_API_PREFIX",
    "BackendClient",
    "BackendConfig",
]
