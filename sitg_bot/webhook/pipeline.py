"""Webhook ingestion: verify, classify, normalize, enrich and forward.

One :class:`WebhookIngestionPipeline` serves every inbound delivery. The
backend is authoritative for deduplication; the optional
:class:`~sitg_bot.idempotency.IdempotencyStore` only short-circuits
deliveries this process has already forwarded.

Usage
-----
Build the pipeline once per process and hand it every request::

    pipeline = WebhookIngestionPipeline(
        webhook_secret=config.github_webhook_secret,
        backend=backend_client,
        github=github_client,
        metrics=BotMetrics(),
    )
    outcome = await pipeline.handle(delivery)

"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from sitg_bot.backend.models import IngestStatus
from sitg_bot.common.time import utcnow
from sitg_bot.metrics import ForwardedKind
from sitg_bot.observability import WebhookEventLogger

from .models import (
    PullRequestEvent,
    RepositoryRef,
    delivery_dedup_key,
    needs_repository_backfill,
    with_repositories,
)
from .parsing import IgnoredDelivery, parse_webhook_event

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import ChallengeInfo, IngestResponse
    from sitg_bot.common.time import Clock
    from sitg_bot.github.models import InstallationRepository
    from sitg_bot.idempotency import IdempotencyStore
    from sitg_bot.metrics import BotMetrics

    from .models import InstallationSyncEvent, NormalizedWebhookEvent
    from .parsing import IgnoreReason, WebhookDelivery


class IngestBackend(typ.Protocol):
    """Backend operations the pipeline forwards to."""

    async def post_pull_request_event(
        self, event: PullRequestEvent
    ) -> IngestResponse: ...

    async def post_installation_sync_event(
        self, event: InstallationSyncEvent
    ) -> IngestResponse: ...


class RepositoryLister(typ.Protocol):
    """GitHub operation used to backfill sparse installation events."""

    async def list_installation_repositories(
        self, installation_id: int
    ) -> list[InstallationRepository]: ...


class ChallengeTracker(typ.Protocol):
    """Receives challenges returned by the backend for local deadlines."""

    def track_challenge(
        self, event: PullRequestEvent, challenge: ChallengeInfo
    ) -> None: ...


class WebhookDisposition(enum.StrEnum):
    """How a delivery was answered."""

    IGNORED = "ignored"
    FORWARDED = "forwarded"
    DUPLICATE = "duplicate"


@dataclasses.dataclass(frozen=True, slots=True)
class WebhookOutcome:
    """Result of processing one delivery, mapped to HTTP by the API layer."""

    disposition: WebhookDisposition
    ingest_status: IngestStatus | None = None
    ignore_reason: IgnoreReason | None = None

    @property
    def ignored(self) -> bool:
        """Return True when the delivery must be answered with 202."""
        return self.disposition is WebhookDisposition.IGNORED


class WebhookIngestionPipeline:
    """Single-pass processing of inbound GitHub webhooks."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        webhook_secret: str,
        backend: IngestBackend,
        github: RepositoryLister,
        metrics: BotMetrics,
        dedup_store: IdempotencyStore | None = None,
        challenge_tracker: ChallengeTracker | None = None,
        events: WebhookEventLogger | None = None,
        clock: Clock = utcnow,
    ) -> None:
        """Wire the pipeline to its collaborators.

        Parameters
        ----------
        webhook_secret
            Shared secret used to verify ``X-Hub-Signature-256``.
        backend
            Receives the normalized events.
        github
            Lists repositories for installation events sent without them.
        metrics
            Counters for received, forwarded and ignored deliveries.
        dedup_store
            Optional local dedup; keys are added only after a successful
            forward.
        challenge_tracker
            Optional legacy hook that arms deadlines from ingest replies.
        events
            Structured event logger; defaults to the module logger.
        clock
            Source of the event timestamps.

        """
        self._secret = webhook_secret
        self._backend = backend
        self._github = github
        self._metrics = metrics
        self._dedup = dedup_store
        self._tracker = challenge_tracker
        self._events = events or WebhookEventLogger()
        self._clock = clock

    async def handle(self, delivery: WebhookDelivery) -> WebhookOutcome:
        """Process ``delivery`` and return how it should be answered.

        Parse failures never raise. Backend and GitHub failures propagate
        to the caller, which answers 500; GitHub redelivers later.
        """
        self._metrics.record_webhook_received()
        parsed = parse_webhook_event(delivery, self._secret, now=self._clock())
        if isinstance(parsed, IgnoredDelivery):
            self._metrics.record_webhook_ignored()
            self._events.log_ignored(
                delivery_id=delivery.delivery_id,
                event_name=delivery.event_name,
                reason=parsed.reason,
            )
            return WebhookOutcome(
                WebhookDisposition.IGNORED, ignore_reason=parsed.reason
            )

        dedup_key = delivery_dedup_key(parsed)
        if self._dedup is not None and self._dedup.has(dedup_key):
            self._events.log_duplicate(
                delivery_id=parsed.delivery_id, dedup_key=dedup_key
            )
            return WebhookOutcome(
                WebhookDisposition.DUPLICATE, ingest_status=IngestStatus.DUPLICATE
            )

        response = await self._forward(parsed)
        self._metrics.record_ingest_status(response.ingest_status)
        if self._dedup is not None:
            self._dedup.add(dedup_key)
        return WebhookOutcome(
            WebhookDisposition.FORWARDED, ingest_status=response.ingest_status
        )

    async def _forward(self, event: NormalizedWebhookEvent) -> IngestResponse:
        if isinstance(event, PullRequestEvent):
            return await self._forward_pull_request(event)
        return await self._forward_installation_sync(event)

    async def _forward_pull_request(self, event: PullRequestEvent) -> IngestResponse:
        self._metrics.record_forwarded(ForwardedKind.PULL_REQUEST)
        response = await self._backend.post_pull_request_event(event)
        self._events.log_pull_request_forwarded(
            delivery_id=event.delivery_id,
            repo_full_name=event.repository.full_name,
            pr_number=event.pull_request.number,
            ingest_status=response.ingest_status,
        )
        if self._tracker is not None and response.challenge is not None:
            self._tracker.track_challenge(event, response.challenge)
        return response

    async def _forward_installation_sync(
        self, event: InstallationSyncEvent
    ) -> IngestResponse:
        self._metrics.record_forwarded(ForwardedKind.INSTALLATION_SYNC)
        enriched = await self._backfill_repositories(event)
        response = await self._backend.post_installation_sync_event(enriched)
        self._events.log_installation_sync_forwarded(
            delivery_id=enriched.delivery_id,
            event_name=enriched.event_name,
            action=enriched.action,
            installation_id=enriched.installation.id,
            repositories=len(enriched.repositories),
            ingest_status=response.ingest_status,
        )
        return response

    async def _backfill_repositories(
        self, event: InstallationSyncEvent
    ) -> InstallationSyncEvent:
        if not needs_repository_backfill(event):
            return event
        repos = await self._github.list_installation_repositories(
            event.installation.id
        )
        self._events.log_repositories_backfilled(
            delivery_id=event.delivery_id,
            installation_id=event.installation.id,
            repositories_found=len(repos),
        )
        return with_repositories(
            event, (RepositoryRef(id=r.id, full_name=r.full_name) for r in repos)
        )


__all__ = [
    "ChallengeTracker",
    "IngestBackend",
    "RepositoryLister",
    "WebhookDisposition",
    "WebhookIngestionPipeline",
    "WebhookOutcome",
]
