"""Prometheus counters shared by the webhook handler and the outbox poller.

One :class:`BotMetrics` instance is created per process context and passed
to every component that counts something. Each instance owns its own
``CollectorRegistry`` so tests can build as many as they like without
colliding in the global default registry.
"""

from __future__ import annotations

import enum

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    generate_latest,
)

from sitg_bot.backend.models import ActionOutcome, IngestStatus

METRICS_CONTENT_TYPE = CONTENT_TYPE_LATEST
_PREFIX = "sitg_bot"


class ForwardedKind(enum.StrEnum):
    """Label values for ``sitg_bot_webhook_forwarded_total``."""

    PULL_REQUEST = "pull_request"
    INSTALLATION_SYNC = "installation_sync"


class BotMetrics:
    """Process-wide counters exposed on ``GET /metrics``."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Register every counter on ``registry`` (a fresh one by default)."""
        self.registry = registry or CollectorRegistry()
        self.webhook_events = Counter(
            f"{_PREFIX}_webhook_events",
            "Webhook deliveries received.",
            registry=self.registry,
        )
        self.webhook_ignored = Counter(
            f"{_PREFIX}_webhook_ignored",
            "Webhook deliveries answered 202 without forwarding.",
            registry=self.registry,
        )
        self.webhook_forwarded = Counter(
            f"{_PREFIX}_webhook_forwarded",
            "Normalized events forwarded to the backend.",
            ["kind"],
            registry=self.registry,
        )
        self.webhook_ingest = Counter(
            f"{_PREFIX}_webhook_ingest",
            "Backend ingest replies by status.",
            ["ingest_status"],
            registry=self.registry,
        )
        self.outbox_claims = Counter(
            f"{_PREFIX}_outbox_claim",
            "Outbox claim requests sent.",
            registry=self.registry,
        )
        self.outbox_actions_claimed = Counter(
            f"{_PREFIX}_outbox_actions_claimed",
            "Outbox actions received from claims.",
            registry=self.registry,
        )
        self.outbox_actions = Counter(
            f"{_PREFIX}_outbox_actions",
            "Outbox actions executed, by reported outcome.",
            ["outcome"],
            registry=self.registry,
        )
        self.errors = Counter(
            f"{_PREFIX}_errors",
            "Unexpected failures: request errors, poll failures, failed acks.",
            registry=self.registry,
        )

        for kind in ForwardedKind:
            self.webhook_forwarded.labels(kind=kind.value)
        for status in IngestStatus:
            self.webhook_ingest.labels(ingest_status=status.value)
        for outcome in ActionOutcome:
            self.outbox_actions.labels(outcome=outcome.value)

    def record_webhook_received(self) -> None:
        """Count one inbound delivery."""
        self.webhook_events.inc()

    def record_webhook_ignored(self) -> None:
        """Count one delivery answered as ignored."""
        self.webhook_ignored.inc()

    def record_forwarded(self, kind: ForwardedKind) -> None:
        """Count one event forwarded to the backend."""
        self.webhook_forwarded.labels(kind=kind.value).inc()

    def record_ingest_status(self, status: IngestStatus) -> None:
        """Count one backend ingest reply."""
        self.webhook_ingest.labels(ingest_status=status.value).inc()

    def record_claim(self, actions_claimed: int) -> None:
        """Count one claim request and the actions it returned."""
        self.outbox_claims.inc()
        self.outbox_actions_claimed.inc(actions_claimed)

    def record_action_outcome(self, outcome: ActionOutcome) -> None:
        """Count one executed action by outcome."""
        self.outbox_actions.labels(outcome=outcome.value).inc()

    def record_error(self) -> None:
        """Count one unexpected failure."""
        self.errors.inc()

    def sample(self, name: str, **labels: str) -> float:
        """Return the current value of ``name``, or 0.0 when never observed.

        ``name`` is the exposed sample name, e.g.
        ``"sitg_bot_webhook_events_total"``.
        """
        value = self.registry.get_sample_value(name, labels or None)
        return 0.0 if value is None else value

    def render(self) -> bytes:
        """Return the Prometheus text exposition of every counter."""
        return generate_latest(self.registry)


__all__ = ["METRICS_CONTENT_TYPE", "BotMetrics", "ForwardedKind"]
