"""Structured log events for the webhook, outbox and deadline paths.

Each path has an event-type enum and a small logger class. Messages start
with the bracketed event type followed by ``key=value`` fields (see
:func:`sitg_bot.logging.format_event`). Tokens, secrets and request bodies
are never passed to these loggers.

Usage
-----
>>> events = OutboxEventLogger()
>>> events.log_claimed(worker_id="bot-worker-1", count=3)

"""

from __future__ import annotations

import enum
import typing as typ

from sitg_bot.logging import (
    format_event,
    get_logger,
    log_debug,
    log_exception,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import datetime as dt

    from sitg_bot.backend.models import ActionOutcome, FailureCode, IngestStatus
    from sitg_bot.logging import SupportsLog

logger = get_logger(__name__)


class WebhookEventType(enum.StrEnum):
    """Structured log event types for webhook ingestion."""

    IGNORED = "webhook.ignored"
    DUPLICATE = "webhook.duplicate"
    REPOSITORIES_BACKFILLED = "webhook.installation_repo_backfill"
    PULL_REQUEST_FORWARDED = "webhook.pull_request_forwarded"
    INSTALLATION_SYNC_FORWARDED = "webhook.installation_sync_forwarded"
    REQUEST_FAILED = "request.failed"


class OutboxEventType(enum.StrEnum):
    """Structured log event types for the outbox poller."""

    POLLING_ENABLED = "startup.outbox_polling_enabled"
    POLLING_DISABLED = "startup.outbox_polling_disabled"
    TICK_SKIPPED = "outbox.tick_skipped"
    CLAIMED = "outbox.claimed"
    ACTION_SUCCEEDED = "outbox.action_succeeded"
    ACTION_FAILED = "outbox.action_failed"
    ACTION_UNACKABLE = "outbox.action_unackable"
    ACK_FAILED = "outbox.ack_failed"
    POLL_FAILED = "outbox.poll_failed"


class DeadlineEventType(enum.StrEnum):
    """Structured log event types for the legacy deadline scheduler."""

    ARMED = "deadline.armed"
    CANCELLED = "deadline.cancelled"
    RESTORED = "deadline.restored"
    FIRED = "deadline.fired"
    PR_CLOSED = "deadline.pr_closed"
    TRIGGER_FAILED = "deadline.trigger_failed"


class _EventLogger:
    def __init__(self, sink: SupportsLog | None = None) -> None:
        self._logger = sink or logger


class WebhookEventLogger(_EventLogger):
    """Emit webhook ingestion events."""

    def log_ignored(
        self, *, delivery_id: str | None, event_name: str | None, reason: str
    ) -> None:
        """Log a delivery dropped before forwarding."""
        log_info(
            self._logger,
            format_event(
                WebhookEventType.IGNORED,
                delivery_id=delivery_id,
                event_name=event_name,
                reason=reason,
            ),
        )

    def log_duplicate(self, *, delivery_id: str, dedup_key: str) -> None:
        """Log a delivery already forwarded within the dedup window."""
        log_info(
            self._logger,
            format_event(
                WebhookEventType.DUPLICATE, delivery_id=delivery_id, dedup_key=dedup_key
            ),
        )

    def log_repositories_backfilled(
        self, *, delivery_id: str, installation_id: int, repositories_found: int
    ) -> None:
        """Log a repository list fetched for a sparse installation event."""
        log_info(
            self._logger,
            format_event(
                WebhookEventType.REPOSITORIES_BACKFILLED,
                delivery_id=delivery_id,
                installation_id=installation_id,
                repositories_found=repositories_found,
            ),
        )

    def log_pull_request_forwarded(
        self,
        *,
        delivery_id: str,
        repo_full_name: str,
        pr_number: int,
        ingest_status: IngestStatus,
    ) -> None:
        """Log a pull request event accepted by the backend."""
        log_info(
            self._logger,
            format_event(
                WebhookEventType.PULL_REQUEST_FORWARDED,
                delivery_id=delivery_id,
                repo_full_name=repo_full_name,
                pr_number=pr_number,
                ingest_status=ingest_status,
            ),
        )

    def log_installation_sync_forwarded(  # noqa: PLR0913
        self,
        *,
        delivery_id: str,
        event_name: str,
        action: str,
        installation_id: int,
        repositories: int,
        ingest_status: IngestStatus,
    ) -> None:
        """Log an installation event accepted by the backend."""
        log_info(
            self._logger,
            format_event(
                WebhookEventType.INSTALLATION_SYNC_FORWARDED,
                delivery_id=delivery_id,
                event_name=event_name,
                action=action,
                installation_id=installation_id,
                repositories=repositories,
                ingest_status=ingest_status,
            ),
        )

    def log_request_failed(
        self, *, method: str, path: str, error: BaseException
    ) -> None:
        """Log an unexpected failure while handling an inbound request."""
        log_exception(
            self._logger,
            format_event(
                WebhookEventType.REQUEST_FAILED,
                method=method,
                path=path,
                error_type=type(error).__name__,
            ),
            error,
        )


class OutboxEventLogger(_EventLogger):
    """Emit outbox polling and execution events."""

    def log_polling_enabled(
        self, *, worker_id: str, interval_ms: int, claim_limit: int
    ) -> None:
        """Log poller startup."""
        log_info(
            self._logger,
            format_event(
                OutboxEventType.POLLING_ENABLED,
                worker_id=worker_id,
                interval_ms=interval_ms,
                claim_limit=claim_limit,
            ),
        )

    def log_polling_disabled(self) -> None:
        """Log that the poller was not started."""
        log_info(self._logger, format_event(OutboxEventType.POLLING_DISABLED))

    def log_tick_skipped(self, *, worker_id: str) -> None:
        """Log a tick skipped because the previous one is still running."""
        log_debug(
            self._logger, format_event(OutboxEventType.TICK_SKIPPED, worker_id=worker_id)
        )

    def log_claimed(self, *, worker_id: str, count: int) -> None:
        """Log a non-empty claim."""
        log_info(
            self._logger,
            format_event(OutboxEventType.CLAIMED, worker_id=worker_id, count=count),
        )

    def log_action_succeeded(self, *, action_id: str, action_type: str) -> None:
        """Log a successfully executed action."""
        log_info(
            self._logger,
            format_event(
                OutboxEventType.ACTION_SUCCEEDED,
                action_id=action_id,
                action_type=action_type,
            ),
        )

    def log_action_failed(  # noqa: PLR0913
        self,
        *,
        action_id: str,
        action_type: str | None,
        outcome: ActionOutcome,
        failure_code: FailureCode,
        error: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        """Log an action that will be reported as a failure."""
        line = format_event(
            OutboxEventType.ACTION_FAILED,
            action_id=action_id,
            action_type=action_type,
            outcome=outcome,
            failure_code=failure_code,
            error=message,
        )
        if error is None:
            log_warning(self._logger, line)
        else:
            log_exception(self._logger, line, error)

    def log_action_unackable(self, *, reason: str) -> None:
        """Log a claimed action that carried no readable id."""
        log_warning(
            self._logger, format_event(OutboxEventType.ACTION_UNACKABLE, reason=reason)
        )

    def log_ack_failed(
        self, *, action_id: str, outcome: ActionOutcome, error: BaseException
    ) -> None:
        """Log an outcome report the backend did not accept."""
        log_exception(
            self._logger,
            format_event(
                OutboxEventType.ACK_FAILED,
                action_id=action_id,
                outcome=outcome,
                error_type=type(error).__name__,
            ),
            error,
        )

    def log_poll_failed(self, *, worker_id: str, error: BaseException) -> None:
        """Log a tick aborted by a claim failure or other tick-level error."""
        log_exception(
            self._logger,
            format_event(
                OutboxEventType.POLL_FAILED,
                worker_id=worker_id,
                error_type=type(error).__name__,
            ),
            error,
        )


class DeadlineEventLogger(_EventLogger):
    """Emit legacy deadline scheduler events."""

    def log_armed(self, *, challenge_id: str, deadline_at: dt.datetime) -> None:
        """Log a newly armed deadline."""
        log_info(
            self._logger,
            format_event(
                DeadlineEventType.ARMED,
                challenge_id=challenge_id,
                deadline_at=deadline_at.isoformat(),
            ),
        )

    def log_cancelled(self, *, challenge_id: str) -> None:
        """Log a deadline cleared before firing."""
        log_info(
            self._logger,
            format_event(DeadlineEventType.CANCELLED, challenge_id=challenge_id),
        )

    def log_restored(self, *, count: int) -> None:
        """Log deadlines re-armed from durable state at startup."""
        log_info(self._logger, format_event(DeadlineEventType.RESTORED, count=count))

    def log_fired(self, *, challenge_id: str) -> None:
        """Log a deadline handed to its trigger."""
        log_info(
            self._logger, format_event(DeadlineEventType.FIRED, challenge_id=challenge_id)
        )

    def log_pr_closed(
        self, *, challenge_id: str, repo_full_name: str, pr_number: int
    ) -> None:
        """Log a pull request closed for a missed deadline."""
        log_info(
            self._logger,
            format_event(
                DeadlineEventType.PR_CLOSED,
                challenge_id=challenge_id,
                repo_full_name=repo_full_name,
                pr_number=pr_number,
            ),
        )

    def log_trigger_failed(self, *, challenge_id: str, error: BaseException) -> None:
        """Log a deadline whose trigger raised."""
        log_exception(
            self._logger,
            format_event(
                DeadlineEventType.TRIGGER_FAILED,
                challenge_id=challenge_id,
                error_type=type(error).__name__,
            ),
            error,
        )


__all__ = [
    "DeadlineEventLogger",
    "DeadlineEventType",
    "OutboxEventLogger",
    "OutboxEventType",
    "WebhookEventLogger",
    "WebhookEventType",
]
