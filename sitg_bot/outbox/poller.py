"""Outbox poller: claim, execute, classify and acknowledge bot actions.

A tick claims up to ``claim_limit`` actions for this worker and runs them
one after another. Each action is acknowledged independently, so one
failure never aborts the rest of the batch. Ticks are single-flight: a
tick requested while another is running returns immediately without
claiming.

The bot never retries an action or an acknowledgement itself. A
``RETRYABLE_FAILURE`` is rescheduled by the backend, and an action whose
acknowledgement was lost is reclaimed once its lease expires.

Usage
-----
Run the loop as a background task and stop it at shutdown::

    poller = OutboxPoller(
        backend_client, github_client, metrics, OutboxSettings(worker_id="w-1")
    )
    task = asyncio.create_task(poller.run())
    ...
    poller.stop()
    await task

"""

from __future__ import annotations

import asyncio
import dataclasses
import typing as typ

from sitg_bot.backend.models import ActionOutcome, FailureCode, MalformedBotAction
from sitg_bot.observability import OutboxEventLogger

from .executor import ActionResult, run_action

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import BotAction, ClaimedAction
    from sitg_bot.metrics import BotMetrics

    from .executor import ActionGitHub

_MS_PER_SECOND = 1000


class OutboxBackend(typ.Protocol):
    """Backend operations used by the poller."""

    async def claim_bot_actions(
        self, worker_id: str, limit: int
    ) -> list[ClaimedAction]: ...

    async def post_bot_action_result(  # noqa: PLR0913
        self,
        action_id: str,
        worker_id: str,
        outcome: ActionOutcome,
        failure_code: FailureCode | None = None,
        failure_message: str | None = None,
    ) -> None: ...


@dataclasses.dataclass(frozen=True, slots=True)
class OutboxSettings:
    """Poller identity and pacing."""

    worker_id: str
    interval_ms: int = 5000
    claim_limit: int = 25

    @property
    def interval_s(self) -> float:
        """Tick interval in seconds."""
        return self.interval_ms / _MS_PER_SECOND


class OutboxPoller:
    """Single-flight poll loop over the backend outbox."""

    def __init__(
        self,
        backend: OutboxBackend,
        github: ActionGitHub,
        metrics: BotMetrics,
        settings: OutboxSettings,
        *,
        events: OutboxEventLogger | None = None,
    ) -> None:
        """Bind the poller to its collaborators.

        Parameters
        ----------
        backend
            Source of claimed actions and sink for their outcomes.
        github
            Executes comment upserts and pull request closes.
        metrics
            Counters for claims, outcomes and errors.
        settings
            Worker id, tick interval and claim limit.
        events
            Structured event logger; defaults to the module logger.

        """
        self._backend = backend
        self._github = github
        self._metrics = metrics
        self._settings = settings
        self._events = events or OutboxEventLogger()
        self._in_flight = False
        self._stop = asyncio.Event()
        self._ticks: set[asyncio.Task[bool]] = set()

    @property
    def in_flight(self) -> bool:
        """Return True while a tick is running."""
        return self._in_flight

    async def tick(self) -> bool:
        """Run one claim cycle unless one is already running.

        Returns False when the tick was skipped. Claim failures and other
        tick-level errors are logged and counted here and never propagate.
        """
        if self._in_flight:
            self._events.log_tick_skipped(worker_id=self._settings.worker_id)
            return False
        self._in_flight = True
        try:
            await self._run_tick()
        except Exception as exc:  # noqa: BLE001 - the next tick proceeds on schedule
            self._metrics.record_error()
            self._events.log_poll_failed(worker_id=self._settings.worker_id, error=exc)
        finally:
            self._in_flight = False
        return True

    async def _run_tick(self) -> None:
        worker_id = self._settings.worker_id
        claimed = await self._backend.claim_bot_actions(
            worker_id, self._settings.claim_limit
        )
        self._metrics.record_claim(len(claimed))
        if claimed:
            self._events.log_claimed(worker_id=worker_id, count=len(claimed))

        for item in claimed:
            if isinstance(item, MalformedBotAction):
                await self._reject_malformed(item)
            else:
                await self._process(item)

    async def _process(self, action: BotAction) -> None:
        result = await run_action(self._github, action)
        self._metrics.record_action_outcome(result.outcome)
        if result.succeeded:
            self._events.log_action_succeeded(
                action_id=action.id, action_type=action.action_type
            )
        else:
            self._events.log_action_failed(
                action_id=action.id,
                action_type=action.action_type,
                outcome=result.outcome,
                failure_code=result.failure_code or FailureCode.EXECUTION_ERROR,
                error=result.error,
                message=result.message,
            )
        await self._ack(action.id, result)

    async def _reject_malformed(self, item: MalformedBotAction) -> None:
        if item.action_id is None:
            self._metrics.record_error()
            self._events.log_action_unackable(reason=item.reason)
            return
        result = ActionResult(
            ActionOutcome.FAILED,
            FailureCode.INVALID_ACTION_PAYLOAD,
            f"Action {item.action_id} has an invalid shape: {item.reason}",
        )
        self._metrics.record_action_outcome(result.outcome)
        self._events.log_action_failed(
            action_id=item.action_id,
            action_type=None,
            outcome=result.outcome,
            failure_code=FailureCode.INVALID_ACTION_PAYLOAD,
            message=result.message,
        )
        await self._ack(item.action_id, result)

    async def _ack(self, action_id: str, result: ActionResult) -> None:
        try:
            await self._backend.post_bot_action_result(
                action_id,
                self._settings.worker_id,
                result.outcome,
                result.failure_code,
                result.message,
            )
        except Exception as exc:  # noqa: BLE001 - the backend reclaims unacked actions
            self._metrics.record_error()
            self._events.log_ack_failed(
                action_id=action_id, outcome=result.outcome, error=exc
            )

    def _spawn_tick(self) -> None:
        task = asyncio.create_task(self.tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)

    async def run(self) -> None:
        """Tick immediately, then every interval until :meth:`stop` is called.

        Ticks run as separate tasks so a slow tick does not delay the
        schedule; overlapping requests are skipped by :meth:`tick`. A tick
        still running at shutdown is allowed to finish.
        """
        self._stop.clear()
        self._events.log_polling_enabled(
            worker_id=self._settings.worker_id,
            interval_ms=self._settings.interval_ms,
            claim_limit=self._settings.claim_limit,
        )
        while not self._stop.is_set():
            self._spawn_tick()
            try:
                await asyncio.wait_for(
                    self._stop.wait(), timeout=self._settings.interval_s
                )
            except TimeoutError:
                continue
        if self._ticks:
            await asyncio.gather(*self._ticks, return_exceptions=True)

    def stop(self) -> None:
        """Ask :meth:`run` to return after the current wait."""
        self._stop.set()


__all__ = ["OutboxBackend", "OutboxPoller", "OutboxSettings"]
