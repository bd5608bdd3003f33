"""Heap-ordered deadline scheduler for the legacy local deadline path.

Armed deadlines sit in a priority queue of ``(deadline_at, challenge_id)``
drained by one asyncio loop (:meth:`DeadlineScheduler.run`). Cancellation
is lazy: the heap entry stays put and is discarded when popped if the
challenge is no longer armed with that deadline. :meth:`fire_due` is the
whole firing step and takes an explicit ``now`` so tests can drive it
without sleeping.

Usage
-----
Arm deadlines, then either run the loop or drive it by hand::

    scheduler = DeadlineScheduler(closer, state=state)
    scheduler.restore()
    scheduler.ensure(deadline)
    fired = await scheduler.fire_due(now)

"""

from __future__ import annotations

import asyncio
import heapq
import typing as typ

from sitg_bot.common.time import utcnow
from sitg_bot.observability import DeadlineEventLogger

if typ.TYPE_CHECKING:
    import datetime as dt

    from sitg_bot.common.time import Clock

    from .models import ScheduledDeadline
    from .state import BotStateStore

DeadlineTrigger: typ.TypeAlias = typ.Callable[["ScheduledDeadline"], typ.Awaitable[None]]

# Upper bound on one idle wait so clock jumps are noticed.
MAX_IDLE_WAIT_S = 60.0


class DeadlineScheduler:
    """One-shot timers keyed by challenge id."""

    def __init__(
        self,
        trigger: DeadlineTrigger,
        *,
        state: BotStateStore | None = None,
        clock: Clock = utcnow,
        events: DeadlineEventLogger | None = None,
    ) -> None:
        """Create an empty scheduler that hands due deadlines to ``trigger``.

        When ``state`` is given every armed deadline is persisted there and
        removed once it fires or is cancelled.
        """
        self._trigger = trigger
        self._state = state
        self._clock = clock
        self._events = events or DeadlineEventLogger()
        self._armed: dict[str, ScheduledDeadline] = {}
        self._heap: list[tuple[dt.datetime, str]] = []
        self._wake = asyncio.Event()
        self._stopping = False

    def __len__(self) -> int:
        """Return the number of armed deadlines."""
        return len(self._armed)

    def get(self, challenge_id: str) -> ScheduledDeadline | None:
        """Return the armed deadline for ``challenge_id``, if any."""
        return self._armed.get(challenge_id)

    def ensure(self, deadline: ScheduledDeadline) -> bool:
        """Arm ``deadline`` unless its challenge is already armed.

        Returns True when a new timer was armed.
        """
        if deadline.challenge_id in self._armed:
            return False
        self._arm(deadline)
        if self._state is not None:
            self._state.put_deadline(deadline)
        self._events.log_armed(
            challenge_id=deadline.challenge_id, deadline_at=deadline.deadline_at
        )
        return True

    def cancel(self, challenge_id: str) -> bool:
        """Disarm ``challenge_id``; returns False if nothing was armed."""
        if self._armed.pop(challenge_id, None) is None:
            return False
        if self._state is not None:
            self._state.remove_deadline(challenge_id)
        self._events.log_cancelled(challenge_id=challenge_id)
        self._wake.set()
        return True

    def restore(self) -> int:
        """Re-arm every deadline persisted in durable state.

        Deadlines already in the past fire on the next :meth:`fire_due`.
        """
        if self._state is None:
            return 0
        restored = 0
        for deadline in self._state.pending_deadlines():
            if deadline.challenge_id not in self._armed:
                self._arm(deadline)
                restored += 1
        self._events.log_restored(count=restored)
        return restored

    def next_deadline(self) -> dt.datetime | None:
        """Return the earliest armed deadline, skipping cancelled entries."""
        self._discard_stale_head()
        return self._heap[0][0] if self._heap else None

    async def fire_due(self, now: dt.datetime | None = None) -> list[str]:
        """Fire every deadline at or before ``now`` in deadline order.

        Each entry is disarmed and removed from durable state after its
        trigger returns, whether the trigger succeeded or raised. Trigger
        errors are logged and do not stop later deadlines from firing.
        """
        moment = now or self._clock()
        fired: list[str] = []
        while True:
            self._discard_stale_head()
            if not self._heap or self._heap[0][0] > moment:
                return fired
            _, challenge_id = heapq.heappop(self._heap)
            deadline = self._armed[challenge_id]
            self._events.log_fired(challenge_id=challenge_id)
            try:
                await self._trigger(deadline)
            except Exception as exc:  # noqa: BLE001 - a failed trigger must not leave the timer armed
                self._events.log_trigger_failed(challenge_id=challenge_id, error=exc)
            finally:
                self._armed.pop(challenge_id, None)
                if self._state is not None:
                    self._state.remove_deadline(challenge_id)
            fired.append(challenge_id)

    async def run(self) -> None:
        """Fire deadlines as they fall due until :meth:`stop` is called."""
        self._stopping = False
        while not self._stopping:
            self._wake.clear()
            await self.fire_due()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self._idle_wait())
            except TimeoutError:
                continue

    def stop(self) -> None:
        """Ask :meth:`run` to return."""
        self._stopping = True
        self._wake.set()

    def _arm(self, deadline: ScheduledDeadline) -> None:
        self._armed[deadline.challenge_id] = deadline
        heapq.heappush(self._heap, (deadline.deadline_at, deadline.challenge_id))
        self._wake.set()

    def _discard_stale_head(self) -> None:
        while self._heap:
            deadline_at, challenge_id = self._heap[0]
            armed = self._armed.get(challenge_id)
            if armed is not None and armed.deadline_at == deadline_at:
                return
            heapq.heappop(self._heap)

    def _idle_wait(self) -> float:
        upcoming = self.next_deadline()
        if upcoming is None:
            return MAX_IDLE_WAIT_S
        remaining = (upcoming - self._clock()).total_seconds()
        return min(max(remaining, 0.0), MAX_IDLE_WAIT_S)


__all__ = ["MAX_IDLE_WAIT_S", "DeadlineScheduler", "DeadlineTrigger"]
