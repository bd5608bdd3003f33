"""Arm local deadlines from challenges returned by the backend."""

from __future__ import annotations

import typing as typ

from .models import ScheduledDeadline

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import ChallengeInfo
    from sitg_bot.webhook.models import PullRequestEvent

    from .scheduler import DeadlineScheduler
    from .state import BotStateStore


class ChallengeDeadlineTracker:
    """Remember the PR's installation and arm its challenge deadline."""

    def __init__(self, scheduler: DeadlineScheduler, state: BotStateStore) -> None:
        """Bind the tracker to the scheduler and durable state."""
        self._scheduler = scheduler
        self._state = state

    def track_challenge(
        self, event: PullRequestEvent, challenge: ChallengeInfo
    ) -> None:
        """Record ``event``'s repository installation and arm ``challenge``."""
        self._state.remember_repo_installation(
            event.repository.id, event.installation_id, event.repository.full_name
        )
        self._scheduler.ensure(
            ScheduledDeadline(
                challenge_id=challenge.id,
                installation_id=event.installation_id,
                repo_full_name=event.repository.full_name,
                pr_number=event.pull_request.number,
                deadline_at=challenge.deadline_at,
            )
        )


__all__ = ["ChallengeDeadlineTracker"]
