"""Legacy local deadline path: durable state, scheduler and closer.

Superseded by the backend outbox and only enabled with
``SITG_ENABLE_LOCAL_DEADLINE_TIMERS=true``. State is file-local, so this
path is safe for a single worker process only.
"""

from __future__ import annotations

from .closer import DeadlineCloser, timeout_marker
from .models import RepoInstallation, ScheduledDeadline
from .scheduler import DeadlineScheduler
from .state import BotState, BotStateStore
from .tracking import ChallengeDeadlineTracker

__all__ = [
    "BotState",
    "BotStateStore",
    "ChallengeDeadlineTracker",
    "DeadlineCloser",
    "DeadlineScheduler",
    "RepoInstallation",
    "ScheduledDeadline",
    "timeout_marker",
]
