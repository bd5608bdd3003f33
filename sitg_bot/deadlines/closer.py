"""Deadline trigger that closes pull requests whose stake never arrived."""

from __future__ import annotations

import typing as typ

from sitg_bot.observability import DeadlineEventLogger

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import DeadlineCheckResponse
    from sitg_bot.outbox.executor import ActionGitHub

    from .models import ScheduledDeadline
    from .state import BotStateStore


def timeout_marker(challenge_id: str) -> str:
    """Return the marker identifying a challenge's timeout comment."""
    return f"<!-- stake-to-contribute:timeout:{challenge_id} -->"


class DeadlineCheckBackend(typ.Protocol):
    """Backend operation consulted when a deadline fires."""

    async def deadline_check(self, challenge_id: str) -> DeadlineCheckResponse: ...


class DeadlineCloser:
    """Ask the backend about an expired challenge and act on its answer.

    The backend decides; the closer only executes a ``close`` directive by
    closing the pull request and then upserting the timeout comment. The
    repository's installation is taken from the durable cache when known,
    since the installation id captured at arming time may have gone stale.
    """

    def __init__(
        self,
        backend: DeadlineCheckBackend,
        github: ActionGitHub,
        *,
        state: BotStateStore | None = None,
        events: DeadlineEventLogger | None = None,
    ) -> None:
        """Bind the closer to the backend, GitHub and the repository cache."""
        self._backend = backend
        self._github = github
        self._state = state
        self._events = events or DeadlineEventLogger()

    async def __call__(self, deadline: ScheduledDeadline) -> None:
        """Handle one fired deadline."""
        response = await self._backend.deadline_check(deadline.challenge_id)
        directive = response.close
        if directive is None:
            return

        installation_id = deadline.installation_id
        repo_full_name = deadline.repo_full_name
        if self._state is not None:
            cached = self._state.get_repo_installation(directive.github_repo_id)
            if cached is not None:
                installation_id = cached.installation_id
                repo_full_name = cached.full_name or repo_full_name

        await self._github.close_pull_request(
            installation_id, repo_full_name, directive.github_pr_number
        )
        await self._github.upsert_pr_comment(
            installation_id,
            repo_full_name,
            directive.github_pr_number,
            timeout_marker(deadline.challenge_id),
            directive.comment_markdown,
        )
        self._events.log_pr_closed(
            challenge_id=deadline.challenge_id,
            repo_full_name=repo_full_name,
            pr_number=directive.github_pr_number,
        )


__all__ = ["DeadlineCheckBackend", "DeadlineCloser", "timeout_marker"]
