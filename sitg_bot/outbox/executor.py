"""Validate, execute and classify a single claimed outbox action.

:func:`run_action` never raises for an ordinary failure: every exception
is mapped to an :class:`ActionResult` by :func:`classify_execution_error`,
which depends only on the exception type.

========================  =====================  ==========================
Exception                 Outcome                Failure code
========================  =====================  ==========================
ActionExecutionError      its own outcome        its own code
InstallationNotFoundError FAILED                 INSTALLATION_NOT_FOUND
anything else             RETRYABLE_FAILURE      EXECUTION_ERROR
========================  =====================  ==========================
"""

from __future__ import annotations

import dataclasses
import typing as typ

from sitg_bot.backend.models import ActionOutcome, ActionType, FailureCode
from sitg_bot.common.slug import is_repo_full_name
from sitg_bot.github.errors import InstallationNotFoundError

from .errors import ActionExecutionError

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import BotAction


class ActionGitHub(typ.Protocol):
    """GitHub operations needed to execute outbox actions."""

    async def upsert_pr_comment(  # noqa: PLR0913
        self,
        installation_id: int,
        repo_full_name: str,
        pr_number: int,
        comment_marker: str,
        comment_markdown: str,
    ) -> object: ...

    async def close_pull_request(
        self, installation_id: int, repo_full_name: str, pr_number: int
    ) -> None: ...


@dataclasses.dataclass(frozen=True, slots=True)
class ActionResult:
    """Outcome reported to the backend for one action."""

    outcome: ActionOutcome
    failure_code: FailureCode | None = None
    message: str | None = None
    error: BaseException | None = dataclasses.field(default=None, compare=False)

    @property
    def succeeded(self) -> bool:
        """Return True for a ``SUCCEEDED`` outcome."""
        return self.outcome is ActionOutcome.SUCCEEDED


SUCCEEDED = ActionResult(ActionOutcome.SUCCEEDED)


def validate_action(action: BotAction) -> None:
    """Reject actions that must never reach GitHub.

    Raises
    ------
    ActionExecutionError
        ``FAILED``/``INVALID_ACTION_PAYLOAD`` for the first violation.

    """
    if not action.payload.comment_markdown.strip():
        raise ActionExecutionError.invalid_payload(
            action, "missing payload.comment_markdown"
        )
    if not action.payload.comment_marker.strip():
        raise ActionExecutionError.invalid_payload(
            action, "missing payload.comment_marker"
        )
    if not is_repo_full_name(action.repo_full_name):
        raise ActionExecutionError.invalid_payload(action, "missing repo_full_name")
    if action.installation_id <= 0:
        raise ActionExecutionError.invalid_payload(
            action, "has invalid installation_id"
        )
    if action.github_pr_number <= 0:
        raise ActionExecutionError.invalid_payload(
            action, "has invalid github_pr_number"
        )


async def execute_action(github: ActionGitHub, action: BotAction) -> None:
    """Validate ``action`` and perform its GitHub side effects.

    ``CLOSE_PR_WITH_COMMENT`` closes before commenting; both steps are
    idempotent, so a crash between them is safe to retry.
    """
    validate_action(action)
    try:
        action_type = ActionType(action.action_type)
    except ValueError:
        raise ActionExecutionError.unsupported(action) from None

    if action_type is ActionType.CLOSE_PR_WITH_COMMENT:
        await github.close_pull_request(
            action.installation_id, action.repo_full_name, action.github_pr_number
        )
    await github.upsert_pr_comment(
        action.installation_id,
        action.repo_full_name,
        action.github_pr_number,
        action.payload.comment_marker,
        action.payload.comment_markdown,
    )


def classify_execution_error(exc: BaseException) -> ActionResult:
    """Map an execution failure to the outcome reported to the backend."""
    if isinstance(exc, ActionExecutionError):
        return ActionResult(exc.outcome, exc.failure_code, str(exc), exc)
    if isinstance(exc, InstallationNotFoundError):
        return ActionResult(
            ActionOutcome.FAILED, FailureCode.INSTALLATION_NOT_FOUND, str(exc), exc
        )
    return ActionResult(
        ActionOutcome.RETRYABLE_FAILURE,
        FailureCode.EXECUTION_ERROR,
        str(exc) or type(exc).__name__,
        exc,
    )


async def run_action(github: ActionGitHub, action: BotAction) -> ActionResult:
    """Execute ``action`` and return its classified result."""
    try:
        await execute_action(github, action)
    except Exception as exc:  # noqa: BLE001 - every failure is reported to the backend
        return classify_execution_error(exc)
    return SUCCEEDED


__all__ = [
    "SUCCEEDED",
    "ActionGitHub",
    "ActionResult",
    "classify_execution_error",
    "execute_action",
    "run_action",
    "validate_action",
]
