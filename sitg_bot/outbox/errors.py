"""Outbox execution errors."""

from __future__ import annotations

import typing as typ

from sitg_bot.backend.models import ActionOutcome, FailureCode

if typ.TYPE_CHECKING:
    from sitg_bot.backend.models import BotAction


class ActionExecutionError(RuntimeError):
    """Raised when an action fails with a known outcome and failure code."""

    def __init__(
        self,
        message: str,
        *,
        outcome: ActionOutcome,
        failure_code: FailureCode,
    ) -> None:
        """Initialise with the outcome to report and its failure code."""
        self.outcome = outcome
        self.failure_code = failure_code
        super().__init__(message)

    @classmethod
    def invalid_payload(cls, action: BotAction, detail: str) -> ActionExecutionError:
        """Return a permanent failure for an action that fails validation."""
        return cls(
            f"Action {action.id} {detail}",
            outcome=ActionOutcome.FAILED,
            failure_code=FailureCode.INVALID_ACTION_PAYLOAD,
        )

    @classmethod
    def unsupported(cls, action: BotAction) -> ActionExecutionError:
        """Return a permanent failure for an unknown action type."""
        return cls(
            f"Unsupported bot action type: {action.action_type}",
            outcome=ActionOutcome.FAILED,
            failure_code=FailureCode.UNSUPPORTED_ACTION,
        )
