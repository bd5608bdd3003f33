"""Backend-driven outbox: claim, execute and acknowledge bot actions."""

from __future__ import annotations

from .errors import ActionExecutionError
from .executor import (
    ActionResult,
    classify_execution_error,
    execute_action,
    run_action,
    validate_action,
)
from .poller import OutboxPoller, OutboxSettings

__all__ = [
    "ActionExecutionError",
    "ActionResult",
    "OutboxPoller",
    "OutboxSettings",
    "classify_execution_error",
    "execute_action",
    "run_action",
    "validate_action",
]
