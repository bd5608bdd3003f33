"""Client and wire models for the backend's internal API."""

from __future__ import annotations

from .client import BackendClient, BackendConfig
from .errors import BackendAPIError, BackendResponseShapeError
from .models import (
    ActionOutcome,
    ActionType,
    BotAction,
    BotActionPayload,
    ClaimedAction,
    FailureCode,
    IngestResponse,
    IngestStatus,
    MalformedBotAction,
)

__all__ = [
    "ActionOutcome",
    "ActionType",
    "BackendAPIError",
    "BackendClient",
    "BackendConfig",
    "BackendResponseShapeError",
    "BotAction",
    "BotActionPayload",
    "ClaimedAction",
    "FailureCode",
    "IngestResponse",
    "IngestStatus",
    "MalformedBotAction",
]
