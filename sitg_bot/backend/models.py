"""Wire models exchanged with the backend's internal API."""

from __future__ import annotations

import dataclasses
import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime
import enum
import typing as typ

import msgspec

from sitg_bot.common.time import AwareDatetime  # noqa: TC001 - msgspec resolves annotations at runtime


class IngestStatus(enum.StrEnum):
    """How the backend treated a forwarded webhook event."""

    ACCEPTED = "ACCEPTED"
    DUPLICATE = "DUPLICATE"
    IGNORED = "IGNORED"


class ChallengeInfo(msgspec.Struct, kw_only=True, frozen=True):
    """Challenge issued for a pull request, used by the local deadline path."""

    id: str
    deadline_at: AwareDatetime
    gate_url: str | None = None
    comment_markdown: str | None = None


class IngestResponse(msgspec.Struct, kw_only=True, frozen=True):
    """Reply to a forwarded pull request or installation-sync event."""

    ingest_status: IngestStatus
    challenge_id: str | None = None
    enqueued_actions: int = 0
    challenge: ChallengeInfo | None = None


class ActionType(enum.StrEnum):
    """Outbox action types the bot knows how to execute."""

    UPSERT_PR_COMMENT = "UPSERT_PR_COMMENT"
    CLOSE_PR_WITH_COMMENT = "CLOSE_PR_WITH_COMMENT"


class ActionOutcome(enum.StrEnum):
    """Result reported back to the backend for one action."""

    SUCCEEDED = "SUCCEEDED"
    RETRYABLE_FAILURE = "RETRYABLE_FAILURE"
    FAILED = "FAILED"


class FailureCode(enum.StrEnum):
    """Machine-readable failure codes sent with non-successful outcomes."""

    INVALID_ACTION_PAYLOAD = "INVALID_ACTION_PAYLOAD"
    INSTALLATION_NOT_FOUND = "INSTALLATION_NOT_FOUND"
    UNSUPPORTED_ACTION = "UNSUPPORTED_ACTION"
    EXECUTION_ERROR = "EXECUTION_ERROR"


class BotActionPayload(msgspec.Struct, kw_only=True, frozen=True):
    """Action-specific data; emptiness is checked by the executor."""

    comment_markdown: str = ""
    comment_marker: str = ""
    reason: str | None = None


class BotAction(msgspec.Struct, kw_only=True, frozen=True):
    """A unit of work claimed from the backend outbox.

    ``action_type`` stays a plain string so unknown types still decode and
    can be reported as unsupported instead of poisoning the whole claim.
    """

    id: str
    action_type: str
    installation_id: int = 0
    github_repo_id: int = 0
    repo_full_name: str = ""
    github_pr_number: int = 0
    challenge_id: str | None = None
    payload: BotActionPayload = msgspec.field(default_factory=BotActionPayload)
    attempts: int = 0
    created_at: dt.datetime | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class MalformedBotAction:
    """A claimed action whose JSON did not match :class:`BotAction`.

    ``action_id`` is kept when it could still be read so the failure can
    be acknowledged.
    """

    action_id: str | None
    reason: str


ClaimedAction: typ.TypeAlias = BotAction | MalformedBotAction


class _ClaimEnvelope(msgspec.Struct, kw_only=True):
    actions: list[msgspec.Raw] = msgspec.field(default_factory=list)


class _ActionIdentity(msgspec.Struct):
    id: str | int | None = None


def decode_claimed_actions(content: bytes) -> list[ClaimedAction]:
    """Decode a claim reply, isolating malformed actions.

    Raises
    ------
    msgspec.DecodeError
        If the envelope itself is not ``{"actions": [...]}``.

    """
    envelope = msgspec.json.decode(content, type=_ClaimEnvelope)
    return [_decode_action(raw) for raw in envelope.actions]


def _decode_action(raw: msgspec.Raw) -> ClaimedAction:
    try:
        return msgspec.json.decode(raw, type=BotAction)
    except msgspec.DecodeError as exc:
        try:
            identity = msgspec.json.decode(raw, type=_ActionIdentity)
        except msgspec.DecodeError:
            return MalformedBotAction(action_id=None, reason=str(exc))
        action_id = None if identity.id is None else str(identity.id)
        return MalformedBotAction(action_id=action_id, reason=str(exc))


class BotActionResult(msgspec.Struct, kw_only=True, frozen=True):
    """Body of ``POST /bot-actions/{id}/result``."""

    worker_id: str
    outcome: ActionOutcome
    failure_code: FailureCode | None = None
    failure_message: str | None = None


class CloseDirective(msgspec.Struct, kw_only=True, frozen=True):
    """Legacy deadline-check instruction to close a pull request."""

    github_repo_id: int
    github_pr_number: int
    comment_markdown: str


class DeadlineCheckResponse(msgspec.Struct, kw_only=True, frozen=True):
    """Legacy reply to ``POST /challenges/{id}/deadline-check``."""

    action: str | None = None
    close: CloseDirective | None = None


__all__ = [
    "ActionOutcome",
    "ActionType",
    "BotAction",
    "BotActionPayload",
    "BotActionResult",
    "ChallengeInfo",
    "ClaimedAction",
    "CloseDirective",
    "DeadlineCheckResponse",
    "FailureCode",
    "IngestResponse",
    "IngestStatus",
    "MalformedBotAction",
    "decode_claimed_actions",
]
