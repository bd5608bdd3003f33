"""Verification and normalization of raw GitHub webhook deliveries.

:func:`parse_webhook_event` is the only constructor of normalized events.
It never raises for bad input: an unverifiable, unrecognized or malformed
delivery comes back as :class:`IgnoredDelivery` carrying the reason, and
the HTTP layer answers it with ``202``.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

import msgspec

from sitg_bot.common.time import utcnow
from sitg_bot.crypto import verify_webhook_signature

from .models import (
    SUPPORTED_ACTIONS,
    InstallationInfo,
    InstallationSyncEvent,
    NormalizedWebhookEvent,
    PullRequestEvent,
    PullRequestInfo,
    PullRequestUser,
    RepositoryRef,
    WebhookEventName,
)

if typ.TYPE_CHECKING:
    import datetime as dt


class IgnoreReason(enum.StrEnum):
    """Why a delivery was dropped without forwarding."""

    INVALID_SIGNATURE = "invalid_signature"
    UNSUPPORTED_EVENT = "unsupported_event"
    MISSING_DELIVERY_ID = "missing_delivery_id"
    MALFORMED_PAYLOAD = "malformed_payload"
    UNSUPPORTED_ACTION = "unsupported_action"


@dataclasses.dataclass(frozen=True, slots=True)
class WebhookDelivery:
    """Headers and raw body of one inbound webhook request."""

    event_name: str | None
    delivery_id: str | None
    signature: str | None
    body: bytes


@dataclasses.dataclass(frozen=True, slots=True)
class IgnoredDelivery:
    """A delivery that will not be forwarded."""

    reason: IgnoreReason


ParseResult: typ.TypeAlias = NormalizedWebhookEvent | IgnoredDelivery


# Raw GitHub payload shapes. Only the fields the bot forwards are declared;
# msgspec drops everything else and rejects missing or mistyped fields.


class _RawAction(msgspec.Struct):
    action: str


class _RawId(msgspec.Struct):
    id: int


class _RawRepository(msgspec.Struct):
    id: int
    full_name: str


class _RawUser(msgspec.Struct):
    id: int
    login: str


class _RawHead(msgspec.Struct):
    sha: str


class _RawPullRequest(msgspec.Struct):
    number: int
    id: int
    html_url: str
    user: _RawUser
    head: _RawHead
    draft: bool = False


class _RawPullRequestPayload(msgspec.Struct):
    action: str
    installation: _RawId
    repository: _RawRepository
    pull_request: _RawPullRequest


class _RawAccount(msgspec.Struct):
    login: str
    type: str


class _RawInstallation(msgspec.Struct):
    id: int
    account: _RawAccount


class _RawInstallationPayload(msgspec.Struct):
    action: str
    installation: _RawInstallation
    repositories: list[_RawRepository] | None = None


class _RawInstallationRepositoriesPayload(msgspec.Struct):
    action: str
    installation: _RawInstallation
    repositories_added: list[_RawRepository] = msgspec.field(default_factory=list)
    repositories_removed: list[_RawRepository] = msgspec.field(default_factory=list)


def _refs(repos: list[_RawRepository] | None) -> tuple[RepositoryRef, ...]:
    return tuple(RepositoryRef(id=r.id, full_name=r.full_name) for r in repos or ())


def _installation_info(raw: _RawInstallation) -> InstallationInfo:
    return InstallationInfo(
        id=raw.id, account_login=raw.account.login, account_type=raw.account.type
    )


def _normalize(
    event_name: WebhookEventName, delivery_id: str, body: bytes, now: dt.datetime
) -> NormalizedWebhookEvent:
    if event_name is WebhookEventName.PULL_REQUEST:
        pr = msgspec.json.decode(body, type=_RawPullRequestPayload)
        return PullRequestEvent(
            delivery_id=delivery_id,
            event_time=now,
            installation_id=pr.installation.id,
            action=pr.action,
            repository=RepositoryRef(
                id=pr.repository.id, full_name=pr.repository.full_name
            ),
            pull_request=PullRequestInfo(
                number=pr.pull_request.number,
                id=pr.pull_request.id,
                html_url=pr.pull_request.html_url,
                user=PullRequestUser(
                    id=pr.pull_request.user.id, login=pr.pull_request.user.login
                ),
                head_sha=pr.pull_request.head.sha,
                is_draft=pr.pull_request.draft,
            ),
        )
    if event_name is WebhookEventName.INSTALLATION:
        inst = msgspec.json.decode(body, type=_RawInstallationPayload)
        return InstallationSyncEvent(
            delivery_id=delivery_id,
            event_time=now,
            event_name=event_name,
            action=inst.action,
            installation=_installation_info(inst.installation),
            repositories=_refs(inst.repositories),
        )
    delta = msgspec.json.decode(body, type=_RawInstallationRepositoriesPayload)
    return InstallationSyncEvent(
        delivery_id=delivery_id,
        event_time=now,
        event_name=event_name,
        action=delta.action,
        installation=_installation_info(delta.installation),
        repositories_added=_refs(delta.repositories_added),
        repositories_removed=_refs(delta.repositories_removed),
    )


def parse_webhook_event(
    delivery: WebhookDelivery,
    secret: str,
    *,
    now: dt.datetime | None = None,
) -> ParseResult:
    """Verify, classify and normalize one delivery.

    The steps run in order and the first failing one decides the ignore
    reason: signature, event name, delivery id, action allow-list, then
    the payload's required fields. ``now`` becomes the event's
    ``event_time``.
    """
    if not verify_webhook_signature(secret, delivery.body, delivery.signature):
        return IgnoredDelivery(IgnoreReason.INVALID_SIGNATURE)

    try:
        event_name = WebhookEventName(delivery.event_name or "")
    except ValueError:
        return IgnoredDelivery(IgnoreReason.UNSUPPORTED_EVENT)

    delivery_id = (delivery.delivery_id or "").strip()
    if not delivery_id:
        return IgnoredDelivery(IgnoreReason.MISSING_DELIVERY_ID)

    try:
        action = msgspec.json.decode(delivery.body, type=_RawAction).action
    except msgspec.DecodeError:
        return IgnoredDelivery(IgnoreReason.MALFORMED_PAYLOAD)
    if action not in SUPPORTED_ACTIONS[event_name]:
        return IgnoredDelivery(IgnoreReason.UNSUPPORTED_ACTION)

    try:
        return _normalize(event_name, delivery_id, delivery.body, now or utcnow())
    except msgspec.DecodeError:
        return IgnoredDelivery(IgnoreReason.MALFORMED_PAYLOAD)


__all__ = [
    "IgnoreReason",
    "IgnoredDelivery",
    "ParseResult",
    "WebhookDelivery",
    "parse_webhook_event",
]
