"""Normalized webhook events forwarded to the backend.

Instances are immutable and built only by
:func:`sitg_bot.webhook.parsing.parse_webhook_event` from verified raw
bytes. The backend owns deduplication; ``delivery_id`` is the external
idempotency key it uses.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime
import enum
import typing as typ

import msgspec


class WebhookEventName(enum.StrEnum):
    """``X-GitHub-Event`` values the bot understands."""

    PULL_REQUEST = "pull_request"
    INSTALLATION = "installation"
    INSTALLATION_REPOSITORIES = "installation_repositories"


PULL_REQUEST_ACTIONS: frozenset[str] = frozenset({"opened", "reopened", "synchronize"})
INSTALLATION_ACTIONS: frozenset[str] = frozenset(
    {"created", "deleted", "suspend", "unsuspend"}
)
INSTALLATION_REPOSITORIES_ACTIONS: frozenset[str] = frozenset({"added", "removed"})

SUPPORTED_ACTIONS: dict[WebhookEventName, frozenset[str]] = {
    WebhookEventName.PULL_REQUEST: PULL_REQUEST_ACTIONS,
    WebhookEventName.INSTALLATION: INSTALLATION_ACTIONS,
    WebhookEventName.INSTALLATION_REPOSITORIES: INSTALLATION_REPOSITORIES_ACTIONS,
}


class RepositoryRef(msgspec.Struct, kw_only=True, frozen=True):
    """Repository identity as sent to the backend."""

    id: int
    full_name: str


class PullRequestUser(msgspec.Struct, kw_only=True, frozen=True):
    """Pull request author."""

    id: int
    login: str


class PullRequestInfo(msgspec.Struct, kw_only=True, frozen=True):
    """Pull request fields the backend needs to decide on a stake."""

    number: int
    id: int
    html_url: str
    user: PullRequestUser
    head_sha: str
    is_draft: bool = False


class PullRequestEvent(msgspec.Struct, kw_only=True, frozen=True):
    """A normalized ``pull_request`` webhook."""

    delivery_id: str
    event_time: dt.datetime
    installation_id: int
    action: str
    repository: RepositoryRef
    pull_request: PullRequestInfo

    @property
    def event_name(self) -> WebhookEventName:
        """Return the webhook kind."""
        return WebhookEventName.PULL_REQUEST


class InstallationInfo(msgspec.Struct, kw_only=True, frozen=True):
    """Installation identity and owning account."""

    id: int
    account_login: str
    account_type: str


class InstallationSyncEvent(msgspec.Struct, kw_only=True, frozen=True):
    """A normalized ``installation`` or ``installation_repositories`` webhook.

    ``repositories`` is the full list GitHub sent with an ``installation``
    event; ``repositories_added`` and ``repositories_removed`` carry the
    deltas of an ``installation_repositories`` event.
    """

    delivery_id: str
    event_time: dt.datetime
    event_name: WebhookEventName
    action: str
    installation: InstallationInfo
    repositories: tuple[RepositoryRef, ...] = ()
    repositories_added: tuple[RepositoryRef, ...] = ()
    repositories_removed: tuple[RepositoryRef, ...] = ()


NormalizedWebhookEvent: typ.TypeAlias = PullRequestEvent | InstallationSyncEvent


def delivery_dedup_key(event: NormalizedWebhookEvent) -> str:
    """Return the local dedup key for a delivery.

    Pull requests use ``delivery_id:action:repo_id:pr_number``; installation
    events use ``delivery_id:event_name:action:installation_id``.
    """
    if isinstance(event, PullRequestEvent):
        return (
            f"{event.delivery_id}:{event.action}:"
            f"{event.repository.id}:{event.pull_request.number}"
        )
    return (
        f"{event.delivery_id}:{event.event_name}:{event.action}:"
        f"{event.installation.id}"
    )


def needs_repository_backfill(event: NormalizedWebhookEvent) -> bool:
    """Return True for installation events GitHub sent without repositories.

    ``created`` and ``unsuspend`` installation events sometimes omit the
    repository list; forwarding them as-is would tell the backend the
    installation has no repositories.
    """
    return (
        isinstance(event, InstallationSyncEvent)
        and event.event_name is WebhookEventName.INSTALLATION
        and event.action in {"created", "unsuspend"}
        and not event.repositories
    )


def with_repositories(
    event: InstallationSyncEvent, repositories: typ.Iterable[RepositoryRef]
) -> InstallationSyncEvent:
    """Return a copy of ``event`` with its repository list replaced."""
    return msgspec.structs.replace(event, repositories=tuple(repositories))


__all__ = [
    "INSTALLATION_ACTIONS",
    "INSTALLATION_REPOSITORIES_ACTIONS",
    "PULL_REQUEST_ACTIONS",
    "SUPPORTED_ACTIONS",
    "InstallationInfo",
    "InstallationSyncEvent",
    "NormalizedWebhookEvent",
    "PullRequestEvent",
    "PullRequestInfo",
    "PullRequestUser",
    "RepositoryRef",
    "WebhookEventName",
    "delivery_dedup_key",
    "needs_repository_backfill",
    "with_repositories",
]
