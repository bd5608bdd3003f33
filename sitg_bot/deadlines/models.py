"""Typed records for the local deadline path."""

from __future__ import annotations

import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime

import msgspec

from sitg_bot.common.time import AwareDatetime  # noqa: TC001 - msgspec resolves annotations at runtime


class ScheduledDeadline(msgspec.Struct, kw_only=True, frozen=True):
    """A challenge deadline armed in the local scheduler.

    Created when the backend issues a challenge for a pull request and
    removed when its timer fires or the challenge is cancelled.
    """

    challenge_id: str
    installation_id: int
    repo_full_name: str
    pr_number: int
    deadline_at: AwareDatetime


class RepoInstallation(msgspec.Struct, kw_only=True, frozen=True):
    """Last known installation for a repository id."""

    installation_id: int
    full_name: str | None = None
    updated_at: dt.datetime | None = None
