"""Typed GitHub REST response fragments used by the App client."""

from __future__ import annotations

import datetime as dt  # noqa: TC003 - msgspec resolves annotations at runtime

import msgspec


class InstallationToken(msgspec.Struct, kw_only=True, frozen=True):
    """Response of ``POST /app/installations/{id}/access_tokens``."""

    token: str
    expires_at: dt.datetime | None = None


class RepositoryInstallation(msgspec.Struct, kw_only=True, frozen=True):
    """Response of ``GET /repos/{owner}/{repo}/installation``."""

    id: int | None = None


class IssueComment(msgspec.Struct, kw_only=True, frozen=True):
    """The subset of an issue comment the upsert logic reads."""

    id: int
    body: str | None = None


class InstallationRepository(msgspec.Struct, kw_only=True, frozen=True):
    """A repository visible to an installation."""

    id: int
    full_name: str


class InstallationRepositoriesPage(msgspec.Struct, kw_only=True, frozen=True):
    """One page of ``GET /installation/repositories``."""

    repositories: list[InstallationRepository] = msgspec.field(default_factory=list)
    total_count: int | None = None
