"""GitHub App client: installation tokens, marker comments, PR closing."""

from __future__ import annotations

from .client import (
    CommentUpsertResult,
    GitHubAppClient,
    GitHubAppConfig,
    InstallationTokenCache,
    ensure_marker,
    render_comment_body,
)
from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    InstallationNotFoundError,
)
from .models import InstallationRepository

__all__ = [
    "CommentUpsertResult",
    "GitHubAPIError",
    "GitHubAppClient",
    "GitHubAppConfig",
    "GitHubConfigError",
    "GitHubResponseShapeError",
    "InstallationNotFoundError",
    "InstallationRepository",
    "InstallationTokenCache",
    "ensure_marker",
    "render_comment_body",
]
