"""GitHub App REST client used by the webhook pipeline and outbox executor.

Every installation-scoped call mints an installation token from a fresh App
JWT. When GitHub answers 404 for the installation id and the caller passed
the repository's full name, the client asks GitHub which installation now
serves that repository and retries the mint against it. Installations can
be deleted and recreated, so ids cached by the backend go stale; this
recovery path is what keeps queued actions executable.
"""

from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import enum
import typing as typ

import httpx
import msgspec
from cachetools import TLRUCache
from cryptography.hazmat.primitives import serialization

from sitg_bot.common.slug import parse_repo_full_name
from sitg_bot.common.time import utcnow
from sitg_bot.crypto import sign_app_jwt
from sitg_bot.logging import format_event, get_logger, log_info, log_warning
from sitg_bot.transport import DEFAULT_RETRY_POLICY, RetryPolicy, request_with_retry

from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    InstallationNotFoundError,
)
from .models import (
    InstallationRepositoriesPage,
    InstallationRepository,
    InstallationToken,
    IssueComment,
    RepositoryInstallation,
)

T = typ.TypeVar("T")

if typ.TYPE_CHECKING:
    from sitg_bot.common.time import Clock
    from sitg_bot.transport import Sleep

logger = get_logger(__name__)

GITHUB_API_VERSION = "2022-11-28"
GITHUB_MEDIA_TYPE = "application/vnd.github+json"

COMMENTS_PAGE_SIZE = 100
REPOSITORIES_PAGE_SIZE = 100
# Installations with more than 1,000 repositories are not fully enumerated.
REPOSITORIES_MAX_PAGES = 10
DEFAULT_TOKEN_CACHE_MAXSIZE = 1024

_HTTP_NOT_FOUND = 404
_HTTP_SERVER_ERROR_THRESHOLD = 500


@dataclasses.dataclass(frozen=True, slots=True)
class GitHubAppConfig:
    """Configuration for the GitHub App REST client."""

    app_id: str
    private_key_pem: str
    api_base_url: str = "https://api.github.com"
    timeout_s: float = 20.0
    user_agent: str = "sitg-bot-worker"


class CommentUpsertResult(enum.StrEnum):
    """What :meth:`GitHubAppClient.upsert_issue_comment` did."""

    CREATED = "created"
    UPDATED = "updated"


def ensure_marker(marker: str) -> str:
    """Return ``marker`` wrapped in an HTML comment.

    Markers already written as ``<!-- ... -->`` are returned trimmed.

    Raises
    ------
    ValueError
        If the marker is blank.

    """
    trimmed = marker.strip()
    if not trimmed:
        msg = "comment_marker is required"
        raise ValueError(msg)
    return trimmed if trimmed.startswith("<!--") else f"<!-- {trimmed} -->"


def render_comment_body(markdown: str, marker: str) -> str:
    """Return the comment body: the markdown, a blank line, then the marker."""
    return f"{markdown.strip()}\n\n{marker}"


class InstallationTokenCache:
    """Installation tokens keyed by installation id.

    Backed by :class:`cachetools.TLRUCache`: each entry's time-to-use is
    GitHub's ``expires_at`` less ``safety_margin``, so a token is never
    handed out moments before it stops working. Tokens without an expiry
    are not cached.

    Parameters
    ----------
    clock
        Source of the current time; defaults to :func:`utcnow`.
    safety_margin
        How long before ``expires_at`` a token stops being served.
    maxsize
        Upper bound on the number of cached installations.

    """

    def __init__(
        self,
        *,
        clock: Clock = utcnow,
        safety_margin: dt.timedelta = dt.timedelta(seconds=60),
        maxsize: int = DEFAULT_TOKEN_CACHE_MAXSIZE,
    ) -> None:
        """Create an empty cache."""
        self._safety_margin = safety_margin
        self._tokens: TLRUCache[int, InstallationToken] = TLRUCache(
            maxsize=maxsize,
            ttu=self._time_to_use,
            timer=lambda: clock().timestamp(),
        )

    def _time_to_use(
        self, _installation_id: int, token: InstallationToken, now: float
    ) -> float:
        if token.expires_at is None:
            return now
        return (token.expires_at - self._safety_margin).timestamp()

    def get(self, installation_id: int) -> str | None:
        """Return a still-valid token for ``installation_id``, if cached."""
        cached = self._tokens.get(installation_id)
        return None if cached is None else cached.token

    def put(self, installation_id: int, token: InstallationToken) -> None:
        """Cache ``token`` if it carries an expiry."""
        if token.expires_at is not None:
            self._tokens[installation_id] = token

    def invalidate(self, installation_id: int) -> None:
        """Drop any cached token for ``installation_id``."""
        self._tokens.pop(installation_id, None)


def _decode(content: bytes, type_: type[T], *, operation: str, field: str) -> T:
    try:
        return msgspec.json.decode(content, type=type_)
    except msgspec.DecodeError as exc:
        raise GitHubResponseShapeError.missing(operation, field) from exc


class GitHubAppClient:
    """Installation-scoped GitHub REST operations for the bot."""

    def __init__(  # noqa: PLR0913
        self,
        config: GitHubAppConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Sleep = asyncio.sleep,
        token_cache: InstallationTokenCache | None = None,
    ) -> None:
        """Validate the App credentials and prepare the HTTP client."""
        if not config.app_id.strip():
            raise GitHubConfigError.missing_app_id()
        try:
            serialization.load_pem_private_key(
                config.private_key_pem.encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as exc:
            raise GitHubConfigError.invalid_private_key() from exc

        self._config = config
        self._base_url = config.api_base_url.rstrip("/")
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._token_cache = token_cache
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout_s,
            headers={"User-Agent": config.user_agent},
        )

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    # Authentication

    def _headers(self, bearer: str) -> dict[str, str]:
        return {
            "Accept": GITHUB_MEDIA_TYPE,
            "Authorization": f"Bearer {bearer}",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": self._config.user_agent,
        }

    def _app_jwt(self) -> str:
        return sign_app_jwt(self._config.app_id, self._config.private_key_pem)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        bearer: str,
        **kwargs: typ.Any,  # noqa: ANN401 - forwarded to httpx
    ) -> httpx.Response:
        return await request_with_retry(
            self._client,
            method,
            f"{self._base_url}{path}",
            policy=self._retry_policy,
            sleep=self._sleep,
            headers=self._headers(bearer),
            **kwargs,
        )

    async def get_installation_token(
        self,
        installation_id: int,
        repo_full_name_hint: str | None = None,
    ) -> str:
        """Return an access token for ``installation_id``.

        If GitHub reports the installation as missing and a repository hint
        is given, the installation currently serving that repository is
        looked up and the mint retried against it. When recovery finds
        nothing usable the original :class:`InstallationNotFoundError` is
        raised.
        """
        try:
            return await self._mint_installation_token(
                installation_id, repo_full_name_hint
            )
        except InstallationNotFoundError as original:
            if not repo_full_name_hint:
                raise
            recovered = await self._recover_installation_id(repo_full_name_hint)
            if recovered is None or recovered == installation_id:
                raise original
            log_warning(
                logger,
                format_event(
                    "github.installation_recovered",
                    stale_installation_id=installation_id,
                    installation_id=recovered,
                    repo_full_name=repo_full_name_hint,
                ),
            )
            try:
                return await self._mint_installation_token(
                    recovered, repo_full_name_hint
                )
            except InstallationNotFoundError as exc:
                raise original from exc

    async def _mint_installation_token(
        self,
        installation_id: int,
        repo_full_name_hint: str | None,
    ) -> str:
        if self._token_cache is not None:
            cached = self._token_cache.get(installation_id)
            if cached is not None:
                return cached

        operation = "installation token request"
        response = await self._send(
            "POST",
            f"/app/installations/{installation_id}/access_tokens",
            bearer=self._app_jwt(),
        )
        if response.status_code == _HTTP_NOT_FOUND:
            if self._token_cache is not None:
                self._token_cache.invalidate(installation_id)
            raise InstallationNotFoundError(
                installation_id, repo_full_name=repo_full_name_hint
            )
        if not response.is_success:
            raise GitHubAPIError.http_error(operation, response.status_code)

        token = _decode(
            response.content, InstallationToken, operation=operation, field="token"
        )
        if not token.token:
            raise GitHubResponseShapeError.missing(operation, "token")
        if self._token_cache is not None:
            self._token_cache.put(installation_id, token)
        return token.token

    async def _recover_installation_id(self, repo_full_name: str) -> int | None:
        """Look up the installation serving ``repo_full_name``.

        Returns None when GitHub has no usable answer. Server errors still
        propagate so the caller's work is retried later rather than being
        reported as a permanent loss.
        """
        try:
            return await self.get_repository_installation_id(repo_full_name)
        except (GitHubResponseShapeError, ValueError):
            return None
        except GitHubAPIError as exc:
            if (
                exc.status_code is not None
                and exc.status_code >= _HTTP_SERVER_ERROR_THRESHOLD
            ):
                raise
            return None

    async def get_repository_installation_id(self, repo_full_name: str) -> int:
        """Return the id of the installation serving ``repo_full_name``.

        Raises
        ------
        GitHubAPIError
            If GitHub answers with a non-2xx status.
        GitHubResponseShapeError
            If the response carries no positive installation id.

        """
        owner, repo = parse_repo_full_name(repo_full_name)
        operation = "repository installation lookup"
        response = await self._send(
            "GET", f"/repos/{owner}/{repo}/installation", bearer=self._app_jwt()
        )
        if not response.is_success:
            raise GitHubAPIError.http_error(operation, response.status_code)
        lookup = _decode(
            response.content, RepositoryInstallation, operation=operation, field="id"
        )
        if lookup.id is None or lookup.id <= 0:
            raise GitHubResponseShapeError.missing(operation, "id")
        return lookup.id

    # Comments and pull requests

    async def upsert_pr_comment(  # noqa: PLR0913
        self,
        installation_id: int,
        repo_full_name: str,
        pr_number: int,
        comment_marker: str,
        comment_markdown: str,
    ) -> CommentUpsertResult:
        """Upsert a marker comment on a pull request thread."""
        return await self.upsert_issue_comment(
            installation_id,
            repo_full_name,
            pr_number,
            ensure_marker(comment_marker),
            comment_markdown,
        )

    async def upsert_issue_comment(  # noqa: PLR0913
        self,
        installation_id: int,
        repo_full_name: str,
        issue_number: int,
        marker: str,
        markdown: str,
    ) -> CommentUpsertResult:
        """Create or update the comment on an issue that carries ``marker``.

        The most recent page of comments is searched for ``marker``; a hit
        is edited in place, otherwise a new comment is posted. Repeating the
        call with the same marker therefore converges on one comment whose
        body reflects the latest markdown.
        """
        owner, repo = parse_repo_full_name(repo_full_name)
        token = await self.get_installation_token(installation_id, repo_full_name)
        body = render_comment_body(markdown, marker)

        existing = await self._find_comment_by_marker(
            token, owner, repo, issue_number, marker
        )
        if existing is not None:
            response = await self._send(
                "PATCH",
                f"/repos/{owner}/{repo}/issues/comments/{existing.id}",
                bearer=token,
                json={"body": body},
            )
            if not response.is_success:
                raise GitHubAPIError.http_error(
                    "update issue comment", response.status_code
                )
            return CommentUpsertResult.UPDATED

        response = await self._send(
            "POST",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            bearer=token,
            json={"body": body},
        )
        if not response.is_success:
            raise GitHubAPIError.http_error("create issue comment", response.status_code)
        return CommentUpsertResult.CREATED

    async def _find_comment_by_marker(  # noqa: PLR0913
        self,
        token: str,
        owner: str,
        repo: str,
        issue_number: int,
        marker: str,
    ) -> IssueComment | None:
        operation = "list issue comments"
        response = await self._send(
            "GET",
            f"/repos/{owner}/{repo}/issues/{issue_number}/comments",
            bearer=token,
            params={"per_page": COMMENTS_PAGE_SIZE},
        )
        if not response.is_success:
            raise GitHubAPIError.http_error(operation, response.status_code)
        comments = _decode(
            response.content, list[IssueComment], operation=operation, field="[]"
        )
        for comment in comments:
            if comment.body and marker in comment.body:
                return comment
        return None

    async def close_pull_request(
        self,
        installation_id: int,
        repo_full_name: str,
        pr_number: int,
    ) -> None:
        """Set a pull request's state to ``closed``.

        Closing an already-closed pull request is accepted by GitHub as a
        no-op, so the call is safe to repeat.
        """
        owner, repo = parse_repo_full_name(repo_full_name)
        token = await self.get_installation_token(installation_id, repo_full_name)
        response = await self._send(
            "PATCH",
            f"/repos/{owner}/{repo}/pulls/{pr_number}",
            bearer=token,
            json={"state": "closed"},
        )
        if not response.is_success:
            raise GitHubAPIError.http_error("close pull request", response.status_code)

    # Installations

    async def list_installation_repositories(
        self, installation_id: int
    ) -> list[InstallationRepository]:
        """Return repositories visible to an installation.

        Pages of 100 are fetched until a short page arrives or ten pages
        have been read.
        """
        token = await self.get_installation_token(installation_id)
        operation = "list installation repositories"
        repositories: list[InstallationRepository] = []
        for page in range(1, REPOSITORIES_MAX_PAGES + 1):
            response = await self._send(
                "GET",
                "/installation/repositories",
                bearer=token,
                params={"per_page": REPOSITORIES_PAGE_SIZE, "page": page},
            )
            if not response.is_success:
                raise GitHubAPIError.http_error(operation, response.status_code)
            batch = _decode(
                response.content,
                InstallationRepositoriesPage,
                operation=operation,
                field="repositories",
            )
            repositories.extend(batch.repositories)
            if len(batch.repositories) < REPOSITORIES_PAGE_SIZE:
                break
            if batch.total_count is not None and len(repositories) >= batch.total_count:
                break

        log_info(
            logger,
            format_event(
                "github.installation_repositories_listed",
                installation_id=installation_id,
                repositories=len(repositories),
            ),
        )
        return repositories


__all__ = [
    "COMMENTS_PAGE_SIZE",
    "GITHUB_API_VERSION",
    "REPOSITORIES_MAX_PAGES",
    "REPOSITORIES_PAGE_SIZE",
    "CommentUpsertResult",
    "GitHubAppClient",
    "GitHubAppConfig",
    "InstallationTokenCache",
    "ensure_marker",
    "render_comment_body",
]
