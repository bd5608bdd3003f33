"""Unit tests for the GitHub App client."""

from __future__ import annotations

import datetime as dt
import typing as typ

import httpx
import pytest

from sitg_bot.github.client import (
    CommentUpsertResult,
    GitHubAppClient,
    GitHubAppConfig,
    InstallationTokenCache,
    ensure_marker,
    render_comment_body,
)
from sitg_bot.github.errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubResponseShapeError,
    InstallationNotFoundError,
)
from sitg_bot.github.models import InstallationToken
from sitg_bot.transport import RetryPolicy
from tests.helpers.clock import no_sleep
from tests.helpers.http_fakes import (
    GITHUB_BASE_URL,
    FakeGitHubApi,
    installation_token_for,
)

if typ.TYPE_CHECKING:
    from tests.helpers.clock import ManualClock

MARKER = "<!-- stake-to-contribute:gate:ch-1 -->"


def _repos(count: int) -> list[dict[str, typ.Any]]:
    return [{"id": i, "full_name": f"octo/repo-{i}"} for i in range(1, count + 1)]


def _client(
    api: FakeGitHubApi, pem: str, cache: InstallationTokenCache | None = None
) -> GitHubAppClient:
    return GitHubAppClient(
        GitHubAppConfig(app_id="4242", private_key_pem=pem, api_base_url=GITHUB_BASE_URL),
        http_client=api.client(),
        retry_policy=RetryPolicy(attempts=2, base_delay_s=0.0),
        sleep=no_sleep,
        token_cache=cache,
    )


class TestMarkers:
    """Tests for marker helpers."""

    def test_bare_marker_is_wrapped(self) -> None:
        """A bare marker becomes an HTML comment."""
        assert ensure_marker(" gate:ch-1 ") == "<!-- gate:ch-1 -->", "not wrapped"

    def test_wrapped_marker_is_kept(self) -> None:
        """An existing HTML comment marker is only trimmed."""
        assert ensure_marker(f"  {MARKER}\n") == MARKER, "marker should be kept"

    def test_blank_marker_rejected(self) -> None:
        """A blank marker cannot identify a comment."""
        with pytest.raises(ValueError, match="comment_marker is required"):
            ensure_marker("   ")

    def test_body_layout(self) -> None:
        """The body is the trimmed markdown, a blank line, then the marker."""
        assert render_comment_body("  Hello\n", MARKER) == f"Hello\n\n{MARKER}", (
            "unexpected body"
        )


class TestConfiguration:
    """Tests for credential validation at construction."""

    def test_rejects_blank_app_id(self, private_key_pem: str) -> None:
        """An empty App id is a configuration error."""
        with pytest.raises(GitHubConfigError, match="App id"):
            GitHubAppClient(GitHubAppConfig(app_id=" ", private_key_pem=private_key_pem))

    def test_rejects_invalid_key(self) -> None:
        """A non-PEM private key is a configuration error."""
        with pytest.raises(GitHubConfigError, match="PEM"):
            GitHubAppClient(GitHubAppConfig(app_id="1", private_key_pem="not a key"))


class TestUpsertComment:
    """Tests for marker-based comment upserts."""

    @pytest.mark.asyncio
    async def test_creates_then_updates(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Repeated upserts converge on one comment with the latest body."""
        first = await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "v1")
        second = await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "v2")

        thread = github_api.thread("octo/reef", 7)
        assert first is CommentUpsertResult.CREATED, "first upsert should create"
        assert second is CommentUpsertResult.UPDATED, "second upsert should update"
        assert len(thread) == 1, "expected exactly one marker comment"
        assert thread[0]["body"] == f"v2\n\n{MARKER}", "body should be the latest"

    @pytest.mark.asyncio
    async def test_other_comments_untouched(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Comments without the marker are never edited."""
        github_api.thread("octo/reef", 7).append({"id": 1, "body": "LGTM"})
        await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "gate")
        bodies = [c["body"] for c in github_api.thread("octo/reef", 7)]
        assert bodies == ["LGTM", f"gate\n\n{MARKER}"], "unexpected thread"

    @pytest.mark.asyncio
    async def test_uses_installation_token(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Comment calls authenticate with the minted installation token."""
        await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "gate")
        posted = github_api.calls("POST", "/repos/octo/reef/issues/7/comments")
        assert posted[0].headers["Authorization"] == (
            f"Bearer {installation_token_for(123)}"
        ), "expected installation token"
        assert posted[0].headers["X-GitHub-Api-Version"] == "2022-11-28", (
            "expected API version header"
        )

    @pytest.mark.asyncio
    async def test_create_failure_raises(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """A non-retryable failure creating the comment raises with its status."""
        github_api.queued_statuses[("POST", "/repos/octo/reef/issues/7/comments")] = [
            403
        ]
        with pytest.raises(GitHubAPIError) as excinfo:
            await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "x")
        assert excinfo.value.status_code == 403, "status should be kept"

    @pytest.mark.asyncio
    async def test_invalid_repo_name(self, github_client: GitHubAppClient) -> None:
        """A malformed repository name is rejected before any request."""
        with pytest.raises(ValueError, match="owner/name"):
            await github_client.upsert_pr_comment(123, "octo", 7, MARKER, "x")


class TestInstallationRecovery:
    """Tests for stale installation id recovery."""

    @pytest.mark.asyncio
    async def test_recovers_moved_installation(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """A 404 for 123 is recovered by looking up the repo's installation 777."""
        github_api.installations = {777}
        github_api.repo_installations = {"octo/reef": 777}

        await github_client.upsert_pr_comment(123, "octo/reef", 7, MARKER, "gate")

        minted = [r.url.path for r in github_api.calls("POST", "/app/installations")]
        assert minted == [
            "/app/installations/123/access_tokens",
            "/app/installations/777/access_tokens",
        ], "expected stale mint then recovered mint"
        posted = github_api.calls("POST", "/repos/octo/reef/issues/7/comments")
        assert posted[0].headers["Authorization"] == (
            f"Bearer {installation_token_for(777)}"
        ), "comment should use the recovered installation"

    @pytest.mark.asyncio
    async def test_lookup_404_surfaces_original_error(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """When the repo has no installation the original 404 error surfaces."""
        github_api.installations = set()
        github_api.repo_installations = {}

        with pytest.raises(InstallationNotFoundError) as excinfo:
            await github_client.get_installation_token(123, "octo/reef")
        assert excinfo.value.installation_id == 123, "original id expected"
        assert excinfo.value.repo_full_name == "octo/reef", "hint should be kept"

    @pytest.mark.asyncio
    async def test_same_installation_is_not_retried(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """A lookup returning the stale id does not trigger a second mint."""
        github_api.installations = set()
        github_api.repo_installations = {"octo/reef": 123}

        with pytest.raises(InstallationNotFoundError):
            await github_client.get_installation_token(123, "octo/reef")
        assert len(github_api.calls("POST", "/app/installations")) == 1, (
            "no second mint expected"
        )

    @pytest.mark.asyncio
    async def test_lookup_server_error_propagates(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """A 5xx from the lookup propagates instead of a permanent 404."""
        github_api.installations = set()
        github_api.queued_statuses[("GET", "/repos/octo/reef/installation")] = [
            502,
            502,
            502,
        ]

        with pytest.raises(GitHubAPIError) as excinfo:
            await github_client.get_installation_token(123, "octo/reef")
        assert not isinstance(excinfo.value, InstallationNotFoundError), (
            "server errors must stay retryable"
        )
        assert excinfo.value.status_code == 502, "lookup status expected"

    @pytest.mark.asyncio
    async def test_no_hint_no_recovery(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Without a repository hint the 404 is raised directly."""
        github_api.installations = set()
        with pytest.raises(InstallationNotFoundError):
            await github_client.get_installation_token(123)
        assert github_api.calls("GET", "/repos") == [], "no lookup expected"

    @pytest.mark.asyncio
    async def test_mint_server_error_is_not_not_found(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """A persistent 5xx while minting raises a plain API error."""
        github_api.queued_statuses[
            ("POST", "/app/installations/123/access_tokens")
        ] = [500, 500, 500]
        with pytest.raises(GitHubAPIError) as excinfo:
            await github_client.get_installation_token(123, "octo/reef")
        assert not isinstance(excinfo.value, InstallationNotFoundError), (
            "5xx must not be treated as a missing installation"
        )


class TestTokenShape:
    """Tests for malformed token responses."""

    @pytest.mark.asyncio
    async def test_missing_token_field(self, private_key_pem: str) -> None:
        """A 201 without a token is a response shape error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(201, json={"expires_at": None})

        client = GitHubAppClient(
            GitHubAppConfig(app_id="1", private_key_pem=private_key_pem),
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            sleep=no_sleep,
        )
        with pytest.raises(GitHubResponseShapeError, match="token"):
            await client.get_installation_token(123)


class TestTokenCache:
    """Tests for the optional installation token cache."""

    @pytest.mark.asyncio
    async def test_cached_token_is_reused(
        self, github_api: FakeGitHubApi, private_key_pem: str
    ) -> None:
        """A cached, unexpired token avoids a second mint."""
        client = _client(github_api, private_key_pem, InstallationTokenCache())
        first = await client.get_installation_token(123)
        second = await client.get_installation_token(123)
        assert first == second, "expected the same token"
        assert len(github_api.calls("POST", "/app/installations")) == 1, (
            "expected a single mint"
        )

    def test_expiry_honours_safety_margin(self, clock: ManualClock) -> None:
        """Tokens are dropped a safety margin before they expire."""
        cache = InstallationTokenCache(
            clock=clock, safety_margin=dt.timedelta(seconds=60)
        )
        cache.put(
            1,
            InstallationToken(
                token="t", expires_at=clock.now + dt.timedelta(seconds=120)
            ),
        )
        assert cache.get(1) == "t", "token should be valid"
        clock.advance(dt.timedelta(seconds=61))
        assert cache.get(1) is None, "token inside the margin should be dropped"

    def test_token_already_inside_margin_is_not_served(
        self, clock: ManualClock
    ) -> None:
        """A token expiring within the margin is never handed out."""
        cache = InstallationTokenCache(
            clock=clock, safety_margin=dt.timedelta(seconds=60)
        )
        cache.put(
            1,
            InstallationToken(
                token="t", expires_at=clock.now + dt.timedelta(seconds=30)
            ),
        )
        assert cache.get(1) is None, "near-expiry token must not be served"

    def test_invalidate_drops_token(self, clock: ManualClock) -> None:
        """Invalidating an installation forgets its token."""
        cache = InstallationTokenCache(clock=clock)
        cache.put(
            1,
            InstallationToken(token="t", expires_at=clock.now + dt.timedelta(hours=1)),
        )
        cache.invalidate(1)
        assert cache.get(1) is None, "invalidated token must be gone"

    def test_tokens_without_expiry_are_not_cached(self) -> None:
        """A token with no expiry is never cached."""
        cache = InstallationTokenCache()
        cache.put(1, InstallationToken(token="t"))
        assert cache.get(1) is None, "expected no cached token"


class TestPullRequestsAndInstallations:
    """Tests for closing pull requests and listing repositories."""

    @pytest.mark.asyncio
    async def test_close_pull_request(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Closing patches the pull request state to closed."""
        await github_client.close_pull_request(123, "octo/reef", 7)
        assert github_api.pull_states[("octo/reef", 7)] == "closed", "PR not closed"

    @pytest.mark.asyncio
    async def test_lists_all_pages(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """Pages are read until a short page arrives."""
        github_api.installation_repositories[123] = _repos(250)
        repos = await github_client.list_installation_repositories(123)
        assert len(repos) == 250, "expected every repository"
        assert len(github_api.calls("GET", "/installation/repositories")) == 3, (
            "expected three pages"
        )

    @pytest.mark.asyncio
    async def test_listing_stops_after_ten_pages(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """At most 1,000 repositories are enumerated."""
        github_api.installation_repositories[123] = _repos(1200)
        repos = await github_client.list_installation_repositories(123)
        assert len(repos) == 1000, "expected the ten-page cap"
        assert repos[-1].full_name == "octo/repo-1000", "unexpected last repository"

    @pytest.mark.asyncio
    async def test_repository_installation_lookup(
        self, github_api: FakeGitHubApi, github_client: GitHubAppClient
    ) -> None:
        """The lookup returns the installation serving the repository."""
        assert await github_client.get_repository_installation_id("octo/reef") == 123, (
            "unexpected installation id"
        )
