"""In-memory GitHub and backend HTTP doubles served via ``httpx.MockTransport``.

The doubles keep just enough state to exercise the clients end to end:
which installations exist, which installation serves a repository, the
comments on each issue thread, pull request states and the backend's
outbox queue.

Usage
-----
Serve a client from the fake and inspect what it received::

    github_api = FakeGitHubApi(installations={123})
    client = GitHubAppClient(config, http_client=github_api.client())
    await client.close_pull_request(123, "octo/reef", 7)
    assert github_api.pull_states[("octo/reef", 7)] == "closed"

"""

from __future__ import annotations

import dataclasses
import json
import re
import typing as typ

import httpx

GITHUB_BASE_URL = "https://api.github.test"
BACKEND_BASE_URL = "https://backend.test"

_TOKEN_PATH = re.compile(r"^/app/installations/(?P<installation>\d+)/access_tokens$")
_REPO_INSTALLATION_PATH = re.compile(r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)/installation$")
_ISSUE_COMMENTS_PATH = re.compile(
    r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)/issues/(?P<number>\d+)/comments$"
)
_COMMENT_PATH = re.compile(
    r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)/issues/comments/(?P<comment>\d+)$"
)
_PULL_PATH = re.compile(r"^/repos/(?P<owner>[^/]+)/(?P<repo>[^/]+)/pulls/(?P<number>\d+)$")
_RESULT_PATH = re.compile(r"^/internal/v2/bot-actions/(?P<action>[^/]+)/result$")
_DEADLINE_PATH = re.compile(r"^/internal/v1/challenges/(?P<challenge>[^/]+)/deadline-check$")


def installation_token_for(installation_id: int) -> str:
    """Return the token the GitHub double mints for ``installation_id``."""
    return f"ghs_installation_{installation_id}"


def _json_body(request: httpx.Request) -> typ.Any:  # noqa: ANN401 - arbitrary JSON
    return json.loads(request.content.decode("utf-8")) if request.content else None


@dataclasses.dataclass
class FakeGitHubApi:
    """GitHub REST double.

    ``installations`` lists installation ids that can mint tokens;
    ``repo_installations`` maps ``owner/name`` to the installation that
    currently serves it. ``queued_statuses`` forces responses for the next
    requests to a ``(method, path)`` pair before normal handling resumes.
    """

    installations: set[int] = dataclasses.field(default_factory=set)
    repo_installations: dict[str, int] = dataclasses.field(default_factory=dict)
    installation_repositories: dict[int, list[dict[str, typ.Any]]] = dataclasses.field(
        default_factory=dict
    )
    comments: dict[tuple[str, int], list[dict[str, typ.Any]]] = dataclasses.field(
        default_factory=dict
    )
    pull_states: dict[tuple[str, int], str] = dataclasses.field(default_factory=dict)
    queued_statuses: dict[tuple[str, str], list[int]] = dataclasses.field(
        default_factory=dict
    )
    requests: list[httpx.Request] = dataclasses.field(default_factory=list)
    _next_comment_id: int = 1000

    def client(self) -> httpx.AsyncClient:
        """Return an ``AsyncClient`` routed to this double."""
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def calls(self, method: str, path_prefix: str = "") -> list[httpx.Request]:
        """Return recorded requests with ``method`` under ``path_prefix``."""
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        ]

    def thread(self, repo_full_name: str, number: int) -> list[dict[str, typ.Any]]:
        """Return the comments on an issue or pull request thread."""
        return self.comments.setdefault((repo_full_name, number), [])

    def handler(self, request: httpx.Request) -> httpx.Response:
        """Route one request."""
        self.requests.append(request)
        path = request.url.path
        queued = self.queued_statuses.get((request.method, path))
        if queued:
            return httpx.Response(queued.pop(0), json={"message": "queued failure"})

        routes: tuple[tuple[str, re.Pattern[str], typ.Callable[..., httpx.Response]], ...] = (
            ("POST", _TOKEN_PATH, self._mint_token),
            ("GET", _REPO_INSTALLATION_PATH, self._repo_installation),
            ("GET", _ISSUE_COMMENTS_PATH, self._list_comments),
            ("POST", _ISSUE_COMMENTS_PATH, self._create_comment),
            ("PATCH", _COMMENT_PATH, self._update_comment),
            ("PATCH", _PULL_PATH, self._update_pull),
        )
        for method, pattern, route in routes:
            match = pattern.match(path)
            if request.method == method and match:
                return route(request, **match.groupdict())
        if request.method == "GET" and path == "/installation/repositories":
            return self._list_installation_repositories(request)
        return httpx.Response(404, json={"message": "Not Found"})

    def _mint_token(self, _request: httpx.Request, installation: str) -> httpx.Response:
        installation_id = int(installation)
        if installation_id not in self.installations:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(
            201,
            json={
                "token": installation_token_for(installation_id),
                "expires_at": "2099-01-01T00:00:00Z",
            },
        )

    def _repo_installation(
        self, _request: httpx.Request, owner: str, repo: str
    ) -> httpx.Response:
        installation_id = self.repo_installations.get(f"{owner}/{repo}")
        if installation_id is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return httpx.Response(200, json={"id": installation_id, "app_id": 1})

    def _list_comments(
        self, _request: httpx.Request, owner: str, repo: str, number: str
    ) -> httpx.Response:
        return httpx.Response(200, json=self.thread(f"{owner}/{repo}", int(number)))

    def _create_comment(
        self, request: httpx.Request, owner: str, repo: str, number: str
    ) -> httpx.Response:
        self._next_comment_id += 1
        comment = {"id": self._next_comment_id, "body": _json_body(request)["body"]}
        self.thread(f"{owner}/{repo}", int(number)).append(comment)
        return httpx.Response(201, json=comment)

    def _update_comment(
        self, request: httpx.Request, owner: str, repo: str, comment: str
    ) -> httpx.Response:
        for (full_name, _), thread in self.comments.items():
            if full_name != f"{owner}/{repo}":
                continue
            for existing in thread:
                if existing["id"] == int(comment):
                    existing["body"] = _json_body(request)["body"]
                    return httpx.Response(200, json=existing)
        return httpx.Response(404, json={"message": "Not Found"})

    def _update_pull(
        self, request: httpx.Request, owner: str, repo: str, number: str
    ) -> httpx.Response:
        state = _json_body(request)["state"]
        self.pull_states[(f"{owner}/{repo}", int(number))] = state
        return httpx.Response(200, json={"number": int(number), "state": state})

    def _list_installation_repositories(self, request: httpx.Request) -> httpx.Response:
        token = request.headers["Authorization"].removeprefix("Bearer ")
        installation_id = next(
            (i for i in self.installations if installation_token_for(i) == token), None
        )
        repos = self.installation_repositories.get(installation_id or -1, [])
        per_page = int(request.url.params.get("per_page", "30"))
        page = int(request.url.params.get("page", "1"))
        start = (page - 1) * per_page
        return httpx.Response(
            200,
            json={
                "total_count": len(repos),
                "repositories": repos[start : start + per_page],
            },
        )


@dataclasses.dataclass
class FakeBackendApi:
    """Backend internal API double.

    ``ingest_replies`` and ``claim_batches`` are consumed in order; once
    empty, ingest answers ``ACCEPTED`` and claims return no actions.
    """

    ingest_replies: list[dict[str, typ.Any]] = dataclasses.field(default_factory=list)
    claim_batches: list[list[dict[str, typ.Any]]] = dataclasses.field(
        default_factory=list
    )
    deadline_replies: dict[str, dict[str, typ.Any]] = dataclasses.field(
        default_factory=dict
    )
    queued_statuses: dict[str, list[int]] = dataclasses.field(default_factory=dict)
    forwarded: list[tuple[str, dict[str, typ.Any]]] = dataclasses.field(
        default_factory=list
    )
    results: list[tuple[str, dict[str, typ.Any]]] = dataclasses.field(
        default_factory=list
    )
    requests: list[httpx.Request] = dataclasses.field(default_factory=list)

    def client(self) -> httpx.AsyncClient:
        """Return an ``AsyncClient`` routed to this double."""
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def result_for(self, action_id: str) -> dict[str, typ.Any]:
        """Return the single outcome reported for ``action_id``."""
        matches = [body for aid, body in self.results if aid == action_id]
        assert len(matches) == 1, f"expected one result for {action_id}, got {matches}"
        return matches[0]

    def handler(self, request: httpx.Request) -> httpx.Response:
        """Route one request."""
        self.requests.append(request)
        path = request.url.path
        queued = self.queued_statuses.get(path)
        if queued:
            return httpx.Response(queued.pop(0), json={"error": "queued failure"})

        if path.startswith("/internal/v2/github/events/"):
            self.forwarded.append((path, _json_body(request)))
            reply = self.ingest_replies.pop(0) if self.ingest_replies else None
            return httpx.Response(200, json=reply or {"ingest_status": "ACCEPTED"})
        if path == "/internal/v2/bot-actions/claim":
            batch = self.claim_batches.pop(0) if self.claim_batches else []
            return httpx.Response(200, json={"actions": batch})
        if match := _RESULT_PATH.match(path):
            self.results.append((match["action"], _json_body(request)))
            return httpx.Response(200, json={"ok": True})
        if match := _DEADLINE_PATH.match(path):
            reply = self.deadline_replies.get(match["challenge"], {"action": "NONE"})
            return httpx.Response(200, json=reply)
        return httpx.Response(404, json={"error": "not_found"})


def bot_action(  # noqa: PLR0913
    action_id: str,
    *,
    action_type: str = "UPSERT_PR_COMMENT",
    installation_id: int = 123,
    repo_full_name: str = "octo/reef",
    pr_number: int = 7,
    marker: str = "<!-- stake-to-contribute:gate:ch-1 -->",
    markdown: str = "Please stake before merging.",
) -> dict[str, typ.Any]:
    """Return a claimed action as the backend serializes it."""
    return {
        "id": action_id,
        "action_type": action_type,
        "installation_id": installation_id,
        "github_repo_id": 555,
        "repo_full_name": repo_full_name,
        "github_pr_number": pr_number,
        "challenge_id": "ch-1",
        "payload": {"comment_markdown": markdown, "comment_marker": marker},
        "attempts": 0,
        "created_at": "2026-01-01T00:00:00Z",
    }
