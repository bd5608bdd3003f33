"""GitHub App client errors."""

from __future__ import annotations

_HTTP_NOT_FOUND = 404


class GitHubAPIError(RuntimeError):
    """Raised when GitHub returns an unsuccessful response."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        operation: str | None = None,
    ) -> None:
        """Initialise with a message, HTTP status and failing operation."""
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)

    @property
    def is_not_found(self) -> bool:
        """Return True when GitHub answered 404."""
        return self.status_code == _HTTP_NOT_FOUND

    @classmethod
    def http_error(cls, operation: str, status_code: int) -> GitHubAPIError:
        """Return an error for a non-2xx response to ``operation``."""
        return cls(
            f"GitHub {operation} failed ({status_code})",
            status_code=status_code,
            operation=operation,
        )


class InstallationNotFoundError(GitHubAPIError):
    """Raised when no usable installation exists for a repository.

    This is permanent: the App was uninstalled or the installation was
    recreated under an id that cannot be recovered, so retrying the same
    work will not help.
    """

    def __init__(
        self,
        installation_id: int,
        *,
        repo_full_name: str | None = None,
        reason: str = "installation token request failed (404)",
    ) -> None:
        """Record the stale installation id and the repository hint."""
        self.installation_id = installation_id
        self.repo_full_name = repo_full_name
        target = f" for {repo_full_name}" if repo_full_name else ""
        super().__init__(
            f"GitHub {reason}: installation {installation_id}{target}",
            status_code=_HTTP_NOT_FOUND,
            operation="installation token request",
        )


class GitHubResponseShapeError(RuntimeError):
    """Raised when a GitHub response lacks an expected field."""

    @classmethod
    def missing(cls, operation: str, field: str) -> GitHubResponseShapeError:
        """Return an error for a missing or mistyped response field."""
        return cls(f"GitHub {operation} response missing expected field: {field}")


class GitHubConfigError(RuntimeError):
    """Raised when GitHub App configuration is invalid."""

    @classmethod
    def missing_app_id(cls) -> GitHubConfigError:
        """Return an error when the App id is empty."""
        return cls("GitHub App id must be non-empty")

    @classmethod
    def invalid_private_key(cls) -> GitHubConfigError:
        """Return an error when the private key is not a PEM block."""
        return cls("GitHub App private key must be a PEM encoded RSA key")
