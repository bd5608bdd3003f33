"""Backend client errors."""

from __future__ import annotations


class BackendAPIError(RuntimeError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, message: str, *, endpoint: str, status_code: int) -> None:
        """Initialise with the endpoint name and HTTP status."""
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def http_error(cls, endpoint: str, status_code: int) -> BackendAPIError:
        """Return an error for a non-2xx response from ``endpoint``."""
        return cls(
            f"Backend {endpoint} failed ({status_code})",
            endpoint=endpoint,
            status_code=status_code,
        )


class BackendResponseShapeError(RuntimeError):
    """Raised when a backend reply does not match the expected schema."""

    def __init__(self, message: str, *, endpoint: str) -> None:
        """Initialise with the endpoint whose reply was malformed."""
        self.endpoint = endpoint
        super().__init__(message)

    @classmethod
    def invalid(cls, endpoint: str, detail: str) -> BackendResponseShapeError:
        """Return an error describing why the reply was rejected."""
        return cls(f"Backend {endpoint} returned a malformed reply: {detail}", endpoint=endpoint)
