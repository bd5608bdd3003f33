"""Liveness probe.

Usage
-----
Register the endpoint on the Falcon app::

    app.add_route("/healthz", HealthResource())

"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

__all__ = ["HealthResource"]


class HealthResource:
    """Answers ``{"status": "ok"}`` whenever the process is serving."""

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Handle GET /healthz requests."""
        resp.media = {"status": "ok"}
        resp.status = HTTPStatus.OK
