"""Top-level Falcon error handler for unexpected failures."""

from __future__ import annotations

import typing as typ

import falcon

from sitg_bot.observability import WebhookEventLogger

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from sitg_bot.metrics import BotMetrics

__all__ = ["INTERNAL_ERROR_BODY", "UnexpectedErrorHandler"]

INTERNAL_ERROR_BODY: typ.Final = {"error": "internal_error"}


class UnexpectedErrorHandler:
    """Count, log and answer any exception no other handler claimed.

    The body is always the generic ``{"error": "internal_error"}`` so stack
    traces and upstream error text never reach the client.
    """

    def __init__(
        self, metrics: BotMetrics, events: WebhookEventLogger | None = None
    ) -> None:
        """Bind the handler to the shared metrics."""
        self._metrics = metrics
        self._events = events or WebhookEventLogger()

    async def handle(
        self,
        req: Request,
        resp: Response,
        ex: Exception,
        _params: dict[str, typ.Any],
    ) -> None:
        """Map ``ex`` to an HTTP 500 JSON response."""
        self._metrics.record_error()
        self._events.log_request_failed(method=req.method, path=req.path, error=ex)
        resp.status = falcon.HTTP_500
        resp.media = dict(INTERNAL_ERROR_BODY)
