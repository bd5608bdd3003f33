"""Receiver for GitHub App webhook deliveries.

The raw body is handed to the pipeline untouched: the signature covers the
exact bytes GitHub sent, so the body must not be parsed before it is
verified.
"""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

from sitg_bot.webhook.parsing import WebhookDelivery

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from sitg_bot.webhook.pipeline import WebhookIngestionPipeline

__all__ = ["GitHubWebhookResource"]


class GitHubWebhookResource:
    """Serves ``POST /webhooks/github``.

    Answers ``202 {"status": "ignored"}`` for deliveries that fail
    verification or are not supported, and ``200 {"status": "ok",
    "ingest_status": ...}`` once the backend has taken the event.
    """

    def __init__(self, pipeline: WebhookIngestionPipeline) -> None:
        """Bind the resource to the ingestion pipeline."""
        self._pipeline = pipeline

    async def on_post(self, req: Request, resp: Response) -> None:
        """Handle one webhook delivery."""
        delivery = WebhookDelivery(
            event_name=req.get_header("X-GitHub-Event"),
            delivery_id=req.get_header("X-GitHub-Delivery"),
            signature=req.get_header("X-Hub-Signature-256"),
            body=await req.stream.read(),
        )
        outcome = await self._pipeline.handle(delivery)
        if outcome.ignored:
            resp.media = {"status": "ignored"}
            resp.status = HTTPStatus.ACCEPTED
            return
        resp.media = {"status": "ok", "ingest_status": outcome.ingest_status}
        resp.status = HTTPStatus.OK
