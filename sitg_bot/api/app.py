"""Application factory for the bot's Falcon ASGI application.

Usage
-----
Build the app around a process context::

    from sitg_bot.api.app import create_app
    from sitg_bot.api.factory import build_context

    app = create_app(build_context(BotConfig.from_env()))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from sitg_bot.api.errors import UnexpectedErrorHandler
from sitg_bot.api.health.resources import HealthResource
from sitg_bot.api.metrics.resources import MetricsResource
from sitg_bot.api.middleware import LifespanManager
from sitg_bot.api.webhooks.resources import GitHubWebhookResource

if typ.TYPE_CHECKING:
    from sitg_bot.deadlines.scheduler import DeadlineScheduler
    from sitg_bot.metrics import BotMetrics
    from sitg_bot.outbox.poller import OutboxPoller
    from sitg_bot.webhook.pipeline import WebhookIngestionPipeline

__all__ = ["BotContext", "SupportsAclose", "create_app"]


class SupportsAclose(typ.Protocol):
    """An HTTP client or similar resource closed at shutdown."""

    async def aclose(self) -> None: ...


@dc.dataclass(frozen=True, slots=True)
class BotContext:
    """Process-lifetime objects shared by the HTTP surface and background loops.

    Attributes
    ----------
    metrics
        Counters incremented by both the webhook handler and the poller.
    pipeline
        Webhook ingestion pipeline behind ``POST /webhooks/github``.
    poller
        Outbox poller started at startup; ``None`` when polling is disabled.
    scheduler
        Legacy deadline scheduler; ``None`` unless local timers are enabled.
    closeables
        Clients closed at shutdown.

    """

    metrics: BotMetrics
    pipeline: WebhookIngestionPipeline
    poller: OutboxPoller | None = None
    scheduler: DeadlineScheduler | None = None
    closeables: tuple[SupportsAclose, ...] = ()


def create_app(context: BotContext) -> falcon.asgi.App:
    """Create the Falcon ASGI application.

    Routes are ``POST /webhooks/github``, ``GET /healthz`` and
    ``GET /metrics``. Unexpected exceptions are answered with a generic
    500 body; Falcon's own HTTP errors (404 for unknown routes, 405) keep
    their default handling.
    """
    app = falcon.asgi.App(middleware=[LifespanManager(context)])  # type: ignore[no-matching-overload]  # Falcon stubs

    app.add_route("/webhooks/github", GitHubWebhookResource(context.pipeline))
    app.add_route("/healthz", HealthResource())
    app.add_route("/metrics", MetricsResource(context.metrics))

    errors = UnexpectedErrorHandler(context.metrics)
    app.add_error_handler(Exception, errors.handle)

    return app
