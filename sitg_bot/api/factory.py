"""Build the process context from configuration.

Usage
-----
Build a context for the API layer::

    from sitg_bot.api.factory import build_context

    context = build_context(BotConfig.from_env())

"""

from __future__ import annotations

import typing as typ

from sitg_bot.api.app import BotContext
from sitg_bot.backend.client import BackendClient
from sitg_bot.deadlines import (
    BotStateStore,
    ChallengeDeadlineTracker,
    DeadlineCloser,
    DeadlineScheduler,
)
from sitg_bot.github.client import GitHubAppClient, InstallationTokenCache
from sitg_bot.idempotency import DurableIdempotencyStore
from sitg_bot.metrics import BotMetrics
from sitg_bot.outbox.poller import OutboxPoller
from sitg_bot.webhook.pipeline import WebhookIngestionPipeline

if typ.TYPE_CHECKING:
    import httpx

    from sitg_bot.config import BotConfig
    from sitg_bot.idempotency import IdempotencyStore
    from sitg_bot.webhook.pipeline import ChallengeTracker

__all__ = ["build_context"]


def build_context(
    config: BotConfig,
    *,
    github_http_client: httpx.AsyncClient | None = None,
    backend_http_client: httpx.AsyncClient | None = None,
) -> BotContext:
    """Assemble clients, pipeline, poller and the optional legacy path.

    Injected HTTP clients stay owned by the caller; clients created here
    are closed by the lifespan manager at shutdown.
    """
    metrics = BotMetrics()
    github = GitHubAppClient(
        config.github_app_config(),
        http_client=github_http_client,
        token_cache=InstallationTokenCache() if config.github_token_cache_enabled else None,
    )
    backend = BackendClient(config.backend_config(), http_client=backend_http_client)

    dedup_store: IdempotencyStore | None = None
    tracker: ChallengeTracker | None = None
    scheduler: DeadlineScheduler | None = None
    state: BotStateStore | None = None
    if config.local_deadline_timers_enabled:
        state = BotStateStore(config.state_file)
        scheduler = DeadlineScheduler(
            DeadlineCloser(backend, github, state=state), state=state
        )
        tracker = ChallengeDeadlineTracker(scheduler, state)
        dedup_store = DurableIdempotencyStore(state)

    pipeline = WebhookIngestionPipeline(
        webhook_secret=config.github_webhook_secret,
        backend=backend,
        github=github,
        metrics=metrics,
        dedup_store=dedup_store,
        challenge_tracker=tracker,
    )
    poller = (
        OutboxPoller(backend, github, metrics, config.outbox_settings())
        if config.outbox_polling_enabled
        else None
    )
    return BotContext(
        metrics=metrics,
        pipeline=pipeline,
        poller=poller,
        scheduler=scheduler,
        closeables=(github, backend) if state is None else (github, backend, state),
    )
