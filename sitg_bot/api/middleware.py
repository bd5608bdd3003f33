"""ASGI lifespan wiring for the background loops.

Usage
-----
Registered by :func:`sitg_bot.api.app.create_app`::

    app = falcon.asgi.App(middleware=[LifespanManager(context)])

"""

from __future__ import annotations

import asyncio
import typing as typ

from sitg_bot.logging import format_event, get_logger, log_info
from sitg_bot.observability import OutboxEventLogger

if typ.TYPE_CHECKING:
    from sitg_bot.api.app import BotContext

__all__ = ["LifespanManager"]

logger = get_logger(__name__)


class LifespanManager:
    """Start the outbox poller and deadline scheduler with the server.

    On shutdown both loops are asked to stop and awaited, then the shared
    HTTP clients are closed. A tick that is mid-flight is allowed to
    finish.
    """

    def __init__(self, context: BotContext) -> None:
        """Bind the manager to the process context."""
        self._context = context
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        """Return True while background tasks are active."""
        return any(not task.done() for task in self._tasks)

    async def process_startup(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Restore pending deadlines and start the background loops."""
        context = self._context
        if context.scheduler is not None:
            context.scheduler.restore()
            self._tasks.append(
                asyncio.create_task(context.scheduler.run(), name="deadline-scheduler")
            )
        if context.poller is not None:
            self._tasks.append(
                asyncio.create_task(context.poller.run(), name="outbox-poller")
            )
        else:
            OutboxEventLogger().log_polling_disabled()

    async def process_shutdown(
        self, _scope: dict[str, typ.Any], _event: dict[str, typ.Any]
    ) -> None:
        """Stop the loops and close the shared clients."""
        context = self._context
        if context.poller is not None:
            context.poller.stop()
        if context.scheduler is not None:
            context.scheduler.stop()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
            self._tasks.clear()
        for resource in context.closeables:
            await resource.aclose()
        log_info(logger, format_event("shutdown.completed"))
