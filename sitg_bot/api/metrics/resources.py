"""Prometheus text exposition of the process counters."""

from __future__ import annotations

import typing as typ
from http import HTTPStatus

from sitg_bot.metrics import METRICS_CONTENT_TYPE

if typ.TYPE_CHECKING:
    from falcon.asgi import Request, Response

    from sitg_bot.metrics import BotMetrics

__all__ = ["MetricsResource"]


class MetricsResource:
    """Serves ``GET /metrics``."""

    def __init__(self, metrics: BotMetrics) -> None:
        """Bind the resource to the shared counters."""
        self._metrics = metrics

    async def on_get(self, _req: Request, resp: Response) -> None:
        """Render every counter in the Prometheus text format."""
        resp.data = self._metrics.render()
        resp.content_type = METRICS_CONTENT_TYPE
        resp.status = HTTPStatus.OK
