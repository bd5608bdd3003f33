"""Unit tests for the unexpected-error handler.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_errors.py

"""

from __future__ import annotations

from unittest import mock

import falcon
import pytest

from sitg_bot.api.errors import INTERNAL_ERROR_BODY, UnexpectedErrorHandler
from sitg_bot.metrics import BotMetrics
from sitg_bot.observability import WebhookEventLogger
from tests.helpers.femtologging_capture import FakeLogger


@pytest.mark.asyncio
async def test_handler_counts_logs_and_hides_detail() -> None:
    """The handler answers 500 with a generic body and logs the failure."""
    metrics, sink = BotMetrics(), FakeLogger()
    handler = UnexpectedErrorHandler(metrics, WebhookEventLogger(sink))
    req = mock.MagicMock(method="POST", path="/webhooks/github")
    resp = mock.MagicMock()
    error = RuntimeError("token ghs_secret leaked")

    await handler.handle(req, resp, error, {})

    assert resp.status == falcon.HTTP_500, "expected HTTP 500"
    assert resp.media == INTERNAL_ERROR_BODY, "generic body expected"
    assert metrics.sample("sitg_bot_errors_total") == 1, "error counted"
    assert sink.has_event("request.failed"), "failure logged"
    assert sink.calls[0][2] is error, "exception attached to the log record"
