"""Inbound GitHub webhook verification, normalization and forwarding."""

from __future__ import annotations

from .models import (
    InstallationSyncEvent,
    NormalizedWebhookEvent,
    PullRequestEvent,
    RepositoryRef,
    WebhookEventName,
)
from .parsing import IgnoredDelivery, IgnoreReason, WebhookDelivery, parse_webhook_event
from .pipeline import WebhookDisposition, WebhookIngestionPipeline, WebhookOutcome

__all__ = [
    "IgnoreReason",
    "IgnoredDelivery",
    "InstallationSyncEvent",
    "NormalizedWebhookEvent",
    "PullRequestEvent",
    "RepositoryRef",
    "WebhookDelivery",
    "WebhookDisposition",
    "WebhookEventName",
    "WebhookIngestionPipeline",
    "WebhookOutcome",
    "parse_webhook_event",
]
