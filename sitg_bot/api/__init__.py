"""Falcon ASGI surface: webhook receiver, health probe and metrics.

Public API
----------
create_app
    Application factory taking a :class:`BotContext`.
build_context
    Builds the context (clients, pipeline, poller) from :class:`BotConfig`.
"""

from sitg_bot.api.app import BotContext, create_app
from sitg_bot.api.factory import build_context

__all__ = ["BotContext", "build_context", "create_app"]
