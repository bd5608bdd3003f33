"""Bot worker entrypoint.

``sitg_bot.runtime:create_app`` is the Granian factory target: it reads
:class:`~sitg_bot.config.BotConfig` from the environment, builds the
process context and returns the Falcon ASGI app. The outbox poller and,
when enabled, the legacy deadline scheduler start with the ASGI lifespan.

Run the service with ``sitg-bot`` or ``python -m sitg_bot.runtime``.
"""

from __future__ import annotations

import typing as typ

from sitg_bot.config import BotConfig, BotConfigError
from sitg_bot.logging import (
    configure_logging,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

if typ.TYPE_CHECKING:
    import falcon.asgi

__all__ = ["create_app", "load_config", "main"]

logger = get_logger(__name__)


def load_config() -> BotConfig:
    """Read configuration from the environment or exit with status 1.

    Raises
    ------
    SystemExit
        If a variable is missing or malformed.

    """
    try:
        return BotConfig.from_env()
    except BotConfigError as exc:
        # Configuration mistakes need no traceback.
        log_error(logger, "Invalid configuration: %s", exc)
        raise SystemExit(1) from exc


def create_app() -> falcon.asgi.App:
    """Create the Falcon ASGI application from environment configuration."""
    from sitg_bot.api.app import create_app as _create_api_app
    from sitg_bot.api.factory import build_context

    return _create_api_app(build_context(load_config()))


def main() -> None:
    """Start the bot worker under Granian."""
    from granian import Granian
    from granian.constants import Interfaces

    config = load_config()

    normalized_level, invalid_level = configure_logging(config.log_level)
    if invalid_level:
        log_warning(
            logger,
            "Invalid SITG_LOG_LEVEL %r, falling back to %s",
            config.log_level,
            normalized_level,
        )

    log_info(
        logger,
        "Starting sitg-bot on %s:%d (worker_id=%s, outbox_polling=%s)",
        config.host,
        config.port,
        config.worker_id,
        config.outbox_polling_enabled,
    )

    server = Granian(
        "sitg_bot.runtime:create_app",
        address=config.host,
        port=config.port,
        interface=Interfaces.ASGI,
        factory=True,
    )
    server.serve()


if __name__ == "__main__":
    main()
