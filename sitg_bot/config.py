"""Process configuration for the bot worker.

Every setting comes from a ``SITG_``-prefixed environment variable. The
secrets are excluded from the dataclass repr so a logged config never leaks
them.

Usage
-----
Load the settings once at startup::

    config = BotConfig.from_env()
    github = GitHubAppClient(config.github_app_config())

A missing or malformed variable raises :class:`BotConfigError` naming it.

"""

from __future__ import annotations

import dataclasses as dc
import os
import typing as typ
from pathlib import Path

from sitg_bot.backend.client import BackendConfig
from sitg_bot.github.client import GitHubAppConfig
from sitg_bot.outbox.poller import OutboxSettings

if typ.TYPE_CHECKING:
    import collections.abc as cabc

ENV_PREFIX = "SITG_"

DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"
DEFAULT_POLL_INTERVAL_MS = 5000
MIN_POLL_INTERVAL_MS = 500
DEFAULT_CLAIM_LIMIT = 25
MAX_CLAIM_LIMIT = 100
DEFAULT_STATE_FILE = Path("data/bot-state.json")
DEFAULT_HOST = "0.0.0.0"  # noqa: S104 - the worker listens on every interface in its container
DEFAULT_PORT = 3000
MAX_PORT = 65535


class BotConfigError(ValueError):
    """Raised when an environment variable is missing or malformed."""

    @classmethod
    def missing(cls, env_var: str) -> BotConfigError:
        """Return an error for a required variable that is unset or blank."""
        return cls(f"{env_var} is required")

    @classmethod
    def invalid(cls, env_var: str, detail: str) -> BotConfigError:
        """Return an error for a variable whose value cannot be used."""
        return cls(f"{env_var} {detail}")


class _Env:
    """Typed reads from an environment mapping."""

    def __init__(self, environ: cabc.Mapping[str, str]) -> None:
        self._environ = environ

    def optional(self, name: str) -> str | None:
        raw = self._environ.get(ENV_PREFIX + name, "")
        return raw.strip() or None

    def required(self, name: str) -> str:
        value = self.optional(name)
        if value is None:
            raise BotConfigError.missing(ENV_PREFIX + name)
        return value

    def flag(self, name: str, *, default: bool) -> bool:
        """Read an on/off switch.

        A switch that defaults on is turned off only by ``false``; one that
        defaults off is turned on only by ``true``.
        """
        value = self.optional(name)
        if value is None:
            return default
        if default:
            return value.lower() != "false"
        return value.lower() == "true"

    def bounded_int(
        self, name: str, default: int, *, minimum: int, maximum: int | None = None
    ) -> int:
        value = self.optional(name)
        if value is None:
            return default
        env_var = ENV_PREFIX + name
        try:
            parsed = int(value)
        except ValueError as exc:
            raise BotConfigError.invalid(
                env_var, f"must be an integer, got: {value!r}"
            ) from exc
        if parsed < minimum or (maximum is not None and parsed > maximum):
            upper = "" if maximum is None else f" and <= {maximum}"
            raise BotConfigError.invalid(
                env_var, f"must be >= {minimum}{upper}, got: {parsed}"
            )
        return parsed


@dc.dataclass(frozen=True, slots=True)
class BotConfig:
    """Everything the worker reads from its environment.

    Attributes
    ----------
    backend_internal_hmac_secret
        Shared secret for internal request signatures. Falls back to
        ``backend_service_token`` when only a token is configured.
    outbox_poll_interval_ms
        Milliseconds between outbox ticks; at least 500.
    outbox_claim_limit
        Maximum actions claimed per tick, 1 to 100.
    local_deadline_timers_enabled
        Enables the legacy in-process deadline scheduler and its durable
        state file.

    """

    github_webhook_secret: str
    github_app_id: str
    github_app_private_key: str = dc.field(repr=False)
    backend_base_url: str
    backend_bot_key_id: str
    backend_internal_hmac_secret: str = dc.field(repr=False)
    backend_service_token: str | None = dc.field(default=None, repr=False)
    github_api_base_url: str = DEFAULT_GITHUB_API_BASE_URL
    worker_id: str = dc.field(default_factory=lambda: f"bot-worker-{os.getpid()}")
    outbox_polling_enabled: bool = True
    outbox_poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    outbox_claim_limit: int = DEFAULT_CLAIM_LIMIT
    local_deadline_timers_enabled: bool = False
    state_file: Path = DEFAULT_STATE_FILE
    github_token_cache_enabled: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: cabc.Mapping[str, str] | None = None) -> BotConfig:
        """Create configuration from ``SITG_*`` environment variables.

        Raises
        ------
        BotConfigError
            If a required variable is missing or a numeric value is out of
            range.

        """
        env = _Env(os.environ if environ is None else environ)

        service_token = env.optional("BACKEND_SERVICE_TOKEN")
        hmac_secret = env.optional("BACKEND_INTERNAL_HMAC_SECRET") or service_token
        if hmac_secret is None:
            raise BotConfigError.missing(f"{ENV_PREFIX}BACKEND_INTERNAL_HMAC_SECRET")

        state_file = env.optional("STATE_FILE")

        return cls(
            github_webhook_secret=env.required("GITHUB_WEBHOOK_SECRET"),
            github_app_id=env.required("GITHUB_APP_ID"),
            # Single-line env values carry the PEM with literal "\n" escapes.
            github_app_private_key=env.required("GITHUB_APP_PRIVATE_KEY").replace(
                "\\n", "\n"
            ),
            github_api_base_url=(
                env.optional("GITHUB_API_BASE_URL") or DEFAULT_GITHUB_API_BASE_URL
            ).rstrip("/"),
            backend_base_url=env.required("BACKEND_BASE_URL").rstrip("/"),
            backend_bot_key_id=env.required("BACKEND_BOT_KEY_ID"),
            backend_internal_hmac_secret=hmac_secret,
            backend_service_token=service_token,
            worker_id=env.optional("WORKER_ID") or f"bot-worker-{os.getpid()}",
            outbox_polling_enabled=env.flag("OUTBOX_POLLING_ENABLED", default=True),
            outbox_poll_interval_ms=env.bounded_int(
                "OUTBOX_POLL_INTERVAL_MS",
                DEFAULT_POLL_INTERVAL_MS,
                minimum=MIN_POLL_INTERVAL_MS,
            ),
            outbox_claim_limit=env.bounded_int(
                "OUTBOX_CLAIM_LIMIT",
                DEFAULT_CLAIM_LIMIT,
                minimum=1,
                maximum=MAX_CLAIM_LIMIT,
            ),
            local_deadline_timers_enabled=env.flag(
                "ENABLE_LOCAL_DEADLINE_TIMERS", default=False
            ),
            state_file=Path(state_file) if state_file else DEFAULT_STATE_FILE,
            github_token_cache_enabled=env.flag("GITHUB_TOKEN_CACHE", default=False),
            host=env.optional("HOST") or DEFAULT_HOST,
            port=env.bounded_int("PORT", DEFAULT_PORT, minimum=1, maximum=MAX_PORT),
            log_level=env.optional("LOG_LEVEL") or "INFO",
        )

    def github_app_config(self) -> GitHubAppConfig:
        """Return settings for :class:`~sitg_bot.github.GitHubAppClient`."""
        return GitHubAppConfig(
            app_id=self.github_app_id,
            private_key_pem=self.github_app_private_key,
            api_base_url=self.github_api_base_url,
        )

    def backend_config(self) -> BackendConfig:
        """Return settings for :class:`~sitg_bot.backend.BackendClient`."""
        return BackendConfig(
            base_url=self.backend_base_url,
            bot_key_id=self.backend_bot_key_id,
            internal_hmac_secret=self.backend_internal_hmac_secret,
            service_token=self.backend_service_token,
        )

    def outbox_settings(self) -> OutboxSettings:
        """Return identity and pacing for the outbox poller."""
        return OutboxSettings(
            worker_id=self.worker_id,
            interval_ms=self.outbox_poll_interval_ms,
            claim_limit=self.outbox_claim_limit,
        )


__all__ = ["ENV_PREFIX", "BotConfig", "BotConfigError"]
