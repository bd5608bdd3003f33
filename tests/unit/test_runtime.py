"""Unit tests for the runtime entrypoint."""

from __future__ import annotations

from unittest import mock

import falcon.asgi
import pytest

from sitg_bot import runtime


def test_load_config_exits_on_invalid_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A configuration error exits with status 1."""
    for name in (
        "SITG_GITHUB_WEBHOOK_SECRET",
        "SITG_BACKEND_INTERNAL_HMAC_SECRET",
        "SITG_BACKEND_SERVICE_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)
    with pytest.raises(SystemExit) as excinfo:
        runtime.load_config()
    assert excinfo.value.code == 1, "expected exit status 1"


def test_create_app_from_environment(
    monkeypatch: pytest.MonkeyPatch, bot_env: dict[str, str]
) -> None:
    """The Granian factory builds the Falcon app from SITG_* variables."""
    for name, value in bot_env.items():
        monkeypatch.setenv(name, value)
    assert isinstance(runtime.create_app(), falcon.asgi.App), "expected Falcon app"


def test_main_serves_factory(
    monkeypatch: pytest.MonkeyPatch, bot_env: dict[str, str]
) -> None:
    """main() configures logging and hands the factory path to Granian."""
    for name, value in bot_env.items():
        monkeypatch.setenv(name, value)
    monkeypatch.setenv("SITG_PORT", "8081")
    monkeypatch.setenv("SITG_LOG_LEVEL", "chatty")

    with (
        mock.patch("granian.Granian") as granian_cls,
        mock.patch.object(runtime, "configure_logging", return_value=("INFO", True)),
        mock.patch.object(runtime, "log_warning") as warn,
    ):
        runtime.main()

    granian_cls.assert_called_once()
    args, kwargs = granian_cls.call_args
    assert args == ("sitg_bot.runtime:create_app",), "factory target"
    assert kwargs["factory"] is True, "factory mode"
    assert kwargs["port"] == 8081, "configured port"
    granian_cls.return_value.serve.assert_called_once_with()
    warn.assert_called_once()
