"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sitg_bot.backend.client import BackendClient, BackendConfig
from sitg_bot.github.client import GitHubAppClient, GitHubAppConfig
from sitg_bot.metrics import BotMetrics
from sitg_bot.transport import RetryPolicy
from tests.helpers.clock import ManualClock, no_sleep
from tests.helpers.http_fakes import (
    BACKEND_BASE_URL,
    GITHUB_BASE_URL,
    FakeBackendApi,
    FakeGitHubApi,
)

if typ.TYPE_CHECKING:
    from pathlib import Path

    from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

WEBHOOK_SECRET = "webhook-secret"
INTERNAL_SECRET = "internal-hmac-secret"
FIXED_NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.UTC)


@pytest.fixture(scope="session")
def rsa_private_key() -> RSAPrivateKey:
    """Generate one RSA key per test session; key generation is slow."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key: RSAPrivateKey) -> str:
    """Return the session key as a PKCS#8 PEM string."""
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key: RSAPrivateKey) -> str:
    """Return the public half of the session key as PEM."""
    return (
        rsa_private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("ascii")
    )


@pytest.fixture
def clock() -> ManualClock:
    """Provide a clock pinned to a fixed instant."""
    return ManualClock(FIXED_NOW)


@pytest.fixture
def metrics() -> BotMetrics:
    """Provide counters on an isolated registry."""
    return BotMetrics()


@pytest.fixture
def github_api() -> FakeGitHubApi:
    """Provide a GitHub double with installation 123 serving ``octo/reef``."""
    return FakeGitHubApi(
        installations={123},
        repo_installations={"octo/reef": 123},
    )


@pytest.fixture
def backend_api() -> FakeBackendApi:
    """Provide an empty backend double."""
    return FakeBackendApi()


@pytest.fixture
def github_client(
    github_api: FakeGitHubApi, private_key_pem: str
) -> GitHubAppClient:
    """Build a GitHub client routed to the double without retry delays."""
    return GitHubAppClient(
        GitHubAppConfig(
            app_id="4242",
            private_key_pem=private_key_pem,
            api_base_url=GITHUB_BASE_URL,
        ),
        http_client=github_api.client(),
        retry_policy=RetryPolicy(attempts=3, base_delay_s=0.0),
        sleep=no_sleep,
    )


@pytest.fixture
def backend_client(backend_api: FakeBackendApi, clock: ManualClock) -> BackendClient:
    """Build a backend client routed to the double without retry delays."""
    return BackendClient(
        BackendConfig(
            base_url=BACKEND_BASE_URL,
            bot_key_id="bot-key-1",
            internal_hmac_secret=INTERNAL_SECRET,
        ),
        http_client=backend_api.client(),
        retry_policy=RetryPolicy(attempts=3, base_delay_s=0.0),
        sleep=no_sleep,
        clock=clock,
    )


@pytest.fixture
def bot_env(private_key_pem: str, tmp_path: Path) -> dict[str, str]:
    """Return a complete ``SITG_*`` environment for configuration tests."""
    return {
        "SITG_GITHUB_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "SITG_GITHUB_APP_ID": "4242",
        "SITG_GITHUB_APP_PRIVATE_KEY": private_key_pem.replace("\n", "\\n"),
        "SITG_GITHUB_API_BASE_URL": GITHUB_BASE_URL + "/",
        "SITG_BACKEND_BASE_URL": BACKEND_BASE_URL + "/",
        "SITG_BACKEND_BOT_KEY_ID": "bot-key-1",
        "SITG_BACKEND_INTERNAL_HMAC_SECRET": INTERNAL_SECRET,
        "SITG_WORKER_ID": "bot-worker-test",
        "SITG_STATE_FILE": str(tmp_path / "state.json"),
    }
