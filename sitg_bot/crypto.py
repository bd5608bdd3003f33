"""Webhook verification and request signing.

Three primitives live here:

- :func:`verify_webhook_signature` checks GitHub's ``X-Hub-Signature-256``
  header against the raw request body.
- :func:`sign_app_jwt` mints the RS256 JWT a GitHub App uses to request
  installation tokens.
- :func:`sign_internal_request` produces the derived-key HMAC sent to the
  backend with every internal call.

Usage
-----
>>> header = sign_webhook_body("s3cret", b"{}")
>>> verify_webhook_signature("s3cret", b"{}", header)
True
>>> verify_webhook_signature("s3cret", b"{ }", header)
False

"""

from __future__ import annotations

import binascii
import hashlib
import hmac
import typing as typ

import jwt

from sitg_bot.common.time import unix_seconds

if typ.TYPE_CHECKING:
    import datetime as dt

SIGNATURE_PREFIX = "sha256="

# GitHub rejects App JWTs living longer than ten minutes.
APP_JWT_BACKDATE_S = 60
APP_JWT_LIFETIME_S = 9 * 60


def _hmac_sha256_hex(key: bytes, message: bytes) -> str:
    return hmac.new(key, message, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    secret: str,
    raw_body: bytes,
    signature_header: str | None,
) -> bool:
    """Return True when ``signature_header`` signs ``raw_body`` with ``secret``.

    The header must read ``sha256=<hex>``. The comparison runs in constant
    time over the decoded digest bytes; malformed hex, a wrong prefix or a
    digest of the wrong length all return False instead of raising.
    """
    if not secret or not signature_header:
        return False
    if not signature_header.startswith(SIGNATURE_PREFIX):
        return False

    provided_hex = signature_header[len(SIGNATURE_PREFIX) :].strip()
    try:
        provided = binascii.unhexlify(provided_hex)
    except (binascii.Error, ValueError):
        return False

    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(expected, provided)


def sign_webhook_body(secret: str, raw_body: bytes) -> str:
    """Return the ``sha256=<hex>`` header GitHub would send for ``raw_body``."""
    return SIGNATURE_PREFIX + _hmac_sha256_hex(secret.encode("utf-8"), raw_body)


def sign_app_jwt(
    app_id: str,
    private_key_pem: str,
    *,
    now: dt.datetime | None = None,
) -> str:
    """Mint a GitHub App JWT signed with RS256.

    ``iat`` is backdated by a minute to absorb clock skew with GitHub and
    ``exp`` is set nine minutes ahead, under GitHub's ten-minute ceiling.
    """
    issued = unix_seconds(now)
    claims = {
        "iat": issued - APP_JWT_BACKDATE_S,
        "exp": issued + APP_JWT_LIFETIME_S,
        "iss": app_id,
    }
    return jwt.encode(
        claims,
        private_key_pem,
        algorithm="RS256",
        headers={"typ": "JWT"},
    )


def derive_internal_key(secret: str) -> bytes:
    """Return SHA-256(``secret``), the key used for internal request HMACs."""
    return hashlib.sha256(secret.encode("utf-8")).digest()


def sign_internal_request(secret: str, unix_timestamp: int, message: str) -> str:
    """Sign ``"<timestamp>.<message>"`` for the backend's internal API.

    ``message`` is a canonical string unique to the call (a delivery id, a
    challenge id, ``bot-actions-claim:<worker_id>`` ...) so a captured
    signature cannot be replayed against another endpoint.
    """
    payload = f"{unix_timestamp}.{message}".encode()
    return SIGNATURE_PREFIX + _hmac_sha256_hex(derive_internal_key(secret), payload)


__all__ = [
    "APP_JWT_BACKDATE_S",
    "APP_JWT_LIFETIME_S",
    "SIGNATURE_PREFIX",
    "derive_internal_key",
    "sign_app_jwt",
    "sign_internal_request",
    "sign_webhook_body",
    "verify_webhook_signature",
]
