from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import jwe
from jose.exceptions import JOSEError

PBKDF2_ALGORITHM = "pbkdf2_sha256"
PBKDF2_ITERATIONS = 260_000
PASSWORD_SALT_SIZE = 16
TOKEN_VERSION = 1
TOKEN_ENCRYPTION = "A256GCM"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(raw: str) -> bytes:
    padded = raw + ("=" * (-len(raw) % 4))
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("Password cannot be empty.")

    salt = secrets.token_bytes(PASSWORD_SALT_SIZE)
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        PBKDF2_ITERATIONS,
    )
    return (
        f"{PBKDF2_ALGORITHM}$"
        f"{PBKDF2_ITERATIONS}$"
        f"{_b64url_encode(salt)}$"
        f"{_b64url_encode(digest)}"
    )


def verify_password(password: str, stored_hash: str) -> bool:
    try:
        algorithm, raw_iterations, raw_salt, raw_digest = stored_hash.split("$", 3)
    except (ValueError, AttributeError):
        return False

    if algorithm != PBKDF2_ALGORITHM:
        return False

    try:
        iterations = int(raw_iterations)
        salt = _b64url_decode(raw_salt)
        expected_digest = _b64url_decode(raw_digest)
    except (ValueError, TypeError):
        return False

    candidate_digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt,
        iterations,
    )
    return hmac.compare_digest(candidate_digest, expected_digest)


def _encryption_key(secret: str) -> bytes:
    # A256GCM with direct key agreement needs exactly 32 bytes of key material.
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt_login_token(
    claims: dict[str, Any],
    *,
    secret: str,
    ttl_minutes: int,
) -> str:
    now = datetime.now(UTC)
    payload = {
        "v": TOKEN_VERSION,
        "user": claims,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    plaintext = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    token = jwe.encrypt(
        plaintext,
        _encryption_key(secret),
        algorithm="dir",
        encryption=TOKEN_ENCRYPTION,
    )
    return token.decode("ascii") if isinstance(token, bytes) else token


def decrypt_login_token(token: str, secret: str) -> dict[str, Any]:
    try:
        plaintext = jwe.decrypt(token, _encryption_key(secret))
    except (JOSEError, ValueError, TypeError) as exc:
        raise ValueError("Malformed or tampered token") from exc

    if plaintext is None:
        raise ValueError("Malformed or tampered token")

    try:
        payload = json.loads(plaintext)
    except (ValueError, TypeError) as exc:
        raise ValueError("Malformed token payload") from exc

    if not isinstance(payload, dict):
        raise ValueError("Malformed token payload")
    if payload.get("v") != TOKEN_VERSION:
        raise ValueError("Unsupported token version")

    try:
        expires_at = datetime.fromtimestamp(int(payload["exp"]), UTC)
    except (KeyError, ValueError, TypeError) as exc:
        raise ValueError("Malformed token payload") from exc
    if expires_at <= datetime.now(UTC):
        raise ValueError("Token expired")

    claims = payload.get("user")
    if not isinstance(claims, dict):
        raise ValueError("Malformed token payload")
    return claims
