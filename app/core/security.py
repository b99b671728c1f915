"""Password hashing and opaque token primitives for authentication."""

import hashlib
import hmac
import secrets

import bcrypt

from app.core.config import settings

# Random bytes in session and API token secrets (hex-encoded, so 64 chars).
TOKEN_BYTES = 32
TOKEN_PREVIEW_CHARS = 4

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 50
PASSWORD_MIN_LEN = 8
PASSWORD_MAX_LEN = 128


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password for storage. Do not store plain passwords."""
    # bcrypt has a 72-byte limit; truncate to avoid errors (validation already limits length).
    pw_bytes = plain_password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """Verify a plain password against a stored hash."""
    pw_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_token(num_bytes: int = TOKEN_BYTES) -> str:
    """Return a cryptographically random hex token."""
    return secrets.token_hex(num_bytes)


def hash_token(token: str) -> str:
    """SHA-256 digest used to store and look up token secrets."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_preview(token: str) -> str:
    """Masked form of a secret shown in listings, e.g. 'a1b2...f9e8'."""
    if len(token) <= TOKEN_PREVIEW_CHARS * 2:
        return "*" * len(token)
    return f"{token[:TOKEN_PREVIEW_CHARS]}...{token[-TOKEN_PREVIEW_CHARS:]}"


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two secrets without leaking their common prefix length."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
