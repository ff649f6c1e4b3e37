"""
Security utilities: password hashing, opaque tokens, and email normalization.

This module centralizes all cryptographic operations so they're easy to
audit and update. Three concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - Argon2id is memory-hard and time-hard, which makes GPU cracking costly
   - passlib's CryptContext gives safe, high-level Argon2 operations and
     transparent migration to a future scheme ("deprecated='auto'")

2. OPAQUE TOKENS (sessions, CSRF, one-time tokens)
   - Tokens are random bytes from the OS CSPRNG, encoded URL-safe base64
   - Only their SHA-256 hex digest is stored and looked up by exact match.
     Raw tokens carry 128+ bits of entropy, so no slow hash is involved.

3. EMAIL NORMALIZATION
   - Emails are compared in trimmed, lower-cased form
"""

import hashlib
import hmac
import re
import secrets

from passlib.context import CryptContext


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """
    Verify a plaintext password against a stored Argon2 hash.

    Accounts without a password (Google sign-in only) never verify.
    """
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. Opaque Tokens
# ---------------------------------------------------------------------------

SESSION_TOKEN_BYTES = 32
CSRF_TOKEN_BYTES = 24
ONE_TIME_TOKEN_BYTES = 18


def random_token(nbytes: int = SESSION_TOKEN_BYTES) -> str:
    """Return a URL-safe random token carrying `nbytes` bytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def hash_token(raw_token: str) -> str:
    """One-way SHA-256 hex digest of a raw token; the only form that is stored."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def tokens_match(a: str, b: str) -> bool:
    """Constant-time string comparison."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ---------------------------------------------------------------------------
# 3. Email Normalization
# ---------------------------------------------------------------------------

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email.strip()))
