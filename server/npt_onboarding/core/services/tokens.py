"""Opaque invite tokens, one-time codes and their keyed digests."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from typing import Optional

from ...config import get_settings

TOKEN_BYTES = 32
OTP_DIGITS = 6


def generate_token() -> str:
    """Return a 64-char hex token from 32 random bytes."""
    return secrets.token_hex(TOKEN_BYTES)


def generate_otp_code() -> str:
    return f"{secrets.randbelow(10 ** OTP_DIGITS):0{OTP_DIGITS}d}"


def hash_token(token: str, *, secret: Optional[str] = None) -> str:
    """HMAC-SHA256 digest of ``token``; only the digest is ever stored."""
    key = secret if secret is not None else get_settings().token_hash_secret
    return hmac.new(key.encode("utf-8"), token.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_token(presented: Optional[str], stored_digest: Optional[str], *, secret: Optional[str] = None) -> bool:
    if not presented or not stored_digest:
        return False
    return hmac.compare_digest(hash_token(presented, secret=secret), stored_digest)
