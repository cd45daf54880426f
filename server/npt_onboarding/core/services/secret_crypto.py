"""Reversible encryption for invite tokens kept at rest.

The invite digest is what authenticates an employee. The encrypted copy only
exists so HR can re-display the current invite link without minting a new one.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from ...config import get_settings

SECRET_PREFIX = "enc:v1:"


def _resolve_seed(override_seed: Optional[str] = None) -> str:
    return override_seed or get_settings().jwt_secret_key


def _fernet_for_seed(seed: str) -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(seed.encode("utf-8")).digest())
    return Fernet(key)


def is_encrypted(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(SECRET_PREFIX)


def encrypt_invite_token(token: str, *, seed: Optional[str] = None) -> str:
    if not token:
        raise ValueError("Cannot encrypt an empty invite token")
    cipher = _fernet_for_seed(_resolve_seed(seed))
    return SECRET_PREFIX + cipher.encrypt(token.encode("utf-8")).decode("utf-8")


def decrypt_invite_token(value: Optional[str], *, seed: Optional[str] = None) -> Optional[str]:
    if not value:
        return None
    if not is_encrypted(value):
        raise ValueError("Stored invite token is not in the expected format")

    cipher = _fernet_for_seed(_resolve_seed(seed))
    try:
        return cipher.decrypt(value[len(SECRET_PREFIX):].encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise ValueError("Unable to decrypt stored invite token") from exc


def build_invite_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/onboarding?token={token}"
