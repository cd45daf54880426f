from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError

from ...config import get_settings
from ..models.auth import AdminResolution, AdminTokenPayload, AdminUser

DEV_ADMIN = AdminUser(id="dev-admin", email="dev-admin@localhost", name="Dev Admin")


def is_admin_email(email: Optional[str]) -> bool:
    """Case-insensitive lookup against the configured allow-list."""
    if not email:
        return False
    return email.strip().lower() in get_settings().admin_emails


def create_admin_token(
    user_id: str,
    email: str,
    name: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed admin session token."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=12))

    payload = {
        "sub": user_id,
        "email": email,
        "name": name,
        "exp": expire,
        "type": "admin",
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_admin_token(token: str) -> Optional[AdminTokenPayload]:
    """Decode and validate an admin token."""
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
        if payload.get("type") != "admin":
            return None
        if not payload.get("sub") or not payload.get("email") or not payload.get("name"):
            return None
        return AdminTokenPayload(
            sub=str(payload["sub"]),
            email=payload["email"],
            name=payload["name"],
            exp=payload["exp"],
        )
    except (JWTError, KeyError, TypeError):
        return None


def resolve_admin(cookie_value: Optional[str]) -> AdminResolution:
    """Resolve the admin identity carried by the admin cookie.

    A present cookie that fails to decode, or whose email is not on the
    allow-list, is reported as invalid so the caller can clear it.
    """
    if get_settings().disable_auth:
        return AdminResolution(user=DEV_ADMIN)

    if not cookie_value:
        return AdminResolution()

    payload = decode_admin_token(cookie_value)
    if payload is None or not is_admin_email(payload.email):
        return AdminResolution(has_invalid_cookie=True)

    return AdminResolution(
        user=AdminUser(id=payload.sub, email=payload.email.lower(), name=payload.name)
    )
