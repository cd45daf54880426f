"""Core authentication dependencies for the HR admin surface."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import get_settings
from .exceptions import UnauthorizedError
from .models.auth import AdminUser

security = HTTPBearer(auto_error=False)


async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AdminUser:
    """Dependency resolving the admin from the admin cookie or a bearer token."""
    # Import here to avoid circular imports
    from .services.auth import resolve_admin

    settings = get_settings()
    token = request.cookies.get(settings.admin_auth_cookie_name)
    if not token and credentials is not None:
        token = credentials.credentials

    resolution = resolve_admin(token)
    if resolution.user is None:
        raise UnauthorizedError("Admin authentication required", reason="ADMIN_REQUIRED")
    return resolution.user
