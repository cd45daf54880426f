"""Set-Cookie headers for the employee onboarding session.

The cookie value is the raw invite token. Its lifetime is fixed at issue time
to whatever remains of the invite; there is no sliding renewal.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from ...config import get_settings
from ...core.exceptions import SessionRequiredError, ValidationError
from ..models.onboarding import Onboarding, OnboardingMethod

_ATTRIBUTES = "Path=/; HttpOnly; SameSite=Lax; Secure"


def _cookie_name(name: Optional[str]) -> str:
    return name or get_settings().onboarding_session_cookie_name


def build_session_cookie(raw_token: str, max_age_seconds: int, *, name: Optional[str] = None) -> str:
    return f"{_cookie_name(name)}={quote(raw_token, safe='')}; {_ATTRIBUTES}; Max-Age={max(0, int(max_age_seconds))}"


def clear_session_cookie(*, name: Optional[str] = None) -> str:
    return f"{_cookie_name(name)}=; {_ATTRIBUTES}; Max-Age=0"


def build_clear_cookie(name: str) -> str:
    """Expire an arbitrary cookie (used for the admin cookie too)."""
    return f"{name}=; {_ATTRIBUTES}; Max-Age=0"


def remaining_invite_seconds(onboarding: Onboarding, now: datetime) -> int:
    if onboarding.invite is None:
        return 0
    return math.floor((onboarding.invite.expires_at - now).total_seconds())


def issue_session_cookie(onboarding: Onboarding, raw_token: str, now: datetime) -> tuple[str, int]:
    """Return ``(set_cookie_header, max_age_seconds)`` for a verified employee.

    Refuses to emit a cookie that would already be dead.
    """
    if onboarding.method != OnboardingMethod.DIGITAL:
        raise ValidationError("Session cookies are only issued for digital onboardings")
    if onboarding.invite is None:
        raise ValidationError("Onboarding has no active invite")

    max_age = remaining_invite_seconds(onboarding, now)
    if max_age <= 0:
        raise SessionRequiredError("Invite has expired", reason="INVITE_EXPIRED")

    return build_session_cookie(raw_token, max_age), max_age
