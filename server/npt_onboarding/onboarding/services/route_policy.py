"""Per-request navigation policy for admins, employees and anonymous visitors.

``decide_route`` is pure: identities are resolved beforehand and passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import quote

from ...core.models.auth import AdminResolution
from .onboarding_session import parse_onboarding_id
from .session_cookie import build_clear_cookie

DASHBOARD_PATH = "/dashboard"
LOGIN_PATH = "/login"
ONBOARDING_PATH = "/onboarding"


class EmployeeSessionState(str, Enum):
    ACTIVE = "active"
    NONE = "none"
    # Resolution failed for a transient reason; the cookie may still be valid
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class EmployeeResolution:
    state: EmployeeSessionState
    onboarding_id: Optional[str] = None
    has_cookie: bool = False

    @property
    def has_session(self) -> bool:
        return self.state == EmployeeSessionState.ACTIVE and self.onboarding_id is not None


NO_EMPLOYEE_SESSION = EmployeeResolution(EmployeeSessionState.NONE)


@dataclass
class RouteDecision:
    redirect_to: Optional[str] = None
    clear_cookies: list[str] = field(default_factory=list)

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None

    def set_cookie_headers(self) -> list[str]:
        return [build_clear_cookie(name) for name in self.clear_cookies]


def _normalize(path: str) -> str:
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path or "/"


def is_guarded_path(path: str) -> bool:
    """Paths whose decision depends on who is asking."""
    path = _normalize(path)
    if path in ("/", LOGIN_PATH, DASHBOARD_PATH) or path.startswith(DASHBOARD_PATH + "/"):
        return True
    return _onboarding_id_segment(path) is not None


def _onboarding_id_segment(path: str) -> Optional[str]:
    prefix = ONBOARDING_PATH + "/"
    if not path.startswith(prefix):
        return None
    rest = path[len(prefix):]
    if not rest or "/" in rest:
        return None
    return rest


def _employee_home(employee: EmployeeResolution) -> str:
    return f"{ONBOARDING_PATH}/{employee.onboarding_id}"


def decide_route(
    path: str,
    query: str,
    admin: AdminResolution,
    employee: EmployeeResolution,
    *,
    admin_cookie_name: str,
    employee_cookie_name: str,
) -> RouteDecision:
    path = _normalize(path)
    decision = RouteDecision()

    if admin.has_invalid_cookie:
        decision.clear_cookies.append(admin_cookie_name)
    if employee.state == EmployeeSessionState.NONE and employee.has_cookie:
        decision.clear_cookies.append(employee_cookie_name)

    if path == "/":
        if admin.is_admin:
            decision.redirect_to = DASHBOARD_PATH
        elif employee.has_session:
            decision.redirect_to = _employee_home(employee)
        else:
            decision.redirect_to = LOGIN_PATH
        return decision

    if path == LOGIN_PATH:
        if admin.is_admin:
            decision.redirect_to = DASHBOARD_PATH
        elif employee.has_session:
            decision.redirect_to = _employee_home(employee)
        return decision

    if path == DASHBOARD_PATH or path.startswith(DASHBOARD_PATH + "/"):
        if not admin.is_admin:
            callback = path + (f"?{query}" if query else "")
            decision.redirect_to = f"{LOGIN_PATH}?callbackUrl={quote(callback, safe='')}"
        return decision

    requested_id = _onboarding_id_segment(path)
    if requested_id is None:
        # bare /onboarding and everything else passes through
        return decision

    parsed = parse_onboarding_id(requested_id)
    if parsed is None:
        return decision

    if admin.is_admin:
        decision.redirect_to = DASHBOARD_PATH
    elif employee.has_session:
        if parse_onboarding_id(employee.onboarding_id) != parsed:
            decision.redirect_to = _employee_home(employee)
    elif employee.state == EmployeeSessionState.NONE:
        decision.redirect_to = ONBOARDING_PATH
    return decision
