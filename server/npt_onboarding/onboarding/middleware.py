"""Route guard middleware applying the navigation policy before handlers run."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx
from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..config import get_settings
from ..core.services.auth import resolve_admin
from .services.onboarding_service import OnboardingService
from .services.route_policy import (
    EmployeeResolution,
    EmployeeSessionState,
    decide_route,
    is_guarded_path,
)

logger = logging.getLogger(__name__)


async def resolve_employee_over_http(url: str, cookie_header: str) -> EmployeeResolution:
    """Ask the session resolve endpoint, forwarding the caller's cookies."""
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, headers={"cookie": cookie_header}, timeout=5.0)
    except httpx.HTTPError as exc:
        logger.warning("Session resolve request failed: %s", exc)
        return EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)

    if response.status_code != 200:
        logger.warning("Session resolve returned %s", response.status_code)
        return EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)

    try:
        body = response.json()
    except ValueError:
        logger.warning("Session resolve returned a non-JSON body")
        return EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)
    if not isinstance(body, dict):
        logger.warning("Session resolve returned an unexpected body: %r", type(body).__name__)
        return EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)

    if body.get("has_session") and body.get("onboarding_id"):
        return EmployeeResolution(
            EmployeeSessionState.ACTIVE,
            onboarding_id=str(body["onboarding_id"]),
            has_cookie=True,
        )
    return EmployeeResolution(EmployeeSessionState.NONE, has_cookie=True)


async def resolve_employee_in_process(service: OnboardingService, raw_token: str) -> EmployeeResolution:
    try:
        onboarding = await service.resolve_session(raw_token)
    except Exception:
        logger.warning("Employee session resolution failed; leaving cookie untouched", exc_info=True)
        return EmployeeResolution(EmployeeSessionState.UNKNOWN, has_cookie=True)

    if onboarding is None:
        return EmployeeResolution(EmployeeSessionState.NONE, has_cookie=True)
    return EmployeeResolution(EmployeeSessionState.ACTIVE, onboarding_id=str(onboarding.id), has_cookie=True)


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """Redirect or pass each page request according to who is asking."""

    def __init__(self, app, service_factory: Optional[Callable[[], OnboardingService]] = None):
        super().__init__(app)
        self.service_factory = service_factory or OnboardingService

    async def resolve_employee(self, request: Request) -> EmployeeResolution:
        settings = get_settings()
        raw_token = request.cookies.get(settings.onboarding_session_cookie_name)
        if not raw_token:
            return EmployeeResolution(EmployeeSessionState.NONE)

        if settings.session_resolve_url:
            return await resolve_employee_over_http(
                settings.session_resolve_url,
                request.headers.get("cookie", ""),
            )
        return await resolve_employee_in_process(self.service_factory(), raw_token)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not is_guarded_path(path):
            return await call_next(request)

        settings = get_settings()
        admin = resolve_admin(request.cookies.get(settings.admin_auth_cookie_name))
        employee = await self.resolve_employee(request)

        decision = decide_route(
            path,
            request.url.query,
            admin,
            employee,
            admin_cookie_name=settings.admin_auth_cookie_name,
            employee_cookie_name=settings.onboarding_session_cookie_name,
        )

        if decision.redirect_to:
            response: Response = RedirectResponse(decision.redirect_to, status_code=307)
        else:
            response = await call_next(request)

        for header in decision.set_cookie_headers():
            response.headers.append("set-cookie", header)
        return response
