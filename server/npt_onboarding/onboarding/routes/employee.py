"""
Employee-facing onboarding routes.
Invite link -> emailed OTP -> session cookie -> view and submit the form.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from ...config import get_settings
from ..models.onboarding import (
    InviteVerifyRequest,
    InviteVerifyResponse,
    OnboardingContext,
    OnboardingSubmitRequest,
    OtpVerifyRequest,
    OtpVerifyResponse,
    SessionResolveResponse,
)
from ..services.onboarding_service import OnboardingService, get_onboarding_service
from ..services.session_cookie import clear_session_cookie

router = APIRouter()


def _session_token(request: Request) -> Optional[str]:
    return request.cookies.get(get_settings().onboarding_session_cookie_name)


@router.post("/invite/verify", response_model=InviteVerifyResponse)
async def verify_invite(
    body: InviteVerifyRequest,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Validate an invite link and email a verification code."""
    return await service.verify_invite(body.token)


@router.post("/otp/verify", response_model=OtpVerifyResponse)
async def verify_otp(
    body: OtpVerifyRequest,
    response: Response,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Exchange a valid code for the session cookie."""
    context, set_cookie = await service.verify_otp(body.token, body.otp)
    response.headers.append("set-cookie", set_cookie)
    return OtpVerifyResponse(onboarding=context)


@router.get("/session/resolve", response_model=SessionResolveResponse)
async def resolve_session(
    request: Request,
    response: Response,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Report whether the caller's cookie is a live session. Always 200."""
    raw_token = _session_token(request)
    onboarding = await service.resolve_session(raw_token)
    if onboarding is None:
        if raw_token:
            response.headers.append("set-cookie", clear_session_cookie())
        return SessionResolveResponse(has_session=False)
    return SessionResolveResponse(has_session=True, onboarding_id=onboarding.id)


@router.get("/{onboarding_id}", response_model=OnboardingContext)
async def get_onboarding(
    onboarding_id: str,
    request: Request,
    service: OnboardingService = Depends(get_onboarding_service),
):
    return await service.get_employee_context(_session_token(request), onboarding_id)


@router.post("/{onboarding_id}", response_model=OnboardingContext)
async def submit_onboarding(
    onboarding_id: str,
    body: OnboardingSubmitRequest,
    request: Request,
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Submit (or resubmit) the onboarding form."""
    return await service.submit(_session_token(request), onboarding_id, body)
