"""Resolve an employee session cookie back to its onboarding record.

``resolve_onboarding_session`` performs a single record lookup and otherwise
has no side effects, so it can be exercised with an in-memory lookup.
"""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Optional
from uuid import UUID

from ...core.exceptions import ForbiddenError, SessionRequiredError, UnauthorizedError
from ...core.services.tokens import hash_token
from ..models.onboarding import Onboarding, OnboardingMethod, OnboardingStatus
from .onboarding_state_machine import AWAITING_REVIEW_STATUSES, EMPLOYEE_BLOCKED_STATUSES

RecordLookup = Callable[[str], Awaitable[Optional[Onboarding]]]


def parse_onboarding_id(value: Optional[str | UUID]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


async def resolve_onboarding_session(
    raw_token: Optional[str],
    now: datetime,
    lookup: RecordLookup,
    *,
    onboarding_id: Optional[str | UUID] = None,
    require_editable: bool = False,
) -> Onboarding:
    """Return the onboarding the cookie grants access to, or raise.

    Every "no session" failure carries ``clear_cookie=True``. ``require_editable``
    rejects onboardings awaiting HR review without ending the session.
    """
    if not raw_token:
        raise SessionRequiredError("Onboarding session required", reason="MISSING_OR_INVALID_COOKIE")

    target_id: Optional[UUID] = None
    if onboarding_id is not None:
        target_id = parse_onboarding_id(onboarding_id)
        if target_id is None:
            raise SessionRequiredError("Invalid onboarding id", reason="INVALID_ONBOARDING_ID")

    onboarding = await lookup(hash_token(raw_token))
    if (
        onboarding is None
        or onboarding.method != OnboardingMethod.DIGITAL
        or (target_id is not None and onboarding.id != target_id)
    ):
        raise SessionRequiredError(
            "Onboarding session not found",
            reason="SESSION_NOT_FOUND_OR_MISMATCH",
        )

    if onboarding.invite is None:
        raise SessionRequiredError("Onboarding invite is no longer valid", reason="INVITE_MISSING")
    if onboarding.invite.expires_at <= now:
        raise SessionRequiredError("Onboarding invite has expired", reason="INVITE_EXPIRED")

    if onboarding.status in EMPLOYEE_BLOCKED_STATUSES:
        reason = "APPROVED" if onboarding.status == OnboardingStatus.APPROVED else "TERMINATED"
        raise UnauthorizedError(
            "Onboarding is no longer available",
            reason=reason,
            clear_cookie=True,
        )

    if require_editable and onboarding.status in AWAITING_REVIEW_STATUSES:
        raise ForbiddenError(
            "Onboarding is awaiting review and cannot be edited",
            reason="READ_ONLY_STATE",
        )

    return onboarding
