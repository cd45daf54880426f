"""Onboarding lifecycle: allowed status transitions and employee access predicates.

Access and edit rights are computed from status and invite expiry on every
call, never stored.
"""

from __future__ import annotations

from datetime import datetime

from ...core.exceptions import ValidationError
from ..models.onboarding import Onboarding, OnboardingMethod, OnboardingStatus


class OnboardingTransitionError(ValidationError):
    """Raised when an invalid status transition is requested."""


EMPLOYEE_BLOCKED_STATUSES: frozenset[OnboardingStatus] = frozenset({
    OnboardingStatus.APPROVED,
    OnboardingStatus.TERMINATED,
})
EMPLOYEE_EDITABLE_STATUSES: frozenset[OnboardingStatus] = frozenset({
    OnboardingStatus.INVITE_GENERATED,
    OnboardingStatus.MODIFICATION_REQUESTED,
})
AWAITING_REVIEW_STATUSES: frozenset[OnboardingStatus] = frozenset({
    OnboardingStatus.SUBMITTED,
    OnboardingStatus.RESUBMITTED,
})

_ALLOWED_TRANSITIONS: dict[OnboardingStatus, tuple[OnboardingStatus, ...]] = {
    OnboardingStatus.INVITE_GENERATED: (
        OnboardingStatus.SUBMITTED,
        OnboardingStatus.TERMINATED,
    ),
    OnboardingStatus.MODIFICATION_REQUESTED: (
        OnboardingStatus.RESUBMITTED,
        OnboardingStatus.TERMINATED,
    ),
    OnboardingStatus.SUBMITTED: (
        OnboardingStatus.MODIFICATION_REQUESTED,
        OnboardingStatus.APPROVED,
        OnboardingStatus.TERMINATED,
    ),
    OnboardingStatus.RESUBMITTED: (
        OnboardingStatus.MODIFICATION_REQUESTED,
        OnboardingStatus.APPROVED,
        OnboardingStatus.TERMINATED,
    ),
    # HR enters the returned paper form on the employee's behalf
    OnboardingStatus.MANUAL_PDF_SENT: (
        OnboardingStatus.SUBMITTED,
        OnboardingStatus.APPROVED,
        OnboardingStatus.TERMINATED,
    ),
    OnboardingStatus.APPROVED: (
        OnboardingStatus.TERMINATED,
    ),
    OnboardingStatus.TERMINATED: (),
}


def _coerce_status(value: str | OnboardingStatus) -> OnboardingStatus:
    if isinstance(value, OnboardingStatus):
        return value
    try:
        return OnboardingStatus(value)
    except ValueError as exc:
        raise OnboardingTransitionError(f"Unknown onboarding status '{value}'") from exc


def state_machine_map() -> dict[str, list[str]]:
    return {
        source.value: [target.value for target in targets]
        for source, targets in _ALLOWED_TRANSITIONS.items()
    }


def can_transition(
    status_from: str | OnboardingStatus,
    status_to: str | OnboardingStatus,
) -> bool:
    source = _coerce_status(status_from)
    target = _coerce_status(status_to)
    return target in _ALLOWED_TRANSITIONS[source]


def validate_transition(
    status_from: str | OnboardingStatus,
    status_to: str | OnboardingStatus,
) -> None:
    source = _coerce_status(status_from)
    target = _coerce_status(status_to)

    allowed_targets = _ALLOWED_TRANSITIONS[source]
    if target not in allowed_targets:
        allowed_str = ", ".join(t.value for t in allowed_targets) or "none"
        raise OnboardingTransitionError(
            f"Invalid onboarding transition '{source.value}' -> '{target.value}'. "
            f"Allowed targets: {allowed_str}.",
            reason="INVALID_TRANSITION",
            meta={"from": source.value, "to": target.value},
        )


def invite_is_active(onboarding: Onboarding, now: datetime) -> bool:
    return onboarding.invite is not None and onboarding.invite.expires_at > now


def can_employee_access(onboarding: Onboarding, now: datetime) -> bool:
    return (
        onboarding.method == OnboardingMethod.DIGITAL
        and invite_is_active(onboarding, now)
        and onboarding.status not in EMPLOYEE_BLOCKED_STATUSES
    )


def can_employee_edit(onboarding: Onboarding, now: datetime) -> bool:
    return can_employee_access(onboarding, now) and onboarding.status in EMPLOYEE_EDITABLE_STATUSES


def is_read_only_for_employee(onboarding: Onboarding, now: datetime) -> bool:
    return not can_employee_access(onboarding, now) or onboarding.status in AWAITING_REVIEW_STATUSES


def submission_target(status: OnboardingStatus) -> OnboardingStatus:
    """Status an employee submission moves to from ``status``."""
    if status == OnboardingStatus.MODIFICATION_REQUESTED:
        return OnboardingStatus.RESUBMITTED
    return OnboardingStatus.SUBMITTED
