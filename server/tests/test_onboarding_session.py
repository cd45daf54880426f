import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from npt_onboarding.core.exceptions import ForbiddenError, SessionRequiredError, UnauthorizedError
from npt_onboarding.core.services.tokens import hash_token
from npt_onboarding.onboarding.models.onboarding import (
    Onboarding,
    OnboardingInvite,
    OnboardingMethod,
    OnboardingStatus,
    Subsidiary,
)
from npt_onboarding.onboarding.services.onboarding_session import (
    parse_onboarding_id,
    resolve_onboarding_session,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
RAW_TOKEN = "a" * 64


class _Lookup:
    def __init__(self, *records):
        self.records = list(records)
        self.calls = 0

    async def __call__(self, token_hash):
        self.calls += 1
        for record in self.records:
            if record.invite is not None and record.invite.token_hash == token_hash:
                return record
        return None


def _onboarding(status=OnboardingStatus.INVITE_GENERATED, *, method=OnboardingMethod.DIGITAL,
                expires_at=T0 + timedelta(hours=72), token=RAW_TOKEN):
    return Onboarding(
        id=uuid4(),
        subsidiary=Subsidiary.INDIA,
        method=method,
        first_name="Priya",
        last_name="Sharma",
        email="priya@example.com",
        status=status,
        invite=OnboardingInvite(
            token_hash=hash_token(token),
            expires_at=expires_at,
            last_sent_at=T0,
        ),
        created_at=T0,
        updated_at=T0,
    )


def _resolve(lookup, raw_token=RAW_TOKEN, now=T0, **kwargs):
    return asyncio.run(resolve_onboarding_session(raw_token, now, lookup, **kwargs))


def _failure(lookup, raw_token=RAW_TOKEN, now=T0, **kwargs):
    with pytest.raises((SessionRequiredError, UnauthorizedError, ForbiddenError)) as exc_info:
        _resolve(lookup, raw_token, now, **kwargs)
    return exc_info.value


def test_resolves_active_session():
    onboarding = _onboarding()
    assert _resolve(_Lookup(onboarding)).id == onboarding.id


def test_resolves_with_matching_onboarding_id():
    onboarding = _onboarding()
    assert _resolve(_Lookup(onboarding), onboarding_id=str(onboarding.id)).id == onboarding.id


def test_missing_cookie_does_not_touch_storage():
    lookup = _Lookup(_onboarding())
    error = _failure(lookup, raw_token=None)

    assert isinstance(error, SessionRequiredError)
    assert error.reason == "MISSING_OR_INVALID_COOKIE"
    assert error.clear_cookie is True
    assert lookup.calls == 0


def test_malformed_onboarding_id_is_rejected_before_lookup():
    lookup = _Lookup(_onboarding())
    error = _failure(lookup, onboarding_id="not-a-uuid")

    assert error.reason == "INVALID_ONBOARDING_ID"
    assert lookup.calls == 0


def test_unknown_token_is_session_not_found():
    error = _failure(_Lookup(_onboarding()), raw_token="b" * 64)
    assert isinstance(error, SessionRequiredError)
    assert error.reason == "SESSION_NOT_FOUND_OR_MISMATCH"


def test_mismatched_onboarding_id_is_session_not_found():
    error = _failure(_Lookup(_onboarding()), onboarding_id=str(uuid4()))
    assert error.reason == "SESSION_NOT_FOUND_OR_MISMATCH"
    assert error.clear_cookie is True


def test_manual_record_never_resolves():
    error = _failure(_Lookup(_onboarding(method=OnboardingMethod.MANUAL)))
    assert error.reason == "SESSION_NOT_FOUND_OR_MISMATCH"


def test_expired_invite():
    error = _failure(_Lookup(_onboarding(expires_at=T0)))
    assert isinstance(error, SessionRequiredError)
    assert error.reason == "INVITE_EXPIRED"


@pytest.mark.parametrize(
    "status,reason",
    [(OnboardingStatus.APPROVED, "APPROVED"), (OnboardingStatus.TERMINATED, "TERMINATED")],
)
def test_blocked_statuses_are_unauthorized_and_clear_cookie(status, reason):
    error = _failure(_Lookup(_onboarding(status)))
    assert isinstance(error, UnauthorizedError)
    assert error.status_code == 401
    assert error.reason == reason
    assert error.clear_cookie is True


@pytest.mark.parametrize("status", [OnboardingStatus.SUBMITTED, OnboardingStatus.RESUBMITTED])
def test_awaiting_review_is_readable_but_not_editable(status):
    onboarding = _onboarding(status)
    assert _resolve(_Lookup(onboarding)).id == onboarding.id

    error = _failure(_Lookup(onboarding), require_editable=True)
    assert isinstance(error, ForbiddenError)
    assert error.reason == "READ_ONLY_STATE"
    assert error.clear_cookie is False


def test_expired_check_precedes_status_check():
    error = _failure(_Lookup(_onboarding(OnboardingStatus.APPROVED, expires_at=T0 - timedelta(hours=1))))
    assert error.reason == "INVITE_EXPIRED"


def test_resolution_is_idempotent():
    lookup = _Lookup(_onboarding())
    first = _resolve(lookup)
    second = _resolve(lookup)
    assert first == second

    expired = _Lookup(_onboarding(expires_at=T0))
    assert _failure(expired).reason == _failure(expired).reason


def test_parse_onboarding_id():
    value = uuid4()
    assert parse_onboarding_id(str(value)) == value
    assert parse_onboarding_id(value) == value
    assert parse_onboarding_id("nope") is None
    assert parse_onboarding_id(None) is None
