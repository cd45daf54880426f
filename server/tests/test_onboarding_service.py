"""Employee-facing onboarding flow: create, invite, OTP, session and submit."""

import asyncio
import logging
from datetime import timedelta

import pytest

from npt_onboarding.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    SessionRequiredError,
    TooManyRequestsError,
    UnauthorizedError,
    ValidationError,
)
from npt_onboarding.onboarding.models.audit_log import ActorType, AuditAction
from npt_onboarding.onboarding.models.onboarding import (
    ApproveRequest,
    Onboarding,
    OnboardingCreateRequest,
    OnboardingMethod,
    OnboardingStatus,
    OnboardingSubmitRequest,
    Subsidiary,
    TerminateRequest,
    TerminationType,
)
from npt_onboarding.onboarding.services.onboarding_service import MANUAL_FORM_FILENAME


def _create(service, hr_user, email_address="priya@example.com", method=OnboardingMethod.DIGITAL,
            subsidiary=Subsidiary.INDIA):
    request = OnboardingCreateRequest(
        subsidiary=subsidiary,
        method=method,
        first_name="Priya",
        last_name="Sharma",
        email=email_address,
    )
    return asyncio.run(service.create(request, hr_user))


def _start_session(service, email):
    """Walk the invite -> OTP flow and return the raw token the cookie carries."""
    token = email.last_invite_token()
    asyncio.run(service.verify_invite(token))
    context, set_cookie = asyncio.run(service.verify_otp(token, email.last_otp()))
    return token, context, set_cookie


def _submit(service, token, onboarding_id, form_data):
    return asyncio.run(service.submit(token, str(onboarding_id), OnboardingSubmitRequest(form_data=form_data)))


def _context(service, token, onboarding_id):
    return asyncio.run(service.get_employee_context(token, str(onboarding_id)))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_digital_create_generates_invite_and_emails_it(self, service, repo, audit, email, clock, hr_user):
        onboarding = _create(service, hr_user, "Priya@Example.com")

        assert onboarding.status == OnboardingStatus.INVITE_GENERATED
        assert onboarding.email == "priya@example.com"
        assert onboarding.invite.expires_at == clock() + timedelta(hours=72)
        assert onboarding.invite.token_encrypted.startswith("enc:v1:")
        assert repo.records[onboarding.id] == onboarding

        sent = email.of_kind("invitation")
        assert len(sent) == 1
        assert sent[0]["invite_url"].startswith("https://onboarding.npt.example/onboarding?token=")
        assert onboarding.invite.token_hash not in sent[0]["invite_url"]

        assert audit.actions(onboarding.id) == [AuditAction.INVITE_GENERATED]
        assert audit.entries[0]["actor"].type == ActorType.HR

    def test_manual_create_emails_form_without_invite(self, service, audit, email, hr_user):
        onboarding = _create(service, hr_user, method=OnboardingMethod.MANUAL)

        assert onboarding.status == OnboardingStatus.MANUAL_PDF_SENT
        assert onboarding.invite is None
        attachment = email.of_kind("manual_form")[0]["attachment"]
        assert attachment.name == MANUAL_FORM_FILENAME
        assert attachment.content_type == "application/pdf"
        assert attachment.base64
        assert audit.actions(onboarding.id) == [AuditAction.MANUAL_PDF_SENT]

    def test_inactive_subsidiary_is_rejected(self, service, repo, hr_user):
        with pytest.raises(ValidationError) as exc_info:
            _create(service, hr_user, subsidiary=Subsidiary.CANADA)
        assert exc_info.value.reason == "SUBSIDIARY_NOT_ACTIVE"
        assert repo.records == {}

    def test_duplicate_active_email_conflicts(self, service, hr_user):
        first = _create(service, hr_user)
        with pytest.raises(ConflictError) as exc_info:
            _create(service, hr_user, "PRIYA@example.com")
        assert exc_info.value.meta == {"onboarding_id": str(first.id)}

    def test_terminated_onboarding_does_not_block_new_invite(self, service, hr_user):
        first = _create(service, hr_user)
        asyncio.run(service.terminate(
            first.id, TerminateRequest(termination_type=TerminationType.RESIGNED), hr_user
        ))
        second = _create(service, hr_user)
        assert second.id != first.id

    def test_email_failure_rolls_back_the_record(self, service, repo, audit, email, hr_user):
        email.failing.add("invitation")

        with pytest.raises(InternalError) as exc_info:
            _create(service, hr_user)

        assert exc_info.value.reason == "EMAIL_DELIVERY_FAILED"
        assert repo.records == {}
        assert len(repo.delete_calls) == 1
        assert audit.entries == []

    def test_failed_compensation_is_logged_and_original_error_surfaces(
        self, service, repo, email, hr_user, caplog
    ):
        email.failing.add("manual_form")
        repo.fail_delete = True

        with caplog.at_level(logging.ERROR):
            with pytest.raises(InternalError):
                _create(service, hr_user, method=OnboardingMethod.MANUAL)

        assert "Failed to roll back onboarding" in caplog.text

    def test_concurrent_creates_yield_exactly_one_record(self, service, repo, email, hr_user):
        # Both requests pass the pre-check; the unique index decides.
        repo.skip_active_lookup = True
        request = OnboardingCreateRequest(
            subsidiary=Subsidiary.INDIA,
            method=OnboardingMethod.DIGITAL,
            first_name="Priya",
            last_name="Sharma",
            email="priya@example.com",
        )

        async def _create_twice():
            return await asyncio.gather(
                service.create(request, hr_user),
                service.create(request, hr_user),
                return_exceptions=True,
            )

        results = asyncio.run(_create_twice())

        created = [result for result in results if isinstance(result, Onboarding)]
        conflicts = [result for result in results if isinstance(result, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 1
        assert conflicts[0].status_code == 409
        assert list(repo.records) == [created[0].id]
        assert len(email.of_kind("invitation")) == 1


# ---------------------------------------------------------------------------
# Invite and OTP
# ---------------------------------------------------------------------------

class TestInviteAndOtp:
    def test_verify_invite_emails_otp(self, service, repo, email, hr_user, clock):
        onboarding = _create(service, hr_user)
        response = asyncio.run(service.verify_invite(email.last_invite_token()))

        assert response.onboarding_id == onboarding.id
        assert response.otp_expires_at == clock() + timedelta(minutes=10)
        assert len(email.last_otp()) == 6
        stored = repo.records[onboarding.id].otp
        assert stored.otp_hash and stored.otp_hash != email.last_otp()

    def test_unknown_invite(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            asyncio.run(service.verify_invite("f" * 64))
        assert exc_info.value.reason == "INVITE_NOT_FOUND"

    def test_expired_invite(self, service, email, hr_user, clock):
        _create(service, hr_user)
        clock.advance(hours=72)
        with pytest.raises(SessionRequiredError) as exc_info:
            asyncio.run(service.verify_invite(email.last_invite_token()))
        assert exc_info.value.reason == "INVITE_EXPIRED"

    def test_otp_resend_is_throttled(self, service, email, hr_user, clock):
        _create(service, hr_user)
        token = email.last_invite_token()
        asyncio.run(service.verify_invite(token))

        clock.advance(seconds=30)
        with pytest.raises(TooManyRequestsError) as exc_info:
            asyncio.run(service.verify_invite(token))
        assert exc_info.value.reason == "OTP_THROTTLED"

        clock.advance(seconds=30)
        asyncio.run(service.verify_invite(token))
        assert len(email.of_kind("otp")) == 2

    def test_otp_email_failure_keeps_previous_state(self, service, repo, email, hr_user):
        onboarding = _create(service, hr_user)
        email.failing.add("otp")

        with pytest.raises(InternalError):
            asyncio.run(service.verify_invite(email.last_invite_token()))
        assert repo.records[onboarding.id].otp is None

    def test_verify_otp_issues_cookie_for_remaining_invite_lifetime(self, service, repo, audit, email, hr_user, clock):
        onboarding = _create(service, hr_user)
        clock.advance(hours=2)

        token, context, set_cookie = _start_session(service, email)

        assert context.id == onboarding.id
        assert context.can_edit is True
        assert set_cookie.startswith(f"npt_onboarding_session={token};")
        assert f"Max-Age={70 * 3600}" in set_cookie
        assert repo.records[onboarding.id].otp is None
        assert AuditAction.OTP_VERIFIED in audit.actions(onboarding.id)

    def test_wrong_codes_lock_the_onboarding(self, service, repo, email, hr_user, clock):
        onboarding = _create(service, hr_user)
        token = email.last_invite_token()
        asyncio.run(service.verify_invite(token))
        good_code = email.last_otp()
        bad_code = "000000" if good_code != "000000" else "111111"

        for expected in ("OTP_INVALID", "OTP_INVALID", "OTP_MAX_ATTEMPTS_EXCEEDED"):
            with pytest.raises((SessionRequiredError, TooManyRequestsError)) as exc_info:
                asyncio.run(service.verify_otp(token, bad_code))
            assert exc_info.value.reason == expected

        assert repo.records[onboarding.id].otp.locked_at == clock()
        with pytest.raises(TooManyRequestsError) as exc_info:
            asyncio.run(service.verify_otp(token, good_code))
        assert exc_info.value.reason == "OTP_LOCKED"

        with pytest.raises(TooManyRequestsError):
            asyncio.run(service.verify_invite(token))

        clock.advance(minutes=15)
        asyncio.run(service.verify_invite(token))
        _, set_cookie = asyncio.run(service.verify_otp(token, email.last_otp()))
        assert set_cookie

    def test_used_code_cannot_be_replayed(self, service, email, hr_user):
        _create(service, hr_user)
        token = email.last_invite_token()
        asyncio.run(service.verify_invite(token))
        code = email.last_otp()
        asyncio.run(service.verify_otp(token, code))

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(service.verify_otp(token, code))
        assert exc_info.value.reason == "OTP_NOT_ISSUED"


# ---------------------------------------------------------------------------
# Lifecycle scenarios
# ---------------------------------------------------------------------------

class TestLifecycleScenarios:
    def test_new_digital_onboarding_is_editable(self, service, email, hr_user):
        onboarding = _create(service, hr_user)
        token, context, _ = _start_session(service, email)

        assert context.can_edit is True
        assert context.is_read_only is False
        assert _context(service, token, onboarding.id).can_edit is True

    def test_submit_makes_onboarding_read_only(self, service, repo, audit, email, hr_user, form_data, clock):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)

        context = _submit(service, token, onboarding.id, form_data)

        assert context.status == OnboardingStatus.SUBMITTED
        assert context.can_edit is False
        assert context.is_read_only is True
        stored = repo.records[onboarding.id]
        assert stored.is_form_complete is True
        assert stored.submitted_at == clock()
        assert stored.form_data["personal_info"]["first_name"] == "Priya"
        assert stored.form_data["personal_info"]["email"] == "priya@example.com"
        assert audit.actions(onboarding.id)[-1] == AuditAction.SUBMITTED

        with pytest.raises(ForbiddenError) as exc_info:
            _submit(service, token, onboarding.id, form_data)
        assert exc_info.value.reason == "READ_ONLY_STATE"
        assert _context(service, token, onboarding.id).status == OnboardingStatus.SUBMITTED

    def test_modification_request_reopens_the_same_session(self, service, audit, email, hr_user, form_data):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)
        _submit(service, token, onboarding.id, form_data)

        updated = asyncio.run(service.request_modification(onboarding.id, "Please re-upload your PAN card", hr_user))

        assert updated.status == OnboardingStatus.MODIFICATION_REQUESTED
        assert updated.modification_request_message == "Please re-upload your PAN card"
        context = _context(service, token, onboarding.id)
        assert context.can_edit is True
        assert context.modification_request_message == "Please re-upload your PAN card"
        assert len(email.of_kind("invitation")) == 1
        assert email.of_kind("modification")[0]["portal_url"].endswith(f"/onboarding/{onboarding.id}")
        assert audit.entries[-1]["metadata"]["invite_renewed"] is False

        resubmitted = _submit(service, token, onboarding.id, form_data)
        assert resubmitted.status == OnboardingStatus.RESUBMITTED
        assert audit.actions(onboarding.id)[-1] == AuditAction.RESUBMITTED

    def test_approval_ends_the_employee_session(self, service, email, hr_user, form_data):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)
        _submit(service, token, onboarding.id, form_data)
        asyncio.run(service.request_modification(onboarding.id, "Fix bank details", hr_user))
        _submit(service, token, onboarding.id, form_data)

        approved = asyncio.run(service.approve(onboarding.id, ApproveRequest(employee_number="IN-0042"), hr_user))

        assert approved.status == OnboardingStatus.APPROVED
        assert approved.is_completed is True
        assert approved.invite is not None
        with pytest.raises(UnauthorizedError) as exc_info:
            _context(service, token, onboarding.id)
        assert exc_info.value.reason == "APPROVED"
        assert exc_info.value.clear_cookie is True
        assert asyncio.run(service.resolve_session(token)) is None

    def test_termination_invalidates_the_cookie(self, service, email, hr_user):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)

        terminated = asyncio.run(service.terminate(
            onboarding.id,
            TerminateRequest(termination_type=TerminationType.COMPANY_TERMINATED, termination_reason="Offer withdrawn"),
            hr_user,
        ))

        assert terminated.status == OnboardingStatus.TERMINATED
        assert terminated.invite is None
        with pytest.raises(SessionRequiredError) as exc_info:
            _context(service, token, onboarding.id)
        assert exc_info.value.reason == "SESSION_NOT_FOUND_OR_MISMATCH"


# ---------------------------------------------------------------------------
# Session and submit edge cases
# ---------------------------------------------------------------------------

class TestSessionAndSubmit:
    def test_resolve_session_returns_record_or_none(self, service, email, hr_user, clock):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)

        assert asyncio.run(service.resolve_session(token)).id == onboarding.id
        assert asyncio.run(service.resolve_session(None)) is None
        assert asyncio.run(service.resolve_session("0" * 64)) is None

        clock.advance(hours=72)
        assert asyncio.run(service.resolve_session(token)) is None

    def test_resolve_session_propagates_storage_errors(self, service, repo):
        async def broken_lookup(token_hash):
            raise ConnectionError("database unavailable")

        repo.find_by_token_hash = broken_lookup
        with pytest.raises(ConnectionError):
            asyncio.run(service.resolve_session("a" * 64))

    def test_context_for_another_onboarding_is_rejected(self, service, email, hr_user):
        first = _create(service, hr_user)
        token, _, _ = _start_session(service, email)
        second = _create(service, hr_user, "ravi@example.com")

        with pytest.raises(SessionRequiredError) as exc_info:
            _context(service, token, second.id)
        assert exc_info.value.reason == "SESSION_NOT_FOUND_OR_MISMATCH"
        assert _context(service, token, first.id).id == first.id

    def test_invalid_form_reports_field_errors(self, service, repo, email, hr_user, form_data):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)
        del form_data["bank_details"]

        with pytest.raises(ValidationError) as exc_info:
            _submit(service, token, onboarding.id, form_data)

        assert exc_info.value.reason == "INVALID_FORM_DATA"
        assert any(err["loc"] == "bank_details" for err in exc_info.value.meta["errors"])
        assert repo.records[onboarding.id].status == OnboardingStatus.INVITE_GENERATED

    def test_submit_after_invite_expiry(self, service, email, hr_user, form_data, clock):
        onboarding = _create(service, hr_user)
        token, _, _ = _start_session(service, email)
        clock.advance(hours=73)

        with pytest.raises(SessionRequiredError) as exc_info:
            _submit(service, token, onboarding.id, form_data)
        assert exc_info.value.reason == "INVITE_EXPIRED"
