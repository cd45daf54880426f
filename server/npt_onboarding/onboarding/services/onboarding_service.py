"""Onboarding lifecycle operations for employees and HR.

Every operation loads the current record, re-checks that the requested change
is legal for its status, writes the whole record back and then emits an audit
entry. Emails sent after a committed status change are best-effort; the
creation email is mandatory and its failure rolls the new record back.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import UUID, uuid4

from pydantic import ValidationError as PydanticValidationError

from ...config import get_settings
from ...core.exceptions import (
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    SessionRequiredError,
    UnauthorizedError,
    ValidationError,
)
from ...core.models.auth import AdminUser
from ...core.services.email import EmailAttachment, EmailDeliveryError, EmailService, get_email_service
from ...core.services.secret_crypto import build_invite_url, decrypt_invite_token, encrypt_invite_token
from ...core.services.tokens import generate_token, hash_token
from ..models.audit_log import AuditAction, AuditLogListResponse
from ..models.form_data import form_model_for, with_identity
from ..models.onboarding import (
    ACTIVE_SUBSIDIARIES,
    AdminOnboardingResponse,
    ApproveRequest,
    InviteVerifyResponse,
    Onboarding,
    OnboardingContext,
    OnboardingCreateRequest,
    OnboardingInvite,
    OnboardingListMeta,
    OnboardingListResponse,
    OnboardingMethod,
    OnboardingStatus,
    OnboardingSubmitRequest,
    Subsidiary,
    TerminateRequest,
)
from .audit_log import AuditLogSink, employee_actor, hr_actor
from .onboarding_repository import DATE_FIELDS, SORTABLE_COLUMNS, OnboardingListQuery, OnboardingRepository
from .onboarding_session import resolve_onboarding_session
from .onboarding_state_machine import (
    AWAITING_REVIEW_STATUSES,
    EMPLOYEE_BLOCKED_STATUSES,
    can_employee_edit,
    is_read_only_for_employee,
    submission_target,
    validate_transition,
)
from .otp import (
    OTP_EXPIRES_MINUTES,
    check_otp,
    ensure_not_locked,
    ensure_resend_allowed,
    issue_otp,
    release_expired_lock,
)
from .pagination import end_of_day, normalize_page, normalize_page_size, page_meta, start_of_day
from .session_cookie import issue_session_cookie

logger = logging.getLogger(__name__)

MANUAL_FORM_FILENAME = "NPT-India-Onboarding-Form.pdf"
_DEFAULT_MANUAL_FORM_PATH = os.path.join(
    os.path.dirname(os.path.dirname(__file__)), "assets", MANUAL_FORM_FILENAME
)

STATUS_GROUPS: dict[str, tuple[OnboardingStatus, ...]] = {
    "pending": (OnboardingStatus.INVITE_GENERATED,),
    "modification_requested": (OnboardingStatus.MODIFICATION_REQUESTED,),
    "pending_review": (OnboardingStatus.SUBMITTED, OnboardingStatus.RESUBMITTED),
    "approved": (OnboardingStatus.APPROVED,),
    "manual": (OnboardingStatus.MANUAL_PDF_SENT,),
    "terminated": (OnboardingStatus.TERMINATED,),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_context(onboarding: Onboarding, now: datetime) -> OnboardingContext:
    return OnboardingContext(
        id=onboarding.id,
        subsidiary=onboarding.subsidiary,
        method=onboarding.method,
        first_name=onboarding.first_name,
        last_name=onboarding.last_name,
        email=onboarding.email,
        status=onboarding.status,
        form_data=onboarding.form_data,
        is_form_complete=onboarding.is_form_complete,
        is_completed=onboarding.is_completed,
        submitted_at=onboarding.submitted_at,
        modification_request_message=onboarding.modification_request_message,
        modification_requested_at=onboarding.modification_requested_at,
        can_edit=can_employee_edit(onboarding, now),
        is_read_only=is_read_only_for_employee(onboarding, now),
    )


def to_admin_response(onboarding: Onboarding) -> AdminOnboardingResponse:
    data = onboarding.model_dump()
    invite = onboarding.invite
    otp = onboarding.otp
    data["invite"] = (
        {"expires_at": invite.expires_at, "last_sent_at": invite.last_sent_at} if invite else None
    )
    data["otp"] = (
        {
            "expires_at": otp.expires_at,
            "attempts": otp.attempts,
            "locked_at": otp.locked_at,
            "last_sent_at": otp.last_sent_at,
        }
        if otp
        else None
    )

    invite_url = None
    if invite and invite.token_encrypted:
        try:
            raw_token = decrypt_invite_token(invite.token_encrypted)
        except ValueError:
            logger.warning("Could not decrypt invite token for onboarding %s", onboarding.id)
        else:
            invite_url = build_invite_url(get_settings().app_base_url, raw_token)
    data["invite_url"] = invite_url
    return AdminOnboardingResponse(**data)


def _csv(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def build_list_query(
    *,
    subsidiary: Subsidiary,
    q: Optional[str] = None,
    method: Optional[OnboardingMethod] = None,
    status: Optional[str] = None,
    status_group: Optional[str] = None,
    has_employee_number: Optional[bool] = None,
    is_completed: Optional[bool] = None,
    date_field: str = "created",
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    page: Optional[int] = None,
    page_size: Optional[int] = None,
) -> OnboardingListQuery:
    """Translate admin list parameters into a repository query.

    Terminated onboardings are hidden unless explicitly asked for.
    """
    statuses: list[OnboardingStatus] = []
    for raw in _csv(status):
        try:
            statuses.append(OnboardingStatus(raw))
        except ValueError as exc:
            raise ValidationError(f"Unknown status '{raw}'", reason="INVALID_FILTER") from exc

    if status_group:
        if status_group not in STATUS_GROUPS:
            raise ValidationError(f"Unknown status group '{status_group}'", reason="INVALID_FILTER")
        group = STATUS_GROUPS[status_group]
        statuses = [s for s in statuses if s in group] if statuses else list(group)
        if not statuses:
            statuses = list(group)

    if not statuses:
        statuses = [s for s in OnboardingStatus if s != OnboardingStatus.TERMINATED]

    if date_field not in DATE_FIELDS:
        raise ValidationError(f"Unknown date field '{date_field}'", reason="INVALID_FILTER")
    if sort_by not in SORTABLE_COLUMNS:
        raise ValidationError(f"Cannot sort by '{sort_by}'", reason="INVALID_SORT")
    if date_from and date_to and date_from > date_to:
        raise ValidationError("'from' must not be after 'to'", reason="INVALID_FILTER")

    return OnboardingListQuery(
        subsidiary=subsidiary,
        search_terms=(q or "").split(),
        method=method,
        statuses=statuses,
        has_employee_number=has_employee_number,
        is_completed=is_completed,
        date_field=date_field,
        date_from=start_of_day(date_from) if date_from else None,
        date_to=end_of_day(date_to) if date_to else None,
        sort_by=sort_by,
        sort_dir="asc" if sort_dir == "asc" else "desc",
        page=normalize_page(page),
        page_size=normalize_page_size(page_size),
    )


class OnboardingService:
    def __init__(
        self,
        repository: Optional[OnboardingRepository] = None,
        audit: Optional[AuditLogSink] = None,
        email_service: Optional[EmailService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository or OnboardingRepository()
        self.audit = audit or AuditLogSink()
        self._email_service = email_service
        self._clock = clock or _utcnow

    @property
    def email(self) -> EmailService:
        if self._email_service is None:
            self._email_service = get_email_service()
        return self._email_service

    def now(self) -> datetime:
        return self._clock()

    # Helpers

    async def _load(self, onboarding_id: UUID) -> Onboarding:
        onboarding = await self.repository.get(onboarding_id)
        if onboarding is None:
            raise NotFoundError("Onboarding not found")
        return onboarding

    def _mint_invite(self, now: datetime) -> tuple[str, OnboardingInvite]:
        raw_token = generate_token()
        invite = OnboardingInvite(
            token_hash=hash_token(raw_token),
            token_encrypted=encrypt_invite_token(raw_token),
            expires_at=now + timedelta(hours=get_settings().invite_expires_hours),
            last_sent_at=now,
        )
        return raw_token, invite

    def _invite_url(self, raw_token: str) -> str:
        return build_invite_url(get_settings().app_base_url, raw_token)

    def _portal_url(self, onboarding: Onboarding) -> str:
        return f"{get_settings().app_base_url}/onboarding/{onboarding.id}"

    def _validate_form(self, onboarding: Onboarding, form_data: dict[str, Any]) -> dict[str, Any]:
        data = with_identity(form_data, onboarding.first_name, onboarding.last_name, onboarding.email)
        try:
            model = form_model_for(onboarding.subsidiary).model_validate(data)
        except PydanticValidationError as exc:
            errors = [
                {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                for err in exc.errors()
            ]
            first = errors[0]
            message = f"{first['loc']}: {first['msg']}" if first["loc"] else first["msg"]
            raise ValidationError(message, reason="INVALID_FORM_DATA", meta={"errors": errors}) from exc
        return model.model_dump(mode="json")

    def _read_manual_form(self) -> EmailAttachment:
        path = get_settings().manual_form_pdf_path or _DEFAULT_MANUAL_FORM_PATH
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            raise InternalError("Manual onboarding form is not available") from exc
        return EmailAttachment.from_bytes(MANUAL_FORM_FILENAME, "application/pdf", data)

    async def _notify_best_effort(self, description: str, onboarding_id: UUID, send) -> bool:
        """Await an email coroutine whose failure must not undo a committed change."""
        try:
            await send
        except EmailDeliveryError:
            logger.exception("Failed to send %s email for onboarding %s", description, onboarding_id)
            return False
        return True

    async def _find_for_invite(self, raw_token: str, now: datetime) -> Onboarding:
        onboarding = await self.repository.find_by_token_hash(hash_token(raw_token))
        if onboarding is None or onboarding.invite is None:
            raise NotFoundError("Invite not found or no longer valid", reason="INVITE_NOT_FOUND")
        if onboarding.invite.expires_at <= now:
            raise SessionRequiredError("Invite has expired", reason="INVITE_EXPIRED")
        if onboarding.status in EMPLOYEE_BLOCKED_STATUSES:
            reason = "APPROVED" if onboarding.status == OnboardingStatus.APPROVED else "TERMINATED"
            raise UnauthorizedError("Onboarding is no longer available", reason=reason, clear_cookie=True)
        return onboarding

    # HR: create

    async def create(self, request: OnboardingCreateRequest, user: AdminUser) -> Onboarding:
        """Create an onboarding and send its first email.

        Two steps with one compensation: if the email cannot be sent, the
        inserted record is deleted and the failure surfaced.
        """
        if request.subsidiary not in ACTIVE_SUBSIDIARIES:
            raise ValidationError(
                f"Onboarding is not yet available for subsidiary {request.subsidiary.value}",
                reason="SUBSIDIARY_NOT_ACTIVE",
            )

        email = str(request.email).strip().lower()
        existing = await self.repository.find_active_by_email(request.subsidiary, email)
        if existing is not None:
            raise ConflictError(
                "An active onboarding already exists for this email in this subsidiary",
                reason="ACTIVE_ONBOARDING_EXISTS",
                meta={"onboarding_id": str(existing.id)},
            )

        now = self.now()
        raw_token: Optional[str] = None
        invite: Optional[OnboardingInvite] = None
        if request.method == OnboardingMethod.DIGITAL:
            raw_token, invite = self._mint_invite(now)
            status = OnboardingStatus.INVITE_GENERATED
        else:
            status = OnboardingStatus.MANUAL_PDF_SENT

        onboarding = await self.repository.insert(Onboarding(
            id=uuid4(),
            subsidiary=request.subsidiary,
            method=request.method,
            first_name=request.first_name,
            last_name=request.last_name,
            email=email,
            status=status,
            invite=invite,
            created_at=now,
            updated_at=now,
        ))

        try:
            if raw_token is not None:
                await self.email.send_onboarding_invitation_email(
                    onboarding.email,
                    onboarding.first_name,
                    onboarding.last_name,
                    onboarding.subsidiary.value,
                    self._invite_url(raw_token),
                    invite.expires_at,
                )
            else:
                await self.email.send_manual_form_email(
                    onboarding.email,
                    onboarding.first_name,
                    onboarding.last_name,
                    onboarding.subsidiary.value,
                    self._read_manual_form(),
                )
        except Exception as exc:
            await self._rollback_create(onboarding.id)
            if isinstance(exc, EmailDeliveryError):
                raise InternalError(
                    "Failed to send onboarding email; the onboarding was not created",
                    reason="EMAIL_DELIVERY_FAILED",
                ) from exc
            raise

        if raw_token is not None:
            action = AuditAction.INVITE_GENERATED
            message = f"Digital onboarding invite generated by {user.name} and emailed to {onboarding.email}."
        else:
            action = AuditAction.MANUAL_PDF_SENT
            message = f"Manual onboarding form emailed to {onboarding.email} by {user.name}."
        await self.audit.record(
            onboarding.id,
            action,
            message,
            hr_actor(user),
            {
                "subsidiary": onboarding.subsidiary.value,
                "method": onboarding.method.value,
                "new_status": onboarding.status.value,
                "invite_expires_at": invite.expires_at.isoformat() if invite else None,
            },
        )
        return onboarding

    async def _rollback_create(self, onboarding_id: UUID) -> None:
        try:
            await self.repository.delete(onboarding_id)
        except Exception:
            logger.exception("Failed to roll back onboarding %s after email failure", onboarding_id)

    # Employee: invite, OTP, session

    async def verify_invite(self, raw_token: str) -> InviteVerifyResponse:
        """Validate an invite link and email a fresh verification code."""
        now = self.now()
        onboarding = await self._find_for_invite(raw_token, now)

        otp = release_expired_lock(onboarding.otp, now)
        ensure_not_locked(otp, now)
        ensure_resend_allowed(otp, now)

        code, new_otp = issue_otp(now)
        await self.repository.update(onboarding.model_copy(update={"otp": new_otp, "updated_at": now}))

        try:
            await self.email.send_onboarding_otp_email(
                onboarding.email,
                onboarding.first_name,
                onboarding.last_name,
                onboarding.subsidiary.value,
                code,
                OTP_EXPIRES_MINUTES,
            )
        except EmailDeliveryError as exc:
            await self.repository.update(onboarding)
            raise InternalError("Failed to send verification code", reason="EMAIL_DELIVERY_FAILED") from exc

        return InviteVerifyResponse(
            onboarding_id=onboarding.id,
            subsidiary=onboarding.subsidiary,
            email=onboarding.email,
            otp_expires_at=new_otp.expires_at,
        )

    async def verify_otp(self, raw_token: str, code: str) -> tuple[OnboardingContext, str]:
        """Check the code and return the employee context plus the session Set-Cookie header."""
        now = self.now()
        onboarding = await self._find_for_invite(raw_token, now)

        current_otp = release_expired_lock(onboarding.otp, now)
        check = check_otp(current_otp, code, now)
        if not check.ok:
            if check.otp != onboarding.otp:
                await self.repository.update(onboarding.model_copy(update={"otp": check.otp, "updated_at": now}))
            raise check.error

        set_cookie, max_age = issue_session_cookie(onboarding, raw_token, now)
        onboarding = await self.repository.update(onboarding.model_copy(update={"otp": None, "updated_at": now}))

        await self.audit.record(
            onboarding.id,
            AuditAction.OTP_VERIFIED,
            f"{onboarding.first_name} {onboarding.last_name} verified their email and started a session.",
            employee_actor(onboarding),
            {"session_max_age_seconds": max_age},
        )
        return to_context(onboarding, now), set_cookie

    async def resolve_session(self, raw_token: Optional[str]) -> Optional[Onboarding]:
        """Non-strict resolution: None for any logical "no session" outcome.

        Storage errors propagate so callers can tell a dead session from a
        temporarily unavailable one.
        """
        try:
            return await resolve_onboarding_session(raw_token, self.now(), self.repository.find_by_token_hash)
        except (SessionRequiredError, UnauthorizedError):
            return None

    async def get_employee_context(self, raw_token: Optional[str], onboarding_id: str) -> OnboardingContext:
        now = self.now()
        onboarding = await resolve_onboarding_session(
            raw_token,
            now,
            self.repository.find_by_token_hash,
            onboarding_id=onboarding_id,
        )
        return to_context(onboarding, now)

    async def submit(
        self,
        raw_token: Optional[str],
        onboarding_id: str,
        request: OnboardingSubmitRequest,
    ) -> OnboardingContext:
        now = self.now()
        onboarding = await resolve_onboarding_session(
            raw_token,
            now,
            self.repository.find_by_token_hash,
            onboarding_id=onboarding_id,
            require_editable=True,
        )
        if not can_employee_edit(onboarding, now):
            raise ForbiddenError("Onboarding cannot be edited in its current state", reason="READ_ONLY_STATE")
        if onboarding.subsidiary not in ACTIVE_SUBSIDIARIES:
            raise ValidationError(
                f"Onboarding is not yet available for subsidiary {onboarding.subsidiary.value}",
                reason="SUBSIDIARY_NOT_ACTIVE",
            )

        form_data = self._validate_form(onboarding, request.form_data)
        previous_status = onboarding.status
        target = submission_target(previous_status)
        validate_transition(previous_status, target)

        onboarding = await self.repository.update(onboarding.model_copy(update={
            "status": target,
            "form_data": form_data,
            "location_at_submit": request.location_at_submit,
            "is_form_complete": True,
            "submitted_at": now,
            "updated_at": now,
        }))

        action = AuditAction.RESUBMITTED if target == OnboardingStatus.RESUBMITTED else AuditAction.SUBMITTED
        await self.audit.record(
            onboarding.id,
            action,
            f"Onboarding form {'resubmitted' if action == AuditAction.RESUBMITTED else 'submitted'} "
            f"by {onboarding.first_name} {onboarding.last_name}.",
            employee_actor(onboarding),
            {"previous_status": previous_status.value, "new_status": target.value},
        )
        return to_context(onboarding, now)

    # HR: read

    async def get(self, onboarding_id: UUID) -> Onboarding:
        return await self._load(onboarding_id)

    async def get_for_admin(self, onboarding_id: UUID) -> AdminOnboardingResponse:
        return to_admin_response(await self._load(onboarding_id))

    async def list_for_admin(self, query: OnboardingListQuery, filters: dict[str, Any]) -> OnboardingListResponse:
        items, total = await self.repository.list_onboardings(query)
        meta = OnboardingListMeta(
            **page_meta(query.page, query.page_size, total),
            sort_by=query.sort_by,
            sort_dir=query.sort_dir,
            filters=filters,
        )
        return OnboardingListResponse(items=[to_admin_response(o) for o in items], meta=meta)

    async def list_audit_logs(
        self,
        onboarding_id: UUID,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        sort_dir: str = "desc",
    ) -> AuditLogListResponse:
        await self._load(onboarding_id)
        if date_from and date_to and date_from > date_to:
            raise ValidationError("'from' must not be after 'to'", reason="INVALID_FILTER")
        return await self.audit.list_for_onboarding(
            onboarding_id,
            date_from=date_from,
            date_to=date_to,
            page=page,
            page_size=page_size,
            sort_dir=sort_dir,
        )

    # HR: transitions

    async def update_form(self, onboarding_id: UUID, form_data: dict[str, Any], user: AdminUser) -> Onboarding:
        """HR data entry. Completing a form for the first time marks it Submitted."""
        onboarding = await self._load(onboarding_id)
        if onboarding.status == OnboardingStatus.TERMINATED:
            raise ValidationError("Cannot edit a terminated onboarding", reason="TERMINATED")

        now = self.now()
        validated = self._validate_form(onboarding, form_data)
        previous_status = onboarding.status
        update: dict[str, Any] = {"form_data": validated, "updated_at": now}

        if not onboarding.is_form_complete:
            validate_transition(previous_status, OnboardingStatus.SUBMITTED)
            update.update(status=OnboardingStatus.SUBMITTED, is_form_complete=True, submitted_at=now)
            action = AuditAction.SUBMITTED
            message = f"Onboarding form completed by {user.name} on the employee's behalf."
        else:
            action = AuditAction.DATA_UPDATED
            message = f"Onboarding details updated by {user.name}."

        onboarding = await self.repository.update(onboarding.model_copy(update=update))
        await self.audit.record(
            onboarding.id,
            action,
            message,
            hr_actor(user),
            {"previous_status": previous_status.value, "new_status": onboarding.status.value},
        )
        return onboarding

    async def approve(self, onboarding_id: UUID, request: ApproveRequest, user: AdminUser) -> Onboarding:
        onboarding = await self._load(onboarding_id)
        if onboarding.status == OnboardingStatus.TERMINATED:
            raise ValidationError("Cannot approve a terminated onboarding", reason="TERMINATED")
        if onboarding.status == OnboardingStatus.APPROVED:
            raise ValidationError("Onboarding is already approved", reason="ALREADY_APPROVED")
        if not onboarding.is_form_complete:
            raise ValidationError(
                "Cannot approve until the onboarding form is fully completed",
                reason="FORM_INCOMPLETE",
            )
        validate_transition(onboarding.status, OnboardingStatus.APPROVED)

        employee_number = (request.employee_number or "").strip() or onboarding.employee_number
        if employee_number and await self.repository.employee_number_taken(
            onboarding.subsidiary, employee_number, onboarding.id
        ):
            raise ConflictError(
                "Employee number is already in use for this subsidiary",
                reason="EMPLOYEE_NUMBER_TAKEN",
            )

        now = self.now()
        previous_status = onboarding.status
        onboarding = await self.repository.update(onboarding.model_copy(update={
            "status": OnboardingStatus.APPROVED,
            "employee_number": employee_number,
            "approved_at": now,
            "completed_at": now,
            "is_completed": True,
            "updated_at": now,
        }))

        await self._notify_best_effort(
            "approval",
            onboarding.id,
            self.email.send_onboarding_approved_email(
                onboarding.email,
                onboarding.first_name,
                onboarding.last_name,
                onboarding.subsidiary.value,
                employee_number,
            ),
        )
        await self.audit.record(
            onboarding.id,
            AuditAction.APPROVED,
            f"Onboarding approved by {user.name}.",
            hr_actor(user),
            {
                "previous_status": previous_status.value,
                "new_status": onboarding.status.value,
                "employee_number": employee_number,
            },
        )
        return onboarding

    async def request_modification(self, onboarding_id: UUID, message: str, user: AdminUser) -> Onboarding:
        """Send a submitted form back to the employee.

        The employee keeps using the invite (and cookie) they already have. Only
        an invite that has run out is replaced so the employee can get back in.
        """
        onboarding = await self._load(onboarding_id)
        if onboarding.method != OnboardingMethod.DIGITAL:
            raise ValidationError(
                "Modification requests are only available for digital onboardings",
                reason="NOT_DIGITAL",
            )
        if onboarding.status not in AWAITING_REVIEW_STATUSES:
            raise ValidationError(
                "Modification can only be requested for submitted onboardings",
                reason="STATUS_NOT_SUBMITTED_OR_RESUBMITTED",
            )
        message = (message or "").strip()
        if not message:
            raise ValidationError("A modification message is required", reason="MESSAGE_REQUIRED")
        validate_transition(onboarding.status, OnboardingStatus.MODIFICATION_REQUESTED)

        now = self.now()
        previous_status = onboarding.status
        update: dict[str, Any] = {
            "status": OnboardingStatus.MODIFICATION_REQUESTED,
            "modification_request_message": message,
            "modification_requested_at": now,
            "updated_at": now,
        }
        portal_url = self._portal_url(onboarding)
        invite_renewed = False
        if onboarding.invite is None or onboarding.invite.expires_at <= now:
            raw_token, invite = self._mint_invite(now)
            update.update(invite=invite, otp=None)
            portal_url = self._invite_url(raw_token)
            invite_renewed = True

        onboarding = await self.repository.update(onboarding.model_copy(update=update))

        await self._notify_best_effort(
            "modification request",
            onboarding.id,
            self.email.send_modification_request_email(
                onboarding.email,
                onboarding.first_name,
                onboarding.last_name,
                onboarding.subsidiary.value,
                message,
                portal_url,
            ),
        )
        await self.audit.record(
            onboarding.id,
            AuditAction.MODIFICATION_REQUESTED,
            f"Modification requested by {user.name}.",
            hr_actor(user),
            {
                "previous_status": previous_status.value,
                "new_status": onboarding.status.value,
                "message": message,
                "invite_renewed": invite_renewed,
            },
        )
        return onboarding

    async def terminate(self, onboarding_id: UUID, request: TerminateRequest, user: AdminUser) -> Onboarding:
        onboarding = await self._load(onboarding_id)
        if onboarding.status == OnboardingStatus.TERMINATED:
            raise ValidationError("Onboarding is already terminated", reason="ALREADY_TERMINATED")
        validate_transition(onboarding.status, OnboardingStatus.TERMINATED)

        now = self.now()
        previous_status = onboarding.status
        reason = (request.termination_reason or "").strip() or None
        onboarding = await self.repository.update(onboarding.model_copy(update={
            "status": OnboardingStatus.TERMINATED,
            "termination_type": request.termination_type,
            "termination_reason": reason,
            "terminated_at": now,
            "invite": None,
            "otp": None,
            "updated_at": now,
        }))

        await self._notify_best_effort(
            "termination notice",
            onboarding.id,
            self.email.send_termination_notice_email(
                onboarding.email,
                onboarding.first_name,
                onboarding.last_name,
                onboarding.subsidiary.value,
            ),
        )
        await self.audit.record(
            onboarding.id,
            AuditAction.TERMINATED,
            f"Onboarding terminated by {user.name} ({request.termination_type.value}).",
            hr_actor(user),
            {
                "previous_status": previous_status.value,
                "new_status": onboarding.status.value,
                "termination_type": request.termination_type.value,
                "termination_reason": reason,
            },
        )
        return onboarding

    async def resend_invite(self, onboarding_id: UUID, user: AdminUser) -> Onboarding:
        """Replace the invite with a fresh one; the previous link stops working."""
        onboarding = await self._load(onboarding_id)
        if onboarding.method != OnboardingMethod.DIGITAL:
            raise ValidationError("Only digital onboardings have invites", reason="NOT_DIGITAL")
        if onboarding.status != OnboardingStatus.INVITE_GENERATED:
            raise ValidationError(
                "Invites can only be resent before the employee submits",
                reason="STATUS_NOT_INVITE_GENERATED",
            )

        now = self.now()
        raw_token, invite = self._mint_invite(now)
        previous = onboarding
        onboarding = await self.repository.update(onboarding.model_copy(update={
            "invite": invite,
            "otp": None,
            "updated_at": now,
        }))

        try:
            await self.email.send_onboarding_invitation_email(
                onboarding.email,
                onboarding.first_name,
                onboarding.last_name,
                onboarding.subsidiary.value,
                self._invite_url(raw_token),
                invite.expires_at,
            )
        except EmailDeliveryError as exc:
            try:
                await self.repository.update(previous)
            except Exception:
                logger.exception("Failed to restore previous invite for onboarding %s", onboarding.id)
            raise InternalError("Failed to resend invite email", reason="EMAIL_DELIVERY_FAILED") from exc

        await self.audit.record(
            onboarding.id,
            AuditAction.INVITE_RESENT,
            f"Invite resent to {onboarding.email} by {user.name}.",
            hr_actor(user),
            {"invite_expires_at": invite.expires_at.isoformat()},
        )
        return onboarding

    async def delete(self, onboarding_id: UUID, user: AdminUser) -> None:
        onboarding = await self._load(onboarding_id)
        if onboarding.status != OnboardingStatus.TERMINATED:
            raise ValidationError("Only terminated onboardings can be deleted", reason="NOT_TERMINATED")

        await self.audit.record(
            onboarding.id,
            AuditAction.DELETED,
            f"Onboarding for {onboarding.email} deleted by {user.name}.",
            hr_actor(user),
            {"subsidiary": onboarding.subsidiary.value, "method": onboarding.method.value},
        )
        await self.repository.delete(onboarding.id)


def get_onboarding_service() -> OnboardingService:
    return OnboardingService()
