from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator


class Subsidiary(str, Enum):
    INDIA = "IN"
    CANADA = "CA"
    USA = "US"


# Subsidiaries that can currently be onboarded
ACTIVE_SUBSIDIARIES: frozenset[Subsidiary] = frozenset({Subsidiary.INDIA})


class OnboardingMethod(str, Enum):
    DIGITAL = "digital"
    MANUAL = "manual"


class OnboardingStatus(str, Enum):
    INVITE_GENERATED = "InviteGenerated"
    MANUAL_PDF_SENT = "ManualPDFSent"
    MODIFICATION_REQUESTED = "ModificationRequested"
    SUBMITTED = "Submitted"
    RESUBMITTED = "Resubmitted"
    APPROVED = "Approved"
    TERMINATED = "Terminated"


class TerminationType(str, Enum):
    COMPANY_TERMINATED = "company_terminated"
    RESIGNED = "resigned"


class OnboardingInvite(BaseModel):
    token_hash: str
    token_encrypted: Optional[str] = None
    expires_at: datetime
    last_sent_at: datetime


class OnboardingOtp(BaseModel):
    otp_hash: Optional[str] = None
    expires_at: Optional[datetime] = None
    attempts: int = 0
    locked_at: Optional[datetime] = None
    last_sent_at: Optional[datetime] = None


class LocationAtSubmit(BaseModel):
    latitude: float
    longitude: float
    accuracy_meters: Optional[float] = None
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    captured_at: Optional[datetime] = None


class Onboarding(BaseModel):
    id: UUID
    subsidiary: Subsidiary
    method: OnboardingMethod
    first_name: str
    last_name: str
    email: str
    status: OnboardingStatus

    invite: Optional[OnboardingInvite] = None
    otp: Optional[OnboardingOtp] = None

    termination_type: Optional[TerminationType] = None
    termination_reason: Optional[str] = None
    terminated_at: Optional[datetime] = None

    form_data: Optional[dict[str, Any]] = None
    location_at_submit: Optional[LocationAtSubmit] = None
    is_form_complete: bool = False
    is_completed: bool = False
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    modification_request_message: Optional[str] = None
    modification_requested_at: Optional[datetime] = None
    employee_number: Optional[str] = None

    created_at: datetime
    updated_at: datetime


class OnboardingContext(BaseModel):
    """Employee-safe view of an onboarding; no invite, OTP or HR-only metadata."""
    id: UUID
    subsidiary: Subsidiary
    method: OnboardingMethod
    first_name: str
    last_name: str
    email: str
    status: OnboardingStatus
    form_data: Optional[dict[str, Any]] = None
    is_form_complete: bool
    is_completed: bool
    submitted_at: Optional[datetime] = None
    modification_request_message: Optional[str] = None
    modification_requested_at: Optional[datetime] = None
    can_edit: bool = False
    is_read_only: bool = True


class AdminOnboardingResponse(Onboarding):
    """HR view: the stored record minus secret digests, plus the current invite link."""
    invite: Optional[dict[str, Any]] = None
    otp: Optional[dict[str, Any]] = None
    invite_url: Optional[str] = None


# Request bodies

class OnboardingCreateRequest(BaseModel):
    subsidiary: Subsidiary
    method: OnboardingMethod
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class InviteVerifyRequest(BaseModel):
    token: str = Field(min_length=1)


class OtpVerifyRequest(BaseModel):
    token: str = Field(min_length=1)
    otp: str = Field(min_length=6, max_length=6, pattern=r"^\d{6}$")


class OnboardingSubmitRequest(BaseModel):
    form_data: dict[str, Any]
    location_at_submit: Optional[LocationAtSubmit] = None


class AdminOnboardingUpdateRequest(BaseModel):
    form_data: dict[str, Any]


class ApproveRequest(BaseModel):
    employee_number: Optional[str] = Field(default=None, max_length=50)


class RequestModificationRequest(BaseModel):
    message: str = Field(min_length=1, max_length=5000)


class TerminateRequest(BaseModel):
    termination_type: TerminationType
    termination_reason: Optional[str] = Field(default=None, max_length=5000)


class SessionResolveResponse(BaseModel):
    has_session: bool
    onboarding_id: Optional[UUID] = None


class InviteVerifyResponse(BaseModel):
    onboarding_id: UUID
    subsidiary: Subsidiary
    email: str
    otp_expires_at: datetime


class OtpVerifyResponse(BaseModel):
    onboarding: OnboardingContext


class OnboardingListMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_prev: bool
    has_next: bool
    sort_by: str
    sort_dir: Literal["asc", "desc"]
    filters: dict[str, Any]


class OnboardingListResponse(BaseModel):
    items: list[AdminOnboardingResponse]
    meta: OnboardingListMeta
