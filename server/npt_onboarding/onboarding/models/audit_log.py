from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AuditAction(str, Enum):
    STATUS_CHANGED = "STATUS_CHANGED"
    INVITE_GENERATED = "INVITE_GENERATED"
    INVITE_RESENT = "INVITE_RESENT"
    MANUAL_PDF_SENT = "MANUAL_PDF_SENT"
    OTP_VERIFIED = "OTP_VERIFIED"
    MODIFICATION_REQUESTED = "MODIFICATION_REQUESTED"
    SUBMITTED = "SUBMITTED"
    RESUBMITTED = "RESUBMITTED"
    DATA_UPDATED = "DATA_UPDATED"
    APPROVED = "APPROVED"
    TERMINATED = "TERMINATED"
    DELETED = "DELETED"


class ActorType(str, Enum):
    HR = "HR"
    EMPLOYEE = "EMPLOYEE"
    SYSTEM = "SYSTEM"


class AuditActor(BaseModel):
    type: ActorType
    id: Optional[str] = None
    name: str
    email: str


class AuditLogEntry(BaseModel):
    id: Optional[UUID] = None
    onboarding_id: UUID
    action: AuditAction
    message: str
    actor: AuditActor
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None


class AuditLogListMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_prev: bool
    has_next: bool
    sort_by: Literal["created_at"] = "created_at"
    sort_dir: Literal["asc", "desc"]
    filters: dict[str, Any]


class AuditLogListResponse(BaseModel):
    items: list[AuditLogEntry]
    meta: AuditLogListMeta
