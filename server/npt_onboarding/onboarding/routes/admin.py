"""
HR onboarding management routes.
Every endpoint requires an allow-listed admin.
"""
from datetime import date
from typing import Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from ...core.dependencies import require_admin
from ...core.models.auth import AdminUser
from ..models.audit_log import AuditLogListResponse
from ..models.onboarding import (
    AdminOnboardingResponse,
    AdminOnboardingUpdateRequest,
    ApproveRequest,
    OnboardingCreateRequest,
    OnboardingListResponse,
    OnboardingMethod,
    RequestModificationRequest,
    Subsidiary,
    TerminateRequest,
)
from ..services.onboarding_service import (
    OnboardingService,
    build_list_query,
    get_onboarding_service,
    to_admin_response,
)
from ..services.pdf_jobs import PdfJobService, PdfJobStatus, get_pdf_job_service

router = APIRouter()


class DeleteOnboardingResponse(BaseModel):
    id: UUID
    deleted: bool = True


@router.get("", response_model=OnboardingListResponse)
async def list_onboardings(
    subsidiary: Subsidiary,
    q: Optional[str] = None,
    method: Optional[OnboardingMethod] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    status_group: Optional[str] = None,
    has_employee_number: Optional[bool] = None,
    is_completed: Optional[bool] = None,
    date_field: str = "created",
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    sort_by: str = "created_at",
    sort_dir: Literal["asc", "desc"] = "desc",
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """List onboardings for one subsidiary. Terminated ones are hidden unless requested."""
    query = build_list_query(
        subsidiary=subsidiary,
        q=q,
        method=method,
        status=status_filter,
        status_group=status_group,
        has_employee_number=has_employee_number,
        is_completed=is_completed,
        date_field=date_field,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        page_size=page_size,
    )
    filters = {
        "subsidiary": subsidiary.value,
        "q": q,
        "method": method.value if method else None,
        "status": [s.value for s in query.statuses],
        "status_group": status_group,
        "has_employee_number": has_employee_number,
        "is_completed": is_completed,
        "date_field": date_field,
        "from": date_from.isoformat() if date_from else None,
        "to": date_to.isoformat() if date_to else None,
    }
    return await service.list_for_admin(query, filters)


@router.post("", response_model=AdminOnboardingResponse, status_code=status.HTTP_201_CREATED)
async def create_onboarding(
    body: OnboardingCreateRequest,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Create a digital or manual onboarding and send its first email."""
    onboarding = await service.create(body, current_user)
    return to_admin_response(onboarding)


@router.get("/{onboarding_id}", response_model=AdminOnboardingResponse)
async def get_onboarding(
    onboarding_id: UUID,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return await service.get_for_admin(onboarding_id)


@router.put("/{onboarding_id}", response_model=AdminOnboardingResponse)
async def update_onboarding(
    onboarding_id: UUID,
    body: AdminOnboardingUpdateRequest,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await service.update_form(onboarding_id, body.form_data, current_user)
    return to_admin_response(onboarding)


@router.delete("/{onboarding_id}", response_model=DeleteOnboardingResponse)
async def delete_onboarding(
    onboarding_id: UUID,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    """Permanently remove a terminated onboarding."""
    await service.delete(onboarding_id, current_user)
    return DeleteOnboardingResponse(id=onboarding_id)


@router.post("/{onboarding_id}/approve", response_model=AdminOnboardingResponse)
async def approve_onboarding(
    onboarding_id: UUID,
    body: ApproveRequest,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await service.approve(onboarding_id, body, current_user)
    return to_admin_response(onboarding)


@router.post("/{onboarding_id}/request-modification", response_model=AdminOnboardingResponse)
async def request_modification(
    onboarding_id: UUID,
    body: RequestModificationRequest,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await service.request_modification(onboarding_id, body.message, current_user)
    return to_admin_response(onboarding)


@router.post("/{onboarding_id}/terminate", response_model=AdminOnboardingResponse)
async def terminate_onboarding(
    onboarding_id: UUID,
    body: TerminateRequest,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await service.terminate(onboarding_id, body, current_user)
    return to_admin_response(onboarding)


@router.post("/{onboarding_id}/resend-invite", response_model=AdminOnboardingResponse)
async def resend_invite(
    onboarding_id: UUID,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    onboarding = await service.resend_invite(onboarding_id, current_user)
    return to_admin_response(onboarding)


@router.get("/{onboarding_id}/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    onboarding_id: UUID,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    sort_dir: Literal["asc", "desc"] = "desc",
    page: Optional[int] = None,
    page_size: Optional[int] = None,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return await service.list_audit_logs(
        onboarding_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
        sort_dir=sort_dir,
    )


# Filled application form PDF (async job)

@router.post(
    "/{onboarding_id}/filled-pdf/application-form",
    response_model=PdfJobStatus,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_application_form_pdf(
    onboarding_id: UUID,
    subsidiary: Subsidiary,
    current_user: AdminUser = Depends(require_admin),
    service: OnboardingService = Depends(get_onboarding_service),
    pdf_jobs: PdfJobService = Depends(get_pdf_job_service),
):
    onboarding = await service.get(onboarding_id)
    return await pdf_jobs.start(onboarding, subsidiary)


@router.get("/{onboarding_id}/filled-pdf/application-form/status", response_model=PdfJobStatus)
async def get_application_form_pdf_status(
    onboarding_id: UUID,
    job_id: str,
    subsidiary: Subsidiary,
    current_user: AdminUser = Depends(require_admin),
    pdf_jobs: PdfJobService = Depends(get_pdf_job_service),
):
    return await pdf_jobs.get_status(job_id, subsidiary, onboarding_id=onboarding_id)
