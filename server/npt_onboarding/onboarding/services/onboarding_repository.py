"""Postgres persistence for onboarding records.

Each method acquires its own pooled connection; a row is read and written as a
whole document, so concurrent HR edits are last-writer-wins.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import asyncpg

from ...core.exceptions import ConflictError, NotFoundError
from ...database import get_connection
from ..models.onboarding import (
    LocationAtSubmit,
    Onboarding,
    OnboardingInvite,
    OnboardingMethod,
    OnboardingOtp,
    OnboardingStatus,
    Subsidiary,
)

ACTIVE_EMAIL_INDEX = "uq_onboardings_active_email"
EMPLOYEE_NUMBER_INDEX = "uq_onboardings_employee_number"

_COLUMNS = """
    id, subsidiary, method, first_name, last_name, email, status,
    invite_token_hash, invite_token_encrypted, invite_expires_at, invite_last_sent_at,
    otp_hash, otp_expires_at, otp_attempts, otp_locked_at, otp_last_sent_at,
    termination_type, termination_reason, terminated_at,
    form_data, location_at_submit, is_form_complete, is_completed,
    submitted_at, completed_at, approved_at,
    modification_request_message, modification_requested_at, employee_number,
    created_at, updated_at
"""

SORTABLE_COLUMNS: tuple[str, ...] = (
    "created_at",
    "updated_at",
    "submitted_at",
    "approved_at",
    "terminated_at",
    "first_name",
    "last_name",
    "email",
    "status",
    "employee_number",
)

DATE_FIELDS: dict[str, str] = {
    "created": "created_at",
    "submitted": "submitted_at",
    "approved": "approved_at",
    "terminated": "terminated_at",
    "updated": "updated_at",
}


@dataclass
class OnboardingListQuery:
    subsidiary: Subsidiary
    search_terms: list[str] = field(default_factory=list)
    method: Optional[OnboardingMethod] = None
    statuses: list[OnboardingStatus] = field(default_factory=list)
    has_employee_number: Optional[bool] = None
    is_completed: Optional[bool] = None
    date_field: str = "created"
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = "created_at"
    sort_dir: str = "desc"
    page: int = 1
    page_size: int = 20


def row_to_onboarding(row) -> Onboarding:
    invite = None
    if row["invite_token_hash"]:
        invite = OnboardingInvite(
            token_hash=row["invite_token_hash"],
            token_encrypted=row["invite_token_encrypted"],
            expires_at=row["invite_expires_at"],
            last_sent_at=row["invite_last_sent_at"],
        )

    otp = None
    if row["otp_hash"] or row["otp_locked_at"] or row["otp_attempts"]:
        otp = OnboardingOtp(
            otp_hash=row["otp_hash"],
            expires_at=row["otp_expires_at"],
            attempts=row["otp_attempts"] or 0,
            locked_at=row["otp_locked_at"],
            last_sent_at=row["otp_last_sent_at"],
        )

    location = row["location_at_submit"]
    return Onboarding(
        id=row["id"],
        subsidiary=row["subsidiary"],
        method=row["method"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        email=row["email"],
        status=row["status"],
        invite=invite,
        otp=otp,
        termination_type=row["termination_type"],
        termination_reason=row["termination_reason"],
        terminated_at=row["terminated_at"],
        form_data=row["form_data"],
        location_at_submit=LocationAtSubmit(**location) if location else None,
        is_form_complete=row["is_form_complete"],
        is_completed=row["is_completed"],
        submitted_at=row["submitted_at"],
        completed_at=row["completed_at"],
        approved_at=row["approved_at"],
        modification_request_message=row["modification_request_message"],
        modification_requested_at=row["modification_requested_at"],
        employee_number=row["employee_number"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _document_values(onboarding: Onboarding) -> tuple[Any, ...]:
    invite = onboarding.invite
    otp = onboarding.otp
    location = onboarding.location_at_submit
    return (
        onboarding.status.value,
        invite.token_hash if invite else None,
        invite.token_encrypted if invite else None,
        invite.expires_at if invite else None,
        invite.last_sent_at if invite else None,
        otp.otp_hash if otp else None,
        otp.expires_at if otp else None,
        otp.attempts if otp else 0,
        otp.locked_at if otp else None,
        otp.last_sent_at if otp else None,
        onboarding.termination_type.value if onboarding.termination_type else None,
        onboarding.termination_reason,
        onboarding.terminated_at,
        onboarding.form_data,
        location.model_dump(mode="json") if location else None,
        onboarding.is_form_complete,
        onboarding.is_completed,
        onboarding.submitted_at,
        onboarding.completed_at,
        onboarding.approved_at,
        onboarding.modification_request_message,
        onboarding.modification_requested_at,
        onboarding.employee_number,
        onboarding.updated_at,
    )


def _conflict_from_unique_violation(exc: asyncpg.UniqueViolationError) -> ConflictError:
    constraint = getattr(exc, "constraint_name", None)
    if constraint == EMPLOYEE_NUMBER_INDEX:
        return ConflictError("Employee number is already in use for this subsidiary", reason="EMPLOYEE_NUMBER_TAKEN")
    return ConflictError(
        "An active onboarding already exists for this email in this subsidiary",
        reason="ACTIVE_ONBOARDING_EXISTS",
    )


def contains_pattern(term: str) -> str:
    """ILIKE pattern matching ``term`` literally anywhere, for use with ``ESCAPE '\\'``."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class OnboardingRepository:
    async def insert(self, onboarding: Onboarding) -> Onboarding:
        try:
            async with get_connection() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO onboardings (
                        id, subsidiary, method, first_name, last_name, email, created_at,
                        status,
                        invite_token_hash, invite_token_encrypted, invite_expires_at, invite_last_sent_at,
                        otp_hash, otp_expires_at, otp_attempts, otp_locked_at, otp_last_sent_at,
                        termination_type, termination_reason, terminated_at,
                        form_data, location_at_submit, is_form_complete, is_completed,
                        submitted_at, completed_at, approved_at,
                        modification_request_message, modification_requested_at, employee_number,
                        updated_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16,
                            $17, $18, $19, $20, $21, $22, $23, $24, $25, $26, $27, $28, $29, $30, $31)
                    RETURNING {_COLUMNS}
                    """,
                    onboarding.id,
                    onboarding.subsidiary.value,
                    onboarding.method.value,
                    onboarding.first_name,
                    onboarding.last_name,
                    onboarding.email,
                    onboarding.created_at,
                    *_document_values(onboarding),
                )
        except asyncpg.UniqueViolationError as exc:
            raise _conflict_from_unique_violation(exc) from exc
        return row_to_onboarding(row)

    async def update(self, onboarding: Onboarding) -> Onboarding:
        try:
            async with get_connection() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE onboardings SET
                        status = $2,
                        invite_token_hash = $3, invite_token_encrypted = $4,
                        invite_expires_at = $5, invite_last_sent_at = $6,
                        otp_hash = $7, otp_expires_at = $8, otp_attempts = $9,
                        otp_locked_at = $10, otp_last_sent_at = $11,
                        termination_type = $12, termination_reason = $13, terminated_at = $14,
                        form_data = $15, location_at_submit = $16,
                        is_form_complete = $17, is_completed = $18,
                        submitted_at = $19, completed_at = $20, approved_at = $21,
                        modification_request_message = $22, modification_requested_at = $23,
                        employee_number = $24,
                        updated_at = $25
                    WHERE id = $1
                    RETURNING {_COLUMNS}
                    """,
                    onboarding.id,
                    *_document_values(onboarding),
                )
        except asyncpg.UniqueViolationError as exc:
            raise _conflict_from_unique_violation(exc) from exc
        if row is None:
            raise NotFoundError("Onboarding not found")
        return row_to_onboarding(row)

    async def get(self, onboarding_id: UUID) -> Optional[Onboarding]:
        async with get_connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM onboardings WHERE id = $1",
                onboarding_id,
            )
        return row_to_onboarding(row) if row else None

    async def find_by_token_hash(self, token_hash: str) -> Optional[Onboarding]:
        async with get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM onboardings
                WHERE method = 'digital' AND invite_token_hash = $1
                """,
                token_hash,
            )
        return row_to_onboarding(row) if row else None

    async def find_active_by_email(self, subsidiary: Subsidiary, email: str) -> Optional[Onboarding]:
        async with get_connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_COLUMNS} FROM onboardings
                WHERE subsidiary = $1 AND lower(email) = lower($2) AND status <> 'Terminated'
                """,
                subsidiary.value,
                email,
            )
        return row_to_onboarding(row) if row else None

    async def employee_number_taken(
        self,
        subsidiary: Subsidiary,
        employee_number: str,
        exclude_id: UUID,
    ) -> bool:
        async with get_connection() as conn:
            existing = await conn.fetchval(
                """
                SELECT id FROM onboardings
                WHERE subsidiary = $1 AND employee_number = $2 AND id <> $3
                """,
                subsidiary.value,
                employee_number,
                exclude_id,
            )
        return existing is not None

    async def delete(self, onboarding_id: UUID) -> bool:
        """Delete by id. Deleting a missing row is a no-op returning False."""
        async with get_connection() as conn:
            result = await conn.execute("DELETE FROM onboardings WHERE id = $1", onboarding_id)
        return result != "DELETE 0"

    async def list_onboardings(self, query: OnboardingListQuery) -> tuple[list[Onboarding], int]:
        conditions = ["subsidiary = $1"]
        params: list[Any] = [query.subsidiary.value]

        def add_param(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        for term in query.search_terms:
            placeholder = add_param(contains_pattern(term))
            matches = [
                f"{column} ILIKE {placeholder} ESCAPE '\\'"
                for column in ("first_name", "last_name", "email", "employee_number")
            ]
            conditions.append("(" + " OR ".join(matches) + ")")
        if query.method is not None:
            conditions.append(f"method = {add_param(query.method.value)}")
        if query.statuses:
            conditions.append(f"status = ANY({add_param([s.value for s in query.statuses])}::text[])")
        if query.has_employee_number is True:
            conditions.append("employee_number IS NOT NULL")
        elif query.has_employee_number is False:
            conditions.append("employee_number IS NULL")
        if query.is_completed is not None:
            conditions.append(f"is_completed = {add_param(query.is_completed)}")

        date_column = DATE_FIELDS[query.date_field]
        if query.date_from is not None:
            conditions.append(f"{date_column} >= {add_param(query.date_from)}")
        if query.date_to is not None:
            conditions.append(f"{date_column} <= {add_param(query.date_to)}")

        where = " AND ".join(conditions)
        sort_column = query.sort_by if query.sort_by in SORTABLE_COLUMNS else "created_at"
        sort_dir = "ASC" if query.sort_dir == "asc" else "DESC"

        async with get_connection() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM onboardings WHERE {where}", *params)
            limit = add_param(query.page_size)
            offset = add_param((query.page - 1) * query.page_size)
            rows = await conn.fetch(
                f"""
                SELECT {_COLUMNS} FROM onboardings
                WHERE {where}
                ORDER BY {sort_column} {sort_dir} NULLS LAST, id {sort_dir}
                LIMIT {limit} OFFSET {offset}
                """,
                *params,
            )
        return [row_to_onboarding(row) for row in rows], total or 0
