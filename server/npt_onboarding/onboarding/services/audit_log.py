"""Append-only audit trail for onboarding state changes.

``AuditLogSink.record`` is fire-and-forget: by the time it runs the business
change is already committed, so a failed audit write is logged and dropped.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional
from uuid import UUID

from ...core.models.auth import AdminUser
from ...database import get_connection
from ..models.audit_log import (
    ActorType,
    AuditAction,
    AuditActor,
    AuditLogEntry,
    AuditLogListMeta,
    AuditLogListResponse,
)
from ..models.onboarding import Onboarding
from .pagination import end_of_day, normalize_page, normalize_page_size, page_meta, start_of_day

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = AuditActor(type=ActorType.SYSTEM, name="System", email="system@npt.local")


def hr_actor(user: AdminUser) -> AuditActor:
    return AuditActor(type=ActorType.HR, id=user.id, name=user.name, email=user.email)


def employee_actor(onboarding: Onboarding) -> AuditActor:
    return AuditActor(
        type=ActorType.EMPLOYEE,
        id=str(onboarding.id),
        name=f"{onboarding.first_name} {onboarding.last_name}".strip(),
        email=onboarding.email,
    )


def _row_to_entry(row) -> AuditLogEntry:
    return AuditLogEntry(
        id=row["id"],
        onboarding_id=row["onboarding_id"],
        action=row["action"],
        message=row["message"],
        actor=AuditActor(
            type=row["actor_type"],
            id=row["actor_id"],
            name=row["actor_name"],
            email=row["actor_email"],
        ),
        metadata=row["metadata"] or {},
        created_at=row["created_at"],
    )


class AuditLogSink:
    async def write(self, entry: AuditLogEntry) -> None:
        async with get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO onboarding_audit_logs
                    (onboarding_id, action, message, actor_type, actor_id, actor_name, actor_email, metadata, created_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                entry.onboarding_id,
                entry.action.value,
                entry.message,
                entry.actor.type.value,
                entry.actor.id,
                entry.actor.name,
                entry.actor.email,
                entry.metadata,
                entry.created_at or datetime.now(timezone.utc),
            )

    async def record(
        self,
        onboarding_id: UUID,
        action: AuditAction,
        message: str,
        actor: AuditActor,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Persist an audit entry. Never raises."""
        entry = AuditLogEntry(
            onboarding_id=onboarding_id,
            action=action,
            message=message,
            actor=actor,
            metadata=metadata or {},
            created_at=datetime.now(timezone.utc),
        )
        try:
            await self.write(entry)
        except Exception:
            logger.exception(
                "Failed to record audit log %s for onboarding %s",
                action.value,
                onboarding_id,
            )

    async def list_for_onboarding(
        self,
        onboarding_id: UUID,
        *,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: Optional[int] = None,
        page_size: Optional[int] = None,
        sort_dir: str = "desc",
    ) -> AuditLogListResponse:
        page = normalize_page(page)
        page_size = normalize_page_size(page_size)
        sort_dir = "asc" if sort_dir == "asc" else "desc"

        conditions = ["onboarding_id = $1"]
        params: list[Any] = [onboarding_id]
        if date_from is not None:
            params.append(start_of_day(date_from))
            conditions.append(f"created_at >= ${len(params)}")
        if date_to is not None:
            params.append(end_of_day(date_to))
            conditions.append(f"created_at <= ${len(params)}")
        where = " AND ".join(conditions)

        async with get_connection() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM onboarding_audit_logs WHERE {where}",
                *params,
            )
            rows = await conn.fetch(
                f"""
                SELECT id, onboarding_id, action, message, actor_type, actor_id,
                       actor_name, actor_email, metadata, created_at
                FROM onboarding_audit_logs
                WHERE {where}
                ORDER BY created_at {sort_dir.upper()}, id {sort_dir.upper()}
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """,
                *params,
                page_size,
                (page - 1) * page_size,
            )

        meta = AuditLogListMeta(
            **page_meta(page, page_size, total or 0),
            sort_dir=sort_dir,
            filters={
                "from": date_from.isoformat() if date_from else None,
                "to": date_to.isoformat() if date_to else None,
            },
        )
        return AuditLogListResponse(items=[_row_to_entry(row) for row in rows], meta=meta)
