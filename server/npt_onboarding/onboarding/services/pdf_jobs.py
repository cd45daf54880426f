"""Filled application-form PDF jobs.

Rendering happens in an external function. This module only writes the
initial status document, dispatches the job asynchronously and reads the
status document back for polling clients; the worker updates it in place.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from ...config import get_settings
from ...core.exceptions import InternalError, NotFoundError, ValidationError
from ...core.services.storage import StorageService, get_storage
from ..models.onboarding import ACTIVE_SUBSIDIARIES, Onboarding, Subsidiary

logger = logging.getLogger(__name__)

_JOB_ID_RE = re.compile(r"^job-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


class PdfJobState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


class PdfJobStatus(BaseModel):
    job_id: str
    onboarding_id: UUID
    subsidiary: Subsidiary
    state: PdfJobState
    progress_percent: int = 0
    started_at: datetime
    updated_at: datetime
    download_key: Optional[str] = None
    download_url: Optional[str] = None
    error_message: Optional[str] = None


def status_key(job_id: str) -> str:
    prefix = get_settings().s3_temp_prefix
    return f"{prefix}/onboardings/application-form-pdf/{job_id}.json"


class PdfJobService:
    def __init__(self, storage: Optional[StorageService] = None, lambda_client=None):
        self.storage = storage or get_storage()
        self._lambda_client = lambda_client

    @property
    def lambda_client(self):
        if self._lambda_client is None:
            settings = get_settings()
            self._lambda_client = boto3.client(
                "lambda",
                region_name=settings.s3_region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
            )
        return self._lambda_client

    async def start(self, onboarding: Onboarding, subsidiary: Subsidiary) -> PdfJobStatus:
        if onboarding.subsidiary != subsidiary:
            raise NotFoundError("Onboarding not found for this subsidiary")
        if onboarding.subsidiary not in ACTIVE_SUBSIDIARIES:
            raise ValidationError(
                f"Application form PDFs are not available for subsidiary {subsidiary.value}",
                reason="SUBSIDIARY_NOT_ACTIVE",
            )
        if not onboarding.is_form_complete:
            raise ValidationError(
                "Cannot generate the application form until the onboarding form is complete",
                reason="FORM_INCOMPLETE",
            )

        function_name = get_settings().application_form_pdf_lambda
        if not function_name:
            raise InternalError("PDF generation is not configured", reason="PDF_NOT_CONFIGURED")

        now = datetime.now(timezone.utc)
        job = PdfJobStatus(
            job_id=f"job-{uuid4()}",
            onboarding_id=onboarding.id,
            subsidiary=onboarding.subsidiary,
            state=PdfJobState.PENDING,
            progress_percent=0,
            started_at=now,
            updated_at=now,
        )
        key = status_key(job.job_id)
        await self.storage.put_json(key, job.model_dump(mode="json"))

        payload = {
            "job_id": job.job_id,
            "onboarding_id": str(onboarding.id),
            "subsidiary": onboarding.subsidiary.value,
            "status_key": key,
        }
        try:
            await asyncio.to_thread(
                self.lambda_client.invoke,
                FunctionName=function_name,
                InvocationType="Event",
                Payload=json.dumps(payload).encode("utf-8"),
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("Failed to dispatch PDF job %s", job.job_id)
            failed = job.model_copy(update={
                "state": PdfJobState.ERROR,
                "updated_at": datetime.now(timezone.utc),
                "error_message": "Failed to start PDF generation",
            })
            await self.storage.put_json(key, failed.model_dump(mode="json"))
            raise InternalError("Failed to start PDF generation", reason="PDF_DISPATCH_FAILED") from exc

        logger.info("Dispatched application form PDF job %s for onboarding %s", job.job_id, onboarding.id)
        return job

    async def get_status(
        self,
        job_id: str,
        subsidiary: Subsidiary,
        *,
        onboarding_id: Optional[UUID] = None,
    ) -> PdfJobStatus:
        if not _JOB_ID_RE.match(job_id or ""):
            raise ValidationError("Invalid job id", reason="INVALID_JOB_ID")

        data = await self.storage.get_json(status_key(job_id))
        if data is None:
            raise NotFoundError("PDF job not found")

        job = PdfJobStatus.model_validate(data)
        if job.subsidiary != subsidiary or (onboarding_id is not None and job.onboarding_id != onboarding_id):
            raise NotFoundError("PDF job not found")

        if job.state == PdfJobState.DONE and job.download_key and not job.download_url:
            job = job.model_copy(update={"download_url": self.storage.get_presigned_url(job.download_key)})
        return job


def get_pdf_job_service() -> PdfJobService:
    return PdfJobService()
