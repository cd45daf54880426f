import asyncio
import json
import os
from typing import Any, Optional

import boto3
from botocore.exceptions import ClientError

from ...config import get_settings


class StorageService:
    """Service for storing small JSON objects (job status documents) in S3 or locally."""

    def __init__(self):
        settings = get_settings()
        self.bucket = settings.s3_bucket
        self.region = settings.s3_region
        self.app_root = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
        self.uploads_root = os.path.join(self.app_root, "uploads")

        if self.bucket:
            self.s3_client = boto3.client(
                "s3",
                region_name=self.region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
            )
        else:
            self.s3_client = None
            # Fall back to local storage
            os.makedirs(self.uploads_root, exist_ok=True)

    def _resolve_local_path(self, key: str) -> str:
        """Resolve a storage key under app/uploads, rejecting traversal."""
        candidate = os.path.join(self.uploads_root, key.lstrip("/"))
        resolved = os.path.realpath(candidate)
        uploads_root = os.path.realpath(self.uploads_root)
        if not resolved.startswith(f"{uploads_root}{os.sep}"):
            raise RuntimeError("Local storage path is outside uploads directory")
        return resolved

    def _put_object(self, key: str, body: bytes, content_type: str) -> None:
        if self.s3_client:
            try:
                self.s3_client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=body,
                    ContentType=content_type,
                )
            except ClientError as e:
                raise RuntimeError(f"Failed to upload to S3: {e}")
            return

        local_path = self._resolve_local_path(key)
        os.makedirs(os.path.dirname(local_path), exist_ok=True)
        with open(local_path, "wb") as f:
            f.write(body)

    def _get_object(self, key: str) -> Optional[bytes]:
        if self.s3_client:
            try:
                response = self.s3_client.get_object(Bucket=self.bucket, Key=key)
                return response["Body"].read()
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                    return None
                raise RuntimeError(f"Failed to download from S3: {e}")

        local_path = self._resolve_local_path(key)
        if not os.path.exists(local_path):
            return None
        with open(local_path, "rb") as f:
            return f.read()

    async def put_json(self, key: str, data: dict[str, Any]) -> None:
        body = json.dumps(data, default=str).encode("utf-8")
        await asyncio.to_thread(self._put_object, key, body, "application/json")

    async def get_json(self, key: str) -> Optional[dict[str, Any]]:
        """Return the decoded JSON object stored at ``key``, or None if it does not exist."""
        body = await asyncio.to_thread(self._get_object, key)
        if body is None:
            return None
        return json.loads(body)

    def get_presigned_url(self, key: str, expires_in: int = 3600) -> Optional[str]:
        """Get a presigned URL for downloading an S3 object. Returns None for local storage."""
        if not self.s3_client:
            return None
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except ClientError:
            return None


# Singleton instance
_storage: Optional[StorageService] = None


def get_storage() -> StorageService:
    """Get the storage service singleton."""
    global _storage
    if _storage is None:
        _storage = StorageService()
    return _storage
