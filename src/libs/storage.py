"""
S3-compatible blob storage for generated documents.

Works against AWS S3 or a MinIO endpoint. boto3 is synchronous, so every call
is pushed to a worker thread.
"""

from __future__ import annotations

import asyncio
import re
from datetime import UTC, datetime
from typing import Protocol

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from src.core.config import get_settings

logger = structlog.get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BlobStorageError(Exception):
    """Raised when an object cannot be stored or removed."""


class BlobStorage(Protocol):
    """Protocol for blob storage (allows faking in tests)."""

    async def upload(self, data: bytes, filename: str, mime_type: str, folder: str) -> str:
        """Store ``data`` and return its public URL."""
        ...

    async def delete(self, url: str) -> None:
        """Remove a previously uploaded object."""
        ...


def build_object_key(folder: str, filename: str, now: datetime | None = None) -> str:
    stamp = int((now or datetime.now(UTC)).timestamp() * 1000)
    safe_name = _UNSAFE_CHARS.sub("_", filename).strip("_") or "file"
    return f"{folder.strip('/')}/{stamp}-{safe_name}"


class S3BlobStorage:
    """Blob storage backed by boto3."""

    def __init__(
        self,
        *,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        bucket: str | None = None,
        region: str | None = None,
        public_url: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.bucket = bucket or settings.storage_bucket
        self.public_url = (public_url or settings.storage_public_url).rstrip("/")
        timeout = (
            timeout_seconds if timeout_seconds is not None else settings.storage_timeout_seconds
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or settings.storage_endpoint_url,
            aws_access_key_id=access_key or settings.storage_access_key,
            aws_secret_access_key=secret_key or settings.storage_secret_key,
            region_name=region or settings.storage_region,
            config=Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2},
                s3={"addressing_style": "path"},
            ),
        )

    def url_for(self, key: str) -> str:
        return f"{self.public_url}/{self.bucket}/{key}"

    def key_for(self, url: str) -> str:
        prefix = f"{self.public_url}/{self.bucket}/"
        if url.startswith(prefix):
            return url[len(prefix):]
        return url.rsplit(f"/{self.bucket}/", 1)[-1]

    async def upload(self, data: bytes, filename: str, mime_type: str, folder: str) -> str:
        key = build_object_key(folder, filename)
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=mime_type,
            )
        except (BotoCoreError, ClientError) as exc:
            await logger.aerror("blob_upload_failed", key=key, error=str(exc))
            raise BlobStorageError(f"Failed to upload {filename}") from exc

        await logger.ainfo("blob_uploaded", key=key, size=len(data))
        return self.url_for(key)

    async def delete(self, url: str) -> None:
        key = self.key_for(url)
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise BlobStorageError(f"Failed to delete {key}") from exc
        await logger.ainfo("blob_deleted", key=key)
