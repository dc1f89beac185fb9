from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Protocol
from urllib.parse import quote
from uuid import uuid4

import httpx

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an attachment could not be stored."""


@dataclass(slots=True)
class Attachment:
    filename: str
    content_type: str | None
    data: bytes


@dataclass(slots=True)
class StoredMedia:
    name: str
    reference: str
    size: int
    content_type: str | None = None


class MediaStorage(Protocol):
    async def store(self, attachment: Attachment) -> list[StoredMedia]: ...


class SupabaseMediaStorage:
    """Uploads attachments to a Supabase Storage bucket over its REST API."""

    def __init__(
        self,
        *,
        supabase_url: str | None,
        service_role_key: str | None,
        bucket: str,
        timeout_seconds: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/") if supabase_url else None
        self.service_role_key = service_role_key
        self.bucket = bucket
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def store(self, attachment: Attachment) -> list[StoredMedia]:
        if not self.supabase_url or not self.service_role_key:
            raise StorageError("Supabase storage is not configured")

        object_path = f"{uuid4().hex[:12]}_{attachment.filename}"
        url = f"{self.supabase_url}/storage/v1/object/{self.bucket}/{quote(object_path)}"
        headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
            "Content-Type": attachment.content_type or "application/octet-stream",
            "x-upsert": "true",
        }

        try:
            if self._client is not None:
                response = await self._client.post(url, content=attachment.data, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, content=attachment.data, headers=headers)
        except httpx.HTTPError as exc:  # pragma: no cover - network dependent
            raise StorageError("Supabase storage unavailable") from exc

        if response.status_code not in {200, 201}:
            raise StorageError(f"Supabase storage rejected upload: status={response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise StorageError("Supabase storage returned a non-JSON reply") from exc

        if not isinstance(payload, dict) or not payload.get("Key"):
            logger.warning("storage returned no object key for file=%s", attachment.filename)
            return []

        return [
            StoredMedia(
                name=attachment.filename,
                reference=f"{self.supabase_url}/storage/v1/object/public/{self.bucket}/{quote(object_path)}",
                size=len(attachment.data),
                content_type=attachment.content_type,
            )
        ]


@lru_cache
def get_storage() -> MediaStorage:
    settings = get_settings()
    return SupabaseMediaStorage(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        bucket=settings.storage_bucket,
        timeout_seconds=settings.storage_timeout_seconds,
    )
