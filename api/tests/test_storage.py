from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.services.media import merge_media
from app.services.storage import Attachment, StorageError, StoredMedia, SupabaseMediaStorage
from conftest import RecordingRepository, seed_student


def _attachment() -> Attachment:
    return Attachment(filename="19cs11.pdf", content_type="application/pdf", data=b"%PDF-1.4")


def _store(handler, *, service_role_key: str | None = "service-key") -> list[StoredMedia]:
    async def run() -> list[StoredMedia]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            storage = SupabaseMediaStorage(
                supabase_url="https://example.supabase.co/",
                service_role_key=service_role_key,
                bucket="student-media",
                timeout_seconds=5.0,
                client=client,
            )
            return await storage.store(_attachment())

    return asyncio.run(run())


def test_store_uploads_to_bucket_and_returns_public_reference() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        key = request.url.path.removeprefix("/storage/v1/object/")
        return httpx.Response(200, json={"Key": key}, request=request)

    stored = _store(handler)

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path.startswith("/storage/v1/object/student-media/")
    assert request.url.path.endswith("_19cs11.pdf")
    assert request.headers["authorization"] == "Bearer service-key"
    assert request.headers["x-upsert"] == "true"
    assert request.content == b"%PDF-1.4"

    assert len(stored) == 1
    assert stored[0].name == "19cs11.pdf"
    assert stored[0].size == 8
    object_name = request.url.path.rsplit("/", maxsplit=1)[1]
    assert stored[0].reference == (
        f"https://example.supabase.co/storage/v1/object/public/student-media/{object_name}"
    )


def test_store_without_object_key_returns_nothing() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps({}).encode(), request=request)

    assert _store(handler) == []


def test_store_rejected_upload_raises() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(413, json={"error": "Payload too large"}, request=request)

    with pytest.raises(StorageError):
        _store(handler)


def test_store_requires_configuration() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        return httpx.Response(200, json={"Key": "x"}, request=request)

    with pytest.raises(StorageError):
        _store(handler, service_role_key=None)


def test_store_non_json_reply_raises() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>proxy</html>", request=request)

    with pytest.raises(StorageError):
        _store(handler)


def test_merge_media_skips_field_with_non_json_reply_and_keeps_going() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("_19cs11.pdf"):
            return httpx.Response(200, content=b"<html>proxy</html>", request=request)
        key = request.url.path.removeprefix("/storage/v1/object/")
        return httpx.Response(200, json={"Key": key}, request=request)

    repository = RecordingRepository()
    student = seed_student(repository, "19cs11", resume="https://files.example.edu/old.pdf")

    async def run() -> dict[str, str]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            storage = SupabaseMediaStorage(
                supabase_url="https://example.supabase.co",
                service_role_key="service-key",
                bucket="student-media",
                timeout_seconds=5.0,
                client=client,
            )
            return await merge_media(
                "19cs11",
                student["id"],
                {
                    "resume": _attachment(),
                    "tenthCertificate": Attachment(
                        filename="tenth.pdf", content_type="application/pdf", data=b"%PDF-1.4"
                    ),
                },
                repository=repository,
                storage=storage,
            )

    merged = asyncio.run(run())

    assert list(merged) == ["tenthCertificate"]
    assert merged["tenthCertificate"].endswith("_tenth.pdf")
    assert repository.tables["student"][student["id"]]["resume"] is None
