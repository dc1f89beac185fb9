from __future__ import annotations

import asyncio
from typing import Any

from app.services.media import merge_media
from app.services.repository import RepositoryUnavailableError
from app.services.storage import Attachment
from conftest import FakeStorage, RecordingRepository, seed_student


def _pdf(name: str = "my-cv.pdf") -> Attachment:
    return Attachment(filename=name, content_type="application/pdf", data=b"%PDF-1.4")


def test_resume_is_renamed_and_detached_before_store() -> None:
    calls: list[tuple[Any, ...]] = []
    repository = RecordingRepository(calls)
    student = seed_student(repository, "R", resume="https://files.example.edu/old.pdf")
    storage = FakeStorage(calls)

    merged = asyncio.run(
        merge_media("R", student["id"], {"resume": _pdf()}, repository=repository, storage=storage)
    )

    assert merged == {"resume": "https://files.example.edu/R.pdf"}
    assert calls == [
        ("update", "student", student["id"], {"resume": None}),
        ("store", "R.pdf"),
    ]


def test_other_media_fields_keep_their_filename() -> None:
    repository = RecordingRepository()
    student = seed_student(repository, "19cs11")
    storage = FakeStorage()

    merged = asyncio.run(
        merge_media(
            "19cs11",
            student["id"],
            {"profile_pic": Attachment(filename="me.png", content_type="image/png", data=b"png")},
            repository=repository,
            storage=storage,
        )
    )

    assert merged == {"profile_pic": "https://files.example.edu/me.png"}
    assert storage.calls == [("store", "me.png")]


def test_failed_or_empty_uploads_are_omitted_without_failing_the_batch() -> None:
    repository = RecordingRepository()
    student = seed_student(repository, "19cs11", panCard="https://files.example.edu/pan-old.pdf")
    storage = FakeStorage(failing={"pan.pdf"}, empty={"aadhar.pdf"})

    merged = asyncio.run(
        merge_media(
            "19cs11",
            student["id"],
            {
                "panCard": _pdf("pan.pdf"),
                "aadharCard": _pdf("aadhar.pdf"),
                "tenthCertificate": _pdf("tenth.pdf"),
            },
            repository=repository,
            storage=storage,
        )
    )

    assert merged == {"tenthCertificate": "https://files.example.edu/tenth.pdf"}
    # The old reference was detached before the failed upload, leaving the field empty.
    assert repository.tables["student"][student["id"]]["panCard"] is None


def test_fields_outside_media_allow_list_are_ignored() -> None:
    repository = RecordingRepository()
    student = seed_student(repository, "19cs11")
    storage = FakeStorage()

    merged = asyncio.run(
        merge_media("19cs11", student["id"], {"avatar": _pdf()}, repository=repository, storage=storage)
    )

    assert merged == {}
    assert storage.calls == []
    assert repository.count("update", "student") == 0


def test_detach_failure_skips_storing_that_field() -> None:
    class BrokenRepository(RecordingRepository):
        async def update(self, entity, key, patch):
            raise RepositoryUnavailableError("database unavailable")

    repository = BrokenRepository()
    student = seed_student(repository, "19cs11")
    storage = FakeStorage()

    merged = asyncio.run(
        merge_media("19cs11", student["id"], {"resume": _pdf()}, repository=repository, storage=storage)
    )

    assert merged == {}
    assert storage.calls == []
