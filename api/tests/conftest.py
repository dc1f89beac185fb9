from __future__ import annotations

import os
from typing import Any

import pytest

os.environ.setdefault("PP_OTEL_ENABLED", "false")
os.environ.setdefault("PP_REPOSITORY_BACKEND", "memory")

from app.services.storage import Attachment, StoredMedia, StorageError  # noqa: E402
from app.services.store import InMemoryRepository  # noqa: E402


class RecordingRepository(InMemoryRepository):
    """In-memory repository that records every call in ``calls``."""

    def __init__(self, calls: list[tuple[Any, ...]] | None = None) -> None:
        super().__init__()
        self.calls: list[tuple[Any, ...]] = calls if calls is not None else []

    async def find_one(self, entity, where=None, select=None):
        self.calls.append(("find_one", entity))
        return await super().find_one(entity, where, select)

    async def find_many(self, entity, where=None, select=None):
        self.calls.append(("find_many", entity))
        return await super().find_many(entity, where, select)

    async def update(self, entity, key, patch):
        self.calls.append(("update", entity, key, dict(patch)))
        return await super().update(entity, key, patch)

    def count(self, kind: str, entity: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind and call[1] == entity)


class FakeStorage:
    def __init__(
        self,
        calls: list[tuple[Any, ...]] | None = None,
        *,
        failing: set[str] | None = None,
        empty: set[str] | None = None,
    ) -> None:
        self.calls: list[tuple[Any, ...]] = calls if calls is not None else []
        self.failing = failing or set()
        self.empty = empty or set()

    async def store(self, attachment: Attachment) -> list[StoredMedia]:
        self.calls.append(("store", attachment.filename))
        if attachment.filename in self.failing:
            raise StorageError("upload failed")
        if attachment.filename in self.empty:
            return []
        return [
            StoredMedia(
                name=attachment.filename,
                reference=f"https://files.example.edu/{attachment.filename}",
                size=len(attachment.data),
                content_type=attachment.content_type,
            )
        ]


def seed_student(repository: InMemoryRepository, roll: str, **fields: Any) -> dict[str, Any]:
    row = {
        "roll": roll,
        "name": f"Student {roll}",
        "workflow_state": "pending",
        "placed_status": "unplaced",
        "placed_status_updated": None,
        "internship_status_2": False,
        "internship_status_6": False,
        "fte_status": False,
        **fields,
    }
    return repository.seed("student", **row)


def seed_selection(
    repository: InMemoryRepository,
    student: dict[str, Any],
    *,
    category: str,
    classification: str,
    status: str = "selected",
) -> dict[str, Any]:
    job = repository.seed("job", company="Example Corp", category=category, classification=classification)
    return repository.seed("application", student_id=student["id"], job_id=job["id"], status=status)


@pytest.fixture
def repository() -> RecordingRepository:
    repo = RecordingRepository()
    repo.seed("setting", registrations_allowed=True, cpi_change_allowed=False)
    return repo
