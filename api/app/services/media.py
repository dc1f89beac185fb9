from __future__ import annotations

import dataclasses
import logging
from typing import Any

from opentelemetry import trace

from app.services.repository import Repository, RepositoryError
from app.services.storage import Attachment, MediaStorage, StorageError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# Needs updating with every media column added to the students table.
MEDIA_FIELDS = (
    "resume",
    "profile_pic",
    "casteCertificate",
    "tenthCertificate",
    "twelthCertificate",
    "aadharCard",
    "panCard",
    "drivingLicence",
    "disabilityCertificate",
    "allSemMarksheet",
)
PRIMARY_DOCUMENT_FIELD = "resume"


def select_attachments(files: dict[str, Any]) -> dict[str, Attachment]:
    return {name: attachment for name, attachment in files.items() if name in MEDIA_FIELDS}


async def merge_media(
    identity: str,
    student_id: int,
    attachments: dict[str, Attachment],
    *,
    repository: Repository,
    storage: MediaStorage,
) -> dict[str, Any]:
    """Replace media fields and return the references to merge into the update.

    Each field is detached before its replacement is stored, so a failed upload
    leaves the field empty rather than pointing at two files. Failures are
    isolated per field: the field is left out of the result and the rest proceed.
    """
    merged: dict[str, Any] = {}
    for field_name, attachment in attachments.items():
        if field_name not in MEDIA_FIELDS:
            continue

        with tracer.start_as_current_span("media.merge_field") as span:
            span.set_attribute("media.field", field_name)
            try:
                await repository.update("student", student_id, {field_name: None})
            except RepositoryError:
                logger.exception("failed to detach media field=%s roll=%s", field_name, identity)
                continue

            if field_name == PRIMARY_DOCUMENT_FIELD:
                attachment = dataclasses.replace(attachment, filename=f"{identity}.pdf")

            try:
                stored = await storage.store(attachment)
            except StorageError:
                logger.exception("failed to store media field=%s roll=%s", field_name, identity)
                continue

            if not stored:
                logger.warning("storage kept no file for field=%s roll=%s", field_name, identity)
                continue

            merged[field_name] = stored[0].reference
            span.set_attribute("media.stored", True)

    return merged
