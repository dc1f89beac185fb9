from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from app.core.errors import ClientInputError, NotFoundError
from app.services.field_policy import SUBMISSION_FIELDS, filter_payload
from app.services.filters import Eq
from app.services.media import MEDIA_FIELDS, merge_media, select_attachments
from app.services.policy import load_global_policy, read_global_policy
from app.services.repository import Repository
from app.services.storage import Attachment, MediaStorage
from app.services.workflow import PlacedStatus, parse_placed_status, prepare_submission

logger = logging.getLogger(__name__)

# Media columns are only ever set through uploads on the modify path.
SUBMISSION_COLUMNS = SUBMISSION_FIELDS - frozenset(MEDIA_FIELDS)


async def get_own_profile(repository: Repository, username: str) -> dict[str, Any]:
    row = await repository.find_one("student", Eq("roll", username))
    if row is None:
        raise NotFoundError("Student not found")
    return row


async def submit_for_approval(
    repository: Repository,
    *,
    username: str,
    user_id: str,
    body: Any,
) -> dict[str, Any]:
    policy = await read_global_policy(repository)
    if not policy.registrations_allowed:
        raise ClientInputError(
            "Registrations are not allowed. Please contact Administrator",
            code="registrations_closed",
        )

    data = body.get("data") if isinstance(body, dict) else None
    if not data:
        raise ClientInputError("Invalid parameters/Failed to parse", code="invalid_payload")

    row = prepare_submission(data, username=username, user_id=user_id, columns=SUBMISSION_COLUMNS)
    created = await repository.create("student", row)
    logger.info("profile submitted for approval roll=%s", username)
    return created


async def modify_profile(
    repository: Repository,
    storage: MediaStorage,
    *,
    username: str,
    body: Any,
    files: dict[str, Attachment] | None = None,
) -> dict[str, Any] | None:
    """Apply the permitted subset of ``body`` and ``files`` to the caller's profile.

    Returns ``None`` when nothing in the request is modifiable.
    """
    if not isinstance(body, dict):
        raise ClientInputError("Invalid parameters", code="invalid_payload")

    student = await repository.find_one("student", Eq("roll", username), ["id", "workflow_state"])
    if student is None:
        raise NotFoundError("Failed to fetch student data")

    policy = await load_global_policy(repository)
    fields_to_modify = filter_payload(body, student.get("workflow_state"), policy)
    # The roll is the identity key; it can only ever be re-sent unchanged.
    if "roll" in fields_to_modify and fields_to_modify["roll"] != username:
        del fields_to_modify["roll"]

    attachments = select_attachments(files or {})
    if not fields_to_modify and not attachments:
        logger.info("no modifiable fields in request roll=%s", username)
        return None

    uploaded = await merge_media(
        username,
        student["id"],
        attachments,
        repository=repository,
        storage=storage,
    )
    patch = {**fields_to_modify, **uploaded}
    updated = await repository.update("student", student["id"], patch)
    logger.info("profile modified roll=%s fields=%s", username, sorted(patch))
    return updated


async def set_placed_status(
    repository: Repository,
    *,
    roll: str | None,
    placed_status: str | None,
    now: datetime | None = None,
) -> PlacedStatus:
    """Admin-only: writes the status and its timestamp in a single update."""
    if not roll or not placed_status:
        raise ClientInputError("Roll or placed_status not passed", code="missing_parameters")

    status = parse_placed_status(placed_status)
    student = await repository.find_one("student", Eq("roll", roll), ["id"])
    if student is None:
        raise NotFoundError("Student not found")

    await repository.update(
        "student",
        student["id"],
        {
            "placed_status": status.value,
            "placed_status_updated": now or datetime.now(timezone.utc),
        },
    )
    logger.info("placed status set roll=%s placed_status=%s", roll, status.value)
    return status


async def get_profile_pic_url(repository: Repository, email: str | None) -> str | None:
    if not email:
        raise ClientInputError("Email not passed", code="missing_parameters")
    student = await repository.find_one("student", Eq("institute_email_id", email), ["profile_pic"])
    if student is None:
        raise NotFoundError("Student not found")
    return student.get("profile_pic")
