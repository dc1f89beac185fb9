from __future__ import annotations

from collections.abc import Collection
from enum import Enum
from typing import Any

from app.core.errors import ClientInputError


class WorkflowState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PlacedStatus(str, Enum):
    UNPLACED = "unplaced"
    PLACED_TIER1 = "placed_tier1"
    PLACED_TIER2 = "placed_tier2"
    PLACED_TIER3 = "placed_tier3"


PLACED_TIERS = (PlacedStatus.PLACED_TIER1, PlacedStatus.PLACED_TIER2, PlacedStatus.PLACED_TIER3)


def locks_profile(state: str | None) -> bool:
    """Whether pre-approval fields are frozen for a profile in ``state``."""
    return state != WorkflowState.PENDING.value


def parse_placed_status(value: str | None) -> PlacedStatus:
    try:
        return PlacedStatus(value)
    except ValueError as exc:
        raise ClientInputError("Invalid placed_status", code="invalid_placed_status") from exc


def prepare_submission(
    data: Any,
    *,
    username: str,
    user_id: str,
    columns: Collection[str],
) -> dict[str, Any]:
    """Build the row for a new profile from the permitted ``columns`` of ``data``.

    The caller can never self-approve or self-mark as placed: workflow and
    placement columns are forced regardless of the payload.
    """
    if not isinstance(data, dict):
        raise ClientInputError("Invalid parameters/Failed to parse", code="invalid_payload")

    if data.get("roll") != username:
        raise ClientInputError("Username does not match with roll number", code="identity_mismatch")

    row = {name: value for name, value in data.items() if name in columns}
    row["roll"] = username
    row["workflow_state"] = WorkflowState.PENDING.value
    row["placed_status"] = PlacedStatus.UNPLACED.value
    row["placed_status_updated"] = None
    row["user_relation"] = user_id
    return row
