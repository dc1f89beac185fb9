from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from app.core.errors import ClientInputError, DependencyFailure, NotFoundError
from app.services.profiles import SUBMISSION_COLUMNS, modify_profile, set_placed_status, submit_for_approval
from app.services.workflow import PlacedStatus, locks_profile, parse_placed_status, prepare_submission
from conftest import FakeStorage, RecordingRepository, seed_student


def test_submission_forces_workflow_and_placement_columns() -> None:
    row = prepare_submission(
        {
            "roll": "19cs11",
            "name": "Asha",
            "workflow_state": "approved",
            "placed_status": "placed_tier1",
            "placed_status_updated": "2024-01-01T00:00:00Z",
            "user_relation": "someone-else",
            "resume": "https://evil.example/cv.pdf",
            "unknown_field": "x",
        },
        username="19cs11",
        user_id="user-1",
        columns=SUBMISSION_COLUMNS,
    )

    assert row == {
        "roll": "19cs11",
        "name": "Asha",
        "workflow_state": "pending",
        "placed_status": "unplaced",
        "placed_status_updated": None,
        "user_relation": "user-1",
    }


@pytest.mark.parametrize("data", [{"roll": "19cs12"}, {"name": "no roll"}])
def test_submission_rejects_foreign_roll(data: dict[str, str]) -> None:
    with pytest.raises(ClientInputError) as exc_info:
        prepare_submission(data, username="19cs11", user_id="user-1", columns=SUBMISSION_COLUMNS)
    assert exc_info.value.code == "identity_mismatch"


def test_submission_requires_object_payload() -> None:
    with pytest.raises(ClientInputError) as exc_info:
        prepare_submission(["roll"], username="19cs11", user_id="user-1", columns=SUBMISSION_COLUMNS)
    assert exc_info.value.code == "invalid_payload"


def test_parse_placed_status() -> None:
    assert parse_placed_status("placed_tier2") is PlacedStatus.PLACED_TIER2
    with pytest.raises(ClientInputError) as exc_info:
        parse_placed_status("placed_tier4")
    assert exc_info.value.code == "invalid_placed_status"


def test_only_pending_profiles_are_unlocked() -> None:
    assert not locks_profile("pending")
    assert locks_profile("approved")
    assert locks_profile("rejected")
    assert locks_profile(None)


def test_submit_respects_closed_registrations() -> None:
    repository = RecordingRepository()
    repository.seed("setting", registrations_allowed=False, cpi_change_allowed=False)

    with pytest.raises(ClientInputError) as exc_info:
        asyncio.run(
            submit_for_approval(
                repository, username="19cs11", user_id="user-1", body={"data": {"roll": "19cs11"}}
            )
        )

    assert exc_info.value.code == "registrations_closed"
    assert repository.tables["student"] == {}


def test_submit_without_settings_row_is_a_dependency_failure() -> None:
    repository = RecordingRepository()

    with pytest.raises(DependencyFailure) as exc_info:
        asyncio.run(
            submit_for_approval(
                repository, username="19cs11", user_id="user-1", body={"data": {"roll": "19cs11"}}
            )
        )

    assert exc_info.value.code == "policy_unavailable"


def test_modify_drops_changed_roll_but_keeps_other_fields(repository: RecordingRepository) -> None:
    student = seed_student(repository, "19cs11")

    updated = asyncio.run(
        modify_profile(
            repository,
            FakeStorage(),
            username="19cs11",
            body={"roll": "19cs99", "name": "Renamed"},
        )
    )

    assert updated is not None
    assert updated["roll"] == "19cs11"
    assert updated["name"] == "Renamed"
    assert repository.tables["student"][student["id"]]["roll"] == "19cs11"


def test_modify_unknown_student_is_not_found(repository: RecordingRepository) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(modify_profile(repository, FakeStorage(), username="19cs11", body={"name": "x"}))


def test_grades_locked_when_settings_missing() -> None:
    repository = RecordingRepository()
    seed_student(repository, "19cs11", workflow_state="approved", cpi=7.5)

    result = asyncio.run(
        modify_profile(repository, FakeStorage(), username="19cs11", body={"cpi": 9.1})
    )

    assert result is None
    assert repository.count("update", "student") == 0


def test_set_placed_status_writes_status_and_timestamp_together(repository: RecordingRepository) -> None:
    student = seed_student(repository, "19cs11")
    now = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)

    result = asyncio.run(
        set_placed_status(repository, roll="19cs11", placed_status="placed_tier1", now=now)
    )

    assert result is PlacedStatus.PLACED_TIER1
    updates = [call for call in repository.calls if call[0] == "update"]
    assert updates == [
        ("update", "student", student["id"], {"placed_status": "placed_tier1", "placed_status_updated": now})
    ]


@pytest.mark.parametrize(("roll", "placed_status"), [(None, "placed_tier1"), ("19cs11", None), ("", "")])
def test_set_placed_status_requires_both_parameters(
    repository: RecordingRepository, roll: str | None, placed_status: str | None
) -> None:
    with pytest.raises(ClientInputError) as exc_info:
        asyncio.run(set_placed_status(repository, roll=roll, placed_status=placed_status))
    assert exc_info.value.code == "missing_parameters"


def test_set_placed_status_unknown_student(repository: RecordingRepository) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(set_placed_status(repository, roll="19cs11", placed_status="unplaced"))
