"""Decides which profile attributes a student may change.

Only fields listed in ``FIELD_GROUPS`` can ever be modified; anything else in
a payload, including unknown keys, is dropped without error so clients may
send a superset of the profile safely.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import TYPE_CHECKING, Any

from app.services.workflow import locks_profile

if TYPE_CHECKING:
    from app.services.policy import GlobalPolicy


class FieldGroup(str, Enum):
    BEFORE_APPROVAL = "before_approval"
    ANYTIME = "anytime"
    GRADES = "grades"


class FieldAccess(str, Enum):
    DENY = "deny"
    ALLOW_ALWAYS = "allow_always"
    ALLOW_IF_PENDING = "allow_if_pending"
    ALLOW_IF_NUMERIC = "allow_if_numeric"


FIELDS_BEFORE_APPROVAL = (
    "name",
    "roll",
    "gender",
    "date_of_birth",
    "category",
    "rank",
    "course",
    "address",
    "X_marks",
    "XII_marks",
    "ug_college",
    "ug_cpi",
)

# Should include at least every optional profile field.
FIELDS_ANYTIME = (
    "resume_link",
    "other_achievements",
    "projects",
    "transcript_link",
    "cover_letter_link",
    "profile_pic",
)

GRADE_FIELDS = tuple(f"spi_{semester}" for semester in range(1, 11)) + ("cpi",)

FIELD_GROUPS: dict[str, FieldGroup] = {
    **{name: FieldGroup.BEFORE_APPROVAL for name in FIELDS_BEFORE_APPROVAL},
    **{name: FieldGroup.ANYTIME for name in FIELDS_ANYTIME},
    **{name: FieldGroup.GRADES for name in GRADE_FIELDS},
}

# Columns a student may send on first submission, besides the editable ones.
SUBMISSION_FIELDS = frozenset(FIELD_GROUPS) | {
    "department",
    "program",
    "registered_for",
    "institute_email_id",
    "personal_email_id",
    "mobile_number_1",
    "mobile_number_2",
    "internship_status_2",
    "internship_status_6",
    "fte_status",
}


def classify(field_name: str, workflow_state: str | None, policy: GlobalPolicy | None) -> FieldAccess:
    group = FIELD_GROUPS.get(field_name)
    if group is FieldGroup.ANYTIME:
        return FieldAccess.ALLOW_ALWAYS
    if group is FieldGroup.BEFORE_APPROVAL:
        return FieldAccess.DENY if locks_profile(workflow_state) else FieldAccess.ALLOW_IF_PENDING
    if group is FieldGroup.GRADES:
        # An unreadable policy keeps grades locked.
        if policy is not None and policy.cpi_change_allowed:
            return FieldAccess.ALLOW_IF_NUMERIC
        return FieldAccess.DENY
    return FieldAccess.DENY


def filter_payload(
    payload: dict[str, Any],
    workflow_state: str | None,
    policy: GlobalPolicy | None,
) -> dict[str, Any]:
    allowed: dict[str, Any] = {}
    for field_name, value in payload.items():
        access = classify(field_name, workflow_state, policy)
        if access is FieldAccess.DENY:
            continue
        if access is FieldAccess.ALLOW_IF_NUMERIC and not is_numeric(value):
            continue
        allowed[field_name] = value
    return allowed


def is_numeric(value: Any) -> bool:
    """True for non-zero finite numbers and for non-blank numeric strings.

    Strings with ``_`` digit separators are not numeric even though ``float`` reads them.
    """
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return bool(value) and math.isfinite(value)
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return False
        try:
            return math.isfinite(float(text))
        except ValueError:
            return False
    return False
