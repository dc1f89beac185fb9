"""Placement and offer status, merged from selections and profile flags.

Two sources answer "does this student have an offer": on-campus selections
(``applications`` with ``status = selected`` against a qualifying job) and the
off-campus flag stored on the student. A positive from either source wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opentelemetry import trace

from app.core.errors import NotFoundError
from app.services.filters import And, Clause, Eq, Not, Or
from app.services.repository import Repository
from app.services.workflow import PLACED_TIERS

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

SELECTED = "selected"
UNTIERED = "none"
OFFCAMPUS_BUCKET = "placed_offcampus"


class Dimension(str, Enum):
    PLACEMENT = "placement"
    INTERN_2 = "intern_2"
    INTERN_6 = "intern_6"
    FTE = "fte"


@dataclass(frozen=True, slots=True)
class StatusDimension:
    name: Dimension
    response_key: str
    flag_column: str
    job_filter: Clause
    offcampus_filter: Clause
    offcampus_positive: Callable[[Any], bool]
    tiered: bool = False


def _untiered_or_labeled(category: str) -> Clause:
    # Accepts jobs explicitly marked "none" as well as any job in the category.
    return Or(
        And(Eq("job.category", category), Eq("job.classification", UNTIERED)),
        Eq("job.category", category),
    )


def _is_true(value: Any) -> bool:
    return value is True


def _is_placed(value: Any) -> bool:
    return value in {tier.value for tier in PLACED_TIERS}


DIMENSIONS: dict[Dimension, StatusDimension] = {
    Dimension.PLACEMENT: StatusDimension(
        name=Dimension.PLACEMENT,
        response_key="placed",
        flag_column="placed_status",
        job_filter=And(Eq("job.category", "FTE"), Not(Eq("job.classification", UNTIERED))),
        offcampus_filter=Or(*(Eq("placed_status", tier.value) for tier in PLACED_TIERS)),
        offcampus_positive=_is_placed,
        tiered=True,
    ),
    Dimension.INTERN_2: StatusDimension(
        name=Dimension.INTERN_2,
        response_key="internship",
        flag_column="internship_status_2",
        job_filter=_untiered_or_labeled("Internship (2 Month)"),
        offcampus_filter=Eq("internship_status_2", True),
        offcampus_positive=_is_true,
    ),
    Dimension.INTERN_6: StatusDimension(
        name=Dimension.INTERN_6,
        response_key="internship",
        flag_column="internship_status_6",
        job_filter=_untiered_or_labeled("Internship (6 Month)"),
        offcampus_filter=Eq("internship_status_6", True),
        offcampus_positive=_is_true,
    ),
    Dimension.FTE: StatusDimension(
        name=Dimension.FTE,
        response_key="fte",
        flag_column="fte_status",
        job_filter=_untiered_or_labeled("FTE"),
        offcampus_filter=Eq("fte_status", True),
        offcampus_positive=_is_true,
    ),
}


def selection_filter(dimension: StatusDimension, student_id: int | None = None) -> Clause:
    clauses: list[Clause] = [Eq("status", SELECTED), dimension.job_filter]
    if student_id is not None:
        clauses.insert(0, Eq("student_id", student_id))
    return And(*clauses)


async def lookup_status(repository: Repository, dimension: Dimension, roll: str) -> bool:
    """Status for one student; the stored flag short-circuits the selection query.

    Placement answers only whether the student is placed, never which tier: an
    off-campus ``placed_status`` and an on-campus selection both yield ``True``.
    The tier is available from the report or from the profile itself.
    """
    spec = DIMENSIONS[dimension]
    student = await repository.find_one("student", Eq("roll", roll), ["id", spec.flag_column])
    if student is None:
        raise NotFoundError("Student not found")

    if spec.offcampus_positive(student.get(spec.flag_column)):
        return True

    selected = await repository.find_one("application", selection_filter(spec, student["id"]), ["id"])
    return selected is not None


async def build_status_report(repository: Repository, dimension: Dimension) -> list[str] | dict[str, list[str]]:
    """Rolls with a positive status, from both sources, deduplicated in first-seen order."""
    spec = DIMENSIONS[dimension]
    with tracer.start_as_current_span("status.report") as span:
        span.set_attribute("status.dimension", spec.name.value)
        applications = await repository.find_many(
            "application",
            selection_filter(spec),
            ["student.roll", "job.classification"],
        )
        flagged = await repository.find_many("student", spec.offcampus_filter, ["roll"])

    oncampus = [
        (app["student"]["roll"], (app.get("job") or {}).get("classification"))
        for app in applications
        if (app.get("student") or {}).get("roll")
    ]
    offcampus = [row["roll"] for row in flagged]

    if not spec.tiered:
        return _unique([roll for roll, _ in oncampus] + offcampus)

    buckets: dict[str, list[str]] = {tier.value: [] for tier in PLACED_TIERS}
    for roll, classification in oncampus:
        bucket = f"placed_{classification.lower()}" if isinstance(classification, str) else None
        if bucket not in buckets:
            logger.warning("skipping selection with unknown classification=%r roll=%s", classification, roll)
            continue
        buckets[bucket].append(roll)

    report = {name: _unique(rolls) for name, rolls in buckets.items()}
    # Off-campus placements carry no reliable tier; they are reported apart.
    report[OFFCAMPUS_BUCKET] = _unique(offcampus)
    return report


def _unique(rolls: list[str]) -> list[str]:
    return list(dict.fromkeys(rolls))
