"""Query predicates shared by the repositories.

Field references are plain column names (``roll``) or a single relation hop
(``job.category``). ``Eq`` is null-safe, so ``Not(Eq("classification", "none"))``
matches rows whose classification is missing, in SQL and in memory alike.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True, slots=True)
class Not:
    clause: "Clause"


@dataclass(frozen=True, slots=True, init=False)
class Or:
    clauses: tuple["Clause", ...]

    def __init__(self, *clauses: "Clause") -> None:
        object.__setattr__(self, "clauses", tuple(clauses))


@dataclass(frozen=True, slots=True, init=False)
class And:
    clauses: tuple["Clause", ...]

    def __init__(self, *clauses: "Clause") -> None:
        object.__setattr__(self, "clauses", tuple(clauses))


Clause = Union[Eq, Not, Or, And]


def split_field(field: str) -> tuple[str | None, str]:
    relation, separator, column = field.partition(".")
    if not separator:
        return None, relation
    return relation, column


def referenced_fields(clause: Clause | None) -> list[str]:
    if clause is None:
        return []
    if isinstance(clause, Eq):
        return [clause.field]
    if isinstance(clause, Not):
        return referenced_fields(clause.clause)
    fields: list[str] = []
    for child in clause.clauses:
        fields.extend(referenced_fields(child))
    return fields


def resolve_field(row: Mapping[str, Any], field: str) -> Any:
    relation, column = split_field(field)
    if relation is None:
        return row.get(column)
    related = row.get(relation)
    if not isinstance(related, Mapping):
        return None
    return related.get(column)


def matches(clause: Clause | None, row: Mapping[str, Any]) -> bool:
    """Evaluate ``clause`` against a row whose relations are nested dicts."""
    if clause is None:
        return True
    if isinstance(clause, Eq):
        return resolve_field(row, clause.field) == clause.value
    if isinstance(clause, Not):
        return not matches(clause.clause, row)
    if isinstance(clause, Or):
        return any(matches(child, row) for child in clause.clauses)
    if isinstance(clause, And):
        return all(matches(child, row) for child in clause.clauses)
    raise TypeError(f"unsupported clause: {clause!r}")
