from __future__ import annotations

import copy
from typing import Any

from app.services.filters import Clause, matches, referenced_fields, resolve_field
from app.services.repository import (
    ENTITIES,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
    check_field,
    entity_spec,
    nest_row,
)

TABLE_ENTITIES = {spec.table: name for name, spec in ENTITIES.items()}
UNIQUE_COLUMNS: dict[str, tuple[str, ...]] = {
    "student": ("roll",),
}


class InMemoryRepository:
    """Dict-backed repository for local runs and tests.

    Rows are kept per entity keyed by ``id``; relations are resolved on read from
    the foreign keys declared in ``ENTITIES`` so filters behave as in PostgreSQL.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[int, dict[str, Any]]] = {
            "student": {},
            "job": {},
            "application": {},
            "setting": {},
        }
        self._next_id = 1

    async def close(self) -> None:
        return None

    def seed(self, entity: str, **data: Any) -> dict[str, Any]:
        """Insert a row synchronously; used for fixtures and local bootstrap."""
        entity_spec(entity)
        row = dict(data)
        row.setdefault("id", self._allocate_id())
        self._next_id = max(self._next_id, row["id"] + 1)
        self._check_unique(entity, row, current_id=None)
        self.tables[entity][row["id"]] = row
        return copy.deepcopy(row)

    async def find_one(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> dict[str, Any] | None:
        rows = self._select(entity, where, select)
        return rows[0] if rows else None

    async def find_many(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> list[dict[str, Any]]:
        return self._select(entity, where, select)

    def _select(self, entity: str, where: Clause | None, select: list[str] | None) -> list[dict[str, Any]]:
        entity_spec(entity)
        for name in [*(select or []), *referenced_fields(where)]:
            check_field(entity, name)

        results: list[dict[str, Any]] = []
        for row_id in sorted(self.tables[entity]):
            hydrated = self._hydrate(entity, self.tables[entity][row_id])
            if not matches(where, hydrated):
                continue
            results.append(self._project(hydrated, select, set(entity_spec(entity).relations)))
        return results

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        entity_spec(entity)
        if not data:
            raise RepositoryValidationError(f"no columns to insert for {entity}")
        row = {key: value for key, value in data.items() if key != "id"}
        row["id"] = self._allocate_id()
        self._check_unique(entity, row, current_id=None)
        self.tables[entity][row["id"]] = row
        return copy.deepcopy(row)

    async def update(self, entity: str, key: int, patch: dict[str, Any]) -> dict[str, Any]:
        entity_spec(entity)
        row = self.tables[entity].get(key)
        if row is None:
            raise RepositoryNotFoundError(f"{entity} not found")
        candidate = {**row, **{name: value for name, value in patch.items() if name != "id"}}
        self._check_unique(entity, candidate, current_id=key)
        self.tables[entity][key] = candidate
        return copy.deepcopy(candidate)

    def _allocate_id(self) -> int:
        row_id = self._next_id
        self._next_id += 1
        return row_id

    def _check_unique(self, entity: str, row: dict[str, Any], *, current_id: int | None) -> None:
        for column in UNIQUE_COLUMNS.get(entity, ()):
            value = row.get(column)
            if value is None:
                continue
            for other_id, other in self.tables[entity].items():
                if other_id != current_id and other.get(column) == value:
                    raise RepositoryConflictError("record already exists")

    def _hydrate(self, entity: str, row: dict[str, Any]) -> dict[str, Any]:
        hydrated = dict(row)
        for relation, spec in entity_spec(entity).relations.items():
            related = self.tables[TABLE_ENTITIES[spec.table]].get(row.get(spec.foreign_key))
            hydrated[relation] = dict(related) if related is not None else None
        return hydrated

    @staticmethod
    def _project(row: dict[str, Any], select: list[str] | None, relations: set[str]) -> dict[str, Any]:
        if not select:
            return copy.deepcopy({key: value for key, value in row.items() if key not in relations})
        flat: dict[str, Any] = {}
        for name in select:
            flat[name] = resolve_field(row, name)
        return copy.deepcopy(nest_row(flat))

