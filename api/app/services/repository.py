from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_settings
from app.services.filters import And, Clause, Eq, Not, Or, split_field

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when a write violates a uniqueness constraint."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


@dataclass(frozen=True, slots=True)
class RelationSpec:
    table: str
    foreign_key: str


@dataclass(frozen=True, slots=True)
class EntitySpec:
    table: str
    relations: dict[str, RelationSpec] = field(default_factory=dict)


ENTITIES: dict[str, EntitySpec] = {
    "student": EntitySpec(table="students"),
    "job": EntitySpec(table="jobs"),
    "application": EntitySpec(
        table="applications",
        relations={
            "student": RelationSpec(table="students", foreign_key="student_id"),
            "job": RelationSpec(table="jobs", foreign_key="job_id"),
        },
    ),
    "setting": EntitySpec(table="settings"),
}

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off", ""}
INTEGER_TYPES = {"integer", "bigint", "smallint"}
NUMERIC_TYPES = {"numeric", "double precision", "real"}


class Repository(Protocol):
    """Storage contract used by the profile, policy and status services."""

    async def find_one(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> dict[str, Any] | None: ...

    async def find_many(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> list[dict[str, Any]]: ...

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]: ...

    async def update(self, entity: str, key: int, patch: dict[str, Any]) -> dict[str, Any]: ...

    async def close(self) -> None: ...


def entity_spec(entity: str) -> EntitySpec:
    spec = ENTITIES.get(entity)
    if spec is None:
        raise RepositoryValidationError(f"unknown entity: {entity}")
    return spec


def check_field(entity: str, field_name: str) -> tuple[str | None, str]:
    relation, column = split_field(field_name)
    if not IDENTIFIER_RE.match(column):
        raise RepositoryValidationError(f"invalid field name: {field_name}")
    if relation is not None and relation not in entity_spec(entity).relations:
        raise RepositoryValidationError(f"unknown relation for {entity}: {relation}")
    return relation, column


def nest_row(row: dict[str, Any]) -> dict[str, Any]:
    """Turn ``{"job.category": ...}`` keys into ``{"job": {"category": ...}}``."""
    nested: dict[str, Any] = {}
    for key, value in row.items():
        relation, column = split_field(key)
        if relation is None:
            nested[column] = value
        else:
            nested.setdefault(relation, {})[column] = value
    return nested



def _parse_number(text: str) -> float:
    # float() also takes "1_000"; form input with digit separators is rejected.
    if "_" in text:
        raise ValueError(text)
    number = float(text)
    if not math.isfinite(number):
        raise ValueError(text)
    return number

class SqlQuery:
    """Compiles filter clauses into a parameterized PostgreSQL select."""

    def __init__(self, entity: str) -> None:
        self.entity = entity
        self.spec = entity_spec(entity)
        self.params: list[Any] = []
        self._joins: dict[str, str] = {}

    def column(self, field_name: str) -> str:
        relation, column = check_field(self.entity, field_name)
        if relation is None:
            return f't."{column}"'
        alias = f"r_{relation}"
        if relation not in self._joins:
            rel = self.spec.relations[relation]
            self._joins[relation] = f'left join {rel.table} as {alias} on {alias}.id = t."{rel.foreign_key}"'
        return f'{alias}."{column}"'

    def where(self, clause: Clause) -> str:
        if isinstance(clause, Eq):
            self.params.append(clause.value)
            return f"{self.column(clause.field)} is not distinct from ${len(self.params)}"
        if isinstance(clause, Not):
            return f"not ({self.where(clause.clause)})"
        if isinstance(clause, (Or, And)):
            if not clause.clauses:
                return "false" if isinstance(clause, Or) else "true"
            joiner = " or " if isinstance(clause, Or) else " and "
            return "(" + joiner.join(self.where(child) for child in clause.clauses) + ")"
        raise RepositoryValidationError(f"unsupported clause: {clause!r}")

    def select(
        self,
        where: Clause | None,
        select: list[str] | None,
        *,
        limit: int | None = None,
    ) -> str:
        if select:
            columns = ", ".join(f'{self.column(name)} as "{name}"' for name in select)
        else:
            columns = "t.*"
        condition = self.where(where) if where is not None else "true"
        joins = " ".join(self._joins.values())
        sql = f"select {columns} from {self.spec.table} as t {joins} where {condition} order by t.id"
        if limit is not None:
            sql += f" limit {int(limit)}"
        return sql


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None
        self._column_types: dict[str, dict[str, str]] = {}

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find_one(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> dict[str, Any] | None:
        query = SqlQuery(entity)
        sql = query.select(where, select, limit=1)
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(sql, *query.params)
        except pg_exc.PostgresError as exc:
            raise self._translate_error(exc) from exc
        return nest_row(dict(row)) if row else None

    async def find_many(
        self, entity: str, where: Clause | None = None, select: list[str] | None = None
    ) -> list[dict[str, Any]]:
        query = SqlQuery(entity)
        sql = query.select(where, select)
        pool = await self._get_pool()
        try:
            rows = await pool.fetch(sql, *query.params)
        except pg_exc.PostgresError as exc:
            raise self._translate_error(exc) from exc
        return [nest_row(dict(row)) for row in rows]

    async def create(self, entity: str, data: dict[str, Any]) -> dict[str, Any]:
        spec = entity_spec(entity)
        values = await self._coerce_values(spec.table, data)
        if not values:
            raise RepositoryValidationError(f"no columns to insert for {entity}")

        columns = ", ".join(f'"{name}"' for name in values)
        placeholders = ", ".join(f"${index}" for index in range(1, len(values) + 1))
        sql = f"insert into {spec.table} ({columns}) values ({placeholders}) returning *"
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(sql, *values.values())
        except pg_exc.PostgresError as exc:
            raise self._translate_error(exc) from exc
        return dict(row)

    async def update(self, entity: str, key: int, patch: dict[str, Any]) -> dict[str, Any]:
        spec = entity_spec(entity)
        if not patch:
            row = await self.find_one(entity, Eq("id", key))
            if row is None:
                raise RepositoryNotFoundError(f"{entity} not found")
            return row

        values = await self._coerce_values(spec.table, patch)
        assignments = ", ".join(f'"{name}" = ${index}' for index, name in enumerate(values, start=1))
        sql = f"update {spec.table} set {assignments} where id = ${len(values) + 1} returning *"
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(sql, *values.values(), key)
        except pg_exc.PostgresError as exc:
            raise self._translate_error(exc) from exc
        if row is None:
            raise RepositoryNotFoundError(f"{entity} not found")
        return dict(row)

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("PP_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _get_column_types(self, table: str) -> dict[str, str]:
        cached = self._column_types.get(table)
        if cached is not None:
            return cached

        pool = await self._get_pool()
        try:
            rows = await pool.fetch(
                """
                select column_name, data_type
                from information_schema.columns
                where table_schema = current_schema()
                  and table_name = $1
                """,
                table,
            )
        except pg_exc.PostgresError as exc:
            raise self._translate_error(exc) from exc
        column_types = {row["column_name"]: row["data_type"] for row in rows}
        self._column_types[table] = column_types
        return column_types

    async def _coerce_values(self, table: str, data: dict[str, Any]) -> dict[str, Any]:
        column_types = await self._get_column_types(table)
        values: dict[str, Any] = {}
        for name, value in data.items():
            if not IDENTIFIER_RE.match(name):
                raise RepositoryValidationError(f"invalid field name: {name}")
            data_type = column_types.get(name)
            if data_type is None:
                raise RepositoryValidationError(f"unknown column for {table}: {name}")
            values[name] = self._coerce_param(value, data_type, column=name)
        return values

    @staticmethod
    def _coerce_param(value: Any, data_type: str, *, column: str) -> Any:
        # Form submissions deliver every value as text; asyncpg wants native types.
        if value is None or not isinstance(value, str):
            if data_type in INTEGER_TYPES and isinstance(value, float):
                if not value.is_integer():
                    raise RepositoryValidationError(f"invalid value for {column}: {value!r}")
                return int(value)
            if data_type in NUMERIC_TYPES and isinstance(value, (int, float)) and not isinstance(value, bool):
                return Decimal(str(value))
            return value

        text = value.strip()
        try:
            if data_type in NUMERIC_TYPES:
                if not text:
                    return None
                _parse_number(text)
                return Decimal(text)
            if data_type in INTEGER_TYPES:
                if not text:
                    return None
                number = _parse_number(text)
                if not number.is_integer():
                    raise ValueError(value)
                return int(number)
            if data_type == "boolean":
                lowered = text.lower()
                if lowered in TRUE_STRINGS:
                    return True
                if lowered in FALSE_STRINGS:
                    return False
                raise ValueError(value)
            if data_type == "date":
                return date.fromisoformat(text) if text else None
            if data_type.startswith("timestamp"):
                return datetime.fromisoformat(text) if text else None
        except ValueError as exc:
            raise RepositoryValidationError(f"invalid value for {column}: {value!r}") from exc
        return value

    @staticmethod
    def _translate_error(exc: pg_exc.PostgresError) -> RepositoryError:
        if isinstance(exc, pg_exc.UniqueViolationError):
            return RepositoryConflictError("record already exists")
        if isinstance(exc, (pg_exc.ForeignKeyViolationError, pg_exc.NotNullViolationError, pg_exc.CheckViolationError)):
            return RepositoryValidationError(str(exc))
        if isinstance(exc, (pg_exc.UndefinedColumnError, pg_exc.DataError)):
            return RepositoryValidationError(str(exc))
        logger.error("unexpected database error: %s", exc)
        return RepositoryUnavailableError("database error")


@lru_cache
def get_repository() -> Repository:
    settings = get_settings()
    if settings.repository_backend == "memory":
        from app.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )
