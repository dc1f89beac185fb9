from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from app.core.errors import DependencyFailure
from app.services.repository import Repository, RepositoryError

logger = logging.getLogger(__name__)

POLICY_FIELDS = ["id", "registrations_allowed", "cpi_change_allowed"]


@dataclass(frozen=True, slots=True)
class GlobalPolicy:
    registrations_allowed: bool = True
    cpi_change_allowed: bool = False

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


async def read_global_policy(repository: Repository) -> GlobalPolicy:
    try:
        row = await repository.find_one("setting", None, POLICY_FIELDS)
    except RepositoryError as exc:
        raise DependencyFailure(
            "Failed to get global settings",
            code="policy_unavailable",
        ) from exc
    if row is None:
        raise DependencyFailure("Failed to get global settings", code="policy_unavailable")
    return GlobalPolicy(
        registrations_allowed=bool(row.get("registrations_allowed")),
        cpi_change_allowed=bool(row.get("cpi_change_allowed")),
    )


async def load_global_policy(repository: Repository) -> GlobalPolicy | None:
    """Like ``read_global_policy`` but degrades to ``None`` for callers that can."""
    try:
        return await read_global_policy(repository)
    except DependencyFailure:
        logger.warning("global settings unavailable; grade fields stay locked for this request")
        return None


async def update_global_policy(repository: Repository, changes: dict[str, Any]) -> GlobalPolicy:
    patch = {name: bool(value) for name, value in changes.items() if name in POLICY_FIELDS[1:] and value is not None}
    row = await repository.find_one("setting", None, ["id"])
    if row is None:
        seeded = {**GlobalPolicy().to_dict(), **patch}
        await repository.create("setting", seeded)
        logger.info("created global settings row: %s", seeded)
    elif patch:
        await repository.update("setting", row["id"], patch)
        logger.info("updated global settings: %s", patch)
    return await read_global_policy(repository)
