from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    STUDENT = "student"
    ADMIN = "admin"


ROLE_SCOPES: dict[str, set[str]] = {
    Role.STUDENT.value: {"profile:read", "profile:write", "status:read"},
    Role.ADMIN.value: {"profile:read", "profile:write", "status:read", "placement:write", "settings:write"},
}


@dataclass(slots=True)
class Principal:
    subject: str
    scopes: set[str]
    role: str = Role.STUDENT.value
    username: str | None = None

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")
