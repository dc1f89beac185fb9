from typing import Any


class ProfileError(Exception):
    """Base error for profile and status operations."""

    code = "profile_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ClientInputError(ProfileError):
    """Raised for malformed or disallowed caller input."""

    code = "invalid_payload"


class NotFoundError(ProfileError):
    """Raised when no student exists for the given identity."""

    code = "profile_not_found"


class DependencyFailure(ProfileError):
    """Raised when a collaborator needed to answer the request is unusable."""

    code = "dependency_failure"
