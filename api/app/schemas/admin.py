from pydantic import BaseModel


class GlobalPolicyOut(BaseModel):
    registrations_allowed: bool
    cpi_change_allowed: bool


class GlobalPolicyPatchRequest(BaseModel):
    registrations_allowed: bool | None = None
    cpi_change_allowed: bool | None = None
