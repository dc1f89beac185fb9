from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

WorkflowStateName = Literal["pending", "approved", "rejected"]
PlacedStatusName = Literal["unplaced", "placed_tier1", "placed_tier2", "placed_tier3"]


class StudentOut(BaseModel):
    # Profile attributes vary by deployment; unlisted columns pass through.
    model_config = ConfigDict(extra="allow")

    id: int
    roll: str
    name: str | None = None
    workflow_state: WorkflowStateName = "pending"
    placed_status: PlacedStatusName = "unplaced"
    placed_status_updated: datetime | None = None
    internship_status_2: bool = False
    internship_status_6: bool = False
    fte_status: bool = False


class PlacementReportOut(BaseModel):
    placed_tier1: list[str]
    placed_tier2: list[str]
    placed_tier3: list[str]
    placed_offcampus: list[str]


class PlacedStatusOut(BaseModel):
    placed: bool | PlacementReportOut


class InternshipStatusOut(BaseModel):
    internship: bool | list[str]


class FteStatusOut(BaseModel):
    fte: bool | list[str]


class PlacedStatusSetOut(BaseModel):
    placed_status: PlacedStatusName


class ProfilePicRequest(BaseModel):
    email: str | None = None


class ProfilePicOut(BaseModel):
    profile_pic_url: str | None = None
