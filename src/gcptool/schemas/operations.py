from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Outcome(str, Enum):
    DISPATCHED = "dispatched"
    ZONE_NOT_FOUND = "zone_not_found"
    PROVIDER_ERROR = "provider_error"


class PlannedAction(BaseModel):
    """A line of the confirmation summary shown before a batch runs."""

    instance: str
    zone: str | None = None
    external_ip: str | None = None


class StopResult(BaseModel):
    project_id: str
    instance: str
    zone: str | None = None
    outcome: Outcome
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.DISPATCHED


class StartResult(StopResult):
    external_ip: str | None = Field(
        default=None, description="Address observed after the settle delay"
    )


class SnapshotResult(BaseModel):
    project_id: str
    disk: str
    zone: str
    snapshot_name: str
    created_at: datetime
