from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# Cache rows are plain comma-joined fields with no quoting; names, zones and
# IPs never contain commas. Shell completion reads these files directly.
ROW_SEPARATOR = ","


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    display_name: str = ""
    state: str = Field(
        default="ACTIVE",
        description="ACTIVE, DELETE_REQUESTED, DELETE_IN_PROGRESS, ...",
    )

    def to_row(self) -> str:
        # Display name last: it is the only field that may hold spaces.
        return ROW_SEPARATOR.join([self.project_id, self.state, self.display_name])

    @classmethod
    def from_row(cls, row: str) -> "Project":
        parts = row.split(ROW_SEPARATOR, 2)
        # Bare project id rows come from older cache files.
        state = parts[1] if len(parts) > 1 and parts[1] else "ACTIVE"
        display_name = parts[2] if len(parts) > 2 else ""
        return cls(project_id=parts[0], state=state, display_name=display_name)


class InstanceRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    zone: str
    status: str = Field(description="RUNNING, TERMINATED, STOPPING, STAGING, ...")
    external_ip: str | None = None
    internal_ip: str | None = None
    machine_type: str = Field(default="", description="e.g., n2-standard-4")

    def to_row(self) -> str:
        return ROW_SEPARATOR.join(
            [
                self.name,
                self.zone,
                self.status,
                self.external_ip or "",
                self.internal_ip or "",
                self.machine_type,
            ]
        )

    @classmethod
    def from_row(cls, project_id: str, row: str) -> "InstanceRecord":
        """Parses a 6-field row; 5-field rows (no machine type) are accepted."""
        parts = row.split(ROW_SEPARATOR)
        if len(parts) < 5:
            raise ValueError(f"Malformed instance row: {row!r}")
        return cls(
            project_id=project_id,
            name=parts[0],
            zone=parts[1],
            status=parts[2],
            external_ip=parts[3] or None,
            internal_ip=parts[4] or None,
            machine_type=parts[5] if len(parts) > 5 else "",
        )


class DiskRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    zone: str
    size_gb: int = 0
    type: str = Field(default="", description="e.g., pd-balanced, pd-ssd")
    status: str = ""
    users: list[str] = Field(default_factory=list)


class SnapshotRecord(BaseModel):
    project_id: str
    name: str
    disk_size_gb: int
    status: str
    creation_timestamp: datetime | None = None
    source_disk: str = ""
