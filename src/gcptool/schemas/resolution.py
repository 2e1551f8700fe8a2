from pydantic import BaseModel, ConfigDict


class ResolvedLocation(BaseModel):
    """Where an instance lives. Only the resolver hands these out."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    instance: str
    zone: str


class Candidate(BaseModel):
    """One entry of a disambiguation list."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    zone: str
    status: str
    external_ip: str | None = None
    internal_ip: str | None = None
