"""Status snapshots reported by the remote job's status endpoint."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StatusSnapshot(BaseModel):
    """
    The server's report for one job at one poll instant.

    Accepts the wire field names (``requestId``, ``status``, ``prUrl``, ...)
    as well as the Python attribute names. Snapshots are frozen; the next
    poll supersedes a snapshot rather than mutating it.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    job_id: str = Field(..., alias="requestId", description="Job identifier")
    raw_status: str = Field(..., alias="status", description="Status token reported by the job")
    message: str = Field(default="", description="Human readable progress message")
    step: Optional[int] = Field(default=None, description="Server-side step counter")
    timestamp_seconds: int = Field(default=0, alias="timestamp", description="Report time (epoch seconds)")
    repository: str = Field(default="", description="Repository the job operates on")
    artifact_url: Optional[str] = Field(default=None, alias="prUrl", description="Pull request URL once created")
    diagnostic: Optional[str] = Field(default=None, alias="errorDetails", description="Failure or rejection details")

    @field_validator("message", "repository", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("timestamp_seconds", mode="before")
    @classmethod
    def _whole_seconds(cls, value: Any) -> Any:
        if value is None:
            return 0
        if isinstance(value, float):
            return int(value)
        return value

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire field names."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StatusSnapshot":
        """Parse a status endpoint response body."""
        return cls.model_validate(data)
