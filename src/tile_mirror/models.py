"""Pydantic models for job and pipeline results."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class JobOutcome(str, Enum):
    """Terminal state of a job."""

    DONE = "done"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


class DownloadRecord(BaseModel):
    """One tile file written to disk."""

    job: str = Field(..., description="Name of the job that downloaded the file")
    url: str = Field(..., description="Absolute remote URL")
    path: str = Field(..., description="Local file path")
    bytes_written: int = Field(..., ge=0)
    downloaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the transfer finished (UTC)",
    )


class JobReport(BaseModel):
    """Summary of one job run."""

    name: str
    outcome: JobOutcome = JobOutcome.DONE
    subpages_found: int = Field(default=0, ge=0)
    subpages_failed: int = Field(default=0, ge=0)
    files_downloaded: int = Field(default=0, ge=0)
    files_failed: int = Field(default=0, ge=0)
    bytes_written: int = Field(default=0, ge=0)
    duration_seconds: float = 0.0
    errors: list[str] = Field(default_factory=list)
    downloads: list[DownloadRecord] = Field(default_factory=list)


class PipelineReport(BaseModel):
    """Summary of a full run across all jobs."""

    jobs: list[JobReport] = Field(default_factory=list)
    interrupted: bool = Field(default=False, description="An interrupt signal was received")
    duration_seconds: float = 0.0

    @property
    def files_downloaded(self) -> int:
        return sum(job.files_downloaded for job in self.jobs)

    @property
    def bytes_written(self) -> int:
        return sum(job.bytes_written for job in self.jobs)

    @property
    def errors(self) -> list[str]:
        return [f"{job.name}: {err}" for job in self.jobs for err in job.errors]

    @property
    def succeeded(self) -> bool:
        return all(job.outcome != JobOutcome.ABORTED for job in self.jobs)
