"""Job schemas: the persisted job record and its API views."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from clipstack.schemas.media import VideoMetadata


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Layout(str, Enum):
    STACK_VERTICAL = "stack_vertical"
    STACK_HORIZONTAL = "stack_horizontal"


class Platform(str, Enum):
    TIKTOK = "tiktok"


class JobResult(BaseModel):
    video_url: str
    thumbnail_url: str
    metadata: VideoMetadata
    subtitle_text: str = ""
    video_base64: str | None = None
    thumbnail_base64: str | None = None


class Job(BaseModel):
    """Durable job record; one JSON document per job on disk."""

    job_id: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    layout: Layout
    platform: Platform = Platform.TIKTOK
    input_a_path: str
    input_b_path: str
    created_at: datetime
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    result: JobResult | None = None
    error: str | None = None
    failed_stage: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)


class SubmitJobResponse(BaseModel):
    job_id: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: JobStatus
    progress: int
    result: JobResult | None = None
    error: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobStatusResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            progress=job.progress,
            result=job.result if job.status is JobStatus.COMPLETED else None,
            error=job.error if job.status is JobStatus.FAILED else None,
        )
