"""Lead generation job state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from leadscout.models.lead import LeadGenerationResult
from leadscout.models.profile import TargetProfile


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.RUNNING, JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class JobError(BaseModel):
    """Failure detail recorded on a failed job."""

    kind: str
    code: str
    message: str


class Job(BaseModel):
    """Snapshot of a job record as stored."""

    id: str
    status: JobStatus = JobStatus.QUEUED
    status_message: str = "Queued"
    input: TargetProfile
    result: LeadGenerationResult | None = None
    error: JobError | None = None
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def as_status_payload(self) -> dict[str, Any]:
        """Render the external polling payload."""
        payload: dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "statusMessage": self.status_message,
            "cancelRequested": self.cancel_requested,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }
        if self.result is not None:
            payload["result"] = self.result.model_dump(mode="json")
        if self.error is not None:
            payload["error"] = self.error.model_dump(mode="json")
        return payload
