"""SQLModel mapping for stored lead generation jobs."""
# ruff: noqa: UP017

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlmodel import Field, SQLModel

from leadscout.models.job import Job, JobError, JobStatus
from leadscout.models.lead import LeadGenerationResult
from leadscout.models.profile import TargetProfile


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


JSON_BACKING_TYPE = sa.JSON().with_variant(JSONB(astext_type=sa.Text()), "postgresql")


class UtcNow(expression.FunctionElement):
    """Dialect-aware server default that pins timestamps to UTC."""

    type = DateTime(timezone=True)
    inherit_cache = True


@compiles(UtcNow)
def _utc_now_default(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "CURRENT_TIMESTAMP"


@compiles(UtcNow, "postgresql")
def _utc_now_default_postgres(
    element, compiler, **kwargs
) -> str:  # pragma: no cover - trivial sql generator
    return "timezone('utc', now())"


class LeadJobRecord(SQLModel, table=True):
    """ORM row backing one Job."""

    __tablename__ = "lead_generation_jobs"
    __table_args__ = (
        sa.Index("idx_lead_gen_jobs_created", "created_at"),
        sa.Index("idx_lead_gen_jobs_status", "status"),
    )

    id: str = Field(sa_column=Column(String(length=64), primary_key=True, nullable=False))
    status: str = Field(sa_column=Column(String(length=16), nullable=False, default=JobStatus.QUEUED.value))
    status_message: str = Field(sa_column=Column(Text, nullable=False, default="Queued"))
    input: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )
    result: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True))
    error: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON_BACKING_TYPE, nullable=True))
    cancel_requested: bool = Field(
        default=False,
        sa_column=Column(Boolean, nullable=False, server_default=sa.false()),
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )

    @classmethod
    def from_job(cls, job: Job) -> LeadJobRecord:
        """Convert an in-memory Job into a persistence row."""
        return cls(
            id=job.id,
            status=job.status.value,
            status_message=job.status_message,
            input=job.input.model_dump(mode="json"),
            result=job.result.model_dump(mode="json") if job.result is not None else None,
            error=job.error.model_dump(mode="json") if job.error is not None else None,
            cancel_requested=job.cancel_requested,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

    def to_job(self) -> Job:
        """Hydrate a Job domain model from the stored JSON payload."""
        return Job(
            id=self.id,
            status=JobStatus(self.status),
            status_message=self.status_message,
            input=TargetProfile.model_validate(self.input),
            result=LeadGenerationResult.model_validate(self.result) if self.result is not None else None,
            error=JobError.model_validate(self.error) if self.error is not None else None,
            cancel_requested=self.cancel_requested,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
        )


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
