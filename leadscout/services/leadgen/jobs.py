"""Job lifecycle: submission, polling, progress, completion, and retention."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import ValidationError

from leadscout.config import settings
from leadscout.models.catalog import CatalogValidationError, EvidenceSignalCatalog
from leadscout.models.job import ALLOWED_TRANSITIONS, Job, JobError, JobStatus
from leadscout.models.lead import LeadGenerationResult
from leadscout.models.profile import TargetProfile
from leadscout.observability.metrics import metrics
from leadscout.services.leadgen.errors import JobNotFoundError, JobValidationError
from leadscout.services.leadgen.repositories import JobStore

logger = logging.getLogger(__name__)

_FROM_RUNNING = frozenset({JobStatus.RUNNING})
_NON_TERMINAL = frozenset({JobStatus.QUEUED, JobStatus.RUNNING})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _allowed_sources(target: JobStatus) -> frozenset[JobStatus]:
    return frozenset(source for source, targets in ALLOWED_TRANSITIONS.items() if target in targets)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "profile"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


class JobManager:
    """Owns every write to job records.

    Status only moves forward (queued -> running -> completed | failed) and each
    write is one atomic store update, so pollers in other processes never see a
    half-written record. Jobs older than the retention window read as missing.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        catalog: EvidenceSignalCatalog | None = None,
        retention: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._retention = retention or timedelta(hours=settings.job_retention_hours)
        self._clock = clock or _utcnow

    @property
    def store(self) -> JobStore:
        return self._store

    def submit(self, profile: TargetProfile | Mapping[str, Any]) -> Job:
        """Validate the profile and record a queued job."""
        target = self._validate(profile)
        now = self._clock()
        job = Job(id=str(uuid.uuid4()), input=target, created_at=now, updated_at=now)
        created = self._store.create(job)
        metrics.increment("jobs.submitted")
        logger.info(
            "leadgen.job.submitted",
            extra={"job_id": created.id, "industries": target.industries, "size_band": target.size_band.label()},
        )
        return created

    def get_status(self, job_id: str) -> Job:
        job = self._store.get(job_id)
        if job is None or self._is_expired(job):
            raise JobNotFoundError(job_id)
        return job

    def mark_running(self, job_id: str) -> Job:
        return self._transition(
            job_id,
            JobStatus.RUNNING,
            {"status_message": "Starting lead generation"},
            allowed_from=frozenset({JobStatus.QUEUED}),
        )

    def update_progress(self, job_id: str, message: str) -> Job:
        return self._transition(job_id, JobStatus.RUNNING, {"status_message": message}, allowed_from=_FROM_RUNNING)

    def complete(self, job_id: str, result: LeadGenerationResult) -> Job:
        count = len(result.leads)
        return self._transition(
            job_id,
            JobStatus.COMPLETED,
            {"result": result, "status_message": f"Found {count} lead{'s' if count != 1 else ''}"},
            allowed_from=_FROM_RUNNING,
        )

    def fail(self, job_id: str, *, kind: str, code: str, message: str) -> Job:
        error = JobError(kind=kind, code=code, message=message)
        logger.warning("leadgen.job.failed", extra={"job_id": job_id, "kind": kind, "code": code})
        return self._transition(
            job_id,
            JobStatus.FAILED,
            {"error": error, "result": None, "status_message": message},
            allowed_from=_FROM_RUNNING,
        )

    def request_cancel(self, job_id: str) -> Job:
        """Flag a non-terminal job for cancellation; the running pipeline observes it."""
        self.get_status(job_id)
        job = self._store.update(
            job_id,
            {"cancel_requested": True, "updated_at": self._clock()},
            allowed_from=_NON_TERMINAL,
        )
        metrics.increment("jobs.cancel_requested")
        logger.info("leadgen.job.cancel_requested", extra={"job_id": job_id, "status": job.status.value})
        return job

    def is_cancel_requested(self, job_id: str) -> bool:
        job = self._store.get(job_id)
        return bool(job and job.cancel_requested)

    def purge_expired(self) -> int:
        cutoff = self._clock() - self._retention
        removed = self._store.delete_created_before(cutoff)
        metrics.increment("jobs.purged", value=removed)
        logger.info("leadgen.job.purged", extra={"removed": removed, "cutoff": cutoff.isoformat()})
        return removed

    def _transition(
        self,
        job_id: str,
        target: JobStatus,
        changes: Mapping[str, Any],
        *,
        allowed_from: frozenset[JobStatus],
    ) -> Job:
        # Intersect with the state machine so a caller cannot widen what it accepts.
        sources = allowed_from & _allowed_sources(target)
        return self._store.update(
            job_id,
            {**changes, "status": target, "updated_at": self._clock()},
            allowed_from=sources,
        )

    def _validate(self, profile: TargetProfile | Mapping[str, Any]) -> TargetProfile:
        if isinstance(profile, TargetProfile):
            target = profile
        elif isinstance(profile, Mapping):
            try:
                target = TargetProfile.model_validate(dict(profile))
            except ValidationError as exc:
                raise JobValidationError(_format_validation_error(exc)) from exc
        else:
            raise JobValidationError("Target profile must be a JSON object.")

        if self._catalog is not None and target.signal_patterns:
            try:
                self._catalog.select(target.signal_patterns)
            except CatalogValidationError as exc:
                raise JobValidationError(str(exc)) from exc
        return target

    def _is_expired(self, job: Job) -> bool:
        return job.created_at < self._clock() - self._retention
