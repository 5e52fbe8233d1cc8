"""Background execution of submitted jobs and the singletons used by API routes."""

from __future__ import annotations

import logging

from leadscout.config import settings
from leadscout.services.leadgen.catalog import load_configured_catalog
from leadscout.services.leadgen.errors import LeadGenerationError
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.orchestrator import LeadGenerationPipeline, build_pipeline
from leadscout.services.leadgen.repositories import build_job_store

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs one pipeline per submitted job as a background task."""

    def __init__(self, job_manager: JobManager, pipeline: LeadGenerationPipeline) -> None:
        self._jobs = job_manager
        self._pipeline = pipeline

    async def run(self, job_id: str) -> None:
        try:
            await self._pipeline.run_job(self._jobs, job_id)
        except LeadGenerationError as exc:
            # The job could not be started, or its failure could not be written to the store.
            logger.error("leadgen.runner.unrecorded", extra={"job_id": job_id, "code": exc.code, "error": str(exc)})


_JOB_MANAGER: JobManager | None = None
_JOB_RUNNER: JobRunner | None = None


def get_job_manager() -> JobManager:
    """Singleton accessor used by API routes."""
    global _JOB_MANAGER  # noqa: PLW0603
    if _JOB_MANAGER is None:
        catalog = load_configured_catalog(settings.signal_catalog_path)
        _JOB_MANAGER = JobManager(build_job_store(), catalog=catalog)
    return _JOB_MANAGER


def get_job_runner() -> JobRunner:
    """Singleton accessor used by API routes."""
    global _JOB_RUNNER  # noqa: PLW0603
    if _JOB_RUNNER is None:
        _JOB_RUNNER = JobRunner(get_job_manager(), build_pipeline(settings))
    return _JOB_RUNNER
