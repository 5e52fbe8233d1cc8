"""API endpoints for submitting and polling lead generation jobs."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, status

from leadscout.services.leadgen.errors import (
    InvalidJobTransitionError,
    JobNotFoundError,
    JobValidationError,
    LeadGenerationError,
)
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.runner import JobRunner, get_job_manager, get_job_runner

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/jobs", status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    background_tasks: BackgroundTasks,
    payload: Any = Body(...),
    manager: JobManager = Depends(get_job_manager),
    runner: JobRunner = Depends(get_job_runner),
) -> dict[str, str]:
    """Queue a lead generation job for a target profile."""
    try:
        job = manager.submit(payload)
    except JobValidationError as exc:
        logger.info("leadgen.api.invalid_profile", extra={"code": exc.code, "error": str(exc)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    background_tasks.add_task(runner.run, job.id)
    return {"jobId": job.id, "status": job.status.value}


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    """Poll a job's status, result, or error."""
    try:
        return manager.get_status(job_id).as_status_payload()
    except LeadGenerationError as exc:
        raise HTTPException(status_code=_map_error_code(exc), detail=str(exc)) from exc


@router.post("/jobs/{job_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    """Request cancellation; the pipeline stops at its next batch boundary."""
    try:
        return manager.request_cancel(job_id).as_status_payload()
    except LeadGenerationError as exc:
        raise HTTPException(status_code=_map_error_code(exc), detail=str(exc)) from exc


def _map_error_code(exc: LeadGenerationError) -> int:
    if isinstance(exc, JobNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidJobTransitionError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, JobValidationError):
        return status.HTTP_400_BAD_REQUEST
    logger.error("leadgen.api.error", extra={"code": exc.code, "error": str(exc)})
    return status.HTTP_500_INTERNAL_SERVER_ERROR
