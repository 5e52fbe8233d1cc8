from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from leadscout.config import settings
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.runner import get_job_manager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(manager: JobManager = Depends(get_job_manager)):
    """Readiness check endpoint that includes job store connectivity."""
    if not manager.store.ping():
        raise HTTPException(status_code=503, detail="Job store is not available")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "job_store": "database" if settings.database_url else "memory",
        "search_providers": settings.search_providers_configured,
    }
