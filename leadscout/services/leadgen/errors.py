"""Shared error classes for the lead generation pipeline and job manager."""

from __future__ import annotations


class LeadGenerationError(RuntimeError):
    """Base exception raised by the lead generation core."""

    def __init__(self, message: str, code: str = "LEAD_GENERATION_ERROR") -> None:
        super().__init__(message)
        self.code = code


class JobValidationError(LeadGenerationError):
    """Raised synchronously when a submitted target profile is unusable."""

    def __init__(self, message: str, code: str = "400_INVALID_PROFILE") -> None:
        super().__init__(message, code=code)


class JobNotFoundError(LeadGenerationError):
    """Raised when a job id is unknown or has expired."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found", code="404_JOB_NOT_FOUND")
        self.job_id = job_id


class InvalidJobTransitionError(LeadGenerationError):
    """Raised when a status update would move a job backwards or out of a terminal state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="409_INVALID_TRANSITION")


class ProviderError(LeadGenerationError):
    """Raised by provider adapters; always absorbed by the orchestrator."""

    def __init__(self, message: str, code: str = "502_PROVIDER_ERROR", *, provider: str = "unknown") -> None:
        super().__init__(message, code=code)
        self.provider = provider


class PipelineExhaustionError(LeadGenerationError):
    """Raised when every discovery query failed so there is nothing to rank."""

    kind = "pipeline_exhausted"

    def __init__(self, message: str = "All discovery queries failed") -> None:
        super().__init__(message, code="PIPELINE_EXHAUSTED")


class JobCancelledError(LeadGenerationError):
    """Raised when an external cancellation request is observed."""

    kind = "cancelled"

    def __init__(self, message: str = "Job cancelled by request") -> None:
        super().__init__(message, code="JOB_CANCELLED")


class JobStoreError(LeadGenerationError):
    """Raised when the job store cannot read or write a record."""

    def __init__(self, message: str, code: str = "E_JOB_STORE") -> None:
        super().__init__(message, code=code)
