"""Persistence backends for lead generation jobs."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from leadscout.config import settings
from leadscout.models.job import Job, JobStatus
from leadscout.models.job_record import LeadJobRecord
from leadscout.observability.metrics import metrics
from leadscout.services.leadgen.errors import InvalidJobTransitionError, JobNotFoundError, JobStoreError

logger = logging.getLogger(__name__)

_JSON_FIELDS = {"input", "result", "error"}


class JobStore(Protocol):
    """Persistence contract for job records; every update is a single atomic write."""

    def create(self, job: Job) -> Job:
        ...

    def get(self, job_id: str) -> Job | None:
        ...

    def update(
        self,
        job_id: str,
        changes: Mapping[str, Any],
        *,
        allowed_from: frozenset[JobStatus] | None = None,
    ) -> Job:
        ...

    def delete_created_before(self, cutoff: datetime) -> int:
        ...

    def ping(self) -> bool:
        ...


def _check_transition(job: Job, allowed_from: frozenset[JobStatus] | None) -> None:
    if allowed_from is not None and job.status not in allowed_from:
        raise InvalidJobTransitionError(
            f"Job {job.id} is {job.status.value}; expected one of "
            f"{sorted(status.value for status in allowed_from)}"
        )


class InMemoryJobStore(JobStore):
    """Thread-safe store used for local development, the CLI, and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = Lock()

    def create(self, job: Job) -> Job:
        with self._lock:
            if job.id in self._jobs:
                raise JobStoreError(f"Job {job.id} already exists", code="409_JOB_EXISTS")
            self._jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(
        self,
        job_id: str,
        changes: Mapping[str, Any],
        *,
        allowed_from: frozenset[JobStatus] | None = None,
    ) -> Job:
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            _check_transition(current, allowed_from)
            # Job snapshots are replaced, never mutated, so readers never see half an update.
            updated = current.model_copy(update=dict(changes))
            self._jobs[job_id] = updated
            return updated

    def delete_created_before(self, cutoff: datetime) -> int:
        with self._lock:
            expired = [job_id for job_id, job in self._jobs.items() if job.created_at < cutoff]
            for job_id in expired:
                del self._jobs[job_id]
        return len(expired)

    def ping(self) -> bool:
        return True


class SQLJobStore(JobStore):
    """SQLModel-backed store so pollers in other processes observe progress."""

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int | None = None,
        auto_create_schema: bool = False,
    ) -> None:
        if not database_url:
            raise ValueError("DATABASE_URL is required for SQLJobStore.")

        parsed_url = make_url(database_url)
        sync_url, connect_args, drivername = coerce_sync_database_url(parsed_url)
        is_sqlite = drivername.startswith("sqlite")
        engine_kwargs: dict[str, Any] = {
            "echo": settings.debug,
            "connect_args": connect_args,
            "pool_pre_ping": not is_sqlite,
        }
        if not is_sqlite:
            engine_kwargs["pool_size"] = max(pool_size or settings.db_pool_size, 1)

        self._engine: Engine = create_engine(sync_url, **engine_kwargs)
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine, tables=[LeadJobRecord.__table__])
        self._metrics_tags = {"store": "sqlite" if is_sqlite else "postgres"}

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    def create(self, job: Job) -> Job:
        record = LeadJobRecord.from_job(job)
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record.to_job()
        except IntegrityError as exc:
            raise JobStoreError(f"Job {job.id} already exists", code="409_JOB_EXISTS") from exc
        except SQLAlchemyError as exc:
            logger.exception("leadgen.store.error", extra={"job_id": job.id, "op": "create"})
            raise JobStoreError("Failed to persist job.") from exc

    def get(self, job_id: str) -> Job | None:
        try:
            with self._session() as session:
                record = session.get(LeadJobRecord, job_id)
                return record.to_job() if record else None
        except SQLAlchemyError as exc:
            logger.exception("leadgen.store.error", extra={"job_id": job_id, "op": "get"})
            raise JobStoreError("Failed to load job.") from exc

    def update(
        self,
        job_id: str,
        changes: Mapping[str, Any],
        *,
        allowed_from: frozenset[JobStatus] | None = None,
    ) -> Job:
        try:
            with self._session() as session:
                statement = select(LeadJobRecord).where(LeadJobRecord.id == job_id).with_for_update()
                record = session.exec(statement).first()
                if record is None:
                    raise JobNotFoundError(job_id)
                _check_transition(record.to_job(), allowed_from)
                for name, value in _to_columns(changes).items():
                    setattr(record, name, value)
                session.add(record)
                session.commit()
                session.refresh(record)
                metrics.increment("jobs.store.updated", tags=self._metrics_tags)
                return record.to_job()
        except SQLAlchemyError as exc:
            logger.exception("leadgen.store.error", extra={"job_id": job_id, "op": "update"})
            raise JobStoreError("Failed to update job.") from exc

    def delete_created_before(self, cutoff: datetime) -> int:
        try:
            with self._session() as session:
                expired = session.exec(select(LeadJobRecord).where(LeadJobRecord.created_at < cutoff)).all()
                for record in expired:
                    session.delete(record)
                session.commit()
                return len(expired)
        except SQLAlchemyError as exc:
            logger.exception("leadgen.store.error", extra={"op": "purge"})
            raise JobStoreError("Failed to purge expired jobs.") from exc

    def ping(self) -> bool:
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            logger.error("leadgen.store.ping_failed", extra={"error": str(exc)})
            return False

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine) as session:
            yield session


def _to_columns(changes: Mapping[str, Any]) -> dict[str, Any]:
    columns: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "status" and isinstance(value, JobStatus):
            value = value.value
        elif name in _JSON_FIELDS and value is not None and hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        columns[name] = value
    return columns


def coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = drivername.replace("+aiosqlite", "")
    sync_url = url.set(drivername=drivername)
    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = query.pop("ssl", None) is not None
    sync_url = sync_url.set(query=query)

    host = (url.host or "").lower()
    if drivername.startswith("postgresql") and "sslmode" not in query and (removed_ssl or "supabase.co" in host):
        connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def build_job_store(database_url: str | None = None, *, auto_create_schema: bool = False) -> JobStore:
    """Instantiate a JobStore using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("leadgen.store.initialized", extra={"backend": "memory"})
        return InMemoryJobStore()
    store = SQLJobStore(resolved_url, pool_size=settings.db_pool_size, auto_create_schema=auto_create_schema)
    logger.info("leadgen.store.initialized", extra={"backend": "database"})
    return store
