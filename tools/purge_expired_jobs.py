"""Delete lead generation jobs older than the retention window."""

from __future__ import annotations

import argparse
import logging
from datetime import timedelta
from typing import Sequence

from leadscout.config import settings
from leadscout.services.leadgen.errors import JobStoreError
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.repositories import build_job_store

logger = logging.getLogger("tools.purge_expired_jobs")


def _positive_hours(value: str) -> int:
    try:
        hours = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"hours must be an integer: {value}") from exc
    if hours <= 0:
        raise argparse.ArgumentTypeError("hours must be greater than zero.")
    return hours


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Purge expired lead generation jobs from the job store.")
    parser.add_argument(
        "--hours",
        type=_positive_hours,
        default=settings.job_retention_hours,
        help=f"Retention window in hours (env JOB_RETENTION_HOURS or default {settings.job_retention_hours}).",
    )
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    args = parse_args(argv)
    database_url = args.database_url or settings.database_url
    if not database_url:
        logger.error("DATABASE_URL must be set; the in-memory store has nothing to purge.")
        return 1
    manager = JobManager(build_job_store(database_url), retention=timedelta(hours=args.hours))
    try:
        removed = manager.purge_expired()
    except JobStoreError as exc:
        logger.error("Job purge failed: %s (code=%s)", exc, exc.code)
        return 1
    logger.info("Purged %s job(s) older than %sh", removed, args.hours)
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
