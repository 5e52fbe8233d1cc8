"""Run one lead generation job end-to-end and write the ranked leads to JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from leadscout.config import settings
from leadscout.models.catalog import CatalogValidationError
from leadscout.services.leadgen.catalog import load_catalog
from leadscout.services.leadgen.errors import LeadGenerationError
from leadscout.services.leadgen.jobs import JobManager
from leadscout.services.leadgen.matcher import SignalMatcher
from leadscout.services.leadgen.orchestrator import build_pipeline
from leadscout.services.leadgen.repositories import InMemoryJobStore

logger = logging.getLogger("pipelines.lead_generation")


def load_profile(path: Path) -> dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise LeadGenerationError(f"Profile file not found: {path}", code="E_PROFILE_MISSING") from exc
    except json.JSONDecodeError as exc:
        raise LeadGenerationError(f"Profile file is not valid JSON: {exc}", code="E_PROFILE_INVALID") from exc
    if not isinstance(payload, dict):
        raise LeadGenerationError("Profile file must contain a JSON object.", code="E_PROFILE_INVALID")
    return payload


async def run_pipeline(
    profile_payload: dict[str, Any],
    *,
    catalog_path: Path | None,
    output_file: Path,
) -> dict[str, Any]:
    """Submit and run a job in-process, then persist its final status payload."""
    catalog = load_catalog(catalog_path) if catalog_path else None
    manager = JobManager(InMemoryJobStore(), catalog=catalog)
    matcher = SignalMatcher(catalog, max_chars=settings.lead_evidence_max_chars)
    pipeline = build_pipeline(settings, matcher=matcher)
    try:
        job = manager.submit(profile_payload)
        await pipeline.run_job(manager, job.id)
    finally:
        await pipeline.aclose()

    payload = manager.get_status(job.id).as_status_payload()
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with output_file.open("w", encoding="utf-8") as outfile:
        json.dump(payload, outfile, indent=2)
    logger.info("Wrote job %s (%s) to %s", job.id, payload["status"], output_file)
    return payload


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    """CLI argument parsing."""
    parser = argparse.ArgumentParser(description="Discover, enrich, and score leads for a target profile.")
    parser.add_argument("--profile", type=Path, required=True, help="Path to a target profile JSON file.")
    parser.add_argument(
        "--catalog",
        type=Path,
        default=Path(settings.signal_catalog_path) if settings.signal_catalog_path else None,
        help="Signal catalog (JSON or YAML). Defaults to SIGNAL_CATALOG_PATH.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("leads/lead_generation.json"),
        help="Path to output JSON file.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint for the lead generation pipeline."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        payload = asyncio.run(
            run_pipeline(load_profile(args.profile), catalog_path=args.catalog, output_file=args.output)
        )
    except (CatalogValidationError, FileNotFoundError) as exc:
        logger.error("Signal catalog could not be loaded: %s", exc)
        return 1
    except LeadGenerationError as exc:
        logger.error("Lead generation failed: %s (code=%s)", exc, exc.code)
        return 1
    return 0 if payload["status"] == "completed" else 1


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(main())
