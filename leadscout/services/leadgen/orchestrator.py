"""End-to-end lead generation: discover, filter, enrich, match, score, rank."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from leadscout.config import Settings, settings
from leadscout.models.lead import (
    Candidate,
    DetectedSignal,
    LeadGenerationMeta,
    LeadGenerationResult,
    ScoredLead,
)
from leadscout.models.profile import TargetProfile
from leadscout.observability.metrics import metrics
from leadscout.services.leadgen.catalog import load_configured_catalog
from leadscout.services.leadgen.dedupe import candidates_from_hits, dedupe_candidates
from leadscout.services.leadgen.discovery import build_queries, discover
from leadscout.services.leadgen.errors import JobCancelledError, PipelineExhaustionError, ProviderError
from leadscout.services.leadgen.matcher import SelectedDefinition, SignalMatcher, profile_match_signal
from leadscout.services.leadgen.providers import (
    EnrichmentProvider,
    SearchProvider,
    build_enrichment_provider,
    build_search_providers,
)
from leadscout.services.leadgen.scoring import ScoringEngine, data_quality

if TYPE_CHECKING:
    from leadscout.services.leadgen.jobs import JobManager

logger = logging.getLogger(__name__)

DESCRIPTION_FALLBACK_CHARS = 200
SOURCE_SNIPPET_CHARS = 300

ProgressCallback = Callable[[str], None]
CancelCheck = Callable[[], bool]


@dataclass(frozen=True)
class PipelineConfig:
    """Tunables for one pipeline instance."""

    result_cap: int = 25
    enrichment_batch_size: int = 5
    enrichment_timeout_seconds: float = 8.0
    discovery_timeout_seconds: float = 40.0
    results_per_query: int = 20
    max_queries: int = 3
    max_candidates: int = 30

    def __post_init__(self) -> None:
        if self.result_cap < 1:
            raise ValueError("result_cap must be >= 1")
        if self.enrichment_batch_size < 1:
            raise ValueError("enrichment_batch_size must be >= 1")
        if self.enrichment_timeout_seconds <= 0 or self.discovery_timeout_seconds <= 0:
            raise ValueError("timeouts must be > 0")
        if self.max_candidates < 1:
            raise ValueError("max_candidates must be >= 1")

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> PipelineConfig:
        config = config or settings
        return cls(
            result_cap=config.lead_result_cap,
            enrichment_batch_size=config.lead_enrichment_batch_size,
            enrichment_timeout_seconds=config.lead_enrichment_timeout_seconds,
            discovery_timeout_seconds=config.lead_discovery_timeout_seconds,
            results_per_query=config.lead_discovery_results_per_query,
            max_queries=config.lead_max_queries,
            max_candidates=config.lead_max_candidates,
        )


@dataclass
class _Qualified:
    candidate: Candidate
    signals: list[DetectedSignal]
    score: int


class LeadGenerationPipeline:
    """Runs one target profile through discovery, enrichment, and scoring.

    Providers are injected already configured. The optional matcher catalog
    decides between keyword signal matching and the low-confidence profile
    match used when no catalog is loaded.
    """

    def __init__(
        self,
        search_providers: Sequence[SearchProvider],
        enrichment_provider: EnrichmentProvider,
        *,
        matcher: SignalMatcher | None = None,
        scoring_engine: ScoringEngine | None = None,
        config: PipelineConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._search_providers = list(search_providers)
        self._enrichment = enrichment_provider
        self._matcher = matcher or SignalMatcher()
        self._scoring = scoring_engine or ScoringEngine()
        self._config = config or PipelineConfig.from_settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def config(self) -> PipelineConfig:
        return self._config

    async def aclose(self) -> None:
        """Close provider HTTP clients that this pipeline was built with."""
        for provider in [*self._search_providers, self._enrichment]:
            close = getattr(provider, "aclose", None)
            if close is not None:
                await close()

    async def run_job(self, job_manager: JobManager, job_id: str) -> None:
        """Drive a queued job to a terminal state; never raises for pipeline failures."""
        job = job_manager.mark_running(job_id)
        started = time.perf_counter()
        try:
            result = await self.generate(
                job.input,
                on_progress=lambda message: job_manager.update_progress(job_id, message),
                should_cancel=lambda: job_manager.is_cancel_requested(job_id),
            )
        except JobCancelledError as exc:
            job_manager.fail(job_id, kind=JobCancelledError.kind, code=exc.code, message=str(exc))
            metrics.increment("jobs.terminal", tags={"status": "cancelled"})
            logger.info("leadgen.job.cancelled", extra={"job_id": job_id})
        except PipelineExhaustionError as exc:
            job_manager.fail(job_id, kind=PipelineExhaustionError.kind, code=exc.code, message=str(exc))
            metrics.increment("jobs.terminal", tags={"status": "exhausted"})
            logger.warning("leadgen.job.exhausted", extra={"job_id": job_id, "error": str(exc)})
        except Exception as exc:  # noqa: BLE001
            self._fail_internal(job_manager, job_id, exc)
        else:
            try:
                job_manager.complete(job_id, result)
            except Exception as exc:  # noqa: BLE001
                self._fail_internal(job_manager, job_id, exc)
            else:
                metrics.increment("jobs.terminal", tags={"status": "completed"})
                logger.info(
                    "leadgen.job.completed",
                    extra={"job_id": job_id, "leads": len(result.leads), "total_found": result.meta.total_found},
                )
        finally:
            metrics.timing("jobs.duration_ms", (time.perf_counter() - started) * 1000)

    @staticmethod
    def _fail_internal(job_manager: JobManager, job_id: str, exc: Exception) -> None:
        logger.exception("leadgen.job.internal_error", extra={"job_id": job_id})
        job_manager.fail(
            job_id,
            kind="internal",
            code=getattr(exc, "code", "INTERNAL_ERROR"),
            message=f"{type(exc).__name__}: {exc}",
        )
        metrics.increment("jobs.terminal", tags={"status": "internal_error"})

    async def generate(
        self,
        profile: TargetProfile,
        *,
        on_progress: ProgressCallback | None = None,
        should_cancel: CancelCheck | None = None,
    ) -> LeadGenerationResult:
        if not isinstance(profile, TargetProfile):
            raise TypeError(f"Expected TargetProfile, got {type(profile).__name__}")
        progress = on_progress or (lambda message: None)
        cancelled = should_cancel or (lambda: False)
        started = time.perf_counter()
        run_at = self._clock()

        self._check_cancel(cancelled)
        queries = build_queries(profile, max_queries=self._config.max_queries)
        progress("Searching for companies")
        outcome = await discover(
            queries,
            self._search_providers,
            limit=self._config.results_per_query,
            timeout=self._config.discovery_timeout_seconds,
        )

        candidates = dedupe_candidates(candidates_from_hits(outcome.hits))
        total_found = len(candidates)
        metrics.gauge("pipeline.candidates_found", total_found)
        metrics.increment("pipeline.candidates_filtered", value=len(outcome.hits) - total_found)
        logger.info(
            "leadgen.pipeline.discovered",
            extra={"hits": len(outcome.hits), "candidates": total_found, "failed_queries": outcome.failed},
        )
        candidates = candidates[: self._config.max_candidates]

        definitions = self._matcher.definitions_for(profile.signal_patterns or None)
        qualified: list[_Qualified] = []
        batch_size = self._config.enrichment_batch_size
        for offset in range(0, len(candidates), batch_size):
            if len(qualified) >= self._config.result_cap:
                logger.info("leadgen.pipeline.cap_reached", extra={"cap": self._config.result_cap})
                break
            self._check_cancel(cancelled)
            batch = candidates[offset : offset + batch_size]
            progress(
                f"Enriching companies {offset + 1}-{offset + len(batch)} of {len(candidates)}"
            )
            await asyncio.gather(*(self._enrich(candidate, profile) for candidate in batch))
            for candidate in batch:
                entry = self._evaluate(candidate, profile, definitions, run_at)
                if entry is not None:
                    qualified.append(entry)

        progress("Ranking leads")
        # sorted() is stable, so discovery order breaks score ties.
        ranked = sorted(qualified, key=lambda entry: (-entry.score, entry.candidate.discovery_index))
        ranked = ranked[: self._config.result_cap]
        leads = [self._to_lead(entry, rank, run_at) for rank, entry in enumerate(ranked, start=1)]
        metrics.increment("pipeline.leads_scored", value=len(qualified))

        return LeadGenerationResult(
            leads=leads,
            meta=LeadGenerationMeta(
                total_found=total_found,
                returned=len(leads),
                queries=outcome.queries,
                failed_queries=outcome.failed,
                search_criteria={
                    "industries": list(profile.industries),
                    "size_band": profile.size_band.label(),
                    "geography": profile.geography,
                    "signal_patterns": list(profile.signal_patterns),
                },
                processing_time_ms=round((time.perf_counter() - started) * 1000, 2),
            ),
        )

    @staticmethod
    def _check_cancel(cancelled: CancelCheck) -> None:
        if cancelled():
            raise JobCancelledError()

    async def _enrich(self, candidate: Candidate, profile: TargetProfile) -> None:
        budget = self._config.enrichment_timeout_seconds
        try:
            result = await asyncio.wait_for(
                self._enrichment.enrich(candidate.name, candidate.domain, budget, profile.target_titles),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            candidate.enrichment_status = "timeout"
            metrics.increment("enrichment.timeout")
            logger.info("leadgen.enrichment.timeout", extra={"domain": candidate.domain, "budget_s": budget})
        except ProviderError as exc:
            candidate.enrichment_status = "error"
            metrics.increment("enrichment.error", tags={"code": exc.code})
            logger.info(
                "leadgen.enrichment.failed",
                extra={"domain": candidate.domain, "code": exc.code, "error": str(exc)},
            )
        except Exception as exc:  # noqa: BLE001
            candidate.enrichment_status = "error"
            metrics.increment("enrichment.error", tags={"code": type(exc).__name__})
            logger.warning(
                "leadgen.enrichment.unexpected_error",
                extra={"domain": candidate.domain, "error": f"{type(exc).__name__}: {exc}"},
            )
        else:
            candidate.facts = result.facts
            candidate.contacts = list(result.contacts)
            candidate.enrichment_status = "partial" if result.partial else "enriched"
        if not candidate.facts.description and candidate.snippet:
            candidate.facts = candidate.facts.model_copy(
                update={"description": candidate.snippet[:DESCRIPTION_FALLBACK_CHARS]}
            )

    def _evaluate(
        self,
        candidate: Candidate,
        profile: TargetProfile,
        definitions: Sequence[SelectedDefinition],
        run_at: datetime,
    ) -> _Qualified | None:
        if not profile.size_band.admits(candidate.facts.employee_count):
            metrics.increment("pipeline.size_filtered")
            logger.debug(
                "leadgen.pipeline.size_filtered",
                extra={"domain": candidate.domain, "employee_count": candidate.facts.employee_count},
            )
            return None

        if self._matcher.has_catalog:
            signals = self._matcher.match(
                candidate.evidence_text,
                definitions,
                source_url=candidate.source_url,
                detected_at=run_at,
            )
        else:
            signals = [profile_match_signal(source_url=candidate.source_url, detected_at=run_at)]

        score = self._scoring.score(candidate, signals, now=run_at)
        if score is None:
            return None
        return _Qualified(candidate=candidate, signals=signals, score=score)

    def _to_lead(self, entry: _Qualified, rank: int, run_at: datetime) -> ScoredLead:
        candidate = entry.candidate
        facts = candidate.facts
        if facts.name is None:
            facts = facts.model_copy(update={"name": candidate.name})
        has_catalog_signals = self._matcher.has_catalog and entry.signals
        count = len(entry.signals)
        match_reason = (
            f"{count} signal{'s' if count != 1 else ''} detected" if has_catalog_signals else "Matches profile"
        )
        return ScoredLead(
            domain=candidate.domain,
            name=candidate.name,
            website=f"https://{candidate.domain}",
            company=facts,
            contacts=candidate.contacts,
            signals=entry.signals,
            score=entry.score,
            rank=rank,
            data_quality=data_quality(candidate, entry.signals),
            match_reason=match_reason,
            source_url=candidate.source_url,
            source_snippet=candidate.snippet[:SOURCE_SNIPPET_CHARS] or None,
            discovery_index=candidate.discovery_index,
            enriched_at=run_at,
        )


def build_pipeline(
    config: Settings | None = None,
    *,
    matcher: SignalMatcher | None = None,
) -> LeadGenerationPipeline:
    """Wire a pipeline from settings; credentials are resolved here, once."""
    config = config or settings
    if matcher is None:
        matcher = SignalMatcher(
            load_configured_catalog(config.signal_catalog_path),
            max_chars=config.lead_evidence_max_chars,
        )
    return LeadGenerationPipeline(
        build_search_providers(config),
        build_enrichment_provider(config),
        matcher=matcher,
        config=PipelineConfig.from_settings(config),
    )
