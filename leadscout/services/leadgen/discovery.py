"""Discovery: query construction and concurrent fan-out across search providers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from leadscout.models.lead import SearchHit
from leadscout.models.profile import SizeBand, TargetProfile
from leadscout.observability.metrics import metrics
from leadscout.services.leadgen.errors import PipelineExhaustionError, ProviderError
from leadscout.services.leadgen.providers import SearchProvider

logger = logging.getLogger(__name__)

MAX_QUERY_INDUSTRIES = 3
EXCLUDE_JOB_PAGES = "-careers -jobs"


@dataclass
class DiscoveryOutcome:
    """Merged hits from every query that succeeded."""

    queries: list[str]
    hits: list[SearchHit] = field(default_factory=list)
    attempted: int = 0
    failed: int = 0

    @property
    def succeeded(self) -> int:
        return self.attempted - self.failed


def size_terms(band: SizeBand) -> str:
    """Search vocabulary that tends to surface companies of the requested size."""
    if band.max_employees <= 50:
        return 'startup OR "small business" OR boutique OR agency'
    if band.max_employees <= 200:
        return 'mid-size OR growing OR "series A" OR "series B"'
    return "enterprise OR established"


def build_queries(profile: TargetProfile, *, max_queries: int = 3) -> list[str]:
    """Derive up to ``max_queries`` distinct search queries from a target profile."""
    if max_queries < 1:
        raise ValueError("max_queries must be >= 1")
    industries = profile.industries[:MAX_QUERY_INDUSTRIES]
    industry_filter = " OR ".join(f'"{industry}"' if " " in industry else industry for industry in industries)
    sizes = size_terms(profile.size_band)
    geo = f" {profile.geography}" if profile.geography else ""

    queries = [
        f"({industry_filter}) company ({sizes}){geo} {EXCLUDE_JOB_PAGES}",
        f'({industry_filter}) ({sizes}) "about us" OR "our team"{geo} {EXCLUDE_JOB_PAGES}',
    ]
    if profile.pain_points:
        queries.append(f'({industry_filter}) company "{profile.pain_points[0]}"{geo}')
    return list(dict.fromkeys(queries))[:max_queries]


async def _run_query(
    provider: SearchProvider,
    query: str,
    *,
    limit: int,
    timeout: float,
) -> list[SearchHit] | None:
    start = time.perf_counter()
    tags = {"provider": provider.name}
    try:
        hits = await asyncio.wait_for(provider.search(query, limit), timeout=timeout)
    except asyncio.TimeoutError:
        metrics.increment("discovery.query_failed", tags={**tags, "code": "TIMEOUT"})
        logger.warning(
            "leadgen.discovery.query_timeout",
            extra={"provider": provider.name, "query": query[:120], "timeout_s": timeout},
        )
        return None
    except ProviderError as exc:
        metrics.increment("discovery.query_failed", tags={**tags, "code": exc.code})
        logger.warning(
            "leadgen.discovery.query_failed",
            extra={"provider": provider.name, "query": query[:120], "code": exc.code, "error": str(exc)},
        )
        return None
    finally:
        metrics.timing("discovery.query_latency_ms", (time.perf_counter() - start) * 1000, tags=tags)
    metrics.increment("discovery.query_succeeded", tags=tags)
    logger.info(
        "leadgen.discovery.query_complete",
        extra={"provider": provider.name, "query": query[:120], "hits": len(hits)},
    )
    return hits


async def discover(
    queries: Sequence[str],
    providers: Sequence[SearchProvider],
    *,
    limit: int,
    timeout: float,
) -> DiscoveryOutcome:
    """Issue every (query, provider) pair at once and merge hits in launch order.

    Failed or timed-out queries are skipped. Raises PipelineExhaustionError
    only when nothing succeeded.
    """
    outcome = DiscoveryOutcome(queries=list(queries))
    pairs = [(query, provider) for query in queries for provider in providers]
    outcome.attempted = len(pairs)
    if not pairs:
        raise PipelineExhaustionError("No search providers or queries available for discovery")

    responses = await asyncio.gather(
        *(_run_query(provider, query, limit=limit, timeout=timeout) for query, provider in pairs)
    )
    for hits in responses:
        if hits is None:
            outcome.failed += 1
            continue
        outcome.hits.extend(hits)

    if outcome.succeeded == 0:
        raise PipelineExhaustionError(f"All {outcome.attempted} discovery queries failed")
    return outcome
