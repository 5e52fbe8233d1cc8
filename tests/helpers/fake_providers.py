from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field

from leadscout.models.catalog import EvidenceSignalCatalog
from leadscout.models.lead import CompanyFacts, Contact, SearchHit
from leadscout.services.leadgen.errors import ProviderError
from leadscout.services.leadgen.providers import EnrichmentResult


def hit(url: str, title: str = "", text: str = "", provider: str = "fake") -> SearchHit:
    return SearchHit(url=url, title=title, text=text, provider=provider)


class FakeSearchProvider:
    """Returns canned hits, or fails, per query."""

    def __init__(
        self,
        hits: Sequence[SearchHit] = (),
        *,
        name: str = "fake",
        fail_queries: Sequence[int] = (),
        fail_all: bool = False,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self._hits = list(hits)
        self._fail_queries = set(fail_queries)
        self._fail_all = fail_all
        self._delay = delay
        self._error = error
        self.queries: list[str] = []

    async def search(self, query: str, limit: int) -> list[SearchHit]:
        index = len(self.queries)
        self.queries.append(query)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if self._fail_all or index in self._fail_queries:
            raise ProviderError("search unavailable", code="FAKE_503", provider=self.name)
        return self._hits[:limit]


@dataclass
class EnrichmentScript:
    facts: CompanyFacts = field(default_factory=CompanyFacts)
    contacts: list[Contact] = field(default_factory=list)
    delay: float = 0.0
    fail: bool = False
    partial: bool = False


class FakeEnrichmentProvider:
    """Per-domain scripted enrichment; unknown domains get empty results."""

    name = "fake-enrichment"

    def __init__(self, scripts: dict[str, EnrichmentScript] | None = None, *, default_delay: float = 0.0) -> None:
        self._scripts = scripts or {}
        self._default_delay = default_delay
        self.calls: list[tuple[str, str, float, tuple[str, ...]]] = []

    async def enrich(
        self,
        company_name: str,
        domain: str,
        budget: float,
        target_titles: Sequence[str],
    ) -> EnrichmentResult:
        self.calls.append((company_name, domain, budget, tuple(target_titles)))
        script = self._scripts.get(domain, EnrichmentScript(delay=self._default_delay))
        if script.delay:
            await asyncio.sleep(script.delay)
        if script.fail:
            raise ProviderError("enrichment upstream 503", code="FAKE_503", provider=self.name)
        return EnrichmentResult(facts=script.facts, contacts=list(script.contacts), partial=script.partial)


def build_catalog() -> EvidenceSignalCatalog:
    return EvidenceSignalCatalog.model_validate(
        {
            "patterns": [
                {
                    "id": "post_funding",
                    "name": "Post-funding scaling",
                    "trigger_type": "TIMING",
                    "signals": [
                        {
                            "id": "recent_funding",
                            "name": "Recent funding round",
                            "keywords": ["series a", "raised", "funding round"],
                            "tier": "HIGH",
                            "category": "funding",
                        },
                        {
                            "id": "sales_hiring",
                            "name": "Hiring sales team",
                            "keywords": ["hiring account executives", "sales team"],
                            "tier": "MEDIUM",
                            "category": "hiring",
                        },
                    ],
                },
                {
                    "id": "leadership_change",
                    "name": "New leadership",
                    "trigger_type": "AUTHORITY",
                    "signals": [
                        {
                            "id": "new_vp_sales",
                            "name": "New VP of Sales",
                            "keywords": ["new vp of sales", "appointed vp sales"],
                            "tier": "LOW",
                            "category": "leadership",
                        }
                    ],
                },
            ]
        }
    )
