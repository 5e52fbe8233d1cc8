"""Search and enrichment provider contracts plus their concrete adapters."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import ValidationError

from leadscout.clients.exa import ExaClient, ExaError
from leadscout.clients.perplexity import PerplexityClient, PerplexityError
from leadscout.clients.tavily import TavilyClient, TavilyError
from leadscout.config import Settings
from leadscout.models.lead import CompanyFacts, Contact, SearchHit
from leadscout.services.leadgen.dedupe import EXCLUDED_DOMAINS
from leadscout.services.leadgen.errors import ProviderError

logger = logging.getLogger(__name__)

SEARCH_TEXT_MAX_CHARS = 500
MAX_CONTACTS = 3
DEFAULT_CONTACT_TITLES = ("CEO", "VP Sales")
CONTACTS_MIN_REMAINING_SECONDS = 3.0
_JSON_BLOCK = re.compile(r"\{[\s\S]*\}|\[[\s\S]*\]")


class SearchProvider(Protocol):
    """Web search returning candidate documents for a query."""

    name: str

    async def search(self, query: str, limit: int) -> list[SearchHit]:
        ...


@dataclass
class EnrichmentResult:
    """Best-effort facts and contacts for one company; ``partial`` when a sub-call failed."""

    facts: CompanyFacts = field(default_factory=CompanyFacts)
    contacts: list[Contact] = field(default_factory=list)
    partial: bool = False


class EnrichmentProvider(Protocol):
    """Company enrichment that must answer within ``budget`` seconds."""

    name: str

    async def enrich(
        self,
        company_name: str,
        domain: str,
        budget: float,
        target_titles: Sequence[str],
    ) -> EnrichmentResult:
        ...


class ExaSearchProvider:
    """SearchProvider backed by Exa's search-and-contents endpoint."""

    name = "exa"

    def __init__(self, client: ExaClient) -> None:
        self._client = client

    async def search(self, query: str, limit: int) -> list[SearchHit]:
        try:
            results = await self._client.search_and_contents(
                query=query,
                limit=limit,
                max_characters=SEARCH_TEXT_MAX_CHARS,
            )
        except ExaError as exc:
            raise ProviderError(str(exc), code=exc.code, provider=self.name) from exc
        hits = (_to_hit(result, provider=self.name, text_keys=("text", "summary")) for result in results)
        return [hit for hit in hits if hit is not None]

    async def aclose(self) -> None:
        await self._client.aclose()


class TavilySearchProvider:
    """SearchProvider backed by Tavily web search."""

    name = "tavily"

    def __init__(self, client: TavilyClient) -> None:
        self._client = client

    async def search(self, query: str, limit: int) -> list[SearchHit]:
        try:
            results = await self._client.search(
                query=query,
                max_results=limit,
                exclude_domains=sorted(EXCLUDED_DOMAINS),
            )
        except TavilyError as exc:
            raise ProviderError(str(exc), code=exc.code, provider=self.name) from exc
        hits = (_to_hit(result, provider=self.name, text_keys=("content", "raw_content")) for result in results)
        return [hit for hit in hits if hit is not None]

    async def aclose(self) -> None:
        await self._client.aclose()


def _to_hit(result: dict[str, Any], *, provider: str, text_keys: Sequence[str]) -> SearchHit | None:
    url = result.get("url")
    if not url or not isinstance(url, str):
        return None
    title = result.get("title")
    text = ""
    for key in text_keys:
        value = result.get(key)
        if isinstance(value, str) and value:
            text = value
            break
    return SearchHit(
        url=url,
        title=title.strip() if isinstance(title, str) else "",
        text=text[:SEARCH_TEXT_MAX_CHARS].strip(),
        provider=provider,
    )


def company_prompt(company_name: str, domain: str) -> str:
    return (
        f"Research {company_name} ({domain}) and return ONLY a JSON object with this exact structure:\n"
        "{\n"
        '  "name": "Official company name",\n'
        '  "description": "One sentence description of what they do",\n'
        '  "industry": "Primary industry (e.g., SaaS, Healthcare, Fintech)",\n'
        '  "founded": "Year founded or null",\n'
        '  "employeeCount": number or null,\n'
        '  "employeeRange": "e.g., 50-200 or null",\n'
        '  "revenue": "Estimated revenue (e.g., $10M-$50M) or null",\n'
        '  "headquarters": "City, State/Country",\n'
        '  "linkedInUrl": "Company LinkedIn URL or null"\n'
        "}\n"
        "Return ONLY valid JSON, no other text."
    )


def contacts_prompt(company_name: str, domain: str, titles: Sequence[str]) -> str:
    return (
        f"Find key executives at {company_name} ({domain}). Looking for: {', '.join(titles)}.\n"
        f"Return ONLY a JSON array with up to {MAX_CONTACTS} contacts:\n"
        '[{"name": "Full Name", "title": "Job Title", "linkedInUrl": "LinkedIn profile URL or null"}]\n'
        "Return ONLY valid JSON array, no other text."
    )


def parse_json_block(raw_text: str, fallback: Any) -> Any:
    """Decode the first JSON object/array in a model reply, tolerating fences or prose."""
    candidate = (raw_text or "").strip()
    if candidate.startswith("```"):
        candidate = "\n".join(line for line in candidate.splitlines() if not line.strip().startswith("```")).strip()
    match = _JSON_BLOCK.search(candidate)
    if not match:
        return fallback
    try:
        return json.loads(match.group(0))
    except ValueError:
        return fallback


def parse_company_facts(raw_text: str, *, default_name: str) -> CompanyFacts:
    payload = parse_json_block(raw_text, {})
    if not isinstance(payload, dict):
        return CompanyFacts(name=default_name)
    try:
        return CompanyFacts(
            name=payload.get("name") or default_name,
            description=payload.get("description"),
            industry=payload.get("industry"),
            employee_count=payload.get("employeeCount", payload.get("employee_count")),
            employee_range=payload.get("employeeRange", payload.get("employee_range")),
            revenue=payload.get("revenue"),
            headquarters=payload.get("headquarters"),
            founded=payload.get("founded"),
            linkedin_url=payload.get("linkedInUrl", payload.get("linkedin_url")),
        )
    except ValidationError:
        logger.warning("leadgen.enrichment.facts_invalid", extra={"company": default_name})
        return CompanyFacts(name=default_name)


def parse_contacts(raw_text: str) -> list[Contact]:
    payload = parse_json_block(raw_text, [])
    if not isinstance(payload, list):
        return []
    contacts: list[Contact] = []
    for entry in payload:
        if len(contacts) >= MAX_CONTACTS:
            break
        if not isinstance(entry, dict):
            continue
        linkedin = entry.get("linkedInUrl") or entry.get("linkedin_url")
        try:
            contact = Contact(
                name=str(entry.get("name") or "Unknown"),
                title=str(entry.get("title") or "Executive"),
                linkedin_url=linkedin if linkedin and linkedin != "null" else None,
                email=entry.get("email") or None,
            )
        except ValidationError:
            logger.info("leadgen.enrichment.contact_invalid", extra={"contact": entry.get("name")})
            continue
        contacts.append(contact)
    return contacts


class PerplexityEnrichmentProvider:
    """EnrichmentProvider that asks Perplexity for company facts, then contacts."""

    name = "perplexity"

    def __init__(self, client: PerplexityClient) -> None:
        self._client = client

    async def enrich(
        self,
        company_name: str,
        domain: str,
        budget: float,
        target_titles: Sequence[str],
    ) -> EnrichmentResult:
        return await asyncio.wait_for(
            self._enrich(company_name, domain, budget, target_titles),
            timeout=budget,
        )

    async def _enrich(
        self,
        company_name: str,
        domain: str,
        budget: float,
        target_titles: Sequence[str],
    ) -> EnrichmentResult:
        started = time.monotonic()
        try:
            company_text = await self._client.complete(company_prompt(company_name, domain))
        except PerplexityError as exc:
            raise ProviderError(str(exc), code=exc.code, provider=self.name) from exc
        result = EnrichmentResult(facts=parse_company_facts(company_text, default_name=company_name))

        remaining = budget - (time.monotonic() - started)
        if remaining <= CONTACTS_MIN_REMAINING_SECONDS:
            result.partial = True
            return result

        titles = list(target_titles) or list(DEFAULT_CONTACT_TITLES)
        try:
            contacts_text = await self._client.complete(contacts_prompt(company_name, domain, titles))
        except PerplexityError as exc:
            logger.info(
                "leadgen.enrichment.contacts_failed",
                extra={"domain": domain, "code": exc.code},
            )
            result.partial = True
            return result
        result.contacts = parse_contacts(contacts_text)
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


class NullEnrichmentProvider:
    """Used when no enrichment credentials are configured; returns empty data."""

    name = "none"

    async def enrich(
        self,
        company_name: str,
        domain: str,
        budget: float,
        target_titles: Sequence[str],
    ) -> EnrichmentResult:
        return EnrichmentResult()


def build_search_providers(config: Settings) -> list[SearchProvider]:
    """Instantiate every search provider that has credentials configured."""
    timeout = config.lead_discovery_timeout_seconds
    providers: list[SearchProvider] = []
    if config.exa_api_key:
        providers.append(ExaSearchProvider(ExaClient(config.exa_api_key, timeout=timeout)))
    if config.tavily_api_key:
        providers.append(TavilySearchProvider(TavilyClient(config.tavily_api_key, timeout=timeout)))
    logger.info("leadgen.providers.search", extra={"providers": [provider.name for provider in providers]})
    return providers


def build_enrichment_provider(config: Settings) -> EnrichmentProvider:
    if not config.perplexity_api_key:
        logger.info("leadgen.providers.enrichment", extra={"provider": NullEnrichmentProvider.name})
        return NullEnrichmentProvider()
    client = PerplexityClient(
        config.perplexity_api_key,
        base_url=config.perplexity_base_url,
        model=config.perplexity_model,
        timeout=config.lead_enrichment_timeout_seconds,
    )
    logger.info("leadgen.providers.enrichment", extra={"provider": PerplexityEnrichmentProvider.name})
    return PerplexityEnrichmentProvider(client)
