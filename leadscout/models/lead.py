"""Domain models for lead discovery, enrichment, and ranking."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator

DataQuality = Literal["high", "medium", "low"]
EnrichmentStatus = Literal["pending", "enriched", "partial", "timeout", "error", "skipped"]
_FIRST_INTEGER = re.compile(r"\d+")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SearchHit:
    """Single web document returned by a search provider."""

    url: str
    title: str
    text: str
    provider: str = "unknown"


class CompanyFacts(BaseModel):
    """Best-effort structured facts about a company."""

    name: str | None = None
    description: str | None = None
    industry: str | None = None
    employee_count: int | None = Field(default=None, ge=0)
    employee_range: str | None = None
    revenue: str | None = None
    headquarters: str | None = None
    founded: str | None = None
    linkedin_url: str | None = None

    @field_validator("employee_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int | None:
        # Providers answer with "120", 120.0 or "about 120"; anything else is unknown.
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            return int(value) if value > 0 else None
        if isinstance(value, str):
            match = _FIRST_INTEGER.search(value.replace(",", ""))
            return int(match.group(0)) if match and int(match.group(0)) > 0 else None
        return None

    @field_validator(
        "name", "description", "industry", "employee_range", "revenue", "headquarters", "founded", "linkedin_url",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        if not text or text.lower() in {"null", "none", "unknown", "n/a"}:
            return None
        return text


class Contact(BaseModel):
    """Decision maker discovered during enrichment."""

    name: str
    title: str
    linkedin_url: str | None = None
    email: str | None = None


@dataclass
class Candidate:
    """Discovered organization; enrichment fields are filled in place by one task."""

    domain: str
    name: str
    source_url: str
    snippet: str
    discovery_index: int
    provider: str = "unknown"
    facts: CompanyFacts = field(default_factory=CompanyFacts)
    contacts: list[Contact] = field(default_factory=list)
    enrichment_status: EnrichmentStatus = "pending"

    @property
    def evidence_text(self) -> str:
        parts = [self.snippet, self.facts.description or ""]
        return " ".join(part for part in parts if part).strip()


class DetectedSignal(BaseModel):
    """A signal definition matched against one candidate's evidence."""

    definition_id: str
    name: str
    category: str
    pattern_id: str | None = None
    evidence: str
    confidence: conint(ge=0, le=100)  # type: ignore[valid-type]
    source_url: str | None = None
    detected_at: datetime = Field(default_factory=_utcnow)
    half_life_days: float = Field(default=30.0, gt=0)


class ScoredLead(BaseModel):
    """Ranked output record for a single qualifying candidate."""

    model_config = ConfigDict(from_attributes=True)

    domain: str
    name: str
    website: str
    company: CompanyFacts
    contacts: list[Contact] = Field(default_factory=list)
    signals: list[DetectedSignal] = Field(default_factory=list)
    score: conint(ge=0, le=100)  # type: ignore[valid-type]
    rank: int = Field(default=0, ge=0)
    data_quality: DataQuality = "low"
    match_reason: str = ""
    source_url: str
    source_snippet: str | None = None
    discovery_index: int = Field(default=0, ge=0)
    enriched_at: datetime = Field(default_factory=_utcnow)


class LeadGenerationMeta(BaseModel):
    total_found: int = 0
    returned: int = 0
    queries: list[str] = Field(default_factory=list)
    failed_queries: int = 0
    search_criteria: dict[str, Any] = Field(default_factory=dict)
    processing_time_ms: float = 0.0


class LeadGenerationResult(BaseModel):
    """Payload persisted on a completed job."""

    leads: list[ScoredLead] = Field(default_factory=list)
    meta: LeadGenerationMeta = Field(default_factory=LeadGenerationMeta)
