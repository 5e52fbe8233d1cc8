"""Evidence signal catalog: trigger patterns and the signal definitions they group."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_HALF_LIFE_DAYS = 30.0


class ConfidenceTier(str, Enum):
    """Declared reliability of a signal definition."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"

    @property
    def confidence(self) -> int:
        return _TIER_CONFIDENCE[self]


_TIER_CONFIDENCE = {
    ConfidenceTier.HIGH: 75,
    ConfidenceTier.MEDIUM: 60,
    ConfidenceTier.LOW: 40,
}


class TriggerType(str, Enum):
    TIMING = "TIMING"
    PROBLEM = "PROBLEM"
    RE_ENGAGEMENT = "RE_ENGAGEMENT"
    AUTHORITY = "AUTHORITY"


class SignalDefinition(BaseModel):
    """A named, keyword-matchable piece of buying-readiness evidence."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[a-z0-9_\-]+$")
    name: str
    keywords: tuple[str, ...]
    tier: ConfidenceTier = ConfidenceTier.MEDIUM
    category: str | None = Field(
        default=None,
        description="Grouping used by the convergence bonus; defaults to the definition id.",
    )
    messaging_angle: str = ""
    half_life_days: float = Field(default=DEFAULT_HALF_LIFE_DAYS, gt=0)
    source_hints: tuple[str, ...] = ()

    @field_validator("tier", mode="before")
    @classmethod
    def _upper_tier(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("keywords", mode="before")
    @classmethod
    def _clean_keywords(cls, value: object) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, Iterable):
            raise ValueError("keywords must be a list of strings")
        cleaned = tuple(dict.fromkeys(str(item).strip() for item in value if str(item).strip()))
        if not cleaned:
            raise ValueError("signal definitions need at least one keyword")
        return cleaned

    @model_validator(mode="before")
    @classmethod
    def _default_category(cls, values: object) -> object:
        if isinstance(values, dict) and not values.get("category") and values.get("id"):
            values = {**values, "category": values["id"]}
        return values

    @property
    def confidence(self) -> int:
        return self.tier.confidence


class TriggerPattern(BaseModel):
    """A narrative group of related signal definitions, e.g. post-funding scaling."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[a-z0-9_\-]+$")
    name: str
    trigger_type: TriggerType = TriggerType.TIMING
    messaging_angle: str = ""
    signals: tuple[SignalDefinition, ...] = ()


class CatalogValidationError(ValueError):
    """Raised when a catalog contains duplicate or dangling identifiers."""


class EvidenceSignalCatalog(BaseModel):
    """Read-only library of trigger patterns consulted by the signal matcher."""

    model_config = ConfigDict(frozen=True)

    patterns: tuple[TriggerPattern, ...] = ()

    @model_validator(mode="after")
    def _unique_ids(self) -> EvidenceSignalCatalog:
        pattern_ids: set[str] = set()
        definition_ids: set[str] = set()
        for pattern in self.patterns:
            if pattern.id in pattern_ids:
                raise CatalogValidationError(f"Duplicate trigger pattern id: {pattern.id}")
            pattern_ids.add(pattern.id)
            for definition in pattern.signals:
                if definition.id in definition_ids:
                    raise CatalogValidationError(f"Duplicate signal definition id: {definition.id}")
                definition_ids.add(definition.id)
        return self

    @property
    def pattern_ids(self) -> list[str]:
        return [pattern.id for pattern in self.patterns]

    def select(self, pattern_ids: Sequence[str] | None = None) -> list[tuple[TriggerPattern, SignalDefinition]]:
        """Return (pattern, definition) pairs for the chosen patterns in catalog order.

        An empty selection means every pattern. Unknown ids raise so that a
        profile referencing a pattern that was never authored fails at submit
        time instead of silently matching nothing.
        """
        wanted = set(pattern_ids or ())
        unknown = wanted - set(self.pattern_ids)
        if unknown:
            raise CatalogValidationError(f"Unknown signal patterns: {', '.join(sorted(unknown))}")
        selected: list[tuple[TriggerPattern, SignalDefinition]] = []
        for pattern in self.patterns:
            if wanted and pattern.id not in wanted:
                continue
            selected.extend((pattern, definition) for definition in pattern.signals)
        return selected

    def __len__(self) -> int:
        return sum(len(pattern.signals) for pattern in self.patterns)
