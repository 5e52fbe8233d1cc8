"""Target profile supplied when a lead generation job is submitted."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_SIZE_LABEL = "50-500 employees"

SIZE_LABELS: dict[str, tuple[int, int]] = {
    "1-10 employees": (1, 10),
    "11-50 employees": (11, 50),
    "51-200 employees": (51, 200),
    "201-500 employees": (201, 500),
    "501-1000 employees": (501, 1000),
    "1001-5000 employees": (1001, 5000),
    "5000+ employees": (5001, 100_000),
}
_RANGE_PATTERN = re.compile(r"^\s*([\d,]+)\s*(?:-|to)\s*([\d,]+)")
_OPEN_PATTERN = re.compile(r"^\s*([\d,]+)\s*\+")


class SizeBand(BaseModel):
    """Inclusive employee-count band used for admissibility filtering."""

    model_config = ConfigDict(frozen=True)

    min_employees: int = Field(ge=1)
    max_employees: int = Field(ge=1)

    @model_validator(mode="after")
    def _ordered(self) -> SizeBand:
        if self.min_employees > self.max_employees:
            raise ValueError("size_band.min_employees must not exceed max_employees")
        return self

    @classmethod
    def from_label(cls, label: str) -> SizeBand:
        """Parse a wizard label such as ``"51-200 employees"`` or ``"5000+"``."""
        normalized = label.strip().lower()
        if normalized in SIZE_LABELS:
            low, high = SIZE_LABELS[normalized]
            return cls(min_employees=low, max_employees=high)
        match = _RANGE_PATTERN.match(normalized)
        if match:
            low, high = (int(group.replace(",", "")) for group in match.groups())
            return cls(min_employees=low, max_employees=high)
        match = _OPEN_PATTERN.match(normalized)
        if match:
            low = int(match.group(1).replace(",", ""))
            return cls(min_employees=low, max_employees=max(low, 100_000))
        raise ValueError(f"Unrecognised company size band: {label!r}")

    @property
    def upper_admissible(self) -> float:
        """Oversized companies get 50% slack above the declared maximum."""
        return self.max_employees * 1.5

    def admits(self, employee_count: int | None) -> bool:
        if employee_count is None:
            return True
        return self.min_employees <= employee_count <= self.upper_admissible

    def label(self) -> str:
        return f"{self.min_employees}-{self.max_employees} employees"


def _clean_strings(values: Any) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, str):
            raise ValueError("expected a list of strings")
        stripped = value.strip()
        if stripped and stripped not in cleaned:
            cleaned.append(stripped)
    return cleaned


class TargetProfile(BaseModel):
    """Immutable description of who a job should find."""

    model_config = ConfigDict(frozen=True)

    industries: list[str] = Field(..., description="Target industries, most important first.")
    size_band: SizeBand
    target_titles: list[str] = Field(default_factory=list)
    geography: str | None = None
    pain_points: list[str] = Field(default_factory=list)
    signal_patterns: list[str] = Field(
        default_factory=list,
        description="Selected trigger pattern ids; empty selects every pattern in the catalog.",
    )

    @field_validator("size_band", mode="before")
    @classmethod
    def _coerce_size_band(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SizeBand.from_label(value)
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return {"min_employees": value[0], "max_employees": value[1]}
        return value

    @field_validator("industries", mode="before")
    @classmethod
    def _clean_industries(cls, value: Any) -> list[str]:
        cleaned = _clean_strings(value)
        if not cleaned:
            raise ValueError("at least one target industry is required")
        return cleaned

    @field_validator("target_titles", "pain_points", "signal_patterns", mode="before")
    @classmethod
    def _clean_lists(cls, value: Any) -> list[str]:
        return _clean_strings(value)

    @field_validator("geography", mode="before")
    @classmethod
    def _clean_geography(cls, value: Any) -> str | None:
        if value is None:
            return None
        stripped = str(value).strip()
        return stripped or None
