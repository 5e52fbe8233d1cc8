"""Keyword matching of candidate evidence against signal definitions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from leadscout.models.catalog import ConfidenceTier, EvidenceSignalCatalog, SignalDefinition, TriggerPattern
from leadscout.models.lead import DetectedSignal

logger = logging.getLogger(__name__)

DEFAULT_EVIDENCE_MAX_CHARS = 2000
EVIDENCE_WINDOW = 80
PROFILE_MATCH_ID = "profile_match"

SelectedDefinition = tuple[TriggerPattern | None, SignalDefinition]


def evidence_excerpt(text: str, start: int, length: int, *, window: int = EVIDENCE_WINDOW) -> str:
    """Return the text surrounding a keyword hit, with ellipses where trimmed."""
    left = max(0, start - window)
    right = min(len(text), start + length + window)
    excerpt = " ".join(text[left:right].split())
    if left > 0:
        excerpt = f"…{excerpt}"
    if right < len(text):
        excerpt = f"{excerpt}…"
    return excerpt


class SignalMatcher:
    """Scans evidence text for signal definition keywords.

    A definition matches when any of its keywords occurs (case-insensitively)
    in the evidence; the first keyword hit is kept as the evidence excerpt and
    repeated occurrences are not counted. Confidence comes from the declared
    tier only.
    """

    def __init__(
        self,
        catalog: EvidenceSignalCatalog | None = None,
        *,
        max_chars: int = DEFAULT_EVIDENCE_MAX_CHARS,
    ) -> None:
        if max_chars <= 0:
            raise ValueError("max_chars must be > 0")
        self._catalog = catalog
        self._max_chars = max_chars

    @property
    def has_catalog(self) -> bool:
        return self._catalog is not None

    def definitions_for(self, pattern_ids: Sequence[str] | None) -> list[SelectedDefinition]:
        if self._catalog is None:
            return []
        return list(self._catalog.select(pattern_ids))

    def match(
        self,
        evidence_text: str,
        definitions: Sequence[SelectedDefinition | SignalDefinition],
        *,
        source_url: str | None = None,
        detected_at: datetime | None = None,
    ) -> list[DetectedSignal]:
        text = (evidence_text or "")[: self._max_chars]
        if not text:
            return []
        lowered = text.lower()
        detected_at = detected_at or datetime.now(timezone.utc)
        seen: set[str] = set()
        matches: list[DetectedSignal] = []
        for entry in definitions:
            pattern, definition = entry if isinstance(entry, tuple) else (None, entry)
            if definition.id in seen:
                continue
            for keyword in definition.keywords:
                position = lowered.find(keyword.lower())
                if position == -1:
                    continue
                seen.add(definition.id)
                matches.append(
                    DetectedSignal(
                        definition_id=definition.id,
                        name=definition.name,
                        category=definition.category or definition.id,
                        pattern_id=pattern.id if pattern else None,
                        evidence=evidence_excerpt(text, position, len(keyword)),
                        confidence=definition.confidence,
                        source_url=source_url,
                        detected_at=detected_at,
                        half_life_days=definition.half_life_days,
                    )
                )
                break
        return matches


def profile_match_signal(*, source_url: str | None, detected_at: datetime | None = None) -> DetectedSignal:
    """Low-confidence placeholder used when no signal catalog is configured."""
    return DetectedSignal(
        definition_id=PROFILE_MATCH_ID,
        name="Profile match",
        category=PROFILE_MATCH_ID,
        evidence="Matches target profile search",
        confidence=ConfidenceTier.LOW.confidence,
        source_url=source_url,
        detected_at=detected_at or datetime.now(timezone.utc),
    )
