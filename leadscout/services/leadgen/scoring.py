"""Composite, time-decayed, multi-signal lead scoring."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Final

from leadscout.models.lead import Candidate, DataQuality, DetectedSignal

BASE_SCORE: Final = 50
EXTRA_SIGNAL_POINTS: Final = 10
SIGNAL_POINTS_CAP: Final = 100
CONTACT_BONUS: Final = 5
EMPLOYEE_COUNT_BONUS: Final = 3
INDUSTRY_BONUS: Final = 2
# (distinct categories, multiplier), highest first; only one applies.
CONVERGENCE_MULTIPLIERS: Final[tuple[tuple[int, Decimal], ...]] = (
    (3, Decimal("1.3")),
    (2, Decimal("1.15")),
)
SCORE_MIN: Final = 0
SCORE_MAX: Final = 100


@dataclass(frozen=True)
class ScoreBreakdown:
    """Intermediate values behind one composite score."""

    signal_points: float
    completeness_points: int
    subtotal: float
    categories: int
    multiplier: Decimal
    score: int


def _aware(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def decay_factor(signal: DetectedSignal, now: datetime) -> float:
    """Half-life decay of a signal's weight; 1.0 for signals detected at ``now``."""
    age_days = max(0.0, (_aware(now) - _aware(signal.detected_at)).total_seconds() / 86400)
    return 0.5 ** (age_days / signal.half_life_days)


def unique_signals(signals: Sequence[DetectedSignal]) -> list[DetectedSignal]:
    seen: set[str] = set()
    unique: list[DetectedSignal] = []
    for signal in signals:
        if signal.definition_id in seen:
            continue
        seen.add(signal.definition_id)
        unique.append(signal)
    return unique


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class ScoringEngine:
    """Turns detected signals plus enrichment completeness into a score in [0, 100].

    subtotal = min(100, 50 + 10 per extra signal) + contact/size/industry bonuses,
    then one convergence multiplier (x1.15 for two categories, x1.3 for three
    or more), then clamp, then round half up. Candidates without signals are
    not scored at all.
    """

    def breakdown(
        self,
        candidate: Candidate,
        signals: Sequence[DetectedSignal],
        *,
        now: datetime | None = None,
    ) -> ScoreBreakdown | None:
        distinct = unique_signals(signals)
        if not distinct:
            return None
        # Without an explicit clock, score as of the newest detection (the job run time).
        now = now or max(_aware(signal.detected_at) for signal in distinct)

        extra = sum(EXTRA_SIGNAL_POINTS * decay_factor(signal, now) for signal in distinct[1:])
        signal_points = min(float(SIGNAL_POINTS_CAP), BASE_SCORE + extra)

        completeness = 0
        if candidate.contacts:
            completeness += CONTACT_BONUS
        if candidate.facts.employee_count is not None:
            completeness += EMPLOYEE_COUNT_BONUS
        if candidate.facts.industry:
            completeness += INDUSTRY_BONUS

        subtotal = signal_points + completeness
        categories = len({signal.category for signal in distinct})
        multiplier = Decimal("1")
        for threshold, bonus in CONVERGENCE_MULTIPLIERS:
            if categories >= threshold:
                multiplier = bonus
                break

        total = Decimal(repr(subtotal)) * multiplier
        clamped = min(Decimal(SCORE_MAX), max(Decimal(SCORE_MIN), total))
        return ScoreBreakdown(
            signal_points=signal_points,
            completeness_points=completeness,
            subtotal=subtotal,
            categories=categories,
            multiplier=multiplier,
            score=round_half_up(clamped),
        )

    def score(
        self,
        candidate: Candidate,
        signals: Sequence[DetectedSignal],
        *,
        now: datetime | None = None,
    ) -> int | None:
        result = self.breakdown(candidate, signals, now=now)
        return result.score if result else None


def data_quality(candidate: Candidate, signals: Sequence[DetectedSignal]) -> DataQuality:
    """Enrichment completeness tier shown alongside each lead."""
    facts = candidate.facts
    points = 0
    if facts.description:
        points += 1
    if facts.industry:
        points += 1
    if facts.employee_count is not None:
        points += 2
    if facts.revenue:
        points += 1
    if facts.headquarters:
        points += 1
    if candidate.contacts:
        points += 2
    if any(contact.linkedin_url for contact in candidate.contacts):
        points += 1
    if signals:
        points += 2

    if points >= 8:
        return "high"
    if points >= 4:
        return "medium"
    return "low"
