"""
Reconcile weight candidates from independent sources into one decision.

Selection order:

  1. A manual override is always selected (confidence 1.0, listed first).
  2. Otherwise an official tariff candidate wins, even against a more
     confident estimate.
  3. Otherwise the highest confidence wins, ties broken by source priority
     (manual > tariff > pattern > volumetric).

Disagreement between candidates never blocks a decision; it only raises
``discrepancy_flag`` so the item can be reviewed.
"""

from __future__ import annotations

import logging
from typing import Iterable

from .models import (
    SOURCE_PRIORITY,
    CandidateSource,
    InvalidInputError,
    WeightCandidate,
    WeightDecision,
)

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5
MANUAL_CONFIDENCE = 1.0


class NoCandidateError(Exception):
    """Raised when there is nothing to resolve and no manual override was given."""


def deviation(a: float, b: float) -> float:
    """Relative deviation ``|a − b| / max(a, b)``, always within 0.0–1.0."""
    return abs(a - b) / max(a, b)


def _rank(candidate: WeightCandidate) -> tuple[float, int]:
    return candidate.confidence, SOURCE_PRIORITY[candidate.source]


def manual_candidate(value: float) -> WeightCandidate:
    if value is None or value <= 0:
        raise InvalidInputError(f"Manual weight must be > 0 kg, got {value!r}")
    return WeightCandidate(
        source=CandidateSource.MANUAL,
        value=float(value),
        confidence=MANUAL_CONFIDENCE,
        rationale=f"Manual entry: {value} kg",
    )


def resolve(
    candidates: Iterable[WeightCandidate],
    manual_override: float | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> WeightDecision:
    """Select one candidate and flag discrepancies among the rest."""
    pool = list(candidates)

    if manual_override is not None:
        selected = manual_candidate(manual_override)
        pool.insert(0, selected)
    elif not pool:
        raise NoCandidateError("No weight candidates available; a manual weight is required")
    else:
        tariff = [c for c in pool if c.source is CandidateSource.TARIFF]
        selected = max(tariff or pool, key=_rank)

    deviations = tuple(deviation(selected.value, c.value) for c in pool if c is not selected)
    flagged = any(d > threshold for d in deviations)
    if flagged:
        logger.info(
            "Weight discrepancy: selected %s %.3f kg, max deviation %.0f%% (threshold %.0f%%)",
            selected.source.value,
            selected.value,
            max(deviations) * 100,
            threshold * 100,
        )

    return WeightDecision(
        selected=selected,
        candidates=tuple(pool),
        discrepancy_flag=flagged,
        discrepancy_threshold=threshold,
        deviations=deviations,
    )
