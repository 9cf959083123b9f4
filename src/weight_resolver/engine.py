"""
Per-item resolution pipeline and quote totals.

For each line item the tariff store and the pattern estimator are consulted
independently, a volumetric candidate is added when package dimensions are
known, and the resolver picks the weight.  When the tariff entry supplies a
duty rate the valuation basis is computed as well.

Items never share state; a quote is just the items resolved one by one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from .config import AppConfig
from .estimator import PatternEstimator
from .models import (
    CandidateSource,
    InvalidInputError,
    ProductDescriptor,
    TariffEntry,
    ValuationBasis,
    ValuationMethod,
    WeightCandidate,
    WeightDecision,
)
from .normalize import tokenize
from .resolver import NoCandidateError, resolve
from .tariff_store import TariffStore, tariff_candidate
from .valuation import select_basis
from .volumetric import chargeable_weight, compute, divisor_for

logger = logging.getLogger(__name__)


# ── Advisory notes ────────────────────────────────────────────────────────────

MANUAL_FLOOR_KG = 0.01
MANUAL_CEILING_KG = 50.0
LIGHT_ITEM_KG = 0.1
HEAVY_ITEM_KG = 5.0
_MULTI_ITEM_WORDS = frozenset({"set", "sets", "pack", "packs", "bundle", "kit"})


def assess_manual_weight(weight_kg: float, estimate_kg: float | None = None) -> list[str]:
    """Plausibility notes for a user-entered weight."""
    notes: list[str] = []
    if weight_kg < MANUAL_FLOOR_KG:
        notes.append(f"Manual weight {weight_kg} kg is under 10 g; check that packaging is included")
    if weight_kg > MANUAL_CEILING_KG:
        notes.append(
            f"Manual weight {weight_kg} kg is over {MANUAL_CEILING_KG:g} kg; "
            "check whether it includes shipping packaging"
        )
    if estimate_kg:
        relative = abs(weight_kg - estimate_kg) / estimate_kg
        if relative > 2:
            notes.append(
                f"Manual weight differs from the pattern estimate ({estimate_kg} kg) "
                "by more than 200%; please double-check"
            )
        elif relative > 1:
            notes.append(
                f"Manual weight differs from the pattern estimate ({estimate_kg} kg) by more than 100%"
            )
    return notes


def suggestion_notes(name: str, category: str | None, weight_kg: float) -> list[str]:
    notes: list[str] = []
    if weight_kg < LIGHT_ITEM_KG:
        notes.append("Very light item; verify the packaging weight")
    if weight_kg > HEAVY_ITEM_KG:
        notes.append("Heavy item; check carrier shipping restrictions")
    if category == "electronics":
        notes.append("Electronics usually have published specs; check the manufacturer's site")
    elif category == "clothing":
        notes.append("Clothing weight varies with material and size")
    if _MULTI_ITEM_WORDS.intersection(tokenize(name)):
        notes.append("Multi-item product; verify the weight covers every piece")
    return notes


# ── Result records ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ItemResolution:
    descriptor: ProductDescriptor
    decision: WeightDecision
    valuation: ValuationBasis | None
    tariff_entry: TariffEntry | None
    unit_weight_kg: float
    total_weight_kg: float
    chargeable_weight_kg: float
    notes: tuple[str, ...] = ()

    @property
    def discrepancy_flag(self) -> bool:
        return self.decision.discrepancy_flag

    def as_dict(self) -> dict[str, Any]:
        return {
            "product": self.descriptor.as_dict(),
            "decision": self.decision.as_dict(),
            "valuation": self.valuation.as_dict() if self.valuation else None,
            "tariff": self.tariff_entry.as_dict() if self.tariff_entry else None,
            "unit_weight_kg": self.unit_weight_kg,
            "total_weight_kg": self.total_weight_kg,
            "chargeable_weight_kg": self.chargeable_weight_kg,
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class QuoteSummary:
    items: tuple[ItemResolution, ...]
    failures: tuple[dict[str, Any], ...] = ()
    total_weight_kg: float = 0.0
    total_chargeable_kg: float = 0.0
    total_duty: Decimal = Decimal("0.00")
    total_tax: Decimal = Decimal("0.00")

    @classmethod
    def from_items(
        cls, items: Iterable[ItemResolution], failures: Iterable[dict[str, Any]] = ()
    ) -> QuoteSummary:
        items = tuple(items)
        valued = [i.valuation for i in items if i.valuation is not None]
        return cls(
            items=items,
            failures=tuple(failures),
            total_weight_kg=round(sum(i.total_weight_kg for i in items), 4),
            total_chargeable_kg=round(sum(i.chargeable_weight_kg for i in items), 4),
            total_duty=sum((v.duty_amount for v in valued), Decimal("0.00")),
            total_tax=sum((v.total_tax for v in valued), Decimal("0.00")),
        )

    @property
    def flagged_count(self) -> int:
        return sum(1 for item in self.items if item.discrepancy_flag)

    @property
    def minimum_valuation_count(self) -> int:
        """Items assessed on the official minimum rather than the declared value."""
        return sum(
            1
            for item in self.items
            if item.valuation is not None
            and item.valuation.applied is ValuationMethod.MINIMUM_VALUATION
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "items": [item.as_dict() for item in self.items],
            "failures": list(self.failures),
            "total_weight_kg": self.total_weight_kg,
            "total_chargeable_kg": self.total_chargeable_kg,
            "total_duty": float(self.total_duty),
            "total_tax": float(self.total_tax),
            "flagged_count": self.flagged_count,
            "minimum_valuation_count": self.minimum_valuation_count,
        }


# ── Pipeline ──────────────────────────────────────────────────────────────────

class WeightResolver:
    """Wires the tariff store, estimator and configuration into one pipeline."""

    def __init__(
        self,
        store: TariffStore | None = None,
        estimator: PatternEstimator | None = None,
        config: AppConfig | None = None,
    ):
        self.store = store if store is not None else TariffStore.default()
        self.estimator = estimator if estimator is not None else PatternEstimator()
        self.config = config if config is not None else AppConfig()

    def candidates_for(
        self, descriptor: ProductDescriptor, carrier: str | None = None
    ) -> tuple[list[WeightCandidate], TariffEntry | None, list[str]]:
        """Gather every candidate the sources can offer for one item."""
        candidates: list[WeightCandidate] = []
        notes: list[str] = []

        entry = None
        if descriptor.hsn_code:
            entry = self.store.lookup(descriptor.hsn_code)
            if entry is None:
                notes.append(f"No tariff entry for HSN {descriptor.hsn_code}")
            else:
                candidates.append(
                    tariff_candidate(entry, self.config.resolution.tariff_representative)
                )
        else:
            notes.append("No HSN code supplied")

        estimate = self.estimator.estimate(descriptor.name, descriptor.hints(), descriptor.url)
        if estimate is None:
            notes.append("Pattern estimator found no match")
        else:
            candidates.append(estimate)

        if descriptor.dimensions is not None:
            divisor = divisor_for(carrier, self.config.volumetric)
            candidates.append(compute(descriptor.dimensions, divisor))

        return candidates, entry, notes

    def resolve_item(
        self,
        descriptor: ProductDescriptor,
        manual_override: float | None = None,
        carrier: str | None = None,
        valuation_method: str | None = None,
        minimum_valuation: float | None = None,
    ) -> ItemResolution:
        """Resolve weight (and valuation, when a duty rate is known) for one item."""
        candidates, entry, notes = self.candidates_for(descriptor, carrier)
        decision = resolve(
            candidates,
            manual_override=manual_override,
            threshold=self.config.resolution.discrepancy_threshold,
        )

        if entry is not None and not entry.contains(decision.weight_kg):
            notes.append(
                f"Selected weight {decision.weight_kg} kg is outside HSN {entry.code} "
                f"range {entry.weight_min}–{entry.weight_max} kg"
            )
        if decision.discrepancy_flag:
            if entry is not None and all(entry.contains(c.value) for c in decision.candidates):
                notes.append(
                    f"Weight sources disagree but all lie within HSN {entry.code} "
                    f"range {entry.weight_min}–{entry.weight_max} kg; wide official range"
                )
            else:
                notes.append("Weight sources disagree; review recommended")
        if manual_override is not None:
            estimate = next(
                (c.value for c in candidates if c.source is CandidateSource.PATTERN), None
            )
            notes.extend(assess_manual_weight(decision.weight_kg, estimate))
        category = (
            (entry.category if entry is not None else None)
            or descriptor.category
            or self.estimator.detect_category(descriptor.name, descriptor.url)
        )
        notes.extend(suggestion_notes(descriptor.name, category, decision.weight_kg))

        valuation = None
        if entry is not None:
            unit_minimum = minimum_valuation if minimum_valuation is not None else entry.minimum_valuation
            qty = Decimal(descriptor.quantity)
            valuation = select_basis(
                product_value=Decimal(str(descriptor.price)) * qty,
                minimum_valuation=(
                    Decimal(str(unit_minimum)) * qty if unit_minimum is not None else None
                ),
                method=valuation_method or self.config.valuation.default_method,
                tariff_rate=entry.duty_rate_pct,
                local_tax_rate=entry.local_tax_pct,
            )
        elif minimum_valuation is not None:
            notes.append("Minimum valuation given but no duty rate is known; valuation skipped")

        unit = decision.weight_kg
        volumetric = next(
            (c.value for c in decision.candidates if c.source is CandidateSource.VOLUMETRIC), None
        )
        return ItemResolution(
            descriptor=descriptor,
            decision=decision,
            valuation=valuation,
            tariff_entry=entry,
            unit_weight_kg=unit,
            total_weight_kg=round(unit * descriptor.quantity, 4),
            chargeable_weight_kg=round(chargeable_weight(unit, volumetric) * descriptor.quantity, 4),
            notes=tuple(notes),
        )

    def resolve_quote(
        self,
        descriptors: Iterable[ProductDescriptor],
        overrides: Mapping[int, float] | None = None,
        carrier: str | None = None,
    ) -> QuoteSummary:
        """
        Resolve every line item. ``overrides`` maps line index → manual kg.

        Items that cannot be resolved are listed in ``failures`` so the caller
        can ask for manual entry; they do not abort the quote.
        """
        overrides = overrides or {}
        items: list[ItemResolution] = []
        failures: list[dict[str, Any]] = []

        for index, descriptor in enumerate(descriptors):
            try:
                items.append(
                    self.resolve_item(descriptor, manual_override=overrides.get(index), carrier=carrier)
                )
            except (NoCandidateError, InvalidInputError) as exc:
                logger.warning("Line %d (%s) not resolved: %s", index, descriptor.name, exc)
                failures.append(
                    {
                        "index": index,
                        "name": descriptor.name,
                        "error": type(exc).__name__,
                        "message": str(exc),
                    }
                )

        summary = QuoteSummary.from_items(items, failures)
        logger.info(
            "Quote resolved: %d item(s), %d flagged, %d failure(s), %.3f kg",
            len(items),
            summary.flagged_count,
            len(failures),
            summary.total_weight_kg,
        )
        return summary
