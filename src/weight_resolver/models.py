"""Immutable records shared by every resolution stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class InvalidInputError(ValueError):
    """Raised when an input is rejected before resolution (never coerced)."""


# ── Enumerations ──────────────────────────────────────────────────────────────

class CandidateSource(str, Enum):
    TARIFF = "tariff"
    PATTERN = "pattern"
    VOLUMETRIC = "volumetric"
    MANUAL = "manual"


# Higher wins when confidences tie.
SOURCE_PRIORITY: dict[CandidateSource, int] = {
    CandidateSource.MANUAL: 3,
    CandidateSource.TARIFF: 2,
    CandidateSource.PATTERN: 1,
    CandidateSource.VOLUMETRIC: 0,
}


class ValuationMethod(str, Enum):
    PRODUCT_VALUE = "product_value"
    MINIMUM_VALUATION = "minimum_valuation"
    HIGHER_OF_BOTH = "higher_of_both"
    AUTO = "auto"

    @classmethod
    def parse(cls, raw: str | ValuationMethod | None) -> ValuationMethod:
        if isinstance(raw, cls):
            return raw
        if raw is None:
            return cls.AUTO
        key = str(raw).strip().lower().replace("-", "_")
        # "product_price" is the label the quote form uses
        if key == "product_price":
            key = cls.PRODUCT_VALUE.value
        try:
            return cls(key)
        except ValueError:
            raise InvalidInputError(f"Unknown valuation method: {raw!r}") from None


# cm per unit
_LENGTH_FACTORS: dict[str, float] = {
    "cm": 1.0,
    "mm": 0.1,
    "m": 100.0,
    "in": 2.54,
    "inch": 2.54,
}


# ── Product input ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Dimensions:
    length: float
    width: float
    height: float
    unit: str = "cm"

    def __post_init__(self) -> None:
        unit = self.unit.strip().lower()
        if unit not in _LENGTH_FACTORS:
            raise InvalidInputError(f"Unsupported dimension unit: {self.unit!r}")
        object.__setattr__(self, "unit", unit)

    def to_cm(self) -> tuple[float, float, float]:
        factor = _LENGTH_FACTORS[self.unit]
        return (self.length * factor, self.width * factor, self.height * factor)

    def as_dict(self) -> dict[str, Any]:
        return {"length": self.length, "width": self.width, "height": self.height, "unit": self.unit}


@dataclass(frozen=True)
class ProductDescriptor:
    """
    One quote line item as entered by the customer or admin.

    Descriptors never change after creation; an edit produces a new one
    (``dataclasses.replace``), which in turn produces a new decision.
    """

    name: str
    price: float
    url: str | None = None
    hsn_code: str | None = None
    quantity: int = 1
    dimensions: Dimensions | None = None
    brand: str | None = None
    material: str | None = None
    size: str | None = None
    category: str | None = None

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise InvalidInputError("Product name must not be empty")
        if self.price is None or self.price < 0:
            raise InvalidInputError(f"Product price must be >= 0, got {self.price!r}")
        if self.quantity < 1:
            raise InvalidInputError(f"Quantity must be >= 1, got {self.quantity!r}")

    def hints(self) -> dict[str, str]:
        """Optional estimator hints that were actually supplied."""
        raw = {
            "brand": self.brand,
            "material": self.material,
            "size": self.size,
            "category": self.category,
        }
        return {k: v for k, v in raw.items() if v}

    def as_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "url": self.url,
            "hsn_code": self.hsn_code,
            "quantity": self.quantity,
            "dimensions": self.dimensions.as_dict() if self.dimensions else None,
            **self.hints(),
        }


# ── Weight candidates & decisions ────────────────────────────────────────────

@dataclass(frozen=True)
class WeightCandidate:
    source: CandidateSource
    value: float
    confidence: float
    rationale: str
    weight_range: tuple[float, float] | None = None

    def __post_init__(self) -> None:
        if self.value is None or self.value <= 0:
            raise InvalidInputError(f"Candidate weight must be > 0 kg, got {self.value!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise InvalidInputError(f"Confidence must be within 0.0–1.0, got {self.confidence!r}")
        object.__setattr__(self, "source", CandidateSource(self.source))

    def as_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "source": self.source.value,
            "value": round(self.value, 4),
            "confidence": round(self.confidence, 3),
            "rationale": self.rationale,
        }
        if self.weight_range is not None:
            result["range"] = {"min": self.weight_range[0], "max": self.weight_range[1]}
        return result


@dataclass(frozen=True)
class WeightDecision:
    selected: WeightCandidate
    candidates: tuple[WeightCandidate, ...]
    discrepancy_flag: bool
    discrepancy_threshold: float
    deviations: tuple[float, ...] = ()

    @property
    def weight_kg(self) -> float:
        return self.selected.value

    def as_dict(self) -> dict[str, Any]:
        return {
            "selected": self.selected.as_dict(),
            "candidates": [c.as_dict() for c in self.candidates],
            "deviations": [round(d, 4) for d in self.deviations],
            "discrepancy_flag": self.discrepancy_flag,
            "discrepancy_threshold": self.discrepancy_threshold,
        }


# ── Tariff reference data ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class TariffEntry:
    code: str
    weight_min: float
    weight_max: float
    description: str
    duty_rate_pct: float
    category: str | None = None
    minimum_valuation: float | None = None
    local_tax_pct: float = 0.0
    keywords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not (0 < self.weight_min <= self.weight_max):
            raise InvalidInputError(
                f"Tariff {self.code}: invalid weight range {self.weight_min}–{self.weight_max}"
            )
        if self.duty_rate_pct < 0:
            raise InvalidInputError(f"Tariff {self.code}: negative duty rate {self.duty_rate_pct}")

    def representative_weight(self, mode: str = "midpoint") -> float:
        if mode == "min":
            return self.weight_min
        if mode == "max":
            return self.weight_max
        return round((self.weight_min + self.weight_max) / 2, 4)

    def contains(self, weight: float) -> bool:
        return self.weight_min <= weight <= self.weight_max

    def as_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "description": self.description,
            "category": self.category,
            "weight_min": self.weight_min,
            "weight_max": self.weight_max,
            "duty_rate_pct": self.duty_rate_pct,
            "local_tax_pct": self.local_tax_pct,
            "minimum_valuation": self.minimum_valuation,
            "keywords": list(self.keywords),
        }


# ── Valuation ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BasisCalculation:
    """Duty and local tax worked out on one candidate base."""

    basis: ValuationMethod
    base: Decimal
    duty_amount: Decimal
    local_tax_amount: Decimal

    @property
    def total_tax(self) -> Decimal:
        return self.duty_amount + self.local_tax_amount

    def as_dict(self) -> dict[str, Any]:
        return {
            "basis": self.basis.value,
            "base": float(self.base),
            "duty_amount": float(self.duty_amount),
            "local_tax_amount": float(self.local_tax_amount),
            "total_tax": float(self.total_tax),
        }


@dataclass(frozen=True)
class ValuationBasis:
    method: ValuationMethod
    applied: ValuationMethod
    product_value: Decimal
    minimum_valuation: Decimal | None
    resolved_base: Decimal
    duty_rate_pct: Decimal
    duty_amount: Decimal
    fallback: bool = False
    local_tax_pct: Decimal = Decimal("0")
    local_tax_amount: Decimal = Decimal("0.00")
    rationale: tuple[str, ...] = field(default_factory=tuple)
    # Product value always; minimum valuation when one is on record.
    calculations: tuple[BasisCalculation, ...] = ()

    @property
    def total_tax(self) -> Decimal:
        return self.duty_amount + self.local_tax_amount

    @property
    def alternative(self) -> BasisCalculation | None:
        """The calculation on the base that was not applied, for side-by-side display."""
        return next((c for c in self.calculations if c.basis is not self.applied), None)

    def as_dict(self) -> dict[str, Any]:
        return {
            "method": self.method.value,
            "applied": self.applied.value,
            "product_value": float(self.product_value),
            "minimum_valuation": (
                float(self.minimum_valuation) if self.minimum_valuation is not None else None
            ),
            "resolved_base": float(self.resolved_base),
            "duty_rate_pct": float(self.duty_rate_pct),
            "duty_amount": float(self.duty_amount),
            "local_tax_pct": float(self.local_tax_pct),
            "local_tax_amount": float(self.local_tax_amount),
            "total_tax": float(self.total_tax),
            "fallback": self.fallback,
            "alternative": self.alternative.as_dict() if self.alternative else None,
            "comparison": [c.as_dict() for c in self.calculations],
            "rationale": list(self.rationale),
        }
