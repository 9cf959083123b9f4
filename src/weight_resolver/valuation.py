"""
Customs valuation basis and duty computation.

The assessable value is either the declared product value or the official
minimum valuation for the tariff line, depending on the requested method:

  product_value      declared value
  minimum_valuation  official minimum (declared value when none exists)
  higher_of_both     max(declared, minimum)
  auto               same as higher_of_both

Duty and local tax are computed on that base and rounded half-up to cents.
The same figures on the other base are kept alongside for comparison.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import BasisCalculation, InvalidInputError, ValuationBasis, ValuationMethod

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


def _money(x: Decimal) -> Decimal:
    return x.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _decimal(value: Decimal | float | int | str, name: str) -> Decimal:
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{name} must be numeric, got {value!r}") from None
    if not number.is_finite():
        raise InvalidInputError(f"{name} must be finite, got {value!r}")
    if number < 0:
        raise InvalidInputError(f"{name} must be >= 0, got {value!r}")
    return number


def select_basis(
    product_value: Decimal | float | int | str,
    minimum_valuation: Decimal | float | int | str | None = None,
    method: str | ValuationMethod | None = "auto",
    tariff_rate: Decimal | float | int | str = 0.0,
    local_tax_rate: Decimal | float | int | str = 0.0,
) -> ValuationBasis:
    """Pick the assessable value and compute duty plus local tax on it."""
    requested = ValuationMethod.parse(method)
    product = _decimal(product_value, "product_value")
    minimum = _decimal(minimum_valuation, "minimum_valuation") if minimum_valuation is not None else None
    rate = _decimal(tariff_rate, "tariff_rate")
    local_rate = _decimal(local_tax_rate, "local_tax_rate")

    rationale: list[str] = []
    fallback = False

    if requested is ValuationMethod.PRODUCT_VALUE:
        base, applied = product, ValuationMethod.PRODUCT_VALUE
        rationale.append(f"Declared product value {_money(product)} used as requested")

    elif requested is ValuationMethod.MINIMUM_VALUATION:
        if minimum is None:
            base, applied, fallback = product, ValuationMethod.PRODUCT_VALUE, True
            rationale.append(
                f"No minimum valuation on record; fell back to product value {_money(product)}"
            )
            logger.warning(
                "minimum_valuation requested but none available; using product value %s", product
            )
        else:
            base, applied = minimum, ValuationMethod.MINIMUM_VALUATION
            rationale.append(f"Official minimum valuation {_money(minimum)} used as requested")

    else:
        if minimum is None:
            base, applied = product, ValuationMethod.PRODUCT_VALUE
            rationale.append(
                f"No minimum valuation on record; product value {_money(product)} is the base"
            )
        elif minimum > product:
            base, applied = minimum, ValuationMethod.MINIMUM_VALUATION
            rationale.append(
                f"Minimum valuation {_money(minimum)} exceeds product value {_money(product)}"
            )
        else:
            base, applied = product, ValuationMethod.PRODUCT_VALUE
            rationale.append(
                f"Product value {_money(product)} is at or above minimum valuation {_money(minimum)}"
            )

    bases = [(ValuationMethod.PRODUCT_VALUE, product)]
    if minimum is not None:
        bases.append((ValuationMethod.MINIMUM_VALUATION, minimum))
    calculations = tuple(
        BasisCalculation(
            basis=kind,
            base=amount,
            duty_amount=_money(amount * rate / 100),
            local_tax_amount=_money(amount * local_rate / 100),
        )
        for kind, amount in bases
    )
    chosen = next(c for c in calculations if c.basis is applied)
    duty, local_tax = chosen.duty_amount, chosen.local_tax_amount
    rationale.append(f"Duty {rate}% of {_money(base)} = {duty}")
    if local_rate:
        rationale.append(f"Local tax {local_rate}% of {_money(base)} = {local_tax}")

    return ValuationBasis(
        method=requested,
        applied=applied,
        product_value=product,
        minimum_valuation=minimum,
        resolved_base=base,
        duty_rate_pct=rate,
        duty_amount=duty,
        fallback=fallback,
        local_tax_pct=local_rate,
        local_tax_amount=local_tax,
        rationale=tuple(rationale),
        calculations=calculations,
    )
