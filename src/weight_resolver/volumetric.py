"""Volumetric (dimensional) weight from package dimensions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import CandidateSource, Dimensions, InvalidInputError, WeightCandidate

if TYPE_CHECKING:
    from .config import VolumetricConfig

logger = logging.getLogger(__name__)

DEFAULT_DIVISOR = 5000.0
VOLUMETRIC_CONFIDENCE = 0.3


def compute(dimensions: Dimensions, divisor: float = DEFAULT_DIVISOR) -> WeightCandidate:
    """
    Volumetric weight in kg: ``L × W × H (cm³) / divisor``.

    Confidence is fixed and low; the figure says how much space the parcel
    takes, not what the product weighs.
    """
    if divisor is None or divisor <= 0:
        raise InvalidInputError(f"Volumetric divisor must be > 0, got {divisor!r}")
    for label, value in (
        ("length", dimensions.length),
        ("width", dimensions.width),
        ("height", dimensions.height),
    ):
        if value is None or value <= 0:
            raise InvalidInputError(f"Dimension {label} must be > 0, got {value!r}")

    length, width, height = dimensions.to_cm()
    volume_cm3 = length * width * height
    weight = volume_cm3 / divisor
    logger.debug("Volumetric %.1f cm³ / %s = %.4f kg", volume_cm3, divisor, weight)

    return WeightCandidate(
        source=CandidateSource.VOLUMETRIC,
        value=round(weight, 4) or weight,
        confidence=VOLUMETRIC_CONFIDENCE,
        rationale=(
            f"{length:g}×{width:g}×{height:g} cm = {volume_cm3:g} cm³ "
            f"÷ {divisor:g} = {weight:.3f} kg"
        ),
    )


def chargeable_weight(actual: float, volumetric: float | None) -> float:
    """Carrier billing weight: the larger of actual and volumetric weight."""
    if volumetric is None:
        return actual
    return max(actual, volumetric)


def divisor_for(carrier: str | None, config: VolumetricConfig | None = None) -> float:
    """Look up a named carrier's divisor, else the configured default."""
    if config is None:
        return DEFAULT_DIVISOR
    if carrier:
        divisor = config.carrier_divisors.get(carrier.strip().lower())
        if divisor is not None:
            return divisor
        logger.debug("No divisor configured for carrier %r; using default", carrier)
    return config.default_divisor
