"""Change detection between two tariff reference snapshots."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .tariff_store import TariffTable

logger = logging.getLogger(__name__)

CHANGE_TYPES = ("added", "removed", "changed_duty_rate", "changed_weight_range")


def _iso_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="seconds")


def diff_tables(
    prev: TariffTable | None,
    current: TariffTable,
    detected_at: str | None = None,
) -> list[dict[str, Any]]:
    """
    Compare two tariff tables keyed on code.

    Returns a list of change dicts with keys:
        code, change_type, old_value, new_value, detected_at, notes
    """
    if detected_at is None:
        detected_at = _iso_now()

    # First load: nothing to compare against.
    if prev is None or len(prev) == 0:
        logger.info("Previous tariff table is empty; returning no changes.")
        return []

    changes: list[dict[str, Any]] = []
    prev_codes = set(prev.codes())
    curr_codes = set(current.codes())

    for code in sorted(curr_codes - prev_codes):
        entry = current.get(code)
        changes.append(
            {
                "code": code,
                "change_type": "added",
                "old_value": None,
                "new_value": entry.description,
                "detected_at": detected_at,
                "notes": "New tariff code",
            }
        )

    for code in sorted(prev_codes - curr_codes):
        entry = prev.get(code)
        changes.append(
            {
                "code": code,
                "change_type": "removed",
                "old_value": entry.description,
                "new_value": None,
                "detected_at": detected_at,
                "notes": "Tariff code no longer present",
            }
        )

    for code in sorted(prev_codes & curr_codes):
        old = prev.get(code)
        new = current.get(code)

        if old.duty_rate_pct != new.duty_rate_pct:
            changes.append(
                {
                    "code": code,
                    "change_type": "changed_duty_rate",
                    "old_value": old.duty_rate_pct,
                    "new_value": new.duty_rate_pct,
                    "detected_at": detected_at,
                    "notes": None,
                }
            )

        if (old.weight_min, old.weight_max) != (new.weight_min, new.weight_max):
            changes.append(
                {
                    "code": code,
                    "change_type": "changed_weight_range",
                    "old_value": f"{old.weight_min}–{old.weight_max} kg",
                    "new_value": f"{new.weight_min}–{new.weight_max} kg",
                    "detected_at": detected_at,
                    "notes": None,
                }
            )

    logger.info(
        "Tariff diff: %d added, %d removed, %d rate changes, %d weight-range changes",
        sum(1 for c in changes if c["change_type"] == "added"),
        sum(1 for c in changes if c["change_type"] == "removed"),
        sum(1 for c in changes if c["change_type"] == "changed_duty_rate"),
        sum(1 for c in changes if c["change_type"] == "changed_weight_range"),
    )
    return changes
