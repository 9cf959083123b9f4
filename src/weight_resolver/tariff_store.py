"""
Tariff reference store: HSN code → canonical weight range, description, rates.

The store holds one immutable :class:`TariffTable` snapshot at a time.  A
refresh builds a complete new table and swaps the reference under a writer
lock, so readers always see either the old or the new table, never a mix.

Lookups are exact-key first, then walk toward shorter prefixes (down to the
4-digit heading), the same way customs tables are usually consulted:
``85171300`` → ``8517130`` → ``851713`` → … → ``8517``.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping

import pandas as pd

from .diff import diff_tables
from .http import fetch_tariff_frame
from .models import CandidateSource, InvalidInputError, TariffEntry, WeightCandidate
from .normalize import normalize_hts_code, normalize_tariff_frame

logger = logging.getLogger(__name__)

MIN_PREFIX_LENGTH = 4
TARIFF_CONFIDENCE = 0.95

# ── Seed reference data ───────────────────────────────────────────────────────

DEFAULT_TARIFF_ROWS: list[dict[str, Any]] = [
    # Electronics
    {"code": "8517", "description": "Telephones for cellular networks (smartphones)",
     "category": "electronics", "weight_min": 0.15, "weight_max": 0.25, "duty_rate_pct": 20.0,
     "local_tax_pct": 18.0, "minimum_valuation": 50.0,
     "keywords": ("smartphone", "mobile phone", "iphone", "galaxy", "pixel")},
    {"code": "851770", "description": "Mobile phone accessories (cases, chargers, cables)",
     "category": "electronics", "weight_min": 0.02, "weight_max": 0.5, "duty_rate_pct": 20.0,
     "local_tax_pct": 18.0, "minimum_valuation": 5.0,
     "keywords": ("phone case", "charger", "cable", "power bank", "screen protector")},
    {"code": "847130", "description": "Portable computers (laptops, notebooks)",
     "category": "electronics", "weight_min": 1.0, "weight_max": 3.0, "duty_rate_pct": 0.0,
     "local_tax_pct": 18.0, "minimum_valuation": 200.0,
     "keywords": ("laptop", "notebook", "macbook", "chromebook")},
    {"code": "847150", "description": "Desktop computers and workstations",
     "category": "electronics", "weight_min": 5.0, "weight_max": 15.0, "duty_rate_pct": 18.0,
     "local_tax_pct": 18.0, "minimum_valuation": 400.0,
     "keywords": ("desktop", "pc", "workstation", "tower")},
    {"code": "851830", "description": "Headphones and earphones",
     "category": "electronics", "weight_min": 0.03, "weight_max": 0.4, "duty_rate_pct": 15.0,
     "local_tax_pct": 18.0, "minimum_valuation": 10.0,
     "keywords": ("headphones", "earphones", "earbuds", "airpods")},
    {"code": "852352", "description": "Memory cards and USB flash drives",
     "category": "electronics", "weight_min": 0.01, "weight_max": 0.05, "duty_rate_pct": 15.0,
     "local_tax_pct": 18.0, "minimum_valuation": 10.0,
     "keywords": ("memory card", "sd card", "flash drive", "pendrive")},
    # Clothing & footwear
    {"code": "6109", "description": "T-shirts and vests, knitted",
     "category": "clothing", "weight_min": 0.12, "weight_max": 0.25, "duty_rate_pct": 20.0,
     "local_tax_pct": 12.0, "minimum_valuation": 5.0, "keywords": ("t-shirt", "tee", "vest")},
    {"code": "611030", "description": "Sweaters and pullovers",
     "category": "clothing", "weight_min": 0.3, "weight_max": 0.8, "duty_rate_pct": 20.0,
     "local_tax_pct": 12.0, "minimum_valuation": 20.0,
     "keywords": ("sweater", "pullover", "jumper", "hoodie", "cardigan")},
    {"code": "620462", "description": "Women's dresses and gowns",
     "category": "clothing", "weight_min": 0.2, "weight_max": 0.8, "duty_rate_pct": 20.0,
     "local_tax_pct": 12.0, "minimum_valuation": 25.0, "keywords": ("dress", "gown")},
    {"code": "620520", "description": "Men's shirts (formal and casual)",
     "category": "clothing", "weight_min": 0.15, "weight_max": 0.35, "duty_rate_pct": 20.0,
     "local_tax_pct": 12.0, "minimum_valuation": 15.0, "keywords": ("shirt", "dress shirt")},
    {"code": "6403", "description": "Footwear with leather uppers",
     "category": "footwear", "weight_min": 0.5, "weight_max": 1.2, "duty_rate_pct": 25.0,
     "local_tax_pct": 18.0, "minimum_valuation": 20.0,
     "keywords": ("shoes", "boots", "sneakers", "loafers")},
    # Other goods
    {"code": "4901", "description": "Printed books, brochures and leaflets",
     "category": "books", "weight_min": 0.1, "weight_max": 1.5, "duty_rate_pct": 0.0,
     "local_tax_pct": 0.0, "minimum_valuation": None,
     "keywords": ("book", "novel", "textbook", "paperback", "hardcover")},
    {"code": "3304", "description": "Beauty, make-up and skin-care preparations",
     "category": "beauty", "weight_min": 0.01, "weight_max": 0.3, "duty_rate_pct": 20.0,
     "local_tax_pct": 18.0, "minimum_valuation": 5.0,
     "keywords": ("lipstick", "foundation", "moisturizer", "serum", "makeup")},
    {"code": "9503", "description": "Toys, puzzles and scale models",
     "category": "toys", "weight_min": 0.05, "weight_max": 3.0, "duty_rate_pct": 20.0,
     "local_tax_pct": 12.0, "minimum_valuation": 5.0,
     "keywords": ("toy", "puzzle", "lego", "action figure", "doll")},
    {"code": "7117", "description": "Imitation jewellery",
     "category": "jewelry", "weight_min": 0.005, "weight_max": 0.1, "duty_rate_pct": 20.0,
     "local_tax_pct": 3.0, "minimum_valuation": 5.0,
     "keywords": ("necklace", "bracelet", "earrings", "ring")},
    {"code": "9102", "description": "Wrist-watches",
     "category": "jewelry", "weight_min": 0.03, "weight_max": 0.2, "duty_rate_pct": 20.0,
     "local_tax_pct": 18.0, "minimum_valuation": 20.0, "keywords": ("watch", "smartwatch")},
]


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if pd.isna(number) else number


def _entry_from_row(row: Mapping[str, Any]) -> TariffEntry | None:
    code = normalize_hts_code(row.get("code"))
    weight_min = _optional_float(row.get("weight_min"))
    weight_max = _optional_float(row.get("weight_max"))
    duty = _optional_float(row.get("duty_rate_pct"))
    if not code or weight_min is None or weight_max is None or duty is None:
        logger.warning("Skipping incomplete tariff row: %s", dict(row))
        return None

    category = row.get("category")
    if category is not None and not isinstance(category, str):
        category = None

    try:
        return TariffEntry(
            code=code,
            weight_min=weight_min,
            weight_max=weight_max,
            description=str(row.get("description") or ""),
            duty_rate_pct=duty,
            category=category,
            minimum_valuation=_optional_float(row.get("minimum_valuation")),
            local_tax_pct=_optional_float(row.get("local_tax_pct")) or 0.0,
            keywords=tuple(row.get("keywords") or ()),
        )
    except InvalidInputError as exc:
        logger.warning("Skipping invalid tariff row %s: %s", code, exc)
        return None


class TariffTable:
    """Read-only snapshot of tariff entries keyed by normalised code."""

    def __init__(self, entries: Iterable[TariffEntry]):
        by_code: dict[str, TariffEntry] = {}
        for entry in entries:
            if entry.code in by_code:
                logger.warning("Duplicate tariff code %s; keeping the later row", entry.code)
            by_code[entry.code] = entry
        self._entries: Mapping[str, TariffEntry] = MappingProxyType(by_code)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]]) -> TariffTable:
        entries = (_entry_from_row(r) for r in rows)
        return cls(e for e in entries if e is not None)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> TariffTable:
        """Build a table from a raw (un-normalised) DataFrame."""
        normalized = normalize_tariff_frame(df)
        return cls.from_rows(normalized.to_dict(orient="records"))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def codes(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> list[TariffEntry]:
        return [self._entries[c] for c in self.codes()]

    def get(self, code: str) -> TariffEntry | None:
        return self._entries.get(code)

    def lookup(self, code: str | None) -> TariffEntry | None:
        """Exact match, then longest prefix down to MIN_PREFIX_LENGTH digits."""
        normalized = normalize_hts_code(code)
        if not normalized:
            return None
        for length in range(len(normalized), MIN_PREFIX_LENGTH - 1, -1):
            entry = self._entries.get(normalized[:length])
            if entry is not None:
                if length < len(normalized):
                    logger.debug("Tariff %s resolved via prefix %s", normalized, entry.code)
                return entry
        return None

    def to_dataframe(self) -> pd.DataFrame:
        rows = []
        for entry in self.entries():
            row = entry.as_dict()
            row["keywords"] = "|".join(entry.keywords)
            rows.append(row)
        return pd.DataFrame(rows)


class TariffStore:
    """Holds the current :class:`TariffTable` and swaps it atomically on refresh."""

    def __init__(self, table: TariffTable | None = None):
        self._table = table if table is not None else TariffTable(())
        self._write_lock = threading.Lock()

    @classmethod
    def default(cls) -> TariffStore:
        return cls(TariffTable.from_rows(DEFAULT_TARIFF_ROWS))

    @property
    def table(self) -> TariffTable:
        return self._table

    def lookup(self, code: str | None) -> TariffEntry | None:
        """Return the entry for ``code`` or ``None`` when no tariff data exists."""
        entry = self._table.lookup(code)
        if entry is None:
            logger.debug("No tariff entry for code %r", code)
        return entry

    def swap(self, table: TariffTable) -> list[dict[str, Any]]:
        """Replace the current snapshot. Returns the changes against the old one."""
        with self._write_lock:
            previous = self._table
            self._table = table
        logger.info("Tariff table swapped: %d → %d entries", len(previous), len(table))
        return diff_tables(previous, table)

    def refresh_from_csv(self, path: str | Path) -> list[dict[str, Any]]:
        df = pd.read_csv(Path(path), dtype=str)
        return self.swap(TariffTable.from_dataframe(df))

    def refresh_from_url(self, url: str, **kwargs: Any) -> list[dict[str, Any]]:
        """Download a CSV table, then swap it in. Raises NetworkError / ParseError."""
        df = fetch_tariff_frame(url, **kwargs)
        return self.swap(TariffTable.from_dataframe(df))


def tariff_candidate(
    entry: TariffEntry,
    representative: str = "midpoint",
    confidence: float = TARIFF_CONFIDENCE,
) -> WeightCandidate:
    """Build the tariff-sourced weight candidate for a matched entry."""
    value = entry.representative_weight(representative)
    return WeightCandidate(
        source=CandidateSource.TARIFF,
        value=value,
        confidence=confidence,
        rationale=(
            f"HSN {entry.code} ({entry.description}): canonical range "
            f"{entry.weight_min}–{entry.weight_max} kg, {representative} {value} kg"
        ),
        weight_range=(entry.weight_min, entry.weight_max),
    )
