"""Code, rate, text and unit normalisation."""

from __future__ import annotations

import logging
import re

import pandas as pd

logger = logging.getLogger(__name__)

_RATE_FREE = re.compile(r"^\s*free\s*$", re.IGNORECASE)
_RATE_PERCENT = re.compile(r"^\s*([\d]+(?:\.[\d]+)?)\s*%?\s*$")

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:[-'][a-z0-9]+)*")

# Explicit weights written into product titles, e.g. "Dumbbell 2.5 kg", "Coffee 500g".
# "256GB" never matches (no word boundary after the g).
_STATED_WEIGHT_RE = re.compile(
    r"(?<![\w.])(\d+(?:\.\d+)?)\s*"
    r"(kgs?|kilograms?|gms?|grams?|g|lbs?|pounds?|oz|ounces?)\b",
    re.IGNORECASE,
)
# A bare "g" after a whole number below 10 is a network generation ("4G", "5g").
_NETWORK_MAX = 10

_KG_PER_UNIT: dict[str, float] = {
    "kg": 1.0,
    "g": 0.001,
    "lb": 0.453592,
    "oz": 0.0283495,
}

# Column name variants found in exported HSN tables → canonical names.
_COLUMN_ALIASES: dict[str, str] = {
    "hsn_code": "code",
    "hs_code": "code",
    "hts_code": "code",
    "tariff_code": "code",
    "min_weight": "weight_min",
    "weight_min_kg": "weight_min",
    "max_weight": "weight_max",
    "weight_max_kg": "weight_max",
    "customs_rate": "duty_rate_raw",
    "duty_rate": "duty_rate_raw",
    "default_duty_rate_percent": "duty_rate_raw",
    "duty_rate_pct": "duty_rate_raw",
    "gst_rate": "local_tax_raw",
    "local_tax_pct": "local_tax_raw",
    "minimum_valuation_usd": "minimum_valuation",
}


def normalize_hts_code(raw: str | None) -> str | None:
    """
    Normalise an HSN/HTS code string for consistent comparison and prefix matching.

    Strips all dots, spaces, and surrounding whitespace:

    - ``"8517.12.00"`` → ``"85171200"``
    - ``"8517"``       → ``"8517"``

    Returns:
        Cleaned digit string, or ``None`` for empty / NaN input.
    """
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return None
    cleaned = str(raw).replace(".", "").replace(" ", "").strip()
    return cleaned if cleaned else None


def parse_rate(raw: str | float | None) -> float | None:
    """
    Parse a duty/tax rate into a float percentage value.

    Returns:
        0.0   for "Free" / "FREE"
        float for "5%" -> 5.0 or "12.5" -> 12.5
        None  for unparseable strings
    """
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    s = str(raw).strip()
    if not s:
        return None
    if _RATE_FREE.match(s):
        return 0.0
    m = _RATE_PERCENT.match(s)
    if m:
        return float(m.group(1))
    return None


def clean_description(raw: str | None) -> str | None:
    """Collapse multiple whitespace characters into single spaces."""
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return None
    return re.sub(r"\s+", " ", str(raw)).strip()


def tokenize(text: str | None) -> list[str]:
    """Lower-case word tokens; hyphenated words such as ``t-shirt`` stay whole."""
    if not text:
        return []
    return _TOKEN_RE.findall(text.lower())


def parse_stated_weight(text: str | None) -> tuple[float, str] | None:
    """
    Find an explicit weight in free text and convert it to kilograms.

    Returns ``(kg, matched_text)`` for the first positive match, else ``None``.
    """
    if not text:
        return None
    for m in _STATED_WEIGHT_RE.finditer(text):
        value = float(m.group(1))
        if value <= 0:
            continue
        unit = m.group(2).lower()
        if unit == "g" and "." not in m.group(1) and value < _NETWORK_MAX:
            continue
        if unit.startswith(("kg", "kilogram")):
            key = "kg"
        elif unit.startswith(("lb", "pound")):
            key = "lb"
        elif unit.startswith(("oz", "ounce")):
            key = "oz"
        else:
            key = "g"
        return value * _KG_PER_UNIT[key], m.group(0)
    return None


def _split_keywords(raw) -> tuple[str, ...]:
    if raw is None or (isinstance(raw, float) and pd.isna(raw)):
        return ()
    if isinstance(raw, (list, tuple)):
        return tuple(str(k).strip().lower() for k in raw if str(k).strip())
    return tuple(k.strip().lower() for k in str(raw).split("|") if k.strip())


def normalize_tariff_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Apply all normalisation transforms to a raw tariff table (returns a copy)."""
    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    df = df.rename(columns={k: v for k, v in _COLUMN_ALIASES.items() if k in df.columns})

    if "code" not in df.columns:
        logger.warning("Tariff table has no code column; columns=%s", list(df.columns))
        return df.iloc[0:0]

    df["code"] = df["code"].apply(normalize_hts_code)

    if "description" in df.columns:
        df["description"] = df["description"].apply(clean_description)

    if "duty_rate_raw" in df.columns:
        df["duty_rate_pct"] = df["duty_rate_raw"].apply(parse_rate)
    if "local_tax_raw" in df.columns:
        df["local_tax_pct"] = df["local_tax_raw"].apply(parse_rate)

    for col in ("weight_min", "weight_max", "minimum_valuation"):
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    if "keywords" in df.columns:
        df["keywords"] = df["keywords"].apply(_split_keywords)

    # Drop rows where code is None (header artefacts etc.)
    df = df.loc[df["code"].notna()].reset_index(drop=True)
    return df
