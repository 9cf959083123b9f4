"""Audit report generation for resolved quotes: Markdown, JSON and a short text summary."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from dateutil import tz

from .engine import ItemResolution, QuoteSummary

logger = logging.getLogger(__name__)

_DISCLAIMER = (
    "> **Disclaimer:** Weights and duty amounts are estimates for quoting only. "
    "Final customs assessment is made by the authorities at import; verify the "
    "classification and valuation before shipment."
)

_SOURCE_LABELS = {
    "manual": "✍️ Manual",
    "tariff": "📘 Tariff",
    "pattern": "🔎 Pattern",
    "volumetric": "📦 Volumetric",
}


def _now_local(timezone_str: str) -> datetime:
    local_tz = tz.gettz(timezone_str) or tz.tzlocal()
    return datetime.now(tz=local_tz)


def _md_candidates(item: ItemResolution) -> str:
    header = "| Source | Weight (kg) | Confidence | Deviation | Rationale |\n"
    separator = "|---|---|---|---|---|\n"
    rows = []
    deviations = iter(item.decision.deviations)
    for c in item.decision.candidates:
        label = _SOURCE_LABELS.get(c.source.value, c.source.value)
        if c is item.decision.selected:
            label = f"**{label}** (selected)"
            dev = "—"
        else:
            dev = f"{next(deviations, 0.0):.0%}"
        rows.append(f"| {label} | {c.value:g} | {c.confidence:.2f} | {dev} | {c.rationale} |")
    return header + separator + "\n".join(rows) + "\n"


def _md_item(index: int, item: ItemResolution) -> str:
    d = item.descriptor
    lines = [
        f"### {index}. {d.name}",
        "",
        f"- **HSN code:** `{d.hsn_code or '—'}`"
        + (f" → `{item.tariff_entry.code}` {item.tariff_entry.description}" if item.tariff_entry else ""),
        f"- **Quantity:** {d.quantity}",
        f"- **Weight:** {item.unit_weight_kg:g} kg/unit, {item.total_weight_kg:g} kg total, "
        f"{item.chargeable_weight_kg:g} kg chargeable",
        "",
        _md_candidates(item),
    ]
    if item.discrepancy_flag:
        lines.append(
            f"> ⚠️ **Discrepancy:** sources deviate by more than "
            f"{item.decision.discrepancy_threshold:.0%}; review recommended.\n"
        )
    v = item.valuation
    if v is not None:
        lines.append(
            f"- **Valuation:** {v.method.value} → base {v.resolved_base:.2f} ({v.applied.value}), "
            f"duty {v.duty_amount}, local tax {v.local_tax_amount}, total {v.total_tax}"
            + (" _(fallback)_" if v.fallback else "")
        )
        lines.extend(f"  - {r}" for r in v.rationale)
        alt = v.alternative
        if alt is not None:
            lines.append(
                f"  - On {alt.basis.value} instead: base {alt.base:.2f}, duty {alt.duty_amount}, "
                f"local tax {alt.local_tax_amount}, total {alt.total_tax}"
            )
    lines.extend(f"- _{note}_" for note in item.notes)
    return "\n".join(lines) + "\n"


def generate_markdown_report(
    summary: QuoteSummary,
    run_date_str: str,
    timezone_str: str = "UTC",
) -> str:
    items_md = "\n".join(_md_item(i, item) for i, item in enumerate(summary.items, 1))
    if not items_md:
        items_md = "_No items resolved._\n"

    if summary.failures:
        failures_md = "\n".join(
            f"- Line {f['index']} `{f['name']}`: {f['message']} — manual entry required"
            for f in summary.failures
        )
    else:
        failures_md = "_None._"

    return f"""# Weight Resolution Audit

**Date:** {run_date_str} ({timezone_str})
**Items:** {len(summary.items)} resolved, {len(summary.failures)} unresolved
**Flagged for review:** {summary.flagged_count}

---

## 📌 Totals

- Weight: {summary.total_weight_kg:g} kg
- Chargeable weight: {summary.total_chargeable_kg:g} kg
- Duty: {summary.total_duty:.2f}
- Duty + local tax: {summary.total_tax:.2f}
- Items valued at minimum valuation: {summary.minimum_valuation_count}

---

## 🔍 Items

{items_md}
---

## ❗ Unresolved items

{failures_md}

---

## ⚠️ Disclaimer

{_DISCLAIMER}
"""


def generate_json_report(
    summary: QuoteSummary,
    run_date_str: str,
    timezone_str: str = "UTC",
) -> dict[str, Any]:
    return {
        "meta": {
            "date": run_date_str,
            "timezone": timezone_str,
            "items": len(summary.items),
            "failures": len(summary.failures),
            "flagged": summary.flagged_count,
        },
        **summary.as_dict(),
    }


def generate_text_summary(summary: QuoteSummary, md_path: str, json_path: str) -> str:
    """Return a short plain-text summary for the terminal."""
    lines = [
        f"Resolved {len(summary.items)} item(s): {summary.total_weight_kg:g} kg "
        f"({summary.total_chargeable_kg:g} kg chargeable), duty {summary.total_duty:.2f}",
    ]
    if summary.flagged_count:
        lines.append(f"⚠️ {summary.flagged_count} item(s) flagged for weight review")
    if summary.failures:
        lines.append(f"❗ {len(summary.failures)} item(s) need a manual weight")
    lines += [f"Report (MD):   {md_path}", f"Report (JSON): {json_path}"]
    return "\n".join(lines)


def write_reports(
    summary: QuoteSummary,
    reports_dir: str | Path,
    timezone_str: str = "UTC",
) -> tuple[Path, Path, str]:
    """
    Write Markdown + JSON audit reports to reports_dir.
    Returns (md_path, json_path, text_summary).
    """
    reports_dir = Path(reports_dir)
    reports_dir.mkdir(parents=True, exist_ok=True)

    now = _now_local(timezone_str)
    date_str = now.strftime("%Y-%m-%d")
    file_stem = f"audit_{now.strftime('%Y%m%d_%H%M%S')}"

    md_path = reports_dir / f"{file_stem}.md"
    json_path = reports_dir / f"{file_stem}.json"

    md_path.write_text(generate_markdown_report(summary, date_str, timezone_str), encoding="utf-8")
    json_path.write_text(
        json.dumps(generate_json_report(summary, date_str, timezone_str), indent=2, default=str),
        encoding="utf-8",
    )

    logger.info("Report written: %s", md_path)
    logger.info("Report written: %s", json_path)

    return md_path, json_path, generate_text_summary(summary, str(md_path), str(json_path))
