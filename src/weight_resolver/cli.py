"""Command-line entry point for the weight resolver."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="weight-resolver",
        description="Resolve product weights and customs duty basis from tariff, pattern and volumetric sources.",
    )
    sub = parser.add_subparsers(dest="command")

    # ── resolve ────────────────────────────────────────────────────────────
    resolve_cmd = sub.add_parser("resolve", help="Resolve weight and valuation for one item.")
    resolve_cmd.add_argument("--name", required=True, help="Product title as listed by the retailer.")
    resolve_cmd.add_argument("--price", required=True, type=float, help="Declared unit price.")
    resolve_cmd.add_argument("--hsn", default=None, metavar="CODE", help="HSN/tariff code (dots optional).")
    resolve_cmd.add_argument("--url", default=None, help="Product page URL.")
    resolve_cmd.add_argument("--quantity", type=int, default=1, help="Number of units (default: 1).")
    resolve_cmd.add_argument(
        "--dims",
        default=None,
        metavar="LxWxH",
        help="Package dimensions, e.g. 30x20x10.",
    )
    resolve_cmd.add_argument("--unit", default="cm", help="Dimension unit: cm, mm, m, in (default: cm).")
    resolve_cmd.add_argument("--carrier", default=None, help="Carrier name for the volumetric divisor.")
    resolve_cmd.add_argument("--weight", type=float, default=None, help="Manual weight override in kg.")
    resolve_cmd.add_argument(
        "--valuation-method",
        default=None,
        help="product_value, minimum_valuation, higher_of_both or auto.",
    )
    resolve_cmd.add_argument(
        "--min-valuation",
        type=float,
        default=None,
        help="Official minimum unit valuation (overrides the tariff table's).",
    )
    for hint in ("brand", "material", "size", "category"):
        resolve_cmd.add_argument(f"--{hint}", default=None, help=f"Optional {hint} hint.")
    resolve_cmd.add_argument("--tariff-csv", default=None, help="Load the tariff table from this CSV.")
    resolve_cmd.add_argument("--report", action="store_true", help="Also write Markdown/JSON audit reports.")
    resolve_cmd.add_argument("--config", default=None, help="Path to config.yaml (default: built-in defaults)")
    resolve_cmd.add_argument("--json", dest="output_json", action="store_true", help="Output JSON only.")

    # ── lookup ─────────────────────────────────────────────────────────────
    lookup_cmd = sub.add_parser("lookup", help="Look up tariff entries for one or more HSN codes.")
    lookup_cmd.add_argument(
        "--hsn",
        required=True,
        metavar="CODE",
        help="HSN code(s), comma-separated. Longer codes fall back to their nearest known prefix.",
    )
    lookup_cmd.add_argument("--tariff-csv", default=None, help="Load the tariff table from this CSV.")
    lookup_cmd.add_argument("--config", default=None, help="Path to config.yaml (default: built-in defaults)")
    lookup_cmd.add_argument("--json", dest="output_json", action="store_true", help="Output JSON only.")

    # ── refresh ────────────────────────────────────────────────────────────
    refresh_cmd = sub.add_parser(
        "refresh",
        help="Load a new tariff table, snapshot it and show changes against the previous snapshot.",
    )
    source = refresh_cmd.add_mutually_exclusive_group()
    source.add_argument("--csv", default=None, help="Tariff table CSV file.")
    source.add_argument("--url", default=None, help="URL of a tariff table CSV.")
    refresh_cmd.add_argument("--config", default=None, help="Path to config.yaml (default: built-in defaults)")
    refresh_cmd.add_argument("--json", dest="output_json", action="store_true", help="Output JSON only.")

    return parser


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_config_or_exit(path: str | None):
    from .config import ConfigError, load_config

    try:
        return load_config(path)
    except ConfigError as exc:
        print(f"[ERROR] Configuration error: {exc}", file=sys.stderr)
        sys.exit(2)


def _build_store(cfg, tariff_csv: str | None):
    """Tariff store from an explicit CSV, the configured CSV, the latest snapshot, or the seed table."""
    import pandas as pd

    from .snapshot import find_latest_snapshot, load_snapshot
    from .tariff_store import TariffStore, TariffTable

    csv_path = tariff_csv or cfg.storage.tariff_csv
    if csv_path:
        try:
            df = pd.read_csv(Path(csv_path), dtype=str)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            print(f"[ERROR] Cannot read tariff CSV {csv_path}: {exc}", file=sys.stderr)
            sys.exit(3)
        return TariffStore(TariffTable.from_dataframe(df))

    latest = find_latest_snapshot(cfg.storage.snapshots_dir)
    if latest is not None:
        logger.info("Using tariff snapshot %s", latest)
        return TariffStore(load_snapshot(latest))

    return TariffStore.default()


def _parse_dims(raw: str, unit: str):
    from .models import Dimensions, InvalidInputError

    parts = raw.lower().replace("×", "x").split("x")
    if len(parts) != 3:
        raise InvalidInputError(f"--dims must look like LxWxH, got {raw!r}")
    try:
        length, width, height = (float(p) for p in parts)
    except ValueError:
        raise InvalidInputError(f"--dims must be numeric, got {raw!r}") from None
    return Dimensions(length, width, height, unit)


# ---------------------------------------------------------------------------
# Sub-command implementations
# ---------------------------------------------------------------------------

def _cmd_resolve(args: argparse.Namespace) -> None:
    """Resolve one item and print the decision with its audit trail."""
    from .engine import QuoteSummary, WeightResolver
    from .models import InvalidInputError, ProductDescriptor
    from .report import write_reports
    from .resolver import NoCandidateError

    cfg = _load_config_or_exit(args.config)
    store = _build_store(cfg, args.tariff_csv)

    try:
        descriptor = ProductDescriptor(
            name=args.name,
            price=args.price,
            url=args.url,
            hsn_code=args.hsn,
            quantity=args.quantity,
            dimensions=_parse_dims(args.dims, args.unit) if args.dims else None,
            brand=args.brand,
            material=args.material,
            size=args.size,
            category=args.category,
        )
        result = WeightResolver(store=store, config=cfg).resolve_item(
            descriptor,
            manual_override=args.weight,
            carrier=args.carrier,
            valuation_method=args.valuation_method,
            minimum_valuation=args.min_valuation,
        )
    except InvalidInputError as exc:
        print(f"[ERROR] Invalid input: {exc}", file=sys.stderr)
        sys.exit(2)
    except NoCandidateError as exc:
        print(f"[ERROR] {exc}. Re-run with --weight KG.", file=sys.stderr)
        sys.exit(1)

    if args.report:
        summary = QuoteSummary.from_items([result])
        _, _, text = write_reports(summary, cfg.storage.reports_dir, cfg.runtime.timezone)
        if not args.output_json:
            print(text)

    if args.output_json:
        print(json.dumps(result.as_dict(), indent=2, ensure_ascii=False))
        return

    decision = result.decision
    SEP = "-" * 80
    print(SEP)
    print(f"  {args.name}")
    print(SEP)
    print(f"  Selected    : {decision.weight_kg:g} kg ({decision.selected.source.value}, "
          f"confidence {decision.selected.confidence:.2f})")
    print(f"  Total       : {result.total_weight_kg:g} kg  (chargeable {result.chargeable_weight_kg:g} kg)")
    print(f"  Discrepancy : {'YES — review recommended' if decision.discrepancy_flag else 'no'}")
    print("  Candidates  :")
    for c in decision.candidates:
        print(f"    - {c.source.value:<10} {c.value:>8g} kg  @ {c.confidence:.2f}  {c.rationale}")
    if result.valuation is not None:
        v = result.valuation
        print(f"  Valuation   : base {v.resolved_base:.2f} ({v.applied.value}), duty {v.duty_amount}, "
              f"local tax {v.local_tax_amount}, total {v.total_tax}")
        for line in v.rationale:
            print(f"    · {line}")
    for note in result.notes:
        print(f"  Note        : {note}")
    print(SEP)


def _cmd_lookup(args: argparse.Namespace) -> None:
    """Look up tariff entries for one or more HSN codes."""
    from .normalize import normalize_hts_code

    raw_codes = [c.strip() for c in args.hsn.split(",") if c.strip()]
    if not raw_codes:
        print("[ERROR] --hsn requires at least one code.", file=sys.stderr)
        sys.exit(2)

    invalid = [c for c in raw_codes if not (normalize_hts_code(c) or "").isdigit()]
    if invalid:
        print(f"[ERROR] Invalid HSN code(s): {', '.join(invalid)}", file=sys.stderr)
        sys.exit(2)

    cfg = _load_config_or_exit(args.config)
    store = _build_store(cfg, args.tariff_csv)

    records = []
    for code in raw_codes:
        entry = store.lookup(code)
        if entry is not None:
            records.append({"query": code, **entry.as_dict()})

    if not records:
        print(f"No tariff entries found matching: {', '.join(raw_codes)}", file=sys.stderr)
        sys.exit(1)

    if args.output_json:
        print(json.dumps(records, indent=2, ensure_ascii=False))
        return

    SEP = "-" * 80
    print(SEP)
    print(f"  HSN Lookup  •  {len(records)} result(s) for: {', '.join(raw_codes)}")
    print(SEP)
    for rec in records:
        print(f"  Query       : {rec['query']}  →  {rec['code']}")
        print(f"  Description : {rec['description']}")
        print(f"  Weight range: {rec['weight_min']}–{rec['weight_max']} kg")
        print(f"  Duty rate   : {rec['duty_rate_pct']}%   Local tax: {rec['local_tax_pct']}%")
        print(f"  Min. value  : {rec['minimum_valuation'] if rec['minimum_valuation'] is not None else 'N/A'}")
        print(SEP)


def _cmd_refresh(args: argparse.Namespace) -> None:
    """Load a new tariff table, snapshot it and report changes."""
    import pandas as pd

    from .diff import diff_tables
    from .http import NetworkError, ParseError, fetch_tariff_frame
    from .snapshot import apply_retention, find_previous_snapshot, load_snapshot, save_snapshot
    from .tariff_store import TariffTable

    cfg = _load_config_or_exit(args.config)
    csv_path = args.csv or (None if args.url else cfg.storage.tariff_csv)
    url = args.url or (None if args.csv else cfg.storage.tariff_url)

    try:
        if csv_path:
            df = pd.read_csv(Path(csv_path), dtype=str)
            source = str(csv_path)
        elif url:
            df = fetch_tariff_frame(url)
            source = url
        else:
            print("[ERROR] No tariff source: pass --csv/--url or set storage.tariff_csv/tariff_url.",
                  file=sys.stderr)
            sys.exit(2)
    except (NetworkError, ParseError) as exc:
        print(f"[ERROR] Tariff fetch failed: {exc}", file=sys.stderr)
        sys.exit(3)
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        print(f"[ERROR] Cannot read tariff CSV {csv_path}: {exc}", file=sys.stderr)
        sys.exit(3)

    table = TariffTable.from_dataframe(df)
    if len(table) == 0:
        print(f"[ERROR] Tariff table from {source} has no usable rows.", file=sys.stderr)
        sys.exit(3)

    today = date.today()
    prev_path = find_previous_snapshot(cfg.storage.snapshots_dir, today)
    prev_table = load_snapshot(prev_path) if prev_path else None
    if prev_table is None:
        logger.info("No previous snapshot found — skipping diff (first run).")

    changes = diff_tables(prev_table, table)
    path = save_snapshot(table, cfg.storage.snapshots_dir, today)
    apply_retention(cfg.storage.snapshots_dir, cfg.storage.retain_count)

    if args.output_json:
        print(json.dumps({"snapshot": str(path), "entries": len(table), "changes": changes},
                         indent=2, ensure_ascii=False))
        return

    print(f"Loaded {len(table)} tariff entries from {source}")
    print(f"Snapshot: {path}")
    if not changes:
        print("No changes against the previous snapshot.")
    for c in changes:
        old = c["old_value"] if c["old_value"] is not None else "—"
        new = c["new_value"] if c["new_value"] is not None else "—"
        print(f"  [{c['change_type']}] {c['code']}: {old} → {new}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "resolve":
        _cmd_resolve(args)
    elif args.command == "lookup":
        _cmd_lookup(args)
    elif args.command == "refresh":
        _cmd_refresh(args)
    else:
        parser.print_help()
        sys.exit(0)

    sys.exit(0)


if __name__ == "__main__":
    main()
