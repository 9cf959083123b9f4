"""Dated on-disk copies of the tariff table, so refreshes can be compared and rolled back."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from pathlib import Path

import pandas as pd

from .tariff_store import TariffTable

logger = logging.getLogger(__name__)

_PREFIX = "tariff_snapshot_"
_SNAPSHOT_RE = re.compile(rf"^{_PREFIX}(\d{{8}})\.csv$")
MIN_RETAINED = 2


def snapshot_date(path: str | Path) -> date | None:
    """Date encoded in a snapshot file name, or ``None`` for other files."""
    m = _SNAPSHOT_RE.match(Path(path).name)
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d").date()
    except ValueError:
        return None


def save_snapshot(table: TariffTable, snapshots_dir: str | Path, run_date: date | None = None) -> Path:
    """Write ``table`` as the snapshot for ``run_date`` (today by default), replacing any same-day file."""
    run_date = run_date or date.today()
    snapshots_dir = Path(snapshots_dir)
    snapshots_dir.mkdir(parents=True, exist_ok=True)
    path = snapshots_dir / f"{_PREFIX}{run_date:%Y%m%d}.csv"
    table.to_dataframe().to_csv(path, index=False)
    logger.info("Tariff snapshot saved: %s (%d entries)", path, len(table))
    return path


def load_snapshot(path: str | Path) -> TariffTable:
    return TariffTable.from_dataframe(pd.read_csv(Path(path), dtype=str))


def list_snapshots(snapshots_dir: str | Path) -> list[Path]:
    """Snapshot files in ``snapshots_dir``, oldest first."""
    snapshots_dir = Path(snapshots_dir)
    if not snapshots_dir.is_dir():
        return []
    dated = [(snapshot_date(p), p) for p in snapshots_dir.iterdir()]
    return [p for d, p in sorted((d, p) for d, p in dated if d is not None)]


def find_latest_snapshot(snapshots_dir: str | Path) -> Path | None:
    snaps = list_snapshots(snapshots_dir)
    return snaps[-1] if snaps else None


def find_previous_snapshot(snapshots_dir: str | Path, current_date: date) -> Path | None:
    """Newest snapshot dated strictly before ``current_date``."""
    older = [p for p in list_snapshots(snapshots_dir) if snapshot_date(p) < current_date]
    return older[-1] if older else None


def apply_retention(snapshots_dir: str | Path, retain_count: int = 12) -> list[Path]:
    """Remove all but the newest ``retain_count`` snapshots (never fewer than two)."""
    snaps = list_snapshots(snapshots_dir)
    expired = snaps[: max(0, len(snaps) - max(retain_count, MIN_RETAINED))]
    for p in expired:
        p.unlink()
        logger.info("Deleted old tariff snapshot: %s", p)
    return expired
