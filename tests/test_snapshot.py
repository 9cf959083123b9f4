"""Tests for snapshot.py"""

from datetime import date

from weight_resolver.snapshot import (
    apply_retention,
    find_latest_snapshot,
    find_previous_snapshot,
    list_snapshots,
    load_snapshot,
    save_snapshot,
    snapshot_date,
)
from weight_resolver.tariff_store import TariffTable

SAMPLE = TariffTable.from_rows([
    {"code": "8517", "description": "Smartphones", "weight_min": 0.15, "weight_max": 0.25,
     "duty_rate_pct": 20.0},
    {"code": "6109", "description": "T-shirts", "weight_min": 0.12, "weight_max": 0.25,
     "duty_rate_pct": 20.0},
])


def test_save_and_load_round_trips_table(tmp_path):
    path = save_snapshot(SAMPLE, tmp_path, date(2025, 1, 6))
    assert path.name == "tariff_snapshot_20250106.csv"
    table = load_snapshot(path)
    assert isinstance(table, TariffTable)
    assert sorted(table.codes()) == ["6109", "8517"]
    entry = table.get("8517")
    assert entry.weight_min == 0.15
    assert entry.duty_rate_pct == 20.0


def test_snapshot_date():
    assert snapshot_date("tariff_snapshot_20250106.csv") == date(2025, 1, 6)
    assert snapshot_date("tariff_snapshot_20251399.csv") is None
    assert snapshot_date("notes.txt") is None


def test_list_ignores_other_files(tmp_path):
    save_snapshot(SAMPLE, tmp_path, date(2025, 1, 6))
    (tmp_path / "notes.txt").write_text("x")
    (tmp_path / "tariff_snapshot_20251399.csv").write_text("code\n")
    assert [p.name for p in list_snapshots(tmp_path)] == ["tariff_snapshot_20250106.csv"]


def test_list_missing_dir(tmp_path):
    assert list_snapshots(tmp_path / "absent") == []
    assert find_latest_snapshot(tmp_path / "absent") is None


def test_latest_and_previous(tmp_path):
    for d in (date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20)):
        save_snapshot(SAMPLE, tmp_path, d)
    assert find_latest_snapshot(tmp_path).name == "tariff_snapshot_20250120.csv"
    assert find_previous_snapshot(tmp_path, date(2025, 1, 20)).name == "tariff_snapshot_20250113.csv"
    assert find_previous_snapshot(tmp_path, date(2025, 1, 6)) is None


def test_retention_keeps_newest(tmp_path):
    for day in range(1, 6):
        save_snapshot(SAMPLE, tmp_path, date(2025, 1, day))
    deleted = apply_retention(tmp_path, retain_count=3)
    assert [p.name for p in deleted] == ["tariff_snapshot_20250101.csv", "tariff_snapshot_20250102.csv"]
    assert len(list_snapshots(tmp_path)) == 3


def test_retention_never_below_two(tmp_path):
    for day in range(1, 4):
        save_snapshot(SAMPLE, tmp_path, date(2025, 1, day))
    apply_retention(tmp_path, retain_count=0)
    assert len(list_snapshots(tmp_path)) == 2
