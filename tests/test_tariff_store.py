"""Tests for tariff_store.py"""

import threading

import pandas as pd
import pytest

from weight_resolver.models import CandidateSource, TariffEntry
from weight_resolver.tariff_store import (
    DEFAULT_TARIFF_ROWS,
    TARIFF_CONFIDENCE,
    TariffStore,
    TariffTable,
    tariff_candidate,
)

PHONES = {"code": "8517", "description": "Smartphones", "weight_min": 0.15,
          "weight_max": 0.25, "duty_rate_pct": 20.0, "minimum_valuation": 50.0}
ACCESSORIES = {"code": "851770", "description": "Phone accessories", "weight_min": 0.02,
               "weight_max": 0.5, "duty_rate_pct": 20.0}


def test_default_store_has_seed_rows():
    store = TariffStore.default()
    assert len(store.table) == len(DEFAULT_TARIFF_ROWS)
    assert store.lookup("8517").weight_min == 0.15


def test_exact_lookup_preferred_over_prefix():
    table = TariffTable.from_rows([PHONES, ACCESSORIES])
    assert table.lookup("851770").code == "851770"


def test_longest_prefix_fallback():
    table = TariffTable.from_rows([PHONES, ACCESSORIES])
    assert table.lookup("8517.70.10").code == "851770"
    assert table.lookup("8517.13.00").code == "8517"


def test_prefix_walk_stops_at_heading():
    table = TariffTable.from_rows([{**PHONES, "code": "85"}])
    assert table.lookup("8517") is None


def test_lookup_miss_returns_none():
    store = TariffStore(TariffTable.from_rows([PHONES]))
    assert store.lookup("9999") is None
    assert store.lookup(None) is None
    assert store.lookup("") is None


def test_invalid_rows_are_skipped():
    rows = [
        PHONES,
        {**ACCESSORIES, "weight_min": 0.6},  # min > max
        {"code": "6109", "description": "T-shirts", "weight_min": None,
         "weight_max": 0.25, "duty_rate_pct": 20.0},
    ]
    table = TariffTable.from_rows(rows)
    assert table.codes() == ["8517"]


def test_from_dataframe_uses_column_aliases():
    df = pd.DataFrame(
        [{"hsn_code": "6109.10", "description": "T-shirts", "min_weight": "0.12",
          "max_weight": "0.25", "customs_rate": "20%", "gst_rate": "12"}]
    )
    table = TariffTable.from_dataframe(df)
    entry = table.get("610910")
    assert entry.duty_rate_pct == 20.0
    assert entry.local_tax_pct == 12.0
    assert entry.minimum_valuation is None


def test_to_dataframe_round_trips_through_from_dataframe():
    table = TariffStore.default().table
    again = TariffTable.from_dataframe(table.to_dataframe().astype(str))
    assert again.codes() == table.codes()
    assert again.get("8517") == table.get("8517")


def test_swap_replaces_snapshot_and_reports_changes():
    store = TariffStore(TariffTable.from_rows([PHONES]))
    changes = store.swap(TariffTable.from_rows([{**PHONES, "duty_rate_pct": 15.0}, ACCESSORIES]))
    kinds = {(c["code"], c["change_type"]) for c in changes}
    assert ("851770", "added") in kinds
    assert ("8517", "changed_duty_rate") in kinds
    assert store.lookup("8517").duty_rate_pct == 15.0


def test_readers_see_whole_tables_during_swaps():
    old = TariffTable.from_rows([PHONES])
    new = TariffTable.from_rows([{**PHONES, "weight_min": 0.1, "weight_max": 0.3}, ACCESSORIES])
    store = TariffStore(old)
    seen = set()

    def reader():
        for _ in range(500):
            table = store.table
            seen.add((len(table), table.get("8517").weight_min))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for i in range(50):
        store.swap(new if i % 2 == 0 else old)
    for t in threads:
        t.join()
    assert seen <= {(1, 0.15), (2, 0.1)}


def test_refresh_from_csv(tmp_path):
    path = tmp_path / "hsn.csv"
    pd.DataFrame([PHONES, ACCESSORIES]).to_csv(path, index=False)
    store = TariffStore()
    changes = store.refresh_from_csv(path)
    assert changes == []  # first load
    assert len(store.table) == 2


def test_tariff_candidate_uses_midpoint_and_range():
    entry = TariffEntry(code="8517", weight_min=0.15, weight_max=0.25,
                        description="Smartphones", duty_rate_pct=20.0)
    c = tariff_candidate(entry)
    assert c.source is CandidateSource.TARIFF
    assert c.value == pytest.approx(0.2)
    assert c.confidence == TARIFF_CONFIDENCE
    assert c.weight_range == (0.15, 0.25)
    assert "8517" in c.rationale


def test_tariff_candidate_representative_max():
    entry = TariffEntry(code="8517", weight_min=0.15, weight_max=0.25,
                        description="Smartphones", duty_rate_pct=20.0)
    assert tariff_candidate(entry, "max").value == 0.25
