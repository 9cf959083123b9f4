"""Tests for engine.py"""

from decimal import Decimal

import pytest

from weight_resolver.config import AppConfig
from weight_resolver.engine import QuoteSummary, WeightResolver
from weight_resolver.models import CandidateSource, Dimensions, InvalidInputError, ProductDescriptor
from weight_resolver.resolver import NoCandidateError
from weight_resolver.tariff_store import TariffStore, TariffTable

RESOLVER = WeightResolver()

IPHONE = ProductDescriptor(
    name="Apple iPhone 15 Pro 256GB",
    price=999,
    hsn_code="8517.13.00",
    url="https://www.amazon.in/dp/B0CHX1W1XY",
)
BOOK = ProductDescriptor(
    name="Hardcover cookbook",
    price=25,
    hsn_code="4901",
    dimensions=Dimensions(30, 20, 10),
)
UNKNOWN = ProductDescriptor(name="Zzqx foobar", price=10)


def test_iphone_resolves_to_tariff_midpoint():
    result = RESOLVER.resolve_item(IPHONE)
    assert result.decision.selected.source is CandidateSource.TARIFF
    assert result.unit_weight_kg == pytest.approx(0.2)
    assert result.discrepancy_flag is False
    assert result.tariff_entry.code == "8517"
    sources = [c.source for c in result.decision.candidates]
    assert sources == [CandidateSource.TARIFF, CandidateSource.PATTERN]


def test_iphone_valuation_uses_tariff_rates():
    v = RESOLVER.resolve_item(IPHONE).valuation
    assert v.resolved_base == Decimal("999")
    assert v.duty_amount == Decimal("199.80")
    assert v.local_tax_amount == Decimal("179.82")


def test_minimum_valuation_applies_to_cheap_items():
    cheap = ProductDescriptor(name="Smartphone", price=30, hsn_code="8517")
    v = RESOLVER.resolve_item(cheap).valuation
    assert v.resolved_base == Decimal("50.0")
    assert v.duty_amount == Decimal("10.00")


def test_explicit_minimum_and_method():
    v = RESOLVER.resolve_item(
        IPHONE, valuation_method="minimum_valuation", minimum_valuation=1200
    ).valuation
    assert v.resolved_base == Decimal("1200")
    assert v.duty_amount == Decimal("240.00")


def test_volumetric_candidate_and_chargeable_weight():
    result = RESOLVER.resolve_item(BOOK)
    sources = [c.source for c in result.decision.candidates]
    assert CandidateSource.VOLUMETRIC in sources
    assert result.unit_weight_kg == pytest.approx(0.8)
    assert result.chargeable_weight_kg == pytest.approx(1.2)
    assert result.valuation.duty_amount == Decimal("0.00")


def test_carrier_divisor_changes_volumetric_weight():
    result = RESOLVER.resolve_item(BOOK, carrier="sea")
    vol = next(c for c in result.decision.candidates if c.source is CandidateSource.VOLUMETRIC)
    assert vol.value == pytest.approx(1.0)


def test_quantity_scales_line_totals():
    two = ProductDescriptor(name="Smartphone", price=300, hsn_code="8517", quantity=2)
    result = RESOLVER.resolve_item(two)
    assert result.total_weight_kg == pytest.approx(0.4)
    assert result.valuation.resolved_base == Decimal("600")


def test_unknown_hsn_noted_and_pattern_used():
    item = ProductDescriptor(name="Cotton T-Shirt", price=12, hsn_code="9999")
    result = RESOLVER.resolve_item(item)
    assert result.decision.selected.source is CandidateSource.PATTERN
    assert result.valuation is None
    assert any("No tariff entry" in n for n in result.notes)


def test_manual_override_outside_tariff_range_is_noted():
    result = RESOLVER.resolve_item(IPHONE, manual_override=0.9)
    assert result.decision.selected.source is CandidateSource.MANUAL
    assert result.discrepancy_flag is True
    assert any("outside HSN 8517" in n for n in result.notes)


def test_no_candidate_raises():
    with pytest.raises(NoCandidateError):
        RESOLVER.resolve_item(UNKNOWN)


def test_bad_dimensions_raise_invalid_input():
    bad = ProductDescriptor(name="Box", price=1, dimensions=Dimensions(0, 10, 10))
    with pytest.raises(InvalidInputError):
        RESOLVER.resolve_item(bad)


def test_config_threshold_and_representative_are_used():
    cfg = AppConfig()
    cfg.resolution.discrepancy_threshold = 0.05
    cfg.resolution.tariff_representative = "max"
    resolver = WeightResolver(config=cfg)
    result = resolver.resolve_item(IPHONE)
    assert result.unit_weight_kg == 0.25
    assert result.discrepancy_flag is True


def test_custom_store():
    store = TariffStore(TariffTable.from_rows(
        [{"code": "9503", "description": "Toys", "weight_min": 0.4, "weight_max": 0.6, "duty_rate_pct": 5.0}]
    ))
    result = WeightResolver(store=store).resolve_item(
        ProductDescriptor(name="Zzqx foobar", price=40, hsn_code="9503.00")
    )
    assert result.unit_weight_kg == pytest.approx(0.5)
    assert result.valuation.duty_amount == Decimal("2.00")


def test_resolve_quote_totals_and_failures():
    summary = RESOLVER.resolve_quote([IPHONE, UNKNOWN, BOOK])
    assert isinstance(summary, QuoteSummary)
    assert len(summary.items) == 2
    assert [f["index"] for f in summary.failures] == [1]
    assert summary.failures[0]["error"] == "NoCandidateError"
    assert summary.total_weight_kg == pytest.approx(1.0)
    assert summary.total_chargeable_kg == pytest.approx(1.4)
    assert summary.total_duty == Decimal("199.80")


def test_resolve_quote_overrides_by_index():
    summary = RESOLVER.resolve_quote([IPHONE, UNKNOWN], overrides={1: 0.3})
    assert summary.failures == ()
    assert summary.items[1].decision.selected.source is CandidateSource.MANUAL
    assert summary.total_weight_kg == pytest.approx(0.5)


def test_items_resolve_independently():
    alone = RESOLVER.resolve_item(IPHONE)
    in_quote = RESOLVER.resolve_quote([BOOK, IPHONE, UNKNOWN]).items[1]
    assert in_quote == alone


def test_summary_as_dict():
    d = RESOLVER.resolve_quote([IPHONE]).as_dict()
    assert d["flagged_count"] == 0
    assert d["total_duty"] == 199.8
    assert d["items"][0]["decision"]["selected"]["source"] == "tariff"


def test_implausibly_light_manual_weight_is_noted():
    result = RESOLVER.resolve_item(UNKNOWN, manual_override=0.001)
    assert result.unit_weight_kg == 0.001
    assert any("under 10 g" in n for n in result.notes)
    assert any("Very light item" in n for n in result.notes)


def test_implausibly_heavy_manual_weight_is_noted():
    result = RESOLVER.resolve_item(UNKNOWN, manual_override=500)
    assert any("over 50 kg" in n for n in result.notes)
    assert any("Heavy item" in n for n in result.notes)


def test_manual_weight_far_from_pattern_estimate_is_noted():
    shirt = ProductDescriptor(name="Cotton T-Shirt", price=12)
    estimate = RESOLVER.estimator.estimate(shirt.name).value

    far = RESOLVER.resolve_item(shirt, manual_override=round(estimate * 4, 3))
    assert any("more than 200%" in n for n in far.notes)

    nearer = RESOLVER.resolve_item(shirt, manual_override=round(estimate * 2.5, 3))
    assert any("more than 100%" in n for n in nearer.notes)
    assert not any("more than 200%" in n for n in nearer.notes)

    close = RESOLVER.resolve_item(shirt, manual_override=estimate)
    assert not any("Manual weight" in n for n in close.notes)


def test_resolved_weights_are_not_assessed_as_manual():
    assert not any("Manual weight" in n for n in RESOLVER.resolve_item(IPHONE).notes)


def test_suggestion_notes_for_category_and_multi_item():
    notes = RESOLVER.resolve_item(IPHONE).notes
    assert any("Electronics" in n for n in notes)

    kit = RESOLVER.resolve_item(ProductDescriptor(name="Hex dumbbell 20 kg set of 4", price=80))
    assert any("Multi-item product" in n for n in kit.notes)
    assert any("Heavy item" in n for n in kit.notes)


def test_wide_tariff_range_disagreement_is_explained():
    paperback = ProductDescriptor(name="Paperback", price=15, hsn_code="4901")
    result = RESOLVER.resolve_item(paperback)
    assert result.discrepancy_flag is True
    assert any("all lie within HSN 4901" in n for n in result.notes)
    assert not any("review recommended" in n for n in result.notes)


def test_minimum_valuation_count():
    cheap = ProductDescriptor(name="Smartphone", price=30, hsn_code="8517")
    summary = RESOLVER.resolve_quote([cheap, IPHONE, cheap])
    assert summary.minimum_valuation_count == 2
    assert summary.as_dict()["minimum_valuation_count"] == 2
    alt = summary.items[0].valuation.alternative
    assert alt.basis.value == "product_value"
    assert alt.duty_amount == Decimal("6.00")
