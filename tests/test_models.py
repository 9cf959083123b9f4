"""Tests for models.py"""

import dataclasses

import pytest

from weight_resolver.models import (
    CandidateSource,
    Dimensions,
    InvalidInputError,
    ProductDescriptor,
    TariffEntry,
    ValuationMethod,
    WeightCandidate,
)


def test_descriptor_rejects_empty_name():
    with pytest.raises(InvalidInputError):
        ProductDescriptor(name="  ", price=10)


def test_descriptor_rejects_negative_price():
    with pytest.raises(InvalidInputError):
        ProductDescriptor(name="Mug", price=-1)


def test_descriptor_rejects_zero_quantity():
    with pytest.raises(InvalidInputError):
        ProductDescriptor(name="Mug", price=5, quantity=0)


def test_descriptor_is_immutable_and_replace_makes_new_one():
    d = ProductDescriptor(name="Mug", price=5)
    with pytest.raises(dataclasses.FrozenInstanceError):
        d.price = 6
    edited = dataclasses.replace(d, price=6)
    assert edited.price == 6
    assert d.price == 5


def test_descriptor_hints_only_supplied():
    d = ProductDescriptor(name="Shoes", price=50, brand="Nike", size=None)
    assert d.hints() == {"brand": "Nike"}


def test_dimensions_to_cm():
    assert Dimensions(10, 20, 30, "mm").to_cm() == pytest.approx((1.0, 2.0, 3.0))
    assert Dimensions(1, 1, 1, "IN").to_cm() == pytest.approx((2.54, 2.54, 2.54))


def test_dimensions_unknown_unit():
    with pytest.raises(InvalidInputError):
        Dimensions(1, 1, 1, "furlong")


def test_candidate_rejects_non_positive_weight():
    with pytest.raises(InvalidInputError):
        WeightCandidate(CandidateSource.PATTERN, 0, 0.5, "zero")


def test_candidate_rejects_confidence_out_of_range():
    with pytest.raises(InvalidInputError):
        WeightCandidate(CandidateSource.PATTERN, 1.0, 1.2, "too sure")


def test_candidate_coerces_source_string():
    c = WeightCandidate("tariff", 0.2, 0.95, "HSN 8517", weight_range=(0.15, 0.25))
    assert c.source is CandidateSource.TARIFF
    assert c.as_dict()["range"] == {"min": 0.15, "max": 0.25}


def test_tariff_entry_range_invariant():
    with pytest.raises(InvalidInputError):
        TariffEntry(code="8517", weight_min=0.3, weight_max=0.2, description="x", duty_rate_pct=20)
    with pytest.raises(InvalidInputError):
        TariffEntry(code="8517", weight_min=0, weight_max=0.2, description="x", duty_rate_pct=20)


def test_tariff_entry_representative_weight():
    entry = TariffEntry(code="8517", weight_min=0.15, weight_max=0.25, description="x", duty_rate_pct=20)
    assert entry.representative_weight() == pytest.approx(0.2)
    assert entry.representative_weight("min") == 0.15
    assert entry.representative_weight("max") == 0.25


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, ValuationMethod.AUTO),
        ("AUTO", ValuationMethod.AUTO),
        ("Higher-Of-Both", ValuationMethod.HIGHER_OF_BOTH),
        ("product_price", ValuationMethod.PRODUCT_VALUE),
        (ValuationMethod.MINIMUM_VALUATION, ValuationMethod.MINIMUM_VALUATION),
    ],
)
def test_valuation_method_parse(raw, expected):
    assert ValuationMethod.parse(raw) is expected


def test_valuation_method_unknown():
    with pytest.raises(InvalidInputError):
        ValuationMethod.parse("cheapest")


def test_invalid_input_is_value_error():
    assert issubclass(InvalidInputError, ValueError)
