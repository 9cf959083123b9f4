"""Tests for normalize.py"""

import pandas as pd
import pytest

from weight_resolver.normalize import (
    clean_description,
    normalize_hts_code,
    normalize_tariff_frame,
    parse_rate,
    parse_stated_weight,
    tokenize,
)


def test_hts_code_strips_dots():
    assert normalize_hts_code("8517.13.00") == "85171300"


def test_hts_code_strips_spaces():
    assert normalize_hts_code(" 8517 13 00 ") == "85171300"


def test_hts_code_none():
    assert normalize_hts_code(None) is None
    assert normalize_hts_code("") is None
    assert normalize_hts_code(float("nan")) is None


def test_parse_rate_free():
    assert parse_rate("Free") == 0.0
    assert parse_rate("FREE") == 0.0


def test_parse_rate_percent_and_plain_numbers():
    assert parse_rate("5%") == 5.0
    assert parse_rate("12.5") == 12.5
    assert parse_rate(18) == 18.0


def test_parse_rate_none_for_unknown():
    assert parse_rate("3.4¢/kg") is None
    assert parse_rate(None) is None


def test_clean_description_collapses_whitespace():
    assert clean_description("  Mobile   phones\n(smart) ") == "Mobile phones (smart)"


def test_tokenize_keeps_hyphenated_words():
    assert tokenize("Men's Cotton T-Shirt, Size XL") == ["men's", "cotton", "t-shirt", "size", "xl"]


def test_tokenize_empty():
    assert tokenize(None) == []
    assert tokenize("") == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Hex Dumbbell 2.5 kg", 2.5),
        ("Arabica coffee beans 500g", 0.5),
        ("Whey protein 2 lb", 0.907184),
        ("Tea sampler 8 oz", 0.226796),
    ],
)
def test_parse_stated_weight(text, expected):
    kg, _ = parse_stated_weight(text)
    assert kg == pytest.approx(expected)


def test_parse_stated_weight_ignores_network_and_storage_labels():
    assert parse_stated_weight("Galaxy S24 5G 256GB") is None
    assert parse_stated_weight("Redmi Note 13 Pro 5g 256GB") is None
    assert parse_stated_weight("Nokia 4g feature phone") is None


def test_parse_stated_weight_any_case_and_gram_spellings():
    assert parse_stated_weight("Protein bar 60G")[0] == pytest.approx(0.06)
    assert parse_stated_weight("Saffron 5 gm")[0] == pytest.approx(0.005)
    assert parse_stated_weight("Flour 2 KGS")[0] == pytest.approx(2.0)
    assert parse_stated_weight("Gold leaf 2.5g")[0] == pytest.approx(0.0025)


def test_parse_stated_weight_returns_matched_text():
    _, matched = parse_stated_weight("Rice bag 5 kg")
    assert matched == "5 kg"


def test_normalize_tariff_frame_renames_and_parses():
    raw = pd.DataFrame(
        [
            {
                "HSN_Code": "8517.70",
                "Description": "Phone  accessories",
                "Min_Weight": "0.02",
                "Max_Weight": "0.5",
                "Customs_Rate": "20%",
                "GST_Rate": "18",
                "Minimum_Valuation_USD": "5",
                "Keywords": "charger| cable",
            },
            {"HSN_Code": None, "Description": "header artefact"},
        ]
    )
    df = normalize_tariff_frame(raw)
    assert len(df) == 1
    row = df.iloc[0]
    assert row["code"] == "851770"
    assert row["description"] == "Phone accessories"
    assert row["weight_min"] == 0.02
    assert row["duty_rate_pct"] == 20.0
    assert row["local_tax_pct"] == 18.0
    assert row["minimum_valuation"] == 5.0
    assert row["keywords"] == ("charger", "cable")


def test_normalize_tariff_frame_without_code_column_is_empty():
    df = normalize_tariff_frame(pd.DataFrame([{"foo": "bar"}]))
    assert df.empty
