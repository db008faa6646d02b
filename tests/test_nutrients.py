"""Tests for nutrient alias resolution and German label parsing."""

from foodcrawl.utils.nutrients import (
    OPFF_NUTRIENT_ALIASES,
    coerce_float,
    extract_additives,
    extract_german_additives,
    extract_nutrients_from_text,
    has_core_nutrients,
    resolve_alias,
    sanitize_text,
)


def test_coerce_float_handles_label_strings():
    assert coerce_float("12,5 %") == 12.5
    assert coerce_float(" 7 ") == 7.0
    assert coerce_float(3) == 3.0
    assert coerce_float("n/a") is None
    assert coerce_float("") is None
    assert coerce_float(True) is None
    assert coerce_float(None) is None


def test_resolve_alias_prefers_earlier_keys():
    raw = {"proteins": 30, "proteins_100g": 24.5}
    assert resolve_alias(raw, OPFF_NUTRIENT_ALIASES["protein"]) == 24.5


def test_resolve_alias_skips_unusable_values():
    raw = {"fat_100g": "", "fat_value": "unknown", "fat": "14,2"}
    assert resolve_alias(raw, OPFF_NUTRIENT_ALIASES["fat"]) == 14.2


def test_resolve_alias_missing():
    assert resolve_alias({}, OPFF_NUTRIENT_ALIASES["ash"]) is None


def test_extract_nutrients_from_german_label():
    text = (
        "Analytische Bestandteile: Rohprotein 26 %, Rohfett 15 %, "
        "Rohfaser 2,5 %, Rohasche 7 %, Feuchtigkeit 10 %."
    )
    assert extract_nutrients_from_text(text) == {
        "protein": 26.0,
        "fat": 15.0,
        "crude_fiber": 2.5,
        "ash": 7.0,
        "moisture": 10.0,
    }


def test_extract_nutrients_alternative_spellings():
    text = "Eiweiß: 21%, Fettgehalt 12%, Ballaststoffe 3%, Mineralstoffe 6,5%"
    values = extract_nutrients_from_text(text)
    assert values["protein"] == 21.0
    assert values["fat"] == 12.0
    assert values["crude_fiber"] == 3.0
    assert values["ash"] == 6.5
    assert "moisture" not in values


def test_extract_nutrients_empty():
    assert extract_nutrients_from_text(None) == {}
    assert extract_nutrients_from_text("Keine Angaben") == {}


def test_has_core_nutrients_ignores_moisture():
    assert has_core_nutrients({"protein": 20, "fat": 10, "crude_fiber": 2, "ash": 6})
    assert not has_core_nutrients({"protein": 20, "fat": 10, "crude_fiber": 2})


def test_sanitize_text():
    assert sanitize_text("<b>Beef</b>\n  <script>alert(1)</script> Chunks ") == "Beef Chunks"
    assert sanitize_text("   ") is None
    assert sanitize_text(None) is None


def test_extract_additives_from_ingredients():
    text = "Meat, rice, Vitamin A 15000 IE, E306, trace elements"
    assert extract_additives(text) == "Vitamin A, E306, trace elements"
    assert extract_additives("Meat and rice") is None


def test_extract_german_additives():
    text = "Zusatzstoffe: Vitamin D3 1500 IE, Zink 80 mg. Fütterungsempfehlung: ..."
    assert extract_german_additives(text) == "Vitamin D3 1500 IE, Zink 80 mg."
    assert extract_german_additives("Enthält Vitamin E. Sonst nichts.") == "Vitamin E."
    assert extract_german_additives("nichts") is None
