"""
Tests for the billing formulas (pricing.py).

Tests:
1-4.   Input parsing (blank, negative, strings)
5-10.  Category defaults with one-hop parent fallback
11-16. Gold valuation cascade and its missing-operand rules
17-19. Stone costs
20-23. Certification charges, rounded to paise
24-27. Taxable value, GST and grand total
"""

import pytest

from jewel_billing.models import CategoryDefaults, StoneLineItem
from jewel_billing.pricing import (
    calculate_certification_charges,
    calculate_diamond_carats,
    calculate_fine_weight,
    calculate_gold,
    calculate_stones,
    calculate_totals,
    find_category_for_item_code,
    parse_amount,
    resolve_category_defaults,
)


# --- Fixtures ---

def _categories():
    return [
        CategoryDefaults(id=1, wastage_percent=8, making_charge_per_gram=500, code="RNG", name="Rings"),
        CategoryDefaults(id=2, wastage_percent=0, making_charge_per_gram=650, parent_id=1, code="BND", name="Bands"),
        CategoryDefaults(id=3, wastage_percent=0, making_charge_per_gram=0, code="DNS", name="Necklaces"),
        CategoryDefaults(id=4, wastage_percent=None, making_charge_per_gram=None, parent_id=2, code="KID"),
        CategoryDefaults(id=5, wastage_percent=10, making_charge_per_gram=800, code="EAR", name="Earrings"),
    ]


def _scenario_gold(**overrides):
    inputs = {
        "net_weight": 10,
        "purity": 22,
        "gold_rate_per_10g_24k": 6000,
        "wastage_percent": 8,
        "making_charge_per_gram": 500,
    }
    inputs.update(overrides)
    return calculate_gold(**inputs)


# --- Parsing ---

def test_parse_amount_blank_is_missing():
    assert parse_amount(None) is None
    assert parse_amount("") is None
    assert parse_amount("   ") is None


def test_parse_amount_rejects_negative_and_garbage():
    assert parse_amount(-1) is None
    assert parse_amount("abc") is None
    assert parse_amount(float("nan")) is None
    assert parse_amount(True) is None


def test_parse_amount_accepts_numeric_strings():
    assert parse_amount(" 12.5 ") == 12.5
    assert parse_amount("0") == 0.0


def test_parse_amount_keeps_zero():
    assert parse_amount(0) == 0.0


# --- Category defaults ---

def test_own_values_win():
    assert resolve_category_defaults(1, _categories()) == (8, 500)


def test_zero_wastage_falls_back_to_parent():
    wastage, making = resolve_category_defaults(2, _categories())
    assert wastage == 8
    assert making == 650


def test_zero_without_parent_is_absent_not_zero():
    assert resolve_category_defaults(3, _categories()) == (None, None)


def test_fallback_is_one_hop_only():
    # 4 -> 2 (wastage 0, making 650) -> 1 (wastage 8). Only 2 is consulted.
    wastage, making = resolve_category_defaults(4, _categories())
    assert wastage is None
    assert making == 650


def test_unknown_category_is_absent():
    assert resolve_category_defaults(99, _categories()) == (None, None)
    assert resolve_category_defaults(None, _categories()) == (None, None)


def test_category_found_from_item_code_prefix():
    assert find_category_for_item_code(" rng-12 ", _categories()).id == 1
    assert find_category_for_item_code("EAR-3", _categories()).id == 5


def test_category_found_by_name_when_code_unknown():
    assert find_category_for_item_code("NECK-3", _categories()).id == 3
    assert find_category_for_item_code("ZZZ-3", _categories()) is None
    assert find_category_for_item_code("", _categories()) is None


# --- Gold valuation ---

def test_gold_scenario():
    result = _scenario_gold()
    assert result["fine_weight"] == pytest.approx(9.167)
    assert result["gold_price_per_unit"] == pytest.approx(5500.00)
    assert result["gold_value"] == pytest.approx(50418.50)
    assert result["wastage_amount"] == pytest.approx(4400.00)
    assert result["making_amount"] == pytest.approx(5000.00)
    assert result["total_gold_amount"] == pytest.approx(59818.50)


@pytest.mark.parametrize("purity", [10, 14, 18, 22, 24])
@pytest.mark.parametrize("net_weight", [0, 1.234, 7.5, 18.05])
def test_fine_weight_rounds_to_three_places(net_weight, purity):
    assert calculate_fine_weight(net_weight, purity) == round(net_weight * purity / 24, 3)


def test_zero_purity_values_to_zero_not_absent():
    result = _scenario_gold(purity=0)
    assert result["fine_weight"] == 0.0
    assert result["gold_price_per_unit"] == 0.0
    assert result["gold_value"] == 0.0


def test_missing_rate_clears_price_dependent_fields():
    result = _scenario_gold(gold_rate_per_10g_24k="")
    assert result["gold_price_per_unit"] is None
    assert result["gold_value"] is None
    assert result["wastage_amount"] is None
    assert result["fine_weight"] == pytest.approx(9.167)
    assert result["making_amount"] == pytest.approx(5000.00)
    assert result["total_gold_amount"] == pytest.approx(5000.00)


def test_total_gold_is_zero_when_everything_is_missing():
    result = calculate_gold(
        net_weight=None,
        purity=None,
        gold_rate_per_10g_24k=None,
        wastage_percent=None,
        making_charge_per_gram=None,
    )
    assert result["total_gold_amount"] == 0.0
    assert all(result[name] is None for name in result if name != "total_gold_amount")


def test_missing_wastage_only_drops_wastage():
    result = _scenario_gold(wastage_percent=None)
    assert result["wastage_amount"] is None
    assert result["total_gold_amount"] == pytest.approx(55418.50)


# --- Stones ---

def test_empty_stone_list_totals_zero():
    assert calculate_stones([]) == {"per_item_cost": [], "stone_total": 0.0}


def test_missing_stone_rate_costs_zero():
    stones = [
        StoneLineItem(code="RU", name="Ruby", weight_ct=2.0, rate_per_ct=None),
        StoneLineItem(code="RD", name="Round Diamond", weight_ct=0.5, rate_per_ct=40000, is_diamond=True),
    ]
    result = calculate_stones(stones)
    assert result["per_item_cost"] == [0.0, 20000.0]
    assert result["stone_total"] == 20000.0


def test_diamond_carats_only_count_diamonds():
    stones = [
        StoneLineItem(code="RU", name="Ruby", weight_ct=2.0, rate_per_ct=100),
        StoneLineItem(code="RD", name="Round Diamond", weight_ct=0.25, is_diamond=True),
        StoneLineItem(code="PD", name="Princess Diamond", weight_ct=0.5, is_diamond=True),
    ]
    assert calculate_diamond_carats(stones) == 0.75


# --- Certification ---

def test_certification_charged_per_carat_when_required():
    assert calculate_certification_charges(
        diamond_carats=1.5, charge_per_carat=700, certification_required=True
    ) == 1050.0


def test_certification_not_required_is_free():
    assert calculate_certification_charges(
        diamond_carats=1.5, charge_per_carat=700, certification_required=False
    ) == 0.0


def test_certification_without_diamonds_is_free():
    assert calculate_certification_charges(
        diamond_carats=0, charge_per_carat=700, certification_required=True
    ) == 0.0


def test_certification_charges_are_rounded_to_paise():
    assert calculate_certification_charges(
        diamond_carats=0.07, charge_per_carat=3, certification_required=True
    ) == 0.21


# --- Totals ---

def test_totals_with_blank_cert_and_no_stones():
    result = calculate_totals(total_gold_amount=1000, stone_total=0, cert_charges=None, gst_percentage=3)
    assert result["taxable_value"] == 1000.0
    assert result["tax_amount"] == 30.0
    assert result["grand_total"] == 1030.0
    assert result["grand_total"] == round(1000 * (1 + 3 / 100), 2)


def test_totals_default_gst_to_zero():
    result = calculate_totals(total_gold_amount=1000, stone_total=250, cert_charges=50, gst_percentage="")
    assert result["taxable_value"] == 1300.0
    assert result["tax_amount"] == 0.0
    assert result["grand_total"] == 1300.0


def test_totals_include_stones_and_cert():
    result = calculate_totals(total_gold_amount=59818.5, stone_total=20000, cert_charges=1050, gst_percentage=3)
    assert result["taxable_value"] == pytest.approx(80868.5)
    assert result["tax_amount"] == pytest.approx(2426.06, abs=0.01)
    assert result["grand_total"] == pytest.approx(83294.56, abs=0.01)


def test_taxable_value_is_rounded_to_paise():
    result = calculate_totals(total_gold_amount=0.1, stone_total=0.2, cert_charges=None, gst_percentage=0)
    assert result["taxable_value"] == 0.3
    assert result["grand_total"] == 0.3
