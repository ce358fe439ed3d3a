import math
from typing import Any, Iterable, Optional

from jewel_billing.models import CategoryDefaults, StoneLineItem

FULL_PURITY_K = 24


def round_money(value: float) -> float:
    return round(value, 2)


def round_weight(value: float) -> float:
    return round(value, 3)


def parse_amount(value: Any) -> Optional[float]:
    """
    Converts a form or payload value to a non-negative float.

    Blank, unparseable, non-finite and negative values are treated as missing
    and return None so callers can tell "not entered" apart from zero.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(parsed) or parsed < 0:
        return None
    return parsed


def _non_zero(value: Optional[float]) -> Optional[float]:
    if value is None or value == 0:
        return None
    return value


def resolve_category_defaults(
    category_id: Optional[int],
    categories: Iterable[CategoryDefaults],
) -> tuple[Optional[float], Optional[float]]:
    """
    Returns (wastage_percent, making_charge_per_gram) for a category.

    Each value comes from the category itself when set and non-zero, otherwise
    from its immediate parent. The parent's own parent is never consulted.
    """
    by_id = {category.id: category for category in categories}
    category = by_id.get(category_id) if category_id is not None else None
    if category is None:
        return None, None

    wastage = _non_zero(category.wastage_percent)
    making = _non_zero(category.making_charge_per_gram)

    parent = by_id.get(category.parent_id) if category.parent_id is not None else None
    if parent is not None:
        if wastage is None:
            wastage = _non_zero(parent.wastage_percent)
        if making is None:
            making = _non_zero(parent.making_charge_per_gram)

    return wastage, making


def find_category_for_item_code(
    item_code: str,
    categories: Iterable[CategoryDefaults],
) -> Optional[CategoryDefaults]:
    # Item codes are "<CATEGORY CODE>-<n>", e.g. DNS-1.
    prefix = item_code.strip().upper().split("-")[0]
    if not prefix:
        return None

    candidates = list(categories)
    for category in candidates:
        if category.code.strip().upper() == prefix:
            return category
    for category in candidates:
        if prefix in category.name.upper():
            return category
    return None


def calculate_fine_weight(net_weight: Any, purity: Any) -> Optional[float]:
    net = parse_amount(net_weight)
    karat = parse_amount(purity)
    if net is None or karat is None:
        return None
    return round_weight(net * karat / FULL_PURITY_K)


def calculate_gold_price(gold_rate_per_10g_24k: Any, purity: Any) -> Optional[float]:
    rate = parse_amount(gold_rate_per_10g_24k)
    karat = parse_amount(purity)
    if rate is None or karat is None:
        return None
    # The benchmark rate is quoted per 10 g and is used here without a /10 term.
    return round_money(rate * karat / FULL_PURITY_K)


def calculate_gold_value(gold_price: Any, fine_weight: Any) -> Optional[float]:
    price = parse_amount(gold_price)
    fine = parse_amount(fine_weight)
    if price is None or fine is None:
        return None
    return round_money(price * fine)


def calculate_wastage_amount(net_weight: Any, wastage_percent: Any, gold_price: Any) -> Optional[float]:
    net = parse_amount(net_weight)
    wastage_pct = parse_amount(wastage_percent)
    price = parse_amount(gold_price)
    if net is None or wastage_pct is None or price is None:
        return None
    return round_money(net * wastage_pct / 100 * price)


def calculate_making_amount(net_weight: Any, making_charge_per_gram: Any) -> Optional[float]:
    net = parse_amount(net_weight)
    making_rate = parse_amount(making_charge_per_gram)
    if net is None or making_rate is None:
        return None
    return round_money(net * making_rate)


def calculate_total_gold_amount(gold_value: Any, wastage_amount: Any, making_amount: Any) -> float:
    return round_money(
        (parse_amount(gold_value) or 0.0)
        + (parse_amount(wastage_amount) or 0.0)
        + (parse_amount(making_amount) or 0.0)
    )


def calculate_gold(
    *,
    net_weight: Any,
    purity: Any,
    gold_rate_per_10g_24k: Any,
    wastage_percent: Any,
    making_charge_per_gram: Any,
) -> dict[str, Optional[float]]:
    fine_weight = calculate_fine_weight(net_weight, purity)
    gold_price = calculate_gold_price(gold_rate_per_10g_24k, purity)
    gold_value = calculate_gold_value(gold_price, fine_weight)
    wastage_amount = calculate_wastage_amount(net_weight, wastage_percent, gold_price)
    making_amount = calculate_making_amount(net_weight, making_charge_per_gram)

    return {
        "fine_weight": fine_weight,
        "gold_price_per_unit": gold_price,
        "gold_value": gold_value,
        "wastage_amount": wastage_amount,
        "making_amount": making_amount,
        "total_gold_amount": calculate_total_gold_amount(gold_value, wastage_amount, making_amount),
    }


def calculate_stones(stones: Iterable[StoneLineItem]) -> dict[str, Any]:
    per_item_cost: list[float] = []
    for stone in stones:
        weight = parse_amount(stone.weight_ct) or 0.0
        rate = parse_amount(stone.rate_per_ct) or 0.0
        per_item_cost.append(weight * rate)

    return {
        "per_item_cost": per_item_cost,
        "stone_total": round_money(sum(per_item_cost, 0.0)),
    }


def calculate_diamond_carats(stones: Iterable[StoneLineItem]) -> float:
    return sum((parse_amount(stone.weight_ct) or 0.0 for stone in stones if stone.is_diamond), 0.0)


def calculate_certification_charges(
    *,
    diamond_carats: Any,
    charge_per_carat: Any,
    certification_required: bool,
) -> float:
    carats = parse_amount(diamond_carats) or 0.0
    if not certification_required or carats <= 0:
        return 0.0
    return round_money(carats * (parse_amount(charge_per_carat) or 0.0))


def calculate_taxable_value(total_gold_amount: Any, stone_total: Any, cert_charges: Any) -> float:
    return round_money(
        (parse_amount(total_gold_amount) or 0.0)
        + (parse_amount(stone_total) or 0.0)
        + (parse_amount(cert_charges) or 0.0)
    )


def calculate_tax_amount(taxable_value: Any, gst_percentage: Any) -> float:
    gst_pct = parse_amount(gst_percentage) or 0.0
    return round_money((parse_amount(taxable_value) or 0.0) * gst_pct / 100)


def calculate_grand_total(taxable_value: Any, tax_amount: Any) -> float:
    return round_money((parse_amount(taxable_value) or 0.0) + (parse_amount(tax_amount) or 0.0))


def calculate_totals(
    *,
    total_gold_amount: Any,
    stone_total: Any,
    cert_charges: Any,
    gst_percentage: Any,
) -> dict[str, float]:
    taxable_value = calculate_taxable_value(total_gold_amount, stone_total, cert_charges)
    tax_amount = calculate_tax_amount(taxable_value, gst_percentage)

    return {
        "taxable_value": taxable_value,
        "tax_amount": tax_amount,
        "grand_total": calculate_grand_total(taxable_value, tax_amount),
    }
