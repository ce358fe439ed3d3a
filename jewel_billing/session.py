import logging
from dataclasses import fields, replace
from datetime import date
from enum import Enum
from graphlib import TopologicalSorter
from typing import Any, Callable, Iterable, Optional

from jewel_billing import pricing
from jewel_billing.models import (
    BillingTotals,
    CategoryDefaults,
    ItemLookupResult,
    JewelryLineItem,
    RateSnapshot,
    StoneLineItem,
)

logger = logging.getLogger(__name__)

SOURCE_FIELDS = (
    "purity",
    "gross_weight",
    "net_weight",
    "gold_rate",
    "usd_to_inr",
    "wastage_percent",
    "making_charge",
    "stones",
    "certification_required",
    "cert_charge_per_carat",
    "manual_cert_charges",
    "gst_percentage",
)

# Derived field -> fields it is computed from.
DEPENDENCIES: dict[str, tuple[str, ...]] = {
    "fine_weight": ("net_weight", "purity"),
    "gold_price_per_unit": ("gold_rate", "purity"),
    "gold_value": ("gold_price_per_unit", "fine_weight"),
    "wastage_amount": ("net_weight", "wastage_percent", "gold_price_per_unit"),
    "making_amount": ("net_weight", "making_charge"),
    "total_gold_amount": ("gold_value", "wastage_amount", "making_amount"),
    "stone_total": ("stones",),
    "diamond_carats": ("stones",),
    "cert_charges": (
        "diamond_carats",
        "cert_charge_per_carat",
        "certification_required",
        "manual_cert_charges",
    ),
    "taxable_value": ("total_gold_amount", "stone_total", "cert_charges"),
    "tax_amount": ("taxable_value", "gst_percentage"),
    "grand_total": ("taxable_value", "tax_amount"),
}

EVALUATION_ORDER: tuple[str, ...] = tuple(
    node for node in TopologicalSorter(DEPENDENCIES).static_order() if node in DEPENDENCIES
)

MAX_PURITY_K = 24


class SessionStatus(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    COMPUTED = "computed"


def normalize_item_code(code: str) -> str:
    return (code or "").strip().upper()


def _dependents(changed: Iterable[str]) -> set[str]:
    affected: set[str] = set()
    frontier = set(changed)
    while frontier:
        next_frontier = {
            node
            for node, inputs in DEPENDENCIES.items()
            if node not in affected and frontier.intersection(inputs)
        }
        affected |= next_frontier
        frontier = next_frontier
    return affected


class BillingSession:
    """
    One billing form: source inputs plus the values derived from them.

    Every setter recomputes the derived fields that depend on the changed
    input before returning. Reference data (the category list) is kept
    across ``clear()``.
    """

    def __init__(self, categories: Iterable[CategoryDefaults] = ()):
        self._categories: tuple[CategoryDefaults, ...] = tuple(categories)
        self.customer_name = ""
        self.customer_phone = ""
        self.billing_date: date = date.today()
        self._reset()

    def _reset(self) -> None:
        self._item_code = ""
        self._category_id: Optional[int] = None
        self._source: dict[str, Any] = {name: None for name in SOURCE_FIELDS}
        self._source["stones"] = []
        self._source["certification_required"] = False
        self._derived: dict[str, Optional[float]] = {name: None for name in DEPENDENCIES}

    # -- recompute -------------------------------------------------------

    def _evaluators(self) -> dict[str, Callable[[], Optional[float]]]:
        src = self._source
        der = self._derived
        return {
            "fine_weight": lambda: pricing.calculate_fine_weight(src["net_weight"], src["purity"]),
            "gold_price_per_unit": lambda: pricing.calculate_gold_price(src["gold_rate"], src["purity"]),
            "gold_value": lambda: pricing.calculate_gold_value(der["gold_price_per_unit"], der["fine_weight"]),
            "wastage_amount": lambda: pricing.calculate_wastage_amount(
                src["net_weight"], src["wastage_percent"], der["gold_price_per_unit"]
            ),
            "making_amount": lambda: pricing.calculate_making_amount(src["net_weight"], src["making_charge"]),
            "total_gold_amount": lambda: pricing.calculate_total_gold_amount(
                der["gold_value"], der["wastage_amount"], der["making_amount"]
            ),
            "stone_total": lambda: pricing.calculate_stones(src["stones"])["stone_total"],
            "diamond_carats": lambda: pricing.calculate_diamond_carats(src["stones"]),
            "cert_charges": self._evaluate_cert_charges,
            "taxable_value": lambda: pricing.calculate_taxable_value(
                der["total_gold_amount"], der["stone_total"], der["cert_charges"]
            ),
            "tax_amount": lambda: pricing.calculate_tax_amount(der["taxable_value"], src["gst_percentage"]),
            "grand_total": lambda: pricing.calculate_grand_total(der["taxable_value"], der["tax_amount"]),
        }

    def _evaluate_cert_charges(self) -> float:
        manual = self._source["manual_cert_charges"]
        if manual is not None:
            return manual
        return pricing.calculate_certification_charges(
            diamond_carats=self._derived["diamond_carats"],
            charge_per_carat=self._source["cert_charge_per_carat"],
            certification_required=bool(self._source["certification_required"]),
        )

    def _recompute(self, changed: Iterable[str]) -> set[str]:
        changed = set(changed)
        if not changed:
            return set()
        if all(value is None for value in self._derived.values()):
            # First computation since construction or clear(): evaluate everything.
            affected = set(DEPENDENCIES)
        else:
            affected = _dependents(changed)

        evaluators = self._evaluators()
        for node in EVALUATION_ORDER:
            if node in affected:
                self._derived[node] = evaluators[node]()
        logger.debug("Recomputed %s after change to %s", sorted(affected), sorted(changed))
        return affected

    def _set_source(self, name: str, value: Any) -> set[str]:
        if self._source[name] == value:
            return set()
        self._source[name] = value
        return self._recompute({name})

    # -- setters ---------------------------------------------------------

    def set_purity(self, value: Any) -> set[str]:
        purity = pricing.parse_amount(value)
        if purity is not None and purity > MAX_PURITY_K:
            purity = None
        return self._set_source("purity", purity)

    def set_gross_weight(self, value: Any) -> set[str]:
        return self._set_source("gross_weight", pricing.parse_amount(value))

    def set_net_weight(self, value: Any) -> set[str]:
        return self._set_source("net_weight", pricing.parse_amount(value))

    def set_gold_rate(self, value: Any) -> set[str]:
        return self._set_source("gold_rate", pricing.parse_amount(value))

    def set_usd_to_inr(self, value: Any) -> set[str]:
        return self._set_source("usd_to_inr", pricing.parse_amount(value))

    def set_wastage_percent(self, value: Any) -> set[str]:
        return self._set_source("wastage_percent", pricing.parse_amount(value))

    def set_making_charge(self, value: Any) -> set[str]:
        return self._set_source("making_charge", pricing.parse_amount(value))

    def set_gst_percentage(self, value: Any) -> set[str]:
        return self._set_source("gst_percentage", pricing.parse_amount(value))

    def set_cert_charges(self, value: Any) -> set[str]:
        """Overrides the computed certification charges. Blank reverts to computed."""
        return self._set_source("manual_cert_charges", pricing.parse_amount(value))

    def set_certification_required(self, required: bool) -> set[str]:
        return self._set_source("certification_required", bool(required))

    def set_stone_rate(self, index: int, value: Any) -> set[str]:
        if index < 0:
            raise IndexError(f"stone index {index} out of range")
        stones: list[StoneLineItem] = list(self._source["stones"])
        stones[index] = replace(stones[index], rate_per_ct=pricing.parse_amount(value))
        self._source["stones"] = stones
        return self._recompute({"stones"})

    def set_billing_date(self, value: date, today: Optional[date] = None) -> bool:
        if value > (today or date.today()):
            logger.info("Rejected billing date %s in the future", value.isoformat())
            return False
        self.billing_date = value
        return True

    def set_customer(self, name: str = "", phone: str = "") -> None:
        self.customer_name = name.strip()
        self.customer_phone = phone.strip()

    # -- collaborator events ---------------------------------------------

    def set_categories(self, categories: Iterable[CategoryDefaults]) -> None:
        self._categories = tuple(categories)

    def apply_rates(self, rates: RateSnapshot) -> set[str]:
        changed: set[str] = set()
        for name, value in (
            ("gold_rate", rates.gold_rate_per_10g_24k),
            ("usd_to_inr", rates.usd_to_inr),
            ("gst_percentage", rates.gst_percentage),
        ):
            parsed = pricing.parse_amount(value)
            if parsed is not None and self._source[name] != parsed:
                self._source[name] = parsed
                changed.add(name)
        return self._recompute(changed)

    def apply_item_lookup(self, query_code: str, result: Optional[ItemLookupResult]) -> bool:
        """
        Applies a catalog response for ``query_code``.

        A missing response, or one for a different code, only clears the
        stone list. A matching response overwrites purity, weights, the
        category defaults and the stone list.
        """
        code = normalize_item_code(query_code)

        if result is None or normalize_item_code(result.code) != code:
            logger.info("Item %s not found in catalog", code)
            self._source["stones"] = []
            self._recompute({"stones"})
            return False

        purity = pricing.parse_amount(result.purity)
        if purity is not None and purity > MAX_PURITY_K:
            purity = None

        category = None
        if result.category_id is not None:
            category = next((c for c in self._categories if c.id == result.category_id), None)
        if category is None:
            category = pricing.find_category_for_item_code(code, self._categories)
        if category is None:
            logger.info("No category defaults available for item %s", code)

        self._item_code = code
        self._category_id = category.id if category is not None else result.category_id
        wastage, making = pricing.resolve_category_defaults(self._category_id, self._categories)
        stones = [replace(stone) for stone in result.stones]

        self._source.update(
            {
                "purity": purity,
                "gross_weight": pricing.parse_amount(result.gross_weight),
                "net_weight": pricing.parse_amount(result.net_weight),
                "wastage_percent": wastage,
                "making_charge": making,
                "stones": stones,
                "cert_charge_per_carat": (
                    pricing.parse_amount(category.certification_charge_per_carat)
                    if category is not None
                    else None
                ),
                "certification_required": bool(result.certificate)
                or pricing.calculate_diamond_carats(stones) > 0,
                "manual_cert_charges": None,
            }
        )
        self._recompute(
            {
                "purity",
                "gross_weight",
                "net_weight",
                "wastage_percent",
                "making_charge",
                "stones",
                "cert_charge_per_carat",
                "certification_required",
                "manual_cert_charges",
            }
        )
        return True

    def clear(self) -> None:
        self._reset()

    # -- read side -------------------------------------------------------

    @property
    def categories(self) -> tuple[CategoryDefaults, ...]:
        return self._categories

    @property
    def status(self) -> SessionStatus:
        src = self._source
        has_input = bool(self._item_code) or bool(src["stones"]) or any(
            src[name] is not None
            for name in SOURCE_FIELDS
            if name not in ("stones", "certification_required")
        )
        if not has_input:
            return SessionStatus.IDLE
        if self._derived["gold_value"] is not None:
            return SessionStatus.COMPUTED
        return SessionStatus.EDITING

    @property
    def line_item(self) -> JewelryLineItem:
        return JewelryLineItem(
            item_code=self._item_code,
            purity=self._source["purity"],
            gross_weight=self._source["gross_weight"],
            net_weight=self._source["net_weight"],
            category_id=self._category_id,
        )

    @property
    def rates(self) -> RateSnapshot:
        return RateSnapshot(
            gold_rate_per_10g_24k=self._source["gold_rate"],
            usd_to_inr=self._source["usd_to_inr"],
            gst_percentage=self._source["gst_percentage"],
            effective_date=self.billing_date,
        )

    @property
    def wastage_percent(self) -> Optional[float]:
        return self._source["wastage_percent"]

    @property
    def making_charge(self) -> Optional[float]:
        return self._source["making_charge"]

    @property
    def certification_required(self) -> bool:
        return bool(self._source["certification_required"])

    @property
    def diamond_carats(self) -> Optional[float]:
        return self._derived["diamond_carats"]

    @property
    def stones(self) -> tuple[StoneLineItem, ...]:
        return tuple(replace(stone) for stone in self._source["stones"])

    @property
    def totals(self) -> BillingTotals:
        return BillingTotals(**{field.name: self._derived[field.name] for field in fields(BillingTotals)})

    def snapshot(self) -> dict[str, Any]:
        return {
            "item_code": self._item_code,
            "category_id": self._category_id,
            "source": {
                name: (list(value) if isinstance(value, list) else value)
                for name, value in self._source.items()
            },
            "totals": self.totals.as_dict(),
            "status": self.status.value,
        }
