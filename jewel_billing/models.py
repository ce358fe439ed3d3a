from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

PURITY_OPTIONS = (10, 14, 18, 22, 24)


@dataclass
class JewelryLineItem:
    item_code: str = ""
    purity: Optional[float] = None
    gross_weight: Optional[float] = None
    net_weight: Optional[float] = None
    category_id: Optional[int] = None


@dataclass(frozen=True)
class RateSnapshot:
    gold_rate_per_10g_24k: Optional[float] = None
    usd_to_inr: Optional[float] = None
    gst_percentage: Optional[float] = None
    effective_date: Optional[date] = None


@dataclass(frozen=True)
class CategoryDefaults:
    id: int
    wastage_percent: Optional[float] = None
    making_charge_per_gram: Optional[float] = None
    parent_id: Optional[int] = None
    code: str = ""
    name: str = ""
    certification_charge_per_carat: Optional[float] = None


@dataclass
class StoneLineItem:
    code: str
    name: str
    weight_ct: float = 0.0
    rate_per_ct: Optional[float] = None
    is_diamond: bool = False

    @property
    def cost(self) -> float:
        return self.weight_ct * (self.rate_per_ct or 0.0)


@dataclass(frozen=True)
class ItemLookupResult:
    code: str
    purity: Optional[float] = None
    gross_weight: Optional[float] = None
    net_weight: Optional[float] = None
    category_id: Optional[int] = None
    certificate: bool = False
    stones: list[StoneLineItem] = field(default_factory=list)


@dataclass(frozen=True)
class BillingTotals:
    """Derived values of one billing form. ``None`` means not computable yet."""

    fine_weight: Optional[float] = None
    gold_price_per_unit: Optional[float] = None
    gold_value: Optional[float] = None
    wastage_amount: Optional[float] = None
    making_amount: Optional[float] = None
    total_gold_amount: Optional[float] = None
    stone_total: Optional[float] = None
    cert_charges: Optional[float] = None
    taxable_value: Optional[float] = None
    tax_amount: Optional[float] = None
    grand_total: Optional[float] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)
