import logging
import os
import sqlite3
from dataclasses import replace
from datetime import date
from typing import Any, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from jewel_billing.db import (
    get_all_settings,
    get_cached_rates,
    get_store_value,
    is_rate_fresh,
    rates_from_row,
    save_rates,
)
from jewel_billing.models import CategoryDefaults, ItemLookupResult, RateSnapshot, StoneLineItem
from jewel_billing.pricing import parse_amount
from jewel_billing.providers.base import CatalogProvider, RateProvider
from jewel_billing.session import normalize_item_code

logger = logging.getLogger(__name__)

RATE_ENDPOINTS = {
    "gold_24k_per_10g": "/api/rates/gold/today",
    "usd_to_inr": "/api/rates/dollar/today",
    "gst_percentage": "/api/rates/tax/latest",
}


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_rate_response(payload: Any, field: str) -> tuple[Optional[float], Optional[date]]:
    """
    Extracts one numeric rate from a ``{success, rate: {...}}`` payload.

    An unsuccessful response, a missing rate object or a non-numeric value all
    come back as None so the field stays open for manual entry.
    """
    if not isinstance(payload, dict) or not payload.get("success"):
        return None, None
    rate = payload.get("rate")
    if not isinstance(rate, dict):
        return None, None
    return parse_amount(rate.get(field)), _parse_date(rate.get("rate_date"))


def parse_category_rows(rows: Any) -> list[CategoryDefaults]:
    if not isinstance(rows, list):
        raise RuntimeError("Category service returned an unexpected payload")

    categories: list[CategoryDefaults] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        category_id = _parse_int(row.get("id"))
        if category_id is None:
            continue
        categories.append(
            CategoryDefaults(
                id=category_id,
                wastage_percent=parse_amount(row.get("wastage_charges", row.get("wastageCharges"))),
                making_charge_per_gram=parse_amount(row.get("making_charges", row.get("makingCharges"))),
                parent_id=_parse_int(row.get("parent_id", row.get("parentId"))),
                code=str(row.get("code") or ""),
                name=str(row.get("name") or ""),
                certification_charge_per_carat=parse_amount(
                    row.get("certification_charges", row.get("certificationCharges"))
                ),
            )
        )
    return categories


def _parse_stone(row: dict[str, Any]) -> StoneLineItem:
    name = str(row.get("stone_name") or "")
    material_category = str(row.get("material_category") or "")
    return StoneLineItem(
        code=str(row.get("stone_code") or ""),
        name=name,
        weight_ct=parse_amount(row.get("weight")) or 0.0,
        rate_per_ct=parse_amount(row.get("sale_price")),
        is_diamond=material_category.lower() == "diamond" or "diamond" in name.lower(),
    )


def parse_item_response(payload: Any) -> Optional[ItemLookupResult]:
    if not isinstance(payload, dict) or not payload.get("code"):
        return None

    stones = [_parse_stone(row) for row in payload.get("stones") or [] if isinstance(row, dict)]
    certificate = str(payload.get("certificate") or "").strip().lower() in {"yes", "true", "1"}

    return ItemLookupResult(
        code=str(payload["code"]),
        purity=parse_amount(payload.get("gold_purity")),
        gross_weight=parse_amount(payload.get("gross_weight")),
        net_weight=parse_amount(payload.get("net_weight")),
        category_id=_parse_int(payload.get("category_id")),
        certificate=certificate,
        stones=stones,
    )


class BillingAPIClient(RateProvider, CatalogProvider):
    """
    Client for the shop backend that publishes rates, categories and the item catalog.

    Every endpoint uses bearer-token auth when ``BILLING_API_TOKEN`` is set.
    """

    provider_name = "billing-api"

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_seconds: int | None = None,
    ):
        self.base_url = (base_url or os.getenv("BILLING_API_BASE_URL", "http://localhost:5000")).rstrip("/")
        self.token = token if token is not None else os.getenv("BILLING_API_TOKEN", "")
        self.timeout_seconds = timeout_seconds or int(os.getenv("BILLING_API_TIMEOUT", "10"))

        self.session = requests.Session()
        retry = Retry(
            total=2,
            connect=2,
            read=2,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def _get_json(self, path: str) -> Any:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = self.session.get(
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    def fetch_today_rates(self) -> RateSnapshot:
        values: dict[str, Optional[float]] = {}
        effective_date: Optional[date] = None
        errors: list[str] = []

        for field, path in RATE_ENDPOINTS.items():
            try:
                value, rate_date = parse_rate_response(self._get_json(path), field)
            except (requests.RequestException, ValueError) as exc:
                logger.warning("Rate request %s failed: %s", path, exc)
                errors.append(f"{field}: {exc}")
                value, rate_date = None, None
            values[field] = value
            effective_date = effective_date or rate_date

        if len(errors) == len(RATE_ENDPOINTS):
            raise RuntimeError("Rate service unavailable. " + "; ".join(errors))

        return RateSnapshot(
            gold_rate_per_10g_24k=values["gold_24k_per_10g"],
            usd_to_inr=values["usd_to_inr"],
            gst_percentage=values["gst_percentage"],
            effective_date=effective_date or date.today(),
        )

    def fetch_categories(self) -> list[CategoryDefaults]:
        return parse_category_rows(self._get_json("/api/categories"))

    def lookup_item(self, code: str) -> Optional[ItemLookupResult]:
        normalized = normalize_item_code(code)
        if not normalized:
            return None
        try:
            payload = self._get_json(f"/api/jewelry/details/{normalized}")
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code == 404:
                return None
            raise
        return parse_item_response(payload)


def build_client_from_settings(conn: sqlite3.Connection) -> BillingAPIClient:
    settings = get_all_settings(conn)
    base_url = os.getenv("BILLING_API_BASE_URL", "").strip() or settings["api_base_url"]
    return BillingAPIClient(base_url=base_url, timeout_seconds=settings["api_timeout_seconds"])


def get_rates_with_cache(
    conn: sqlite3.Connection,
    provider: RateProvider | None = None,
    force_refresh: bool = False,
) -> tuple[RateSnapshot, str | None]:
    """
    Returns today's rates from cache and refreshes stale data when needed.

    If the service fails, the cached values (possibly none) are returned with a warning.
    """
    settings = get_all_settings(conn)
    ttl = settings["rate_cache_ttl_minutes"]
    today = date.today()
    cached = get_cached_rates(conn, today)

    need_refresh = force_refresh or cached is None or not is_rate_fresh(cached["fetched_at"], ttl)

    warning = None
    if need_refresh:
        try:
            rate_provider = provider or build_client_from_settings(conn)
            fresh = rate_provider.fetch_today_rates()
            if fresh.effective_date and fresh.effective_date != today:
                logger.info("Service rates dated %s stored for %s", fresh.effective_date.isoformat(), today.isoformat())
            # rows are keyed by the day they were fetched
            save_rates(conn, replace(fresh, effective_date=today), rate_provider.provider_name)
            cached = get_cached_rates(conn, today)
        except Exception as exc:
            logger.warning("Rate refresh failed: %s", exc)
            if cached is not None:
                warning = f"Rate service unavailable. Using cached rates. Details: {exc}"
            else:
                warning = f"Rate service unavailable and no cached rates yet. Details: {exc}"

    rates = rates_from_row(cached)
    if rates.gold_rate_per_10g_24k is None:
        missing = "Gold rate not found for today. Enter today's rate manually."
        warning = f"{warning} {missing}" if warning else missing
    return rates, warning


def get_categories_with_fallback(
    conn: sqlite3.Connection,
    provider: CatalogProvider | None = None,
) -> tuple[list[CategoryDefaults], str | None]:
    """
    Returns categories from the service, or the locally stored copy when it fails.
    """
    try:
        catalog = provider or build_client_from_settings(conn)
        return catalog.fetch_categories(), None
    except Exception as exc:
        logger.warning("Category fetch failed: %s", exc)
        stored = get_store_value(conn, "categories")
        categories = parse_category_rows(stored) if isinstance(stored, list) else []
        if categories:
            return categories, f"Category service unavailable. Using stored categories. Details: {exc}"
        return [], f"Categories unavailable; wastage and making defaults stay blank. Details: {exc}"
