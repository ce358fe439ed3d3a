import logging
import sqlite3
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd
import requests
import streamlit as st

from jewel_billing.db import get_all_settings
from jewel_billing.models import BillingTotals
from jewel_billing.providers.billing_api import (
    build_client_from_settings,
    get_categories_with_fallback,
    get_rates_with_cache,
)
from jewel_billing.session import BillingSession, SessionStatus

logger = logging.getLogger(__name__)

SESSION_KEY = "billing_session"

FIELD_LABELS = {
    "fine_weight": "Fine Wt (g)",
    "gold_price_per_unit": "Gold Price",
    "gold_value": "Gold Value",
    "wastage_amount": "Wastage Amount",
    "making_amount": "Making Amount",
    "total_gold_amount": "Total Gold",
    "stone_total": "Total Stone Cost",
    "cert_charges": "Certification Charges",
    "taxable_value": "Taxable Value",
    "tax_amount": "GST",
    "grand_total": "Grand Total",
}


def _text(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"{value:g}"


def _format_inr(value: Optional[float]) -> str:
    if value is None:
        return ""
    return f"₹{value:,.2f}"


def totals_frame(totals: BillingTotals) -> pd.DataFrame:
    values = totals.as_dict()
    return pd.DataFrame(
        [[label, values[name]] for name, label in FIELD_LABELS.items()],
        columns=["Item", "INR"],
    )


def _get_session() -> BillingSession:
    if SESSION_KEY not in st.session_state:
        st.session_state[SESSION_KEY] = BillingSession()
    return st.session_state[SESSION_KEY]


def _sync_widgets(session: BillingSession) -> None:
    line_item = session.line_item
    st.session_state["bill_purity"] = _text(line_item.purity)
    st.session_state["bill_gross_weight"] = _text(line_item.gross_weight)
    st.session_state["bill_net_weight"] = _text(line_item.net_weight)
    st.session_state["bill_wastage"] = _text(session.wastage_percent)
    st.session_state["bill_making"] = _text(session.making_charge)
    st.session_state["bill_cert_required"] = session.certification_required
    st.session_state["bill_date"] = session.billing_date
    for index, stone in enumerate(session.stones):
        st.session_state[f"bill_stone_rate_{index}"] = _text(stone.rate_per_ct)


def _load_reference_data(conn: sqlite3.Connection, session: BillingSession) -> None:
    rates, warning = get_rates_with_cache(conn)
    if warning:
        st.warning(warning)
    session.apply_rates(rates)

    if not session.categories:
        categories, category_warning = get_categories_with_fallback(conn)
        if category_warning:
            st.warning(category_warning)
        session.set_categories(categories)

    st.session_state["bill_gold_rate"] = _text(session.rates.gold_rate_per_10g_24k)
    st.session_state["bill_usd_to_inr"] = _text(session.rates.usd_to_inr)
    gst = session.rates.gst_percentage
    if gst is None:
        gst = get_all_settings(conn)["default_gst_pct"]
        session.set_gst_percentage(gst)
    st.session_state["bill_gst"] = _text(gst)


def _on_lookup(conn: sqlite3.Connection) -> None:
    session = _get_session()
    code = st.session_state.get("bill_item_code", "")
    if not code.strip():
        return
    try:
        result = build_client_from_settings(conn).lookup_item(code)
    except (requests.RequestException, ValueError) as exc:
        logger.warning("Item lookup for %s failed: %s", code, exc)
        result = None
    if not session.apply_item_lookup(code, result):
        st.session_state["bill_lookup_message"] = f"Item {code.strip().upper()} not found."
    else:
        st.session_state["bill_lookup_message"] = ""
    _sync_widgets(session)


def _on_clear(conn: sqlite3.Connection) -> None:
    session = _get_session()
    session.clear()
    st.session_state["bill_item_code"] = ""
    st.session_state["bill_lookup_message"] = ""
    st.session_state.pop("bill_cert_override", None)
    _sync_widgets(session)
    _load_reference_data(conn, session)


def _bind(key: str, setter: Any) -> None:
    setter(st.session_state.get(key, ""))


def _on_date_change() -> None:
    session = _get_session()
    picked = st.session_state["bill_date"]
    if not session.set_billing_date(picked):
        st.session_state["bill_date"] = session.billing_date


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Indian Jewelry Billing")
    session = _get_session()

    if "bill_loaded" not in st.session_state:
        _load_reference_data(conn, session)
        _sync_widgets(session)
        st.session_state["bill_loaded"] = True

    st.markdown("### Basic Information & Rates")
    c1, c2, c3, c4, c5 = st.columns(5)
    with c1:
        st.date_input(
            "Date",
            max_value=date.today(),
            key="bill_date",
            on_change=_on_date_change,
        )
    with c2:
        st.text_input(
            "Gold rate (24K / 10 g)",
            key="bill_gold_rate",
            on_change=_bind,
            args=("bill_gold_rate", session.set_gold_rate),
        )
    with c3:
        st.text_input(
            "USD to INR",
            key="bill_usd_to_inr",
            on_change=_bind,
            args=("bill_usd_to_inr", session.set_usd_to_inr),
        )
    with c4:
        customer_name = st.text_input("Customer name", value=session.customer_name)
    with c5:
        customer_phone = st.text_input("Phone", value=session.customer_phone)
    session.set_customer(customer_name, customer_phone)

    left, right = st.columns(2)
    with left:
        st.markdown("### Jewelry & Gold Calculation")
        st.text_input("Item code", key="bill_item_code", on_change=_on_lookup, args=(conn,))
        if st.session_state.get("bill_lookup_message"):
            st.caption(st.session_state["bill_lookup_message"])

        g1, g2, g3 = st.columns(3)
        g1.text_input("Purity (K)", key="bill_purity", on_change=_bind, args=("bill_purity", session.set_purity))
        g2.text_input(
            "Gross Wt (g)",
            key="bill_gross_weight",
            on_change=_bind,
            args=("bill_gross_weight", session.set_gross_weight),
        )
        g3.text_input(
            "Net Wt (g)",
            key="bill_net_weight",
            on_change=_bind,
            args=("bill_net_weight", session.set_net_weight),
        )

        w1, w2 = st.columns(2)
        w1.text_input(
            "Wastage (%)",
            key="bill_wastage",
            on_change=_bind,
            args=("bill_wastage", session.set_wastage_percent),
        )
        w2.text_input(
            "Making charge (per g)",
            key="bill_making",
            on_change=_bind,
            args=("bill_making", session.set_making_charge),
        )

        totals = session.totals
        m1, m2, m3 = st.columns(3)
        m1.metric("Fine Wt", _text(totals.fine_weight) or "-")
        m2.metric("Gold Price", _format_inr(totals.gold_price_per_unit) or "-")
        m3.metric("Gold Value", _format_inr(totals.gold_value) or "-")
        m4, m5, m6 = st.columns(3)
        m4.metric("Wastage", _format_inr(totals.wastage_amount) or "-")
        m5.metric("Making", _format_inr(totals.making_amount) or "-")
        m6.metric("Total Gold", _format_inr(totals.total_gold_amount) or "-")

        st.markdown("### Stone Details")
        stones = session.stones
        if not stones:
            st.caption("No stones data available")
        for index, stone in enumerate(stones):
            s1, s2, s3, s4 = st.columns([2, 1, 1, 1])
            s1.write(f"{stone.code} {stone.name}")
            s2.write(f"{stone.weight_ct:g} ct")
            s3.text_input(
                "Rate",
                key=f"bill_stone_rate_{index}",
                label_visibility="collapsed",
                on_change=lambda i=index: session.set_stone_rate(
                    i, st.session_state.get(f"bill_stone_rate_{i}", "")
                ),
            )
            s4.write(_format_inr(stone.cost))
        if stones:
            st.write(f"**Total Stone Cost: {_format_inr(session.totals.stone_total)}**")

    with right:
        st.markdown("### Totals & Taxes")
        st.checkbox(
            "Certification required",
            key="bill_cert_required",
            on_change=lambda: session.set_certification_required(st.session_state["bill_cert_required"]),
        )
        if session.diamond_carats:
            st.caption(f"Diamond weight: {session.diamond_carats:g} ct")
        st.text_input(
            "Certification charges override",
            key="bill_cert_override",
            on_change=_bind,
            args=("bill_cert_override", session.set_cert_charges),
        )
        st.text_input(
            "GST (%)",
            key="bill_gst",
            on_change=_bind,
            args=("bill_gst", session.set_gst_percentage),
        )

        totals = session.totals
        st.dataframe(totals_frame(totals), width="stretch", hide_index=True)
        if session.status == SessionStatus.COMPUTED:
            st.success(f"Grand Total: {_format_inr(totals.grand_total)}")
        elif session.status == SessionStatus.EDITING:
            st.info("Enter purity, net weight and gold rate to value the gold.")

        csv_bytes = totals_frame(totals).to_csv(index=False).encode("utf-8")
        st.download_button(
            "Export totals CSV",
            data=csv_bytes,
            file_name=f"bill_{session.line_item.item_code or 'draft'}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv",
            mime="text/csv",
        )

    st.button("Clear", on_click=_on_clear, args=(conn,))
