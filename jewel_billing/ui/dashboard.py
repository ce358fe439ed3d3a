import sqlite3
from datetime import UTC, datetime
from typing import Optional

import pandas as pd
import streamlit as st

from jewel_billing.db import get_cached_rates
from jewel_billing.providers.billing_api import get_rates_with_cache


def _format_gmt_timestamp(timestamp_iso: str) -> str:
    try:
        parsed = datetime.fromisoformat(timestamp_iso)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S GMT")
    except ValueError:
        return timestamp_iso


def _format_rate(value: Optional[float], prefix: str = "₹", suffix: str = "") -> str:
    if value is None:
        return "No data"
    return f"{prefix}{value:,.2f}{suffix}"


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Dashboard")
    st.caption("Today's published rates used for billing")

    refresh_now = st.button("Refresh rates now", type="primary")
    rates, warning = get_rates_with_cache(conn, force_refresh=refresh_now)

    if warning:
        st.warning(warning)

    cached = get_cached_rates(conn, rates.effective_date) if rates.effective_date else None
    fetched_at = _format_gmt_timestamp(cached["fetched_at"]) if cached is not None else "No data"
    provider = cached["provider"] if cached is not None else "-"

    rows = [
        {"Rate": "Gold 24K (per 10 g)", "Value": _format_rate(rates.gold_rate_per_10g_24k)},
        {"Rate": "USD to INR", "Value": _format_rate(rates.usd_to_inr)},
        {"Rate": "GST", "Value": _format_rate(rates.gst_percentage, prefix="", suffix="%")},
    ]
    df = pd.DataFrame(rows)
    st.dataframe(df, width="stretch", hide_index=True)
    st.caption(f"Fetched at: {fetched_at} | Provider: {provider}")

    st.info(
        "If the rate service is unreachable, cached rates are used automatically. "
        "Missing rates can be entered by hand on the billing page."
    )
