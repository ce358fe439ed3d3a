import sqlite3

import streamlit as st

from jewel_billing.db import get_all_settings, save_settings


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Settings")

    current = get_all_settings(conn)

    with st.form("settings_form"):
        col1, col2 = st.columns(2)
        with col1:
            api_base_url = st.text_input(
                "Billing service URL",
                value=str(current["api_base_url"]),
                help="BILLING_API_BASE_URL in .env takes precedence.",
            )
            api_timeout = st.number_input(
                "Request timeout (seconds)",
                min_value=1,
                max_value=120,
                value=int(current["api_timeout_seconds"]),
                step=1,
            )

        with col2:
            default_gst = st.number_input(
                "Default GST (%)",
                min_value=0.0,
                max_value=100.0,
                value=float(current["default_gst_pct"]),
                step=0.5,
                help="Used when the rate service has not published a GST rate.",
            )
            cache_ttl = st.number_input(
                "Rate cache refresh age (minutes)",
                min_value=1,
                max_value=1440,
                value=int(current["rate_cache_ttl_minutes"]),
                step=1,
            )

        submitted = st.form_submit_button("Save settings", type="primary")

    if submitted:
        save_settings(
            conn,
            {
                "api_base_url": api_base_url,
                "api_timeout_seconds": api_timeout,
                "default_gst_pct": default_gst,
                "rate_cache_ttl_minutes": cache_ttl,
            },
        )
        st.success("Settings saved.")
