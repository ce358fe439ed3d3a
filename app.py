import logging
import os
from pathlib import Path

import streamlit as st
from dotenv import load_dotenv

from jewel_billing.db import get_connection, init_db
from jewel_billing.ui import billing, dashboard, data_sync, settings


# Load environment variables from local .env file.
load_dotenv(dotenv_path=Path(__file__).parent / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


st.set_page_config(page_title="Jewelry Billing", page_icon="💍", layout="wide")


def main() -> None:
    st.title("💍 Jewelry Billing")
    st.caption("Gold valuation, stones, certification and GST for one bill at a time")

    conn = get_connection()
    init_db(conn)

    page = st.sidebar.radio(
        "Navigate",
        [
            "Billing",
            "Dashboard",
            "Data Sync",
            "Settings",
        ],
    )

    if page == "Billing":
        billing.render(conn)
    elif page == "Dashboard":
        dashboard.render(conn)
    elif page == "Data Sync":
        data_sync.render(conn)
    elif page == "Settings":
        settings.render(conn)


if __name__ == "__main__":
    main()
