import sqlite3
from datetime import datetime

import pandas as pd
import streamlit as st

from jewel_billing.backup import COLLECTIONS, BackupValidationError, dumps_backup, export_backup, import_backup, loads_backup


def render(conn: sqlite3.Connection) -> None:
    st.subheader("Data Sync")
    st.caption("Back up or restore materials, categories, jewelry pieces and users.")

    payload = export_backup(conn)
    summary = pd.DataFrame(
        [[name, len(payload[name])] for name in COLLECTIONS],
        columns=["Collection", "Records"],
    )
    st.dataframe(summary, width="stretch", hide_index=True)

    st.download_button(
        "Download backup (JSON)",
        data=dumps_backup(payload).encode("utf-8"),
        file_name=f"jewelry-inventory-backup-{datetime.now().strftime('%Y-%m-%d')}.json",
        mime="application/json",
    )

    st.divider()
    uploaded = st.file_uploader("Restore from backup", type=["json"])
    if uploaded is not None and st.button("Restore", type="primary"):
        try:
            restored = loads_backup(uploaded.getvalue())
            total = import_backup(conn, restored)
        except BackupValidationError as exc:
            st.error(str(exc))
        else:
            st.success(f"Restored {total} records from backup dated {restored['exportDate']}.")
