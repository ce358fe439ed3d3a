import json
import sqlite3
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from jewel_billing.models import RateSnapshot

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
DB_PATH = DATA_DIR / "billing.db"

DEFAULT_SETTINGS: dict[str, str] = {
    "api_base_url": "http://localhost:5000",
    "api_timeout_seconds": "10",
    "default_gst_pct": "3",
    "rate_cache_ttl_minutes": "60",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    target = db_path or DB_PATH
    target.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(target)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS daily_rates (
            rate_date TEXT PRIMARY KEY,
            gold_24k_per_10g REAL,
            usd_to_inr REAL,
            gst_percentage REAL,
            fetched_at TEXT NOT NULL,
            provider TEXT NOT NULL
        )
        """
    )

    cursor.execute(
        """
        CREATE TABLE IF NOT EXISTS backup_store (
            key TEXT PRIMARY KEY,
            value_json TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )

    for key, value in DEFAULT_SETTINGS.items():
        cursor.execute(
            """
            INSERT OR IGNORE INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            """,
            (key, value, utc_now_iso()),
        )

    conn.commit()


def get_all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    rows = conn.execute("SELECT key, value FROM settings").fetchall()
    raw = {row["key"]: row["value"] for row in rows}

    def get_float(key: str) -> float:
        try:
            return float(raw.get(key, DEFAULT_SETTINGS[key]))
        except (TypeError, ValueError):
            return float(DEFAULT_SETTINGS[key])

    base_url = str(raw.get("api_base_url") or DEFAULT_SETTINGS["api_base_url"]).strip().rstrip("/")

    return {
        "api_base_url": base_url or DEFAULT_SETTINGS["api_base_url"],
        "api_timeout_seconds": int(get_float("api_timeout_seconds")),
        "default_gst_pct": get_float("default_gst_pct"),
        "rate_cache_ttl_minutes": int(get_float("rate_cache_ttl_minutes")),
    }


def save_settings(conn: sqlite3.Connection, settings: dict[str, Any]) -> None:
    now = utc_now_iso()
    payload = {
        "api_base_url": str(settings["api_base_url"]).strip(),
        "api_timeout_seconds": str(settings["api_timeout_seconds"]),
        "default_gst_pct": str(settings["default_gst_pct"]),
        "rate_cache_ttl_minutes": str(settings["rate_cache_ttl_minutes"]),
    }

    for key, value in payload.items():
        conn.execute(
            """
            INSERT INTO settings (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, now),
        )
    conn.commit()


def get_cached_rates(conn: sqlite3.Connection, rate_date: date) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT rate_date, gold_24k_per_10g, usd_to_inr, gst_percentage, fetched_at, provider
        FROM daily_rates
        WHERE rate_date = ?
        """,
        (rate_date.isoformat(),),
    ).fetchone()


def save_rates(conn: sqlite3.Connection, rates: RateSnapshot, provider: str) -> None:
    rate_date = rates.effective_date or date.today()
    conn.execute(
        """
        INSERT INTO daily_rates (rate_date, gold_24k_per_10g, usd_to_inr, gst_percentage, fetched_at, provider)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(rate_date)
        DO UPDATE SET
            gold_24k_per_10g = COALESCE(excluded.gold_24k_per_10g, daily_rates.gold_24k_per_10g),
            usd_to_inr = COALESCE(excluded.usd_to_inr, daily_rates.usd_to_inr),
            gst_percentage = COALESCE(excluded.gst_percentage, daily_rates.gst_percentage),
            fetched_at = excluded.fetched_at,
            provider = excluded.provider
        """,
        (
            rate_date.isoformat(),
            rates.gold_rate_per_10g_24k,
            rates.usd_to_inr,
            rates.gst_percentage,
            utc_now_iso(),
            provider,
        ),
    )
    conn.commit()


def rates_from_row(row: Optional[sqlite3.Row]) -> RateSnapshot:
    if row is None:
        return RateSnapshot()
    return RateSnapshot(
        gold_rate_per_10g_24k=row["gold_24k_per_10g"],
        usd_to_inr=row["usd_to_inr"],
        gst_percentage=row["gst_percentage"],
        effective_date=date.fromisoformat(row["rate_date"]),
    )


def is_rate_fresh(fetched_at_iso: str, max_age_minutes: int) -> bool:
    try:
        fetched_at = datetime.fromisoformat(fetched_at_iso)
    except ValueError:
        return False
    if fetched_at.tzinfo is None:
        fetched_at = fetched_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) - fetched_at <= timedelta(minutes=max_age_minutes)


def get_store_value(conn: sqlite3.Connection, key: str) -> Any:
    row = conn.execute("SELECT value_json FROM backup_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    return json.loads(row["value_json"])


def put_store_value(conn: sqlite3.Connection, key: str, value: Any, commit: bool = True) -> None:
    conn.execute(
        """
        INSERT INTO backup_store (key, value_json, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key)
        DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
        """,
        (key, json.dumps(value), utc_now_iso()),
    )
    if commit:
        conn.commit()
