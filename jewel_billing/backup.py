"""
Versioned backup of the shop's reference collections.

A backup file is a JSON object with one list per collection plus
``exportDate`` and ``version``. Import validates the whole document before
anything is written.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from jewel_billing.db import get_store_value, put_store_value

logger = logging.getLogger(__name__)

BACKUP_VERSION = 1
COLLECTIONS = ("materials", "categories", "jewelryPieces", "users")


class BackupValidationError(ValueError):
    def __init__(self, problems: list[str]):
        self.problems = problems
        super().__init__("Invalid backup: " + "; ".join(problems))


def validate_backup(payload: Any) -> None:
    if not isinstance(payload, dict):
        raise BackupValidationError(["backup must be a JSON object"])

    problems: list[str] = []
    version = payload.get("version")
    if version is None:
        problems.append("missing 'version'")
    elif not isinstance(version, int) or isinstance(version, bool) or version > BACKUP_VERSION or version < 1:
        problems.append(f"unsupported version {version!r}")

    if not isinstance(payload.get("exportDate"), str):
        problems.append("missing 'exportDate'")

    for name in COLLECTIONS:
        if name not in payload:
            problems.append(f"missing '{name}'")
        elif not isinstance(payload[name], list):
            problems.append(f"'{name}' must be a list")

    if problems:
        raise BackupValidationError(problems)


def export_backup(conn: sqlite3.Connection) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name in COLLECTIONS:
        value = get_store_value(conn, name)
        payload[name] = value if isinstance(value, list) else []
    payload["exportDate"] = datetime.now(timezone.utc).isoformat()
    payload["version"] = BACKUP_VERSION
    return payload


def import_backup(conn: sqlite3.Connection, payload: Any) -> int:
    """Replaces every collection with the backup's contents. Returns the record count."""
    validate_backup(payload)

    total = 0
    with conn:
        for name in COLLECTIONS:
            put_store_value(conn, name, payload[name], commit=False)
            total += len(payload[name])

    logger.info("Imported backup from %s with %d records", payload["exportDate"], total)
    return total


def dumps_backup(payload: dict[str, Any]) -> str:
    return json.dumps(payload, indent=2)


def loads_backup(text: str | bytes) -> dict[str, Any]:
    try:
        payload = json.loads(text)
    except UnicodeDecodeError as exc:
        raise BackupValidationError(["file is not UTF-8 text"]) from exc
    except json.JSONDecodeError as exc:
        raise BackupValidationError([f"not valid JSON ({exc.msg})"]) from exc
    validate_backup(payload)
    return payload
