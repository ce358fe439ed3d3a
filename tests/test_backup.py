"""
Tests for backup export/import (backup.py) and the settings store (db.py).

Tests:
1-2.  Export of an empty store, import then export
3-7.  Validation failures (version, missing collection, wrong type, bad JSON, bad encoding)
8-9.  Settings defaults and fallback for bad stored values
"""

import pytest

from jewel_billing.backup import (
    BACKUP_VERSION,
    BackupValidationError,
    dumps_backup,
    export_backup,
    import_backup,
    loads_backup,
)
from jewel_billing.db import get_all_settings, get_store_value, save_settings


# --- Fixtures ---

def _backup(**overrides):
    payload = {
        "materials": [{"id": 1, "code": "RD", "name": "Round Diamonds", "category": "Diamond"}],
        "categories": [{"id": 1, "code": "RNG", "wastage_charges": 8, "making_charges": 500}],
        "jewelryPieces": [{"code": "RNG-1"}, {"code": "RNG-2"}],
        "users": [],
        "exportDate": "2024-05-10T08:00:00+00:00",
        "version": BACKUP_VERSION,
    }
    payload.update(overrides)
    return payload


# --- Export / import ---

def test_export_empty_store(conn):
    payload = export_backup(conn)
    assert payload["version"] == BACKUP_VERSION
    assert payload["materials"] == []
    assert payload["jewelryPieces"] == []
    assert isinstance(payload["exportDate"], str)


def test_import_then_export_keeps_collections(conn):
    total = import_backup(conn, loads_backup(dumps_backup(_backup())))
    assert total == 4

    exported = export_backup(conn)
    assert exported["categories"] == _backup()["categories"]
    assert exported["jewelryPieces"] == [{"code": "RNG-1"}, {"code": "RNG-2"}]


# --- Validation ---

def test_newer_version_is_rejected(conn):
    with pytest.raises(BackupValidationError) as excinfo:
        import_backup(conn, _backup(version=BACKUP_VERSION + 1))
    assert "unsupported version" in str(excinfo.value)
    assert get_store_value(conn, "materials") is None


def test_missing_collection_is_reported():
    payload = _backup()
    del payload["users"]
    with pytest.raises(BackupValidationError) as excinfo:
        loads_backup(dumps_backup(payload))
    assert "missing 'users'" in excinfo.value.problems


def test_collection_must_be_a_list():
    with pytest.raises(BackupValidationError) as excinfo:
        loads_backup(dumps_backup(_backup(materials={"id": 1})))
    assert "'materials' must be a list" in excinfo.value.problems


def test_invalid_json_is_a_validation_error():
    with pytest.raises(BackupValidationError):
        loads_backup("{not json")


def test_non_utf8_upload_is_a_validation_error():
    with pytest.raises(BackupValidationError) as excinfo:
        loads_backup(b"\x80\x81{not json")
    assert excinfo.value.problems == ["file is not UTF-8 text"]


# --- Settings ---

def test_settings_defaults(conn):
    settings = get_all_settings(conn)
    assert settings["default_gst_pct"] == 3.0
    assert settings["rate_cache_ttl_minutes"] == 60
    assert settings["api_base_url"] == "http://localhost:5000"


def test_bad_setting_falls_back_to_default(conn):
    save_settings(
        conn,
        {
            "api_base_url": "http://shop.local:5000/",
            "api_timeout_seconds": "soon",
            "default_gst_pct": 5,
            "rate_cache_ttl_minutes": 15,
        },
    )
    settings = get_all_settings(conn)
    assert settings["api_base_url"] == "http://shop.local:5000"
    assert settings["api_timeout_seconds"] == 10
    assert settings["default_gst_pct"] == 5.0
    assert settings["rate_cache_ttl_minutes"] == 15
