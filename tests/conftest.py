"""
Shared test fixtures: temporary SQLite database.
"""

import pytest

from jewel_billing.db import get_connection, init_db


@pytest.fixture
def conn(tmp_path):
    """Initialised database in a throwaway file."""
    connection = get_connection(tmp_path / "billing.db")
    init_db(connection)
    try:
        yield connection
    finally:
        connection.close()
