"""
Initialises the local SQLite database and stores starter reference data.

Categories written here are only used when the category service cannot be
reached. Existing collections are never overwritten.
"""

from jewel_billing.db import get_connection, get_store_value, init_db, put_store_value

DEFAULT_CATEGORIES = [
    {"id": 1, "name": "Rings", "code": "RNG", "wastage_charges": 8, "making_charges": 500},
    {"id": 2, "name": "Necklaces", "code": "DNS", "wastage_charges": 10, "making_charges": 800},
    {"id": 3, "name": "Earrings", "code": "EAR", "wastage_charges": 6, "making_charges": 400},
]

DEFAULT_MATERIALS = [
    {"id": 1, "category": "Diamond", "name": "Round Diamonds", "code": "RD", "unit": "carat"},
    {"id": 4, "category": "Stone", "name": "Ruby", "code": "RU", "unit": "carat"},
    {"id": 17, "category": "Gold", "name": "22K Yellow Gold", "code": "G22-Y", "unit": "gram"},
]


def main() -> None:
    conn = get_connection()
    init_db(conn)

    for key, rows in (("categories", DEFAULT_CATEGORIES), ("materials", DEFAULT_MATERIALS)):
        if get_store_value(conn, key) is None:
            put_store_value(conn, key, rows)
            print(f"Stored {len(rows)} default {key}.")

    print("Database initialised successfully.")


if __name__ == "__main__":
    main()
