# database.py
import json
import logging
import sqlite3

logger = logging.getLogger("pharmacy_pos.database")

MEDICINES_KEY = "pharma_medicines"
SALES_KEY = "pharma_sales"

# Written on first load when no medicines collection exists yet
SEED_MEDICINES = [
    {"id": "1", "name": "Panadol Extra", "price": 15.5, "quantity": 50, "expiryDate": "2025-12-01"},
    {"id": "2", "name": "Augmentin 1g", "price": 85.0, "quantity": 5, "expiryDate": "2024-06-15"},
    {"id": "3", "name": "Omeprazole", "price": 22.0, "quantity": 120, "expiryDate": "2026-01-20"},
]


class Database:
    """
    Key-value store on top of SQLite. Each collection is kept as one
    JSON array under its own key.
    """
    def __init__(self, db_name: str = "pharmacy.db"):
        self.db_name = db_name
        self.conn = sqlite3.connect(db_name)
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """)
        self.conn.commit()

    def get_item(self, key: str):
        """Return the raw JSON text stored under key, or None."""
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
        row = cur.fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str):
        cur = self.conn.cursor()
        cur.execute("""
        INSERT INTO kv_store (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """, (key, value))
        self.conn.commit()

    def remove_item(self, key: str):
        cur = self.conn.cursor()
        cur.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    # Collection operations
    def load_collection(self, key: str):
        """
        Decode the JSON array stored under key.
        Returns None when the key was never written.
        """
        raw = self.get_item(key)
        if raw is None:
            return None
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"Collection {key!r} is not a JSON array.")
        return data

    def save_collection(self, key: str, records: list):
        self.set_item(key, json.dumps(records, ensure_ascii=False))
        logger.debug(f"Saved {len(records)} records under {key}")

    def load_medicines(self):
        """
        Load the medicine records, seeding the example inventory
        (and persisting it) on first run.
        """
        records = self.load_collection(MEDICINES_KEY)
        if records is None:
            records = [dict(r) for r in SEED_MEDICINES]
            self.save_collection(MEDICINES_KEY, records)
            logger.info("Seeded medicines collection with example inventory")
        return records

    def load_sales(self):
        return self.load_collection(SALES_KEY) or []

    def close(self):
        self.conn.close()
