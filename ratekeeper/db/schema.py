"""Database schema DDL definitions and initialization utilities.

Tables:
  - exchange_rates: one row per (base, target, minute window) observation
  - metadata: key/value store (schema version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

EXCHANGE_RATES_DDL = """
CREATE TABLE IF NOT EXISTS exchange_rates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    base_currency CHAR(3) NOT NULL,
    target_currency CHAR(3) NOT NULL,
    rate NUMERIC(15, 6) NOT NULL,
    observed_at TEXT NOT NULL, -- UTC ISO timestamp, microsecond precision
    observed_minute INTEGER NOT NULL -- floor(epoch_ms / 60000)
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

EXCHANGE_RATES_WINDOW_UNIQUE_DDL = """
CREATE UNIQUE INDEX IF NOT EXISTS uq_exchange_rates_window
ON exchange_rates(base_currency, target_currency, observed_minute);
"""
EXCHANGE_RATES_LOOKUP_INDEX_DDL = """
CREATE INDEX IF NOT EXISTS idx_exchange_rates_pair_time
ON exchange_rates(base_currency, target_currency, observed_at);
"""

DDL_ORDER: Sequence[str] = (
    EXCHANGE_RATES_DDL,
    METADATA_DDL,
)

INDEX_ORDER: Sequence[str] = (
    EXCHANGE_RATES_WINDOW_UNIQUE_DDL,
    EXCHANGE_RATES_LOOKUP_INDEX_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables and indexes idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        for ddl in INDEX_ORDER:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
