"""Rate Store: persistence and read-side queries for exchange-rate observations.

Responsibilities
----------------
- Insert observations at most once per (base, target, minute window). The
  unique index does the enforcing; inserts use ON CONFLICT DO NOTHING so
  concurrent writers racing on the same window never see an error.
- Answer latest-per-target (single windowed query) and time-window averages.

Every method opens its own connection, so one store handle can be shared by
request workers and background ingestion threads.
"""

from __future__ import annotations

from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
import sqlite3
from typing import List, Optional

from ratekeeper.core.errors import NotFound
from ratekeeper.models.rates import RateObservation

BUSY_TIMEOUT_SECONDS = 30.0

INSERT_IF_ABSENT_SQL = """
INSERT INTO exchange_rates
    (base_currency, target_currency, rate, observed_at, observed_minute)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT(base_currency, target_currency, observed_minute) DO NOTHING
"""

# Rank rows per target by recency; ties on observed_at go to the highest id.
LATEST_PER_TARGET_SQL = """
SELECT id, base_currency, target_currency, rate, observed_at
FROM (
    SELECT
        id, base_currency, target_currency, rate, observed_at,
        ROW_NUMBER() OVER (
            PARTITION BY target_currency
            ORDER BY observed_at DESC, id DESC
        ) AS rn
    FROM exchange_rates
    WHERE base_currency = ?
)
WHERE rn = 1
ORDER BY target_currency
"""

AVERAGE_OVER_WINDOW_SQL = """
SELECT AVG(rate) AS avg_rate, COUNT(*) AS samples
FROM exchange_rates
WHERE base_currency = ? AND target_currency = ? AND observed_at >= ?
"""


def _ts(value: datetime) -> str:
    """Serialize as fixed-width UTC ISO text so string order equals time order."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


class RateStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _row_to_observation(row: sqlite3.Row) -> RateObservation:
        return RateObservation(
            id=row["id"],
            base_currency=row["base_currency"],
            target_currency=row["target_currency"],
            rate=float(row["rate"]),
            observed_at=_parse_ts(row["observed_at"]),
        )

    # ------------------------------------------------------------------
    # Writes
    def insert_if_absent(self, observation: RateObservation) -> bool:
        """Persist ``observation`` unless its window is already taken.

        Returns True when a row was written, False for the duplicate no-op.
        """
        with closing(self._connect()) as conn, conn:
            cur = conn.cursor()
            cur.execute(
                INSERT_IF_ABSENT_SQL,
                (
                    observation.base_currency,
                    observation.target_currency,
                    observation.rate,
                    _ts(observation.observed_at),
                    observation.observed_minute,
                ),
            )
            conn.commit()
            return cur.rowcount == 1

    # ------------------------------------------------------------------
    # Reads
    def latest_per_target(self, base: str) -> List[RateObservation]:
        base = base.upper()
        with closing(self._connect()) as conn, conn:
            cur = conn.cursor()
            cur.execute(LATEST_PER_TARGET_SQL, (base,))
            rows = cur.fetchall()
        if not rows:
            raise NotFound(f"No rates found for base currency {base}")
        return [self._row_to_observation(r) for r in rows]

    def average_over_window(self, base: str, target: str, since: datetime) -> float:
        base, target = base.upper(), target.upper()
        with closing(self._connect()) as conn, conn:
            cur = conn.cursor()
            cur.execute(AVERAGE_OVER_WINDOW_SQL, (base, target, _ts(since)))
            row = cur.fetchone()
        if row is None or not row["samples"]:
            raise NotFound(
                f"No rates found for {base}/{target} since {_ts(since)}"
            )
        return float(row["avg_rate"])

    def latest_timestamp(self, base: str) -> Optional[datetime]:
        with closing(self._connect()) as conn, conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT MAX(observed_at) FROM exchange_rates WHERE base_currency = ?",
                (base.upper(),),
            )
            row = cur.fetchone()
        if row is None or row[0] is None:
            return None
        return _parse_ts(row[0])

    def count_observations(
        self, base: Optional[str] = None, target: Optional[str] = None
    ) -> int:
        query = "SELECT COUNT(*) FROM exchange_rates"
        clauses: List[str] = []
        params: List[str] = []
        if base is not None:
            clauses.append("base_currency = ?")
            params.append(base.upper())
        if target is not None:
            clauses.append("target_currency = ?")
            params.append(target.upper())
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        with closing(self._connect()) as conn, conn:
            cur = conn.cursor()
            cur.execute(query, params)
            return int(cur.fetchone()[0])
