"""Rate rounding helpers.

Centralized so the upstream client, the store model and the average query use
identical rounding semantics (6 fractional digits, half-up, matching the
NUMERIC(15, 6) column).
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP


def round6(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP))
