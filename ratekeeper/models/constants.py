"""Domain constants and enumerations for validation.

Kept as plain sets/tuples; the averaging period tokens are an Enum because
FastAPI validates query parameters against it directly.
"""

from datetime import timedelta
from enum import Enum
from typing import Dict, Set, Tuple

SUPPORTED_CURRENCIES: Set[str] = {"USD", "EUR", "GBP", "JPY", "INR", "CAD", "AUD", "CHF"}
DEFAULT_BASE = "USD"
DEFAULT_TARGETS: Tuple[str, ...] = ("INR", "EUR", "GBP", "JPY", "CAD")
MIN_DEFAULT_TARGETS = 5


class Period(str, Enum):
    H1 = "1h"
    H6 = "6h"
    H12 = "12h"
    H24 = "24h"
    D7 = "7d"

    @property
    def duration(self) -> timedelta:
        return PERIOD_DURATIONS[self]


PERIOD_DURATIONS: Dict[Period, timedelta] = {
    Period.H1: timedelta(hours=1),
    Period.H6: timedelta(hours=6),
    Period.H12: timedelta(hours=12),
    Period.H24: timedelta(hours=24),
    Period.D7: timedelta(days=7),
}
