"""Pydantic domain models for the rates service."""

from .constants import (
    SUPPORTED_CURRENCIES,
    DEFAULT_BASE,
    DEFAULT_TARGETS,
    Period,
)  # re-export
from .rates import (
    RateObservation,
    Snapshot,
    IngestionResult,
    LatestRatesOut,
    FetchOut,
    HealthOut,
    minute_bucket,
    utc_now,
)

__all__ = [
    "SUPPORTED_CURRENCIES",
    "DEFAULT_BASE",
    "DEFAULT_TARGETS",
    "Period",
    "RateObservation",
    "Snapshot",
    "IngestionResult",
    "LatestRatesOut",
    "FetchOut",
    "HealthOut",
    "minute_bucket",
    "utc_now",
]
