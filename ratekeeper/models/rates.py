from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from ratekeeper.services.money import round6


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def minute_bucket(ts: datetime) -> int:
    """Dedup window key: whole minutes since the epoch (floor of epoch_ms / 60000)."""
    epoch_ms = int(ts.timestamp() * 1000)
    return epoch_ms // 60_000


def _currency_code(v: str) -> str:
    v = v.strip().upper()
    if len(v) != 3 or not v.isalpha():
        raise ValueError("currency code must be 3 letters")
    return v


class RateObservation(BaseModel):
    """A single base->target rate as retrieved from upstream at ``observed_at``."""

    id: Optional[int] = None
    base_currency: str
    target_currency: str
    rate: float = Field(..., gt=0)
    observed_at: datetime

    @field_validator("base_currency")
    @classmethod
    def valid_base(cls, v: str) -> str:
        return _currency_code(v)

    @field_validator("target_currency")
    @classmethod
    def valid_target(cls, v: str, info: ValidationInfo) -> str:
        v = _currency_code(v)
        if info.data.get("base_currency") == v:
            raise ValueError("target cannot equal base")
        return v

    @field_validator("rate")
    @classmethod
    def six_decimals(cls, v: float) -> float:
        return round6(v)

    @field_validator("observed_at")
    @classmethod
    def aware_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("observed_at must be timezone-aware")
        return v.astimezone(timezone.utc)

    @property
    def observed_minute(self) -> int:
        return minute_bucket(self.observed_at)


@dataclass(frozen=True)
class Snapshot:
    """One upstream response: rates for all requested targets at one point in time."""

    date: str
    rates: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class IngestionResult:
    base: str
    inserted: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.inserted + self.skipped + self.failed


class LatestRatesOut(BaseModel):
    base: str
    rates: Dict[str, float]
    timestamp: Optional[datetime] = None


class FetchOut(BaseModel):
    message: str


class HealthOut(BaseModel):
    status: str
    timestamp: datetime
