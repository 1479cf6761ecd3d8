from __future__ import annotations

"""Upstream Client for the Frankfurter latest-rates API.

GET {base_url}/latest?base=USD&symbols=INR,EUR,... returns
{"amount": 1.0, "base": "USD", "date": "YYYY-MM-DD", "rates": {"INR": 83.1, ...}}.

Transient failures (network errors, timeouts, HTTP errors, malformed payloads)
are retried inside get_json; callers only ever see UpstreamUnavailable.
"""
import logging
import math
import time
import urllib.request
from typing import Any, Callable, Iterable, Protocol

from ratekeeper.core.errors import UpstreamUnavailable
from ratekeeper.models.rates import Snapshot
from ratekeeper.services.http_client import HttpError, Opener, build_url, get_json
from ratekeeper.services.money import round6

logger = logging.getLogger("ratekeeper.upstream")

DEFAULT_BASE_URL = "https://api.frankfurter.app"


class SnapshotSource(Protocol):
    def fetch_snapshot(self, base: str, targets: Iterable[str]) -> Snapshot: ...


def parse_snapshot(data: Any) -> Snapshot:
    """Validate a latest-rates payload; raises ValueError when malformed."""
    if not isinstance(data, dict):
        raise ValueError("upstream payload is not a JSON object")
    date = data.get("date")
    rates = data.get("rates")
    if not date or not isinstance(rates, dict):
        raise ValueError("upstream payload is missing date or rates")
    validated = {}
    for currency, value in rates.items():
        # bool is an int subclass but never a rate
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"invalid rate value for {currency}: {value!r}")
        try:
            as_float = float(value)
        except OverflowError:
            raise ValueError(f"rate value for {currency} out of range") from None
        if not math.isfinite(as_float):
            raise ValueError(f"invalid rate value for {currency}: {value!r}")
        validated[str(currency).upper()] = round6(as_float)
    return Snapshot(date=str(date), rates=validated)


class FrankfurterClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 5.0,
        max_attempts: int = 3,
        backoff: float = 1.0,
        opener: Opener = urllib.request.urlopen,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = str(base_url).rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff
        self._opener = opener
        self._sleep = sleep
        self._clock = clock

    def fetch_snapshot(self, base: str, targets: Iterable[str]) -> Snapshot:
        base = base.upper()
        symbols = ",".join(t.upper() for t in targets)
        url = build_url(self.base_url, "latest", {"base": base, "symbols": symbols})
        logger.debug("fetching rates", extra={"fields": {"base": base, "symbols": symbols}})
        try:
            snapshot = get_json(
                url,
                timeout=self.timeout,
                attempts=self.max_attempts,
                backoff=self.backoff,
                validate=parse_snapshot,
                opener=self._opener,
                sleep=self._sleep,
                clock=self._clock,
            )
        except HttpError as e:
            logger.error(
                "all upstream attempts failed",
                extra={"fields": {"base": base, "attempts": self.max_attempts}},
            )
            raise UpstreamUnavailable(
                "Failed to fetch exchange rates from upstream provider"
            ) from e
        logger.info(
            "rates fetched",
            extra={"fields": {"base": base, "date": snapshot.date, "count": len(snapshot.rates)}},
        )
        return snapshot
