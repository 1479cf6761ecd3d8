from __future__ import annotations

from datetime import datetime
from typing import Callable

from ratekeeper.db.store import RateStore
from ratekeeper.models.constants import DEFAULT_BASE, Period
from ratekeeper.models.rates import IngestionResult, LatestRatesOut, utc_now
from ratekeeper.services.ingestion import IngestionCoordinator
from ratekeeper.services.money import round6

"""Query facade used by the HTTP routers.

Translates request parameters into RateStore / IngestionCoordinator calls and
shapes the results. NotFound and UpstreamUnavailable pass through untouched;
the exception handlers map them to 404 / 503.
"""


class RatesFacade:
    def __init__(
        self,
        store: RateStore,
        coordinator: IngestionCoordinator,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._coordinator = coordinator
        self._clock = clock

    def trigger_ingestion(self, base: str = DEFAULT_BASE) -> IngestionResult:
        return self._coordinator.run_ingestion_cycle(base)

    def get_latest(self, base: str = DEFAULT_BASE) -> LatestRatesOut:
        base = base.upper()
        rows = self._store.latest_per_target(base)
        return LatestRatesOut(
            base=base,
            rates={r.target_currency: r.rate for r in rows},
            timestamp=self._store.latest_timestamp(base),
        )

    def get_average(self, base: str, target: str, period: Period = Period.H24) -> float:
        since = self._clock() - Period(period).duration
        return round6(self._store.average_over_window(base, target, since))
