"""Ingestion Coordinator: one fetch-then-store cycle.

All pairs of one snapshot share a single ``observed_at`` (and therefore one
minute window). Each pair is written independently; a bad value or a failed
write is logged and counted without aborting its siblings. Upstream failures
are not handled here and reach the caller as UpstreamUnavailable.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Iterable, List

from pydantic import ValidationError

from ratekeeper.db.store import RateStore
from ratekeeper.models.constants import DEFAULT_BASE, DEFAULT_TARGETS
from ratekeeper.models.rates import IngestionResult, RateObservation, utc_now
from ratekeeper.services.upstream import SnapshotSource

logger = logging.getLogger("ratekeeper.ingestion")


class IngestionCoordinator:
    def __init__(
        self,
        store: RateStore,
        upstream: SnapshotSource,
        targets: Iterable[str] = DEFAULT_TARGETS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._upstream = upstream
        self.targets: List[str] = [t.upper() for t in targets]
        self._clock = clock

    def run_ingestion_cycle(self, base: str = DEFAULT_BASE) -> IngestionResult:
        base = base.upper()
        snapshot = self._upstream.fetch_snapshot(base, self.targets)

        if not snapshot.rates:
            logger.warning(
                "upstream returned no rates; nothing to store",
                extra={"fields": {"base": base, "date": snapshot.date}},
            )
            return IngestionResult(base=base)

        observed_at = self._clock()
        inserted = skipped = failed = 0
        for target, rate in snapshot.rates.items():
            try:
                observation = RateObservation(
                    base_currency=base,
                    target_currency=target,
                    rate=rate,
                    observed_at=observed_at,
                )
                if self._store.insert_if_absent(observation):
                    inserted += 1
                else:
                    skipped += 1
            except (ValidationError, sqlite3.Error) as e:
                failed += 1
                logger.error(
                    "failed to store rate",
                    extra={"fields": {"base": base, "target": target, "rate": rate, "error": str(e)}},
                )

        result = IngestionResult(base=base, inserted=inserted, skipped=skipped, failed=failed)
        logger.info(
            "ingestion cycle complete",
            extra={
                "fields": {
                    "base": base,
                    "upstream_date": snapshot.date,
                    "inserted": inserted,
                    "skipped": skipped,
                    "failed": failed,
                }
            },
        )
        return result
