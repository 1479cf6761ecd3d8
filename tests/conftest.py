"""Shared fixtures: temp databases, a fake urllib opener and stub snapshot sources."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List

import pytest
from fastapi.testclient import TestClient

from ratekeeper.core.config import Settings
from ratekeeper.core.errors import UpstreamUnavailable
from ratekeeper.db.migrate import apply_migrations
from ratekeeper.db.store import RateStore
from ratekeeper.main import create_app
from ratekeeper.models.rates import Snapshot

API_KEY = "test-key"
T0 = datetime(2026, 10, 19, 12, 0, 30, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, body: bytes, status: int = 200):
        self.status = status
        self._body = body
        self._pos = 0

    def read(self, size: int = -1) -> bytes:
        end = len(self._body) if size is None or size < 0 else self._pos + size
        chunk = self._body[self._pos:end]
        self._pos += len(chunk)
        return chunk

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None


class FakeOpener:
    """Replays scripted outcomes; an Exception item is raised, anything else is served.

    dict/list items are JSON-encoded, bytes are served raw, a FakeResponse is
    returned as-is.
    """

    def __init__(self, outcomes: Iterable[Any]):
        self._outcomes = list(outcomes)
        self.calls: List[dict] = []

    def __call__(self, url: str, timeout: float = None):
        self.calls.append({"url": url, "timeout": timeout})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, FakeResponse):
            return outcome
        if isinstance(outcome, bytes):
            return FakeResponse(outcome)
        return FakeResponse(json.dumps(outcome).encode("utf-8"))


class StubSource:
    """Snapshot source returning a fixed snapshot (or raising) and counting calls."""

    def __init__(self, snapshot: Snapshot | None = None, error: Exception | None = None):
        self.snapshot = snapshot
        self.error = error
        self.calls: List[tuple] = []

    def fetch_snapshot(self, base: str, targets: Iterable[str]) -> Snapshot:
        self.calls.append((base, tuple(targets)))
        if self.error is not None:
            raise self.error
        return self.snapshot


def payload(rates: dict, date: str = "2026-10-19") -> dict:
    return {"amount": 1.0, "base": "USD", "date": date, "rates": rates}


@pytest.fixture
def store(tmp_path: Path) -> RateStore:
    db_path = tmp_path / "rates.sqlite3"
    apply_migrations(db_path)
    return RateStore(db_path)


@pytest.fixture
def sample_snapshot() -> Snapshot:
    return Snapshot(
        date="2026-10-19",
        rates={"INR": 83.123456, "EUR": 0.92, "GBP": 0.79, "JPY": 149.5, "CAD": 1.37},
    )


@pytest.fixture
def api_settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "api.sqlite3",
        api_key=API_KEY,
        scheduler_enabled=False,
    )


@pytest.fixture
def upstream_stub(sample_snapshot: Snapshot) -> StubSource:
    return StubSource(snapshot=sample_snapshot)


@pytest.fixture
def client(api_settings: Settings, upstream_stub: StubSource) -> TestClient:
    app = create_app(settings_override=api_settings, upstream_override=upstream_stub)
    return TestClient(app, headers={"X-API-Key": API_KEY})


@pytest.fixture
def failing_upstream() -> StubSource:
    return StubSource(error=UpstreamUnavailable("Failed to fetch exchange rates from upstream provider"))
