from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ratekeeper.core.security import rate_limit, require_api_key
from ratekeeper.models.constants import DEFAULT_BASE, SUPPORTED_CURRENCIES, Period
from ratekeeper.models.rates import FetchOut, LatestRatesOut
from ratekeeper.services.query import RatesFacade

"""Rates router.

Endpoints (rate limited, then API key required):
    - POST /rates/fetch     -> run one ingestion cycle now
    - GET  /rates/latest    -> latest rate per target for a base
    - GET  /rates/average   -> mean rate for a pair over a period token
    - GET  /rates/health    -> rates module liveness

Handlers are plain ``def`` so blocking sqlite/urllib work runs in the
threadpool instead of the event loop.
"""

logger = logging.getLogger("ratekeeper.routers.rates")

router = APIRouter(
    prefix="/rates",
    tags=["rates"],
    dependencies=[Depends(rate_limit), Depends(require_api_key)],
)


def get_facade(request: Request) -> RatesFacade:
    return request.app.state.facade


def _currency(value: str, field: str) -> str:
    code = value.strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported {field} currency '{value}'. Supported: {', '.join(sorted(SUPPORTED_CURRENCIES))}",
        )
    return code


@router.post("/fetch", response_model=FetchOut, summary="Fetch and store latest rates")
def fetch_rates(facade: RatesFacade = Depends(get_facade)) -> FetchOut:
    result = facade.trigger_ingestion(DEFAULT_BASE)
    logger.info(
        "manual fetch finished",
        extra={"fields": {"inserted": result.inserted, "skipped": result.skipped, "failed": result.failed}},
    )
    if result.failed and not (result.inserted or result.skipped):
        raise HTTPException(status_code=500, detail="No rates could be stored")
    return FetchOut(message="Rates fetched and saved successfully")


@router.get("/latest", response_model=LatestRatesOut, summary="Latest rates for a base")
def latest_rates(
    base: str = Query(DEFAULT_BASE, description="Base currency (ISO 4217)"),
    facade: RatesFacade = Depends(get_facade),
) -> LatestRatesOut:
    return facade.get_latest(_currency(base, "base"))


@router.get("/average", response_model=float, summary="Average rate over a period")
def average_rate(
    base: str = Query(..., description="Base currency (ISO 4217)"),
    target: str = Query(..., description="Target currency (ISO 4217)"),
    period: Period = Query(Period.H24, description="Window: 1h, 6h, 12h, 24h or 7d"),
    facade: RatesFacade = Depends(get_facade),
) -> float:
    base_code = _currency(base, "base")
    target_code = _currency(target, "target")
    if base_code == target_code:
        raise HTTPException(status_code=400, detail="target cannot equal base")
    return facade.get_average(base_code, target_code, period)


@router.get("/health", summary="Rates module liveness")
def rates_health():
    return {"currencyModule": "OK"}
