from fastapi import APIRouter

from ratekeeper.models.rates import HealthOut, utc_now

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthOut, summary="Liveness probe")
async def health() -> HealthOut:
    return HealthOut(status="OK", timestamp=utc_now())
