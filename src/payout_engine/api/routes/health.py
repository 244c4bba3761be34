"""Health check endpoints."""

from datetime import date, datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel

from payout_engine.api.dependencies import DbSession, Services
from payout_engine.database import check_connection

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    database: str
    transfer_provider: str
    next_settlement_date: date


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession, services: Services) -> HealthResponse:
    """Database reachability, active transfer provider and the next payday."""
    database_ok = await check_connection(db)
    today = services.clock.today()
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        database="healthy" if database_ok else "unhealthy",
        transfer_provider=services.transfer_provider.provider_name,
        next_settlement_date=services.calendar.next_settlement_date(today),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
