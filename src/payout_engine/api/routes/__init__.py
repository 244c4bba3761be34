"""API routes."""

from payout_engine.api.routes.completions import router as completions_router
from payout_engine.api.routes.health import router as health_router
from payout_engine.api.routes.payouts import router as payouts_router

__all__ = ["completions_router", "health_router", "payouts_router"]
