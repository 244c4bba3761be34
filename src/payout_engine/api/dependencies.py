"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from payout_engine.container import PayoutServices


def get_services(request: Request) -> PayoutServices:
    """Services built at startup (or injected by tests)."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return services


async def get_db_session(
    services: Annotated[PayoutServices, Depends(get_services)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with services.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_user_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the acting user's ID from header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


# Type aliases for cleaner dependency injection
Services = Annotated[PayoutServices, Depends(get_services)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
UserId = Annotated[UUID, Depends(get_user_id)]
