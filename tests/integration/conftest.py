"""Integration test fixtures: the HTTP app over a real SQLite database."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from payout_engine.api.app import create_app


@pytest_asyncio.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app with injected services (no scheduler)."""
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
