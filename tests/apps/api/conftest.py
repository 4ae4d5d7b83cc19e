import httpx
import pytest_asyncio

from apps.api.deps import get_db, get_lifecycle, submit_rate_limit
from apps.api.main import app


@pytest_asyncio.fixture
async def client(session_factory, manual_lifecycle):
    """API client bound to the per-test database and lifecycle."""

    async def override_db():
        async with session_factory() as session:
            yield session

    async def no_rate_limit():
        return None

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_lifecycle] = lambda: manual_lifecycle
    app.dependency_overrides[submit_rate_limit] = no_rate_limit

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
