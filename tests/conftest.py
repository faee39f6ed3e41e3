"""Pytest configuration and fixtures for the identity reconciliation tests."""

import os

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./unused-test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio for async tests."""
    return "asyncio"


@pytest.fixture
async def db(tmp_path, anyio_backend):
    """Fresh SQLite database file with the schema created."""
    from database import DatabaseManager

    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'contacts.db'}")
    await manager.create_tables()
    yield manager
    await manager.dispose()


@pytest.fixture
def service(db):
    """Reconciliation engine bound to the test database, retrying quickly."""
    from services.identity_service import IdentityService

    return IdentityService(db, max_attempts=10, retry_wait=0.01, retry_max_wait=0.1)


@pytest.fixture
async def client(service):
    """HTTP client for the FastAPI app wired to the test database."""
    import httpx
    from main import app, get_identity_service

    app.dependency_overrides[get_identity_service] = lambda: service
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def identify(client):
    """POST /identify and return the decoded contact block."""
    async def _identify(email=None, phone=None):
        response = await client.post("/identify", json={"email": email, "phoneNumber": phone})
        assert response.status_code == 200, response.text
        return response.json()["contact"]

    return _identify
