"""
crudkit — Test Configuration (conftest.py)
============================================

What:  Shared fixtures: a real SQLite database per test, principals, tokens,
       resource controllers and an HTTP client bound to the platform app.
How:   Environment variables are set before any crudkit import so the
       settings singleton is built in test mode.

Fixture Hierarchy:
    database (file-backed SQLite in tmp_path, schema created)
    ├── customers / expenses / users     ResourceControllers
    └── service → client                 ServiceBootstrap + httpx AsyncClient
    alice / bob                          Principals with random UUID ids
    alice_headers / bob_headers          Bearer headers signed with JWT_SECRET
"""

import os
import uuid

# Must precede crudkit imports: the settings object is created at import time
os.environ["ENVIRONMENT"] = "test"
os.environ["JWT_SECRET"] = "test-secret-not-real-0123456789abcdef"
os.environ["MAX_BODY_SIZE"] = "65536"
os.environ["DB_CONNECT_ATTEMPTS"] = "1"
os.environ["DB_CONNECT_TIMEOUT"] = "2"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("DATABASE_URL_DEV", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from crudkit.auth import Principal, issue_token
from crudkit.database import Database
from crudkit.resources import (
    build_customers_controller,
    build_expenses_controller,
    build_users_controller,
)


@pytest_asyncio.fixture
async def database(tmp_path):
    """Connected Database with every table created; disposed afterwards."""
    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'crudkit-test.db'}",
        connect_attempts=1,
        retry_min_wait=0,
        retry_max_wait=0,
    )
    await db.connect()
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def alice() -> Principal:
    return Principal(id=str(uuid.uuid4()), email="alice@example.com", role="user")


@pytest.fixture
def bob() -> Principal:
    return Principal(id=str(uuid.uuid4()), email="bob@example.com", role="user")


def bearer(principal: Principal) -> dict:
    return {"Authorization": f"Bearer {issue_token(principal.id, email=principal.email)}"}


@pytest.fixture
def alice_headers(alice) -> dict:
    return bearer(alice)


@pytest.fixture
def bob_headers(bob) -> dict:
    return bearer(bob)


@pytest.fixture
def customers(database):
    return build_customers_controller(database)


@pytest.fixture
def expenses(database):
    return build_expenses_controller(database)


@pytest.fixture
def users(database):
    return build_users_controller(database)


@pytest.fixture
def service(database):
    """Platform ServiceBootstrap wired to the test database."""
    from crudkit.main import create_service
    return create_service(database=database)


@pytest_asyncio.fixture
async def client(service):
    """
    HTTPX AsyncClient talking to the platform app in-process.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    transport = ASGITransport(app=service.create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
