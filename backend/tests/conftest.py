"""
Shared test fixtures for the CaseDocket backend test suite.

Sets up a throwaway SQLite database and upload directory, overrides the
FastAPI database dependency, and provides helpers that register and log in
users through the API so every token has a matching session row.
"""

import os
import shutil
import tempfile
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# ---- Environment overrides MUST come before any app imports ----
os.environ.setdefault("CASEDOCKET_TEST_DIR", tempfile.mkdtemp(prefix="casedocket-tests-"))
TEST_DIR = os.environ["CASEDOCKET_TEST_DIR"]
TEST_DATABASE_PATH = os.path.join(TEST_DIR, "test.db")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DATABASE_PATH}"
os.environ["UPLOAD_DIR"] = os.path.join(TEST_DIR, "uploads")
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["FIRST_ADMIN_EMAIL"] = "admin@example.com"
os.environ["FIRST_ADMIN_PASSWORD"] = "AdminPass123!"
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["SESSION_SWEEP_INTERVAL_SECONDS"] = "0"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from app.auth.models import User, UserRole  # noqa: E402
from app.auth.service import hash_password  # noqa: E402
from app.database import Base, enable_sqlite_foreign_keys, get_db  # noqa: E402
from app.documents.storage import get_storage  # noqa: E402
from app.main import app  # noqa: E402
from tests.factories import CaseFactory, UserFactory  # noqa: E402

# ---------------------------------------------------------------------------
# Async engine & session factory for the test database
# ---------------------------------------------------------------------------
TEST_DATABASE_URL = os.environ["DATABASE_URL"]

# NullPool: each pytest-asyncio test runs on its own loop, so no connection may outlive one.
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
enable_sqlite_foreign_keys(test_engine)
TestSession = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------------------------
# Database and upload directory lifecycle
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    """Create all tables before each test, drop them and stored files afterward."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    shutil.rmtree(get_storage().root, ignore_errors=True)
    get_storage().root.mkdir(parents=True, exist_ok=True)


@pytest.fixture
def session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSession


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """Provide a DB session for direct service-layer tests."""
    async with TestSession() as session:
        yield session


@pytest.fixture
def storage():
    return get_storage()


# ---------------------------------------------------------------------------
# Dependency override
# ---------------------------------------------------------------------------
async def _override_get_db():
    async with TestSession() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = _override_get_db


# ---------------------------------------------------------------------------
# HTTP client fixture
# ---------------------------------------------------------------------------
@pytest_asyncio.fixture
async def client() -> AsyncClient:
    """Unauthenticated httpx async client wired to the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# User helpers
# ---------------------------------------------------------------------------
def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def register(client: AsyncClient):
    """Register a user through the API; returns the payload, user and auth headers."""

    async def _register(**overrides) -> dict:
        payload = UserFactory(**overrides)
        resp = await client.post("/api/auth/register", json=payload)
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return {
            "email": payload["email"],
            "password": payload["password"],
            "user": body["user"],
            "token": body["token"],
            "headers": _bearer(body["token"]),
        }

    return _register


@pytest.fixture
def login(client: AsyncClient):
    """Log in and return auth headers for the new session."""

    async def _login(email: str, password: str) -> dict[str, str]:
        resp = await client.post("/api/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return _bearer(resp.json()["token"])

    return _login


@pytest_asyncio.fixture
async def owner(register) -> dict:
    return await register(firstName="Olivia", lastName="Owner", firmName="Owner & Partners")


@pytest_asyncio.fixture
async def other_user(register) -> dict:
    return await register(firstName="Oscar", lastName="Other")


@pytest_asyncio.fixture
async def admin_user() -> User:
    user = User(
        id=uuid.uuid4(),
        email="admin@example.com",
        password_hash=hash_password("AdminPass123!"),
        first_name="Admin",
        last_name="Tester",
        role=UserRole.admin,
        is_active=True,
    )
    async with TestSession() as session:
        session.add(user)
        await session.commit()
        await session.refresh(user)
    return user


@pytest_asyncio.fixture
async def admin_headers(admin_user: User, login) -> dict[str, str]:
    return await login("admin@example.com", "AdminPass123!")


@pytest.fixture
def create_case(client: AsyncClient):
    """Create a case through the API for the given headers and return its JSON."""

    async def _create_case(headers: dict[str, str], **overrides) -> dict:
        resp = await client.post("/api/cases", json=CaseFactory(**overrides), headers=headers)
        assert resp.status_code == 201, resp.text
        return resp.json()["case"]

    return _create_case
