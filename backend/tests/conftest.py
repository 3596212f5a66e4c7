"""
MasterMinds Backend — Test Configuration (conftest.py)
=======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Autouse (every test):
    └── reset_state: fresh in-memory storage, empty login tracker,
                     revocation list and submission limiter

    Function-scoped:
    ├── memory_storage: the MemoryStorage installed by reset_state
    ├── sql_storage: SQLStorage on a private in-memory SQLite database
    ├── any_storage: parametrized over both backends
    ├── test_client: HTTPX AsyncClient for API endpoint testing
    ├── registration_data / application_data: valid request bodies (camelCase)
    └── make_user: registers a user through the API and returns its tokens
"""

import os
from contextlib import asynccontextmanager
from datetime import date, timedelta

# Override settings BEFORE any masterminds import; settings load at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["ENVIRONMENT"] = "test"
os.environ["BCRYPT_ROUNDS"] = "4"  # Minimum cost keeps hashing fast
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DB_CONNECT_ATTEMPTS"] = "1"
os.environ["DB_CONNECT_MIN_WAIT"] = "0"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from masterminds.database import create_tables
from masterminds.middleware.auth import submission_limiter
from masterminds.services.credentials import login_tracker, token_service
from masterminds.storage import MemoryStorage, SQLStorage, storage

MOTIVATION = (
    "I want to join this program because building reliable web applications is what I "
    "enjoy most. I have practiced on my own for two years and I am ready to commit fully."
)
EXPERIENCE = "Two years of self-taught Python and JavaScript, plus a few freelance sites."
GOALS = "Become a professional full stack developer and ship production software with a team."


# ══════════════════════════════════════════════════════════════════════════
# Global State
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def reset_state():
    """
    Process-wide singletons keep state between requests; every test starts
    from an empty in-memory store and clean counters.
    """
    storage.use(MemoryStorage())
    login_tracker.reset()
    token_service.reset()
    submission_limiter.reset()
    yield
    storage.use(MemoryStorage())


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return storage.backend


@asynccontextmanager
async def sqlite_backend():
    """
    SQLStorage over an in-memory SQLite database.

    StaticPool keeps the single connection alive, so every session sees the
    same database for the lifetime of the backend.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield SQLStorage(factory)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def sql_storage():
    async with sqlite_backend() as backend:
        yield backend


@pytest_asyncio.fixture(params=["memory", "database"])
async def any_storage(request):
    """Runs a test once per backend."""
    if request.param == "memory":
        yield MemoryStorage()
    else:
        async with sqlite_backend() as backend:
            yield backend


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client():
    """
    HTTPX AsyncClient talking to a fresh app instance through ASGITransport.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from masterminds.main import create_app

    transport = ASGITransport(app=create_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ══════════════════════════════════════════════════════════════════════════
# Request Bodies
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def registration_data():
    def build(email: str = "ada@example.com", **overrides):
        body = {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "email": email,
            "password": "Str0ng!Pass",
            "phone": "+1 555 123 4567",
            "dateOfBirth": "1995-05-20",
        }
        body.update(overrides)
        return body

    return build


@pytest.fixture
def application_data():
    def build(program: str = "Full Stack Development", **overrides):
        body = {
            "program": program,
            "motivation": MOTIVATION,
            "experience": EXPERIENCE,
            "goals": GOALS,
            "availability": {
                "startDate": (date.today() + timedelta(days=30)).isoformat(),
                "timeCommitment": "Flexible",
            },
            "technicalSkills": [
                {"skill": "Python", "level": "Intermediate"},
                {"skill": "React", "level": "Beginner"},
            ],
            "projects": [
                {
                    "name": "Portfolio",
                    "description": "Personal site built with React and a small API",
                    "technologies": ["React", "FastAPI"],
                    "githubUrl": "https://github.com/ada/portfolio",
                }
            ],
        }
        body.update(overrides)
        return body

    return build


@pytest.fixture
def make_user(test_client, registration_data):
    """
    Registers a user through the API.

    Returns a coroutine function: `auth = await make_user("x@example.com")`
    where auth has "user", "tokens" and a ready-made "headers" dict.
    """

    async def register(email: str = "ada@example.com", **overrides):
        response = await test_client.post(
            "/api/auth/register", json=registration_data(email, **overrides)
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        data["headers"] = {"Authorization": f"Bearer {data['tokens']['accessToken']}"}
        return data

    return register
