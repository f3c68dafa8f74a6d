"""
Pytest configuration.

Unit tests run against an in-memory SQLite database (aiosqlite) and mocked
HTTP transports; nothing outside the process is contacted. Integration tests
(``-m integration``) expect a local FHIR store and Redis.

Usage:
    pip install -e ".[test]"
    pytest
"""

import os
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Test environment, applied before any healthhub import reads the settings.
# Variables already defined (e.g. in CI) are respected.
TEST_ENV = {
    "ENVIRONMENT": "test",
    "DEBUG": "false",
    "SQLALCHEMY_DATABASE_URI": "sqlite+aiosqlite:///:memory:",
    "JWT_SECRET": "test-secret-key-that-is-at-least-32-characters-long",
    "BCRYPT_ROUNDS": "4",
    "CACHE_ENABLED": "false",
    "REDIS_URL": "redis://localhost:6380/0",
    "FHIR_SERVER_URL": "http://localhost:8090/fhir",
    "OTEL_SERVICE_NAME": "healthhub-api-test",
    "OTEL_TRACES_EXPORTER": "console",
    "OTEL_METRICS_EXPORTER": "console",
    "OTEL_LOGS_EXPORTER": "console",
}

for key, value in TEST_ENV.items():
    if key not in os.environ:
        os.environ[key] = value

# The test run never calls OpenAI, whatever the developer's shell holds
os.environ.pop("OPENAI_API_KEY", None)

from healthhub.core.database import Base  # noqa: E402
from healthhub.models import *  # noqa: E402,F403


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ============================================================================
# Database fixtures
# ============================================================================


@pytest.fixture
async def test_engine():
    """
    In-memory SQLite engine with every table created.

    StaticPool keeps the single connection alive, so the schema survives for
    the whole test. Foreign keys are enforced to get ON DELETE cascades.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Database session for one test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def override_get_session(session_maker):
    """Replacement for ``get_session`` bound to the test database."""

    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    return _get_session


# ============================================================================
# Domain fixtures
# ============================================================================


@pytest.fixture
async def user(db_session):
    """A registered account holder."""
    from healthhub.core.security import hash_password
    from healthhub.models.user import User

    account = User(
        email="alex@example.com",
        password_hash=hash_password("Str0ngPassw0rd"),
        first_name="Alex",
        last_name="Martin",
    )
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
async def other_user(db_session):
    """A second account, used to check per-account scoping."""
    from healthhub.core.security import hash_password
    from healthhub.models.user import User

    account = User(email="sam@example.com", password_hash=hash_password("An0therPassw0rd"))
    db_session.add(account)
    await db_session.commit()
    await db_session.refresh(account)
    return account


@pytest.fixture
async def member(db_session, user):
    """The account holder's own family member profile."""
    from healthhub.models.family import FamilyMember

    profile = FamilyMember(
        user_id=user.id,
        name="Alex Martin",
        relationship="self",
        gender="female",
        is_primary=True,
    )
    db_session.add(profile)
    await db_session.commit()
    await db_session.refresh(profile)
    return profile


# ============================================================================
# API fixtures
# ============================================================================


@pytest.fixture
def api_app():
    """
    The API router on a bare FastAPI app, backed by its own in-memory database.

    The schema is created in the app lifespan so the engine lives on the
    TestClient event loop. External clients are not initialized; tests that
    need them override the dependencies.
    """
    from contextlib import asynccontextmanager

    from fastapi import FastAPI
    from fastapi.exceptions import RequestValidationError
    from fastapi_errors_rfc9457 import RFC9457Config, setup_rfc9457_handlers

    from healthhub.api import api
    from healthhub.core.config import settings
    from healthhub.core.database import get_session
    from healthhub.core.exceptions import request_validation_handler

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield
        await engine.dispose()

    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with maker() as session:
            yield session

    app = FastAPI(lifespan=lifespan)
    setup_rfc9457_handlers(
        app,
        config=RFC9457Config(
            base_url="about:blank",
            include_trace_id=False,
            expose_internal_errors=False,
            include_error_pages=False,
        ),
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(api.router, prefix=settings.API_PREFIX)
    app.dependency_overrides[get_session] = _get_session
    return app


@pytest.fixture
def api_client(api_app):
    """TestClient kept open for the whole test, so every request shares one event loop."""
    from fastapi.testclient import TestClient

    with TestClient(api_app, raise_server_exceptions=False) as client:
        yield client


# ============================================================================
# Integration fixtures (real services)
# ============================================================================


@pytest.fixture
async def redis_client():
    """
    Client of the test Redis (port 6380).

    The database is flushed after each test for isolation.
    """
    from redis.asyncio import Redis

    from healthhub.core.config import settings

    client = Redis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
    await client.ping()

    yield client

    await client.flushdb()
    await client.aclose()


@pytest.fixture
async def fhir_store():
    """Client of the test FHIR store (port 8090)."""
    from healthhub.core.config import settings
    from healthhub.infrastructure.fhir.client import FHIRClient

    client = FHIRClient(base_url=settings.FHIR_SERVER_URL)
    yield client
    await client.close()
