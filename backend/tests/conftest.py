"""
Mailroom Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every test gets its own SQLite file database (aiosqlite) and its own
       attachment directory under pytest's tmp_path, so tests never share
       state and never need PostgreSQL.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── engine / session_factory / db_session: per-test SQLite database
    ├── store: AttachmentStore rooted in tmp_path
    ├── test_settings: Settings pointing at both
    ├── test_app: create_app(test_settings) with the DB dependency overridden
    ├── app_factory: same, for tests that need different settings
    ├── test_client: HTTPX AsyncClient over ASGITransport
    └── sample files: tiny PNG / text payloads
"""

import os
import tempfile

# Override settings for testing BEFORE any app imports
# Why: app.main builds a module-level app from the environment on import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///" + os.path.join(
    tempfile.mkdtemp(prefix="mailroom_test_db_"), "unused.db"
)
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="mailroom_test_")
os.environ["JWT_SECRET"] = "test-secret-not-real"
os.environ["LOG_LEVEL"] = "WARNING"  # Reduce noise during tests

from typing import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import app.models  # noqa: E402,F401  (registers tables on Base.metadata)
from app.config import Settings  # noqa: E402
from app.database import Base, get_db_session  # noqa: E402
from app.services.attachment_store import AttachmentStore, IncomingFile  # noqa: E402

# 1x1 transparent PNG; real bytes so the image policy's header check passes
PNG_BYTES = (
    b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06"
    b"\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01"
    b"\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82"
)


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'mailroom.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    test_engine = create_async_engine(database_url)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """
    A session for service-level tests.

    Tests call `commit()` themselves where a later step must survive a
    rollback (e.g. after an expected DuplicateKeyError).
    """
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Storage & settings
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def storage_root(tmp_path) -> str:
    root = tmp_path / "uploads"
    root.mkdir()
    return str(root)


@pytest.fixture
def store(storage_root) -> AttachmentStore:
    return AttachmentStore(storage_root=storage_root, max_file_size=1_048_576)


@pytest.fixture
def test_settings(database_url, storage_root) -> Settings:
    return Settings(
        database_url=database_url,
        storage_root=storage_root,
        jwt_secret="test-secret-not-real",
        log_level="WARNING",
    )


@pytest.fixture
def png_upload() -> IncomingFile:
    return IncomingFile(content=PNG_BYTES, filename="avatar.png", mimetype="image/png")


@pytest.fixture
def text_upload() -> IncomingFile:
    return IncomingFile(content=b"hello attachment", filename="notes.txt", mimetype="text/plain")


# ══════════════════════════════════════════════════════════════════════════
# HTTP
# ══════════════════════════════════════════════════════════════════════════

def build_test_app(app_settings: Settings, session_factory):
    """create_app() with the request-scoped session bound to the test database."""
    from app.main import create_app

    application = create_app(app_settings)

    async def override_get_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = override_get_db_session
    return application


@pytest.fixture
def test_app(test_settings, session_factory):
    return build_test_app(test_settings, session_factory)


@pytest_asyncio.fixture
async def test_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTPX AsyncClient talking to the app in-process.

    ASGITransport does not run the lifespan, so no startup DB probe happens.
    """
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def app_factory(session_factory):
    """Build extra apps (e.g. with REQUIRE_AUTH on) against the same database."""
    return lambda app_settings: build_test_app(app_settings, session_factory)
