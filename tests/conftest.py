"""
Test fixtures for the Kantong test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - client: Async HTTP test client acting as chat user USER_ID
  - other_client_headers: headers for a second chat user, for scoping tests
  - chat_store: an empty SessionStore per test
  - ScriptedDecisionMaker: stands in for the Gemini-backed DecisionMaker

Key design decisions:
  - In-memory SQLite (sqlite+aiosqlite://) is used for speed and isolation.
    The engine gets the same SAVEPOINT fix as the production engine, since
    ledger operations and chat dispatch rely on nested transactions.
  - We override FastAPI's get_db dependency to inject our test session,
    so the application code works exactly as it does in production.
  - The scheduler is switched off and the store URL pointed at memory
    before the application is imported.
"""

import os

os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("GEMINI_API_KEY", "")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

from kantong.database import Base, enable_sqlite_savepoints, get_db  # noqa: E402
from kantong.main import app  # noqa: E402
from kantong.schemas.decision import decode_decision  # noqa: E402
from kantong.services.session_store import SessionStore  # noqa: E402


TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_ID = "6281234567890@c.us"
OTHER_USER_ID = "6289876543210@c.us"


class ScriptedDecisionMaker:
    """
    Returns pre-scripted decisions in order, one per decide() call.

    Items may be raw decision dicts (decoded like a model reply), None
    (disabled maker) or an exception instance to raise.
    """

    enabled = True

    def __init__(self, *decisions):
        self.decisions = list(decisions)
        self.calls = []

    def push(self, *decisions):
        self.decisions.extend(decisions)

    async def decide(self, message, history=(), wallets=(), today=None):
        self.calls.append({
            "message": message,
            "history": list(history),
            "wallets": [wallet.name for wallet in wallets],
            "today": today,
        })
        item = self.decisions.pop(0)
        if isinstance(item, Exception):
            raise item
        if item is None:
            return None
        return decode_decision(item)


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def client(session_factory):
    """
    Async HTTP test client with the test database injected.

    Requests carry USER_ID in X-User-Id unless a test overrides the header.
    """

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-User-Id": USER_ID},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def other_client_headers():
    return {"X-User-Id": OTHER_USER_ID}


@pytest.fixture
def chat_store():
    return SessionStore(history_limit=10, idle_timeout_seconds=1800)


@pytest.fixture
def tmp_dirs(tmp_path, monkeypatch):
    """Point backups and exports at a temporary directory."""
    from kantong.config import settings

    backup_dir = tmp_path / "backups"
    export_dir = tmp_path / "exports"
    monkeypatch.setattr(settings, "BACKUP_DIR", str(backup_dir))
    monkeypatch.setattr(settings, "EXPORT_DIR", str(export_dir))
    return {"backups": backup_dir, "exports": export_dir}


@pytest.fixture
def decision_maker():
    """An empty ScriptedDecisionMaker; tests push() the decisions they need."""
    return ScriptedDecisionMaker()


@pytest.fixture
def user_id():
    return USER_ID
