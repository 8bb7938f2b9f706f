"""
Klara Backend — Test Configuration (conftest.py)
==================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set at the very top, before anything
       imports app.config, so the Settings singleton and the module-level
       engine are built for tests.

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session: AsyncMock session for pure service tests
    ├── db_engine / db_session_factory / db_session: aiosqlite database in tmp_path
    ├── make_user: inserts a user row (keys configurable)
    ├── drain_background_tasks: awaits detached mem0 writes
    ├── upstream: FakeUpstream answering provider and mem0 calls
    ├── provider_adapter / memory_client: real clients over httpx.MockTransport
    └── api_client: AsyncClient on a fresh app with db, auth and services overridden

Outbound HTTP never leaves the process: every httpx client in the suite is
built on httpx.MockTransport(FakeUpstream).
"""

import os

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (must run before any app import)
# ══════════════════════════════════════════════════════════════════════════

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["MEM0_API_KEY"] = "test-mem0-key"
os.environ["CLERK_JWKS_URL"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import asyncio  # noqa: E402
import json  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import Request  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402

import app.models  # noqa: E402,F401
from app.auth import get_current_subject  # noqa: E402
from app.database import Base, get_db_session, utcnow  # noqa: E402
from app.dependencies import (  # noqa: E402
    get_conversation_service,
    get_memory_client,
    get_note_update_service,
)
from app.models.user import User  # noqa: E402
from app.services.background import pending_tasks  # noqa: E402
from app.services.conversation_service import ConversationService  # noqa: E402
from app.services.memory_client import MemoryClient  # noqa: E402
from app.services.note_update_service import NoteUpdateService  # noqa: E402
from app.services.providers import ProviderAdapter  # noqa: E402

SUBJECT_HEADER = "X-Test-Subject"
DEFAULT_SUBJECT = "user_a"


# ══════════════════════════════════════════════════════════════════════════
# Fake upstream (OpenAI, Gemini, mem0)
# ══════════════════════════════════════════════════════════════════════════


class FakeUpstream:
    """
    httpx.MockTransport handler standing in for every external API.

    Records each request; tests tune the canned answers through attributes.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.reply = "Hello! How can I help?"
        self.provider_status = 200
        self.search_results: List[Dict[str, Any]] = []
        self.search_status = 200
        self.listed_memories: List[Dict[str, Any]] = []
        self.memory_by_id: Dict[str, Dict[str, Any]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/chat/completions"):
            if self.provider_status != 200:
                return httpx.Response(self.provider_status, json={"error": {"message": "upstream"}})
            return httpx.Response(
                200,
                json={"choices": [{"message": {"role": "assistant", "content": self.reply}}]},
            )
        if path.endswith(":generateContent"):
            if self.provider_status != 200:
                return httpx.Response(self.provider_status, json={"error": {"message": "upstream"}})
            return httpx.Response(
                200,
                json={"candidates": [{"content": {"parts": [{"text": self.reply}], "role": "model"}}]},
            )
        if path == "/v2/memories/search/":
            if self.search_status != 200:
                return httpx.Response(self.search_status, text="search unavailable")
            return httpx.Response(200, json=self.search_results)
        if path == "/v1/memories/" and request.method == "POST":
            return httpx.Response(200, json=[{"id": "mem-new", "event": "ADD"}])
        if path == "/v2/memories/":
            return httpx.Response(200, json={"results": self.listed_memories})
        if path.startswith("/v1/memories/") and request.method == "GET":
            memory_id = path.split("/")[3]
            if memory_id not in self.memory_by_id:
                return httpx.Response(404, json={"detail": "Memory not found"})
            return httpx.Response(200, json=self.memory_by_id[memory_id])
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404, json={"detail": "no fake for this route"})

    def calls(self, fragment: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if fragment in r.url.path and (method is None or r.method == method)
        ]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


async def _drain_background_tasks() -> None:
    """Waits for detached memory writes spawned by the code under test."""
    tasks = pending_tasks()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def mock_db_session():
    """
    Provides a mock async database session.

    Usage:
        mock_db_session.execute.assert_not_called()  # proves no DB access
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite database file per test with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'klara_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def db_session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(db_session_factory):
    async with db_session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session_factory):
    """Inserts a user row and returns it."""

    async def _make(
        clerk_id: str = DEFAULT_SUBJECT,
        openai_key: Optional[str] = "sk-test-openai",
        gemini_key: Optional[str] = None,
    ) -> User:
        async with db_session_factory() as session:
            now = utcnow()
            user = User(
                clerk_id=clerk_id,
                email=f"{clerk_id}@example.com",
                openai_key=openai_key,
                gemini_key=gemini_key,
                created_at=now,
                updated_at=now,
            )
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
def drain_background_tasks():
    """Awaitable that lets detached mem0 writes finish before asserting on them."""
    return _drain_background_tasks


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest_asyncio.fixture
async def provider_adapter(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield ProviderAdapter(client)


@pytest_asyncio.fixture
async def memory_client(upstream):
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as client:
        yield MemoryClient("test-mem0-key", client)


@pytest_asyncio.fixture
async def api_client(db_session_factory, provider_adapter, memory_client):
    """
    HTTPX AsyncClient talking to a fresh app.

    Overrides:
        get_db_session       → the tmp_path SQLite database
        get_current_subject  → value of the X-Test-Subject header (default user_a)
        services             → built on the FakeUpstream transport

    Usage:
        async def test_chat(api_client, upstream):
            response = await api_client.post("/api/chat", json={...})
    """
    from app.main import create_app

    application = create_app()

    async def override_db():
        async with db_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_subject(request: Request) -> str:
        return request.headers.get(SUBJECT_HEADER, DEFAULT_SUBJECT)

    conversations = ConversationService(provider_adapter, memory_client)
    updater = NoteUpdateService(provider_adapter, memory_client)

    application.dependency_overrides[get_db_session] = override_db
    application.dependency_overrides[get_current_subject] = override_subject
    application.dependency_overrides[get_memory_client] = lambda: memory_client
    application.dependency_overrides[get_conversation_service] = lambda: conversations
    application.dependency_overrides[get_note_update_service] = lambda: updater

    transport = httpx.ASGITransport(app=application, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await _drain_background_tasks()
