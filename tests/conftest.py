"""Shared test fixtures: mocked store session, in-memory model, signed tokens."""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator, Callable
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.session import get_db_session
from app.dependencies import get_llm_client, get_source_http_client
from app.main import app
from app.services.gemini_client import InMemoryLLMClient

JWT_SECRET = "test-jwt-secret-with-enough-length"
TEST_USER_ID = "5f0c1f9e-2d7a-4a3f-9f55-0d6c1c0f7a11"


def make_token(
    sub: str | None = TEST_USER_ID,
    *,
    secret: str = JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
) -> str:
    """Mint a Supabase-style HS256 session token."""
    now = int(time.time())
    claims: dict = {"aud": audience, "iat": now, "exp": now + expires_in, "role": "authenticated"}
    if sub is not None:
        claims["sub"] = sub
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    """Configure the session-token secret for every test."""
    monkeypatch.setattr(settings, "supabase_jwt_secret", JWT_SECRET)
    return JWT_SECRET


@pytest.fixture(autouse=True)
def gemini_configured(monkeypatch: pytest.MonkeyPatch) -> None:
    """Mark the model as configured; the client itself is the in-memory double."""
    monkeypatch.setattr(settings, "gemini_api_key", "test-gemini-key")


@pytest.fixture
def auth_headers() -> dict[str, str]:
    """Authorization header carrying a valid token for ``TEST_USER_ID``."""
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mock async database session.

    ``execute`` returns an empty result, so by default the caller has no
    integrations and an empty roster.
    """
    session = AsyncMock(spec=AsyncSession)
    session.execute.return_value = []
    return session


@pytest.fixture
def mock_llm_client() -> InMemoryLLMClient:
    """Create a fresh in-memory LLM client for test inspection."""
    return InMemoryLLMClient()


@pytest.fixture
def source_requests() -> list[httpx.Request]:
    """Every request the connectors sent during the test."""
    return []


@pytest.fixture
def source_handler() -> Callable[[httpx.Request], httpx.Response]:
    """Default upstream for GitHub and Jira: nothing found."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "Not Found"})

    return handler


@pytest.fixture
async def client(
    mock_db_session: AsyncMock,
    mock_llm_client: InMemoryLLMClient,
    source_requests: list[httpx.Request],
    source_handler: Callable[[httpx.Request], httpx.Response],
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with dependencies overridden.

    The store is a mock session, the model is the in-memory double and the
    connectors talk to ``source_handler`` through a mock transport.
    """

    async def _override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db_session  # type: ignore[misc]

    def _recording(request: httpx.Request) -> httpx.Response:
        source_requests.append(request)
        return source_handler(request)

    async def _override_source_client() -> AsyncGenerator[httpx.AsyncClient, None]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_recording)) as source:
            yield source

    app.dependency_overrides[get_db_session] = _override_db_session
    app.dependency_overrides[get_llm_client] = lambda: mock_llm_client
    app.dependency_overrides[get_source_http_client] = _override_source_client
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def token_factory() -> Callable[..., str]:
    """Return ``make_token`` for tests that need non-default claims."""
    return make_token
