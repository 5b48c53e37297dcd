"""Centralized FastAPI dependencies for use with Depends()."""

from collections.abc import AsyncGenerator

import httpx

from app.config import settings
from app.db.session import get_db_session
from app.services.gemini_client import InMemoryLLMClient, LLMClient

_llm_client: LLMClient = InMemoryLLMClient()


def init_production_deps(
    gemini_api_key: str,
    gemini_model: str,
    gemini_api_base: str,
    gemini_timeout_seconds: float,
) -> None:
    """Swap the InMemory test double for the real Gemini streaming client."""
    global _llm_client  # noqa: PLW0603

    from app.services.gemini_client import GeminiClient

    _llm_client = GeminiClient(
        api_key=gemini_api_key,
        model=gemini_model,
        api_base=gemini_api_base,
        timeout=gemini_timeout_seconds,
    )


async def close_production_deps() -> None:
    """Release the model client's connection pool and restore the default."""
    global _llm_client  # noqa: PLW0603

    aclose = getattr(_llm_client, "aclose", None)
    if aclose is not None:
        await aclose()
    _llm_client = InMemoryLLMClient()


def get_llm_client() -> LLMClient:
    """Return the application LLM client instance.

    Defaults to InMemoryLLMClient for development and testing.
    Swapped to production implementations by ``init_production_deps()``.
    """
    return _llm_client


async def get_source_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield a per-request client for the GitHub and Jira connectors."""
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(settings.source_timeout_seconds),
        follow_redirects=True,
    ) as client:
        yield client


__all__ = [
    "close_production_deps",
    "get_db_session",
    "get_llm_client",
    "get_source_http_client",
    "init_production_deps",
]
