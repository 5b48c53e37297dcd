"""POST /chat endpoint: grounded, streamed PM assistant answers.

Orchestrates: authenticate -> validate -> load credentials and roster ->
detect intent -> fetch live context -> open model stream -> relay as
OpenAI-compatible SSE.  Everything before the stream opens can still fail
with a JSON error; once streaming starts, problems become inline notices.
"""

from __future__ import annotations

from typing import Annotated

import httpx  # noqa: TC002
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: TC002

from app.config import settings
from app.db.session import get_db_session
from app.dependencies import get_llm_client, get_source_http_client
from app.logging_config import bind_request_context
from app.services.auth import CallerIdentity, require_caller
from app.services.context import build_context_block
from app.services.fanout import settle
from app.services.gemini_client import (
    LLMClient,
    ModelAPIError,
    ModelRateLimitedError,
    ModelUnavailableError,
)
from app.services.integrations import (
    UserIntegrations,
    load_team_members,
    load_user_integrations,
)
from app.services.intent import detect_intent
from app.services.prompt import SYSTEM_PROMPT, build_gemini_contents
from app.services.stream_translator import translate_gemini_stream
from app.services.validation import ChatValidationError, validate_messages

logger = structlog.get_logger()

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}

router = APIRouter(tags=["chat"])


async def _read_messages(request: Request) -> list:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body") from exc

    raw = body.get("messages") if isinstance(body, dict) else None
    try:
        return validate_messages(raw)
    except ChatValidationError as exc:
        logger.info("chat_rejected", reason=exc.reason)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.reason) from exc


@router.post("/chat")
async def chat(
    caller: Annotated[CallerIdentity, Depends(require_caller)],
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db_session)],
    llm_client: Annotated[LLMClient, Depends(get_llm_client)],
    source_client: Annotated[httpx.AsyncClient, Depends(get_source_http_client)],
) -> StreamingResponse:
    """Answer the conversation's last user turn as a token stream."""
    bind_request_context(user_id=caller.user_id)
    messages = await _read_messages(request)

    integrations = await settle(
        load_user_integrations(session, caller.user_id), UserIntegrations(), label="integrations"
    )
    team_members = await settle(load_team_members(session, caller.user_id), [], label="team_members")
    # Return the pooled connection before the long-lived model stream.
    await session.close()

    intent = detect_intent(messages)
    logger.info(
        "chat_intent",
        turns=len(messages),
        needs_github=intent.needs_github,
        needs_jira=intent.needs_jira,
        github_connected=integrations.github is not None,
        jira_connected=integrations.jira is not None,
    )

    context_block = await build_context_block(source_client, intent, integrations, team_members)
    contents = build_gemini_contents(messages, context_block)

    if not settings.gemini_api_key and not settings.debug:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service not configured. Set GEMINI_API_KEY.",
        )

    try:
        upstream = await llm_client.open_stream(SYSTEM_PROMPT, contents)
    except ModelRateLimitedError as exc:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Please try again in a moment.",
        ) from exc
    except ModelUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="AI service unreachable") from exc
    except ModelAPIError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail=f"AI API error ({exc.status_code})"
        ) from exc

    return StreamingResponse(
        translate_gemini_stream(upstream, request.is_disconnected),
        media_type="text/event-stream",
        headers=STREAM_HEADERS,
    )
