"""Liveness endpoint that also proves the credential store is reachable."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.session import get_db_session
from app.schemas.health import HealthResponse

router = APIRouter(tags=["health"])

ReadSession = Annotated[AsyncSession, Depends(get_db_session)]


@router.get("/healthz", response_model=HealthResponse)
async def healthz(db: ReadSession) -> HealthResponse:
    """Run ``SELECT 1`` against the store; failures surface as a JSON 500."""
    await db.execute(text("SELECT 1"))
    return HealthResponse(status="ok", service=settings.app_name, database="connected")
