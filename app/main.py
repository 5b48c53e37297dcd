"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.db.engine import dispose_engine, init_engine
from app.dependencies import close_production_deps, init_production_deps
from app.logging_config import configure_logging
from app.routers import chat, health


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: database engine and model client."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    await init_engine(settings.database_url, application_name=settings.app_name)

    if settings.gemini_api_key:
        init_production_deps(
            gemini_api_key=settings.gemini_api_key,
            gemini_model=settings.gemini_model,
            gemini_api_base=settings.gemini_api_base,
            gemini_timeout_seconds=settings.gemini_timeout_seconds,
        )
    else:
        structlog.get_logger().warning("gemini_not_configured", fallback="in_memory")

    yield
    await close_production_deps()
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(chat.router)
