"""Response model for the liveness endpoint."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Body of ``GET /healthz``."""

    status: str
    service: str
    database: str
