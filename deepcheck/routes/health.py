"""
Health check endpoint.

Used by:
  - Docker HEALTHCHECK instruction
  - Load balancers / orchestrators
  - Front-end to check API connectivity

Reports which analysis engine is configured so callers can tell a
deterministic (offline) deployment from a real one.
"""

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from deepcheck.core.config import settings
from deepcheck.services.sessions import SessionRegistry, get_registry

logger = logging.getLogger(__name__)
router = APIRouter()


class HealthResponse(BaseModel):
    status: str  # Always "ok" if the API process is alive
    version: str
    engine: str  # "deterministic" | "gemini" | "remote"
    ai_mock_mode: bool
    active_sessions: int
    environment: str


@router.get("", response_model=HealthResponse, summary="API health check")
async def health_check(registry: SessionRegistry = Depends(get_registry)) -> HealthResponse:
    """
    Returns the liveness status of the API.

    The engine name comes from configuration rather than a live probe, so
    the check stays cheap and never blocks on a slow backend.
    """
    return HealthResponse(
        status="ok",
        version="0.1.0",
        engine=settings.analysis_engine,
        ai_mock_mode=settings.ai_mock_mode,
        active_sessions=len(registry),
        environment=settings.environment,
    )
