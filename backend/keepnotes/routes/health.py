"""
KeepNotes Backend — Health Check Route
========================================

What:  Liveness endpoint for monitoring and load balancer probes, plus the
       root redirect to the API docs.
Why:   Orchestrators need a cheap way to tell the process is serving.
How:   Reports uptime and whether the agent bridge is configured. It does
       NOT start an agent: a probe every few seconds must stay free.
"""

import logging
import time

from fastapi import APIRouter
from fastapi.responses import RedirectResponse

from keepnotes import __version__
from keepnotes.config import settings
from keepnotes.schemas.chat import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Track when the service started for uptime reporting
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(
        status="ok",
        version=__version__,
        agent="configured" if settings.agent_configured else "not_configured",
        uptime_seconds=round(time.time() - _start_time, 2),
    )


@router.get("/", include_in_schema=False)
async def root() -> RedirectResponse:
    """Avoid a bare 404 on `/`; send browsers to Swagger UI."""
    return RedirectResponse(url="/api-docs")
