"""
Klara Backend — Health Check Route
====================================

What:  Liveness/readiness probe for Docker and load balancers.
How:   Runs SELECT 1 against the database and reports whether the memory
       service is configured.

Status levels:
    - healthy:   database reachable, mem0 key configured (HTTP 200)
    - degraded:  database reachable, no mem0 key; chat works without
                 long-term memory (HTTP 200)
    - unhealthy: database unreachable (HTTP 503)

mem0 itself is not called: a probe every few seconds would spend the
shared quota. Provider keys belong to users, so providers are not probed.
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import __version__
from app.config import settings
from app.database import engine
from app.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", type(e).__name__)

    memory_status = "configured" if settings.memory_configured else "not_configured"
    if memory_status != "configured" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        memory=memory_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
