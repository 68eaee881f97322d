"""
SmartNotes Backend - Health Check Route
========================================

What:  GET /health for container health checks and load balancers.
How:   SELECT 1 against the database, plus a metadata lookup of the
       configured Gemini model (no token cost).

Status levels:
    healthy    database and Gemini reachable
    degraded   database fine, Gemini unconfigured or unreachable
    unhealthy  database unreachable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from smartnotes import __version__
from smartnotes.database import engine
from smartnotes.schemas.note import HealthResponse
from smartnotes.services.gemini_gateway import gemini_gateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    if not gemini_gateway.api_key:
        gemini_status = "unconfigured"
    elif await gemini_gateway.health_check():
        gemini_status = "available"
    else:
        gemini_status = "unreachable"
    if gemini_status != "available" and overall == "healthy":
        overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gemini=gemini_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
