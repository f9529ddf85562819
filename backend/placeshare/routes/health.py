"""
PlaceShare Backend: Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the geocoder, returns an aggregate status.

Status levels:
    - healthy:   database reachable, geocoder available
    - degraded:  geocoder down or its circuit open (reads still work)
    - unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from placeshare import __version__
from placeshare.database import engine
from placeshare.schemas.common import HealthResponse
from placeshare.services.mapbox_service import mapbox_geocoder

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    """
    Database: SELECT 1.
    Geocoder: circuit breaker state first, then a lightweight probe.
    """
    db_status = "connected"
    geocoder_status = "available"
    overall = "healthy"

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    if mapbox_geocoder.circuit_breaker.state == "open":
        geocoder_status = "circuit_open"
    elif not await mapbox_geocoder.health_check():
        geocoder_status = "unavailable"

    if geocoder_status != "available" and overall != "unhealthy":
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        geocoder=geocoder_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
