"""Observability API endpoints.

Provides the Prometheus scrape endpoint and a database health check.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Observability"])


@router.get(
    "/metrics",
    summary="Prometheus metrics endpoint",
    include_in_schema=False,
)
def metrics():
    """Expose Prometheus metrics in the text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get(
    "/health",
    summary="Health check endpoint",
    description="Returns 200 when the retention tables' database is reachable, 503 otherwise",
)
def health_check(db: Session = Depends(get_db)):
    """Check database connectivity.

    Args:
        db: Database session

    Returns:
        JSONResponse: status plus database latency
    """
    started = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check failed", exc_info=True, extra={"error": str(e)})
        return JSONResponse(
            content={"status": "unhealthy", "database": {"status": "unhealthy", "message": str(e)}},
            status_code=503,
        )

    latency_ms = round((time.perf_counter() - started) * 1000, 2)
    return JSONResponse(
        content={"status": "healthy", "database": {"status": "healthy", "latency_ms": latency_ms}},
        status_code=200,
    )
