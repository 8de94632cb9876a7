"""Health check endpoints for service monitoring.

This module provides health and readiness endpoints for
container orchestration and monitoring systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import text

from photobook.api.deps import Pipeline
from photobook.core.config import get_settings

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=Dict[str, Any],
    summary="Health Check",
    description="Check if the API service is running.",
)
def health_check() -> Dict[str, Any]:
    """Perform a basic health check.

    Returns:
        Dictionary with service status and metadata.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": get_settings().APP_ENV,
        "version": "0.1.0",
    }


@router.get(
    "/health/ready",
    response_model=Dict[str, Any],
    summary="Readiness Check",
    description="Check database connectivity and the derivation backlog.",
)
def readiness_check(pipeline: Pipeline) -> Dict[str, Any]:
    """Perform a readiness check including database connectivity.

    Returns:
        Dictionary with detailed service and dependency status.
    """
    db_status = "healthy"
    db_message = "Connected"

    try:
        with pipeline.directory.engine.connect() as connection:
            connection.execute(text("SELECT 1")).scalar()
    except Exception as e:
        db_status = "unhealthy"
        db_message = str(e)

    overall_status = "ready" if db_status == "healthy" else "not_ready"

    return {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": {
                "status": db_status,
                "message": db_message,
            },
            "worker": {
                "pending_jobs": pipeline.job_queue.pending,
            },
        },
    }
