"""
Health check endpoints.

Provides liveness and readiness probes for monitoring.
"""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from gateway.core.metrics import metrics
from gateway.db import verify_database_connection

router = APIRouter(tags=["health"])


@router.get("/health")
async def healthcheck() -> JSONResponse:
    """
    Liveness plus database check.

    Returns 503 when the database cannot be reached.
    """
    database_ok = verify_database_connection()
    payload: dict[str, Any] = {
        "status": "ok" if database_ok else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "checks": {"database": database_ok},
        "metrics": metrics.snapshot(),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=payload,
    )
