"""
Health check endpoints
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from escrow_core.infrastructure.database import get_db, ping_database
from escrow_core.infrastructure.redis_client import ping_redis

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Basic health check"""
    return {"status": "ok"}


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness check - verifies DB and Redis connectivity

    Returns:
    - 200 if all services are ready
    - 503 if any service is not ready
    """
    checks = {
        "status": "ok",
        "database": "unknown",
        "redis": "unknown",
    }

    if ping_database(db):
        checks["database"] = "connected"
    else:
        checks["database"] = "disconnected"
        checks["status"] = "not_ready"

    if ping_redis():
        checks["redis"] = "connected"
    else:
        checks["redis"] = "disconnected"
        checks["status"] = "not_ready"

    status_code = 200 if checks["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=checks)
