"""
Health check routes.
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from pastebin.database import PasteDatabase
from pastebin.dependencies import get_db
from pastebin.models import DatabaseHealth, HealthStatus

router = APIRouter()

_STARTED_AT = time.monotonic()


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    """Liveness: the process is up and serving requests."""
    return HealthStatus(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - _STARTED_AT, 3),
    )


@router.get("/health/db", response_model=DatabaseHealth)
async def database_health_check(db: PasteDatabase = Depends(get_db)):
    """
    Readiness: returns 200 if the database answers a ping, 503 otherwise.
    """
    now = datetime.now(timezone.utc)
    if db.is_healthy():
        return DatabaseHealth(status="healthy", database="connected", timestamp=now)

    body = DatabaseHealth(status="unhealthy", database="disconnected", timestamp=now)
    return JSONResponse(status_code=503, content=body.model_dump(mode="json"))
