# backend/sunrise/api/v1/health.py

"""
Health endpoints.

- /api/v1/health       -> lightweight liveness (no DB)
- /api/v1/health/db    -> DB readiness probe (small SELECT 1)
"""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sunrise.db.session import get_db
from sunrise.core.config import settings

logger = logging.getLogger("sunrise.health")

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Liveness probe")
def health():
    """
    Lightweight liveness check. Does NOT touch the database.
    """
    return {
        "status": "ok",
        "service": "sunrise-backend",
        "version": settings.version,
        "timestamp_utc": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/db", summary="Database readiness probe")
def health_db(db: Session = Depends(get_db)):
    """
    Readiness / dependency check.

    - Performs a tiny `SELECT 1` against the configured database.
    - Returns 200 when DB is reachable, 503 when not.
    """
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("DB health check failed")
        raise HTTPException(
            status_code=503,
            detail={"code": "DB_UNAVAILABLE", "message": "Database unreachable.", "db": "down"},
        )

    elapsed_ms = int((time.perf_counter() - start) * 1000)
    return {
        "status": "ok",
        "db": "up",
        "latency_ms": elapsed_ms,
    }
