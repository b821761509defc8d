"""Liveness and readiness endpoints."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from scorekeeper.core.database import check_connection, get_database_url
from scorekeeper.core.logging import get_request_id

logger = logging.getLogger("scorekeeper")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """Readiness: database reachable when one is configured, memory store otherwise."""
    if not get_database_url():
        return {"status": "ok", "storage": "memory"}
    if check_connection():
        return {"status": "ok", "storage": "sql"}
    logger.warning("readyz.db_unavailable", extra={"request_id": get_request_id()})
    return JSONResponse(status_code=503, content={"status": "unavailable", "storage": "sql"})
