# carebook/routers/health.py
from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from carebook.db.sql import engine, ping_db

router = APIRouter()

@router.get("/health")
async def health_root():
    return {"status": "ok"}

@router.get("/health/db")
async def health_db():
    """
    Validates database connectivity with SELECT 1 and exposes server_version.
    Returns 503 if no connectivity (useful for readiness/liveness checks).
    """
    try:
        version = await ping_db()
    except SQLAlchemyError as exc:
        # Don't expose internal details
        raise HTTPException(status_code=503, detail="database_unavailable") from exc
    return {"status": "ok", "database": engine.dialect.name, "server_version": version}
