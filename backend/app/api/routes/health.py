"""Health check endpoints."""
from fastapi import APIRouter, HTTPException

from app.db.session import check_db_connection

router = APIRouter()


@router.get("/health")
def health_check() -> dict:
    """
    Health check endpoint.
    Returns status and database reachability.
    """
    if not check_db_connection():
        raise HTTPException(status_code=503, detail={"status": "degraded", "database": "unreachable"})
    return {"status": "ok", "database": "ok"}
