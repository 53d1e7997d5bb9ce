"""Health and readiness endpoints."""

from pathlib import Path
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from backend.core.database import get_engine
from backend.core.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)

_PYPROJECT = Path(__file__).resolve().parents[2] / "pyproject.toml"


def get_version() -> str:
    """Get application version from pyproject.toml."""
    try:
        import tomllib

        with _PYPROJECT.open("rb") as f:
            data = tomllib.load(f)
            return data.get("project", {}).get("version", "unknown")
    except (OSError, ValueError):
        return "dev"


def check_database() -> str:
    """Check database connectivity with light query."""
    try:
        with get_engine().connect() as conn:
            row = conn.execute(text("SELECT 1 AS health_check")).first()
            return "OK" if row and row.health_check == 1 else "FAIL"
    except SQLAlchemyError as exc:
        logger.warning("health_db_unreachable", extra={"error": str(exc)})
        return "FAIL"


@router.get("/health/ready")
def readiness_check() -> dict[str, Any]:
    """Readiness endpoint for load balancers."""
    db_status = check_database()

    response = {
        "status": "OK" if db_status == "OK" else "DEGRADED",
        "version": get_version(),
        "db": db_status,
    }

    return response


@router.get("/health/live")
def liveness_check() -> dict[str, str]:
    """Liveness endpoint - always OK if service is running."""
    return {"status": "OK"}
