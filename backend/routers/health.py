"""Health router - usado por CI/CD y el orquestador para verificar disponibilidad."""

import structlog
from fastapi import APIRouter

from bruce.database import ping_database
from bruce.models.base import iso_utc
from bruce.settings import current_env

api_logger = structlog.get_logger("backend.api.health")

router = APIRouter(prefix="/api", tags=["Health"])


@router.get("/health")
def health_check():
    database = "ok" if ping_database() else "unavailable"
    if database != "ok":
        api_logger.warning("health.database_unavailable")
    return {
        "status": "ok",
        "timestamp": iso_utc(),
        "environment": current_env(),
        "database": database,
    }
