"""
Rate limiting compartido (slowapi).

El limiter vive en su propio módulo para que los routers puedan decorar
endpoints con `@limiter.limit(...)` sin importar backend.app.

Variables de entorno:
    - RATE_LIMIT_STORAGE_URI: backend de contadores (default: memory://)
    - RATE_LIMIT_ENABLED: desactiva el límite si es false (tests)
"""

import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

DEFAULT_LIMIT = "100/minute"
LOGIN_LIMIT = "10/minute"

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    default_limits=[DEFAULT_LIMIT],  # Límite general
    enabled=os.getenv("RATE_LIMIT_ENABLED", "true").strip().lower() in {"1", "true", "yes"},
)


async def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    """Responde 429 con la forma de error de la API."""
    if not isinstance(exc, RateLimitExceeded):
        raise exc
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Demasiadas solicitudes. Intenta nuevamente en un minuto.",
            "code": "RATE_LIMITED",
        },
    )
