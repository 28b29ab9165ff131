"""
Aplicación principal FastAPI - API REST de Bruce App (gestión de cultivos).

Grupos de endpoints:

    /api/login, /api/logout, /api/verify-token, /api/register
        - Sesión JWT (Bearer o cookie auth-token)

    /api/usuarios
        - GET/POST: Gestión de usuarios (solo admins)

    /api/cultivos, /api/tareas, /api/notas, /api/comentarios
        - CRUD con filtro multi-tenant por `creadoPor`

    /api/chat
        - POST: Asistente IA vía webhook
        - GET: Estado del servicio

    /api/galeria
        - POST: Subida de imágenes (Cloudinary o placeholder local)
        - GET /temp/{filename}: Placeholder SVG

    /api/subscription, /api/webhooks/mercadopago
        - Checkout, gestión y notificaciones de pago

    /api/health
        - GET: Health check del servicio

Forma de los errores:
    {"success": false, "error": "<mensaje>", "code": "<CODIGO>", "details": [...]}

Logging:
    - structlog (consola + JSONL rotativo)
    - Eventos: request.start, request.end, request.slow, api.error, etc.

Ejecución:
    uvicorn backend.app:app --reload --port 8000
"""

from __future__ import annotations

import os
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict
from time import perf_counter
from typing import Any, Dict, List

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from backend.dependencies import get_settings
from backend.rate_limit import limiter, rate_limit_exceeded_handler
from bruce.database import close_database, init_database
from bruce.error_handling import DatabaseError, ErrorCode, ServiceError, handle_service_error
from bruce.logging_config import configure_logging
from bruce.tenant_context import clear_current_user_context

# Routers
from backend.routers.auth import router as auth_router
from backend.routers.chat import router as chat_router
from backend.routers.comentarios import router as comentarios_router
from backend.routers.cultivos import router as cultivos_router
from backend.routers.galeria import router as galeria_router
from backend.routers.health import router as health_router
from backend.routers.notas import router as notas_router
from backend.routers.subscription import router as subscription_router
from backend.routers.tareas import router as tareas_router
from backend.routers.usuarios import router as usuarios_router
from backend.routers.webhooks import router as webhooks_router


# Logging antes de crear la app (LOG_LEVEL opcional)
configure_logging(os.getenv("LOG_LEVEL", "INFO").upper())

api_logger = structlog.get_logger("backend.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    api_logger.info("app.startup", settings=asdict(settings.masked()))
    try:
        init_database(settings)
    except DatabaseError as exc:
        # get_database() reintenta en la primera petición
        api_logger.error("database.unavailable_at_startup", error=exc.message)
    yield
    close_database(reason="shutdown")


app = FastAPI(title="Bruce App API", version="1.0.0", lifespan=lifespan)


def cors_options() -> Dict[str, Any]:
    """
    Opciones de CORSMiddleware.

    CORS_ALLOW_ORIGINS (separado por comas) tiene prioridad; si no está, se
    permite el frontend de BASE_URL más localhost en cualquier puerto.
    La cookie `auth-token` necesita credenciales, incompatibles con "*".
    """
    configured = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o.strip()]
    if configured:
        origins, regex = configured, None
    else:
        origins = [os.getenv("BASE_URL", "http://localhost:3000").rstrip("/")]
        regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"
    return {
        "allow_origins": origins,
        "allow_origin_regex": regex,
        "allow_credentials": "*" not in origins,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


app.add_middleware(CORSMiddleware, **cors_options())


app.include_router(health_router)        # /api/health
app.include_router(auth_router)          # /api/login, /api/logout, /api/verify-token, /api/register
app.include_router(usuarios_router)      # /api/usuarios
app.include_router(cultivos_router)      # /api/cultivos/*
app.include_router(tareas_router)        # /api/tareas/*
app.include_router(notas_router)         # /api/notas/*
app.include_router(comentarios_router)   # /api/comentarios/*
app.include_router(chat_router)          # /api/chat
app.include_router(galeria_router)       # /api/galeria/*
app.include_router(subscription_router)  # /api/subscription/*
app.include_router(webhooks_router)      # /api/webhooks/mercadopago


# =============================================================================
# RATE LIMITING
# =============================================================================

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


# =============================================================================
# MANEJO DE ERRORES
# =============================================================================

def _error_body(detail: Any) -> Dict[str, Any]:
    if isinstance(detail, dict):
        return {"success": False, **detail}
    return {"success": False, "error": str(detail)}


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.detail),
        headers=getattr(exc, "headers", None),
    )


def _validation_details(exc: RequestValidationError) -> List[str]:
    details: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        msg = str(err.get("msg", "Valor inválido"))
        details.append(f"{loc}: {msg}" if loc else msg)
    return details


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    api_logger.info("api.invalid_request", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Datos inválidos",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": _validation_details(exc),
        },
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    http_exc = handle_service_error(exc, request.url.path)
    return JSONResponse(status_code=http_exc.status_code, content=_error_body(http_exc.detail))


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    wrapped = DatabaseError("Operación MongoDB fallida", {"path": request.url.path})
    wrapped.__cause__ = exc
    http_exc = handle_service_error(wrapped, "la operación")
    return JSONResponse(status_code=http_exc.status_code, content=_error_body(http_exc.detail))


# =============================================================================
# REQUEST ID
# =============================================================================

SLOW_REQUEST_MS = 5000


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Asigna un request_id (header X-Request-ID o uuid4), lo liga al contexto
    de structlog y lo devuelve en la respuesta.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        clear_current_user_context()
        request.state.request_id = request_id

        inicio = perf_counter()
        api_logger.info("request.start")
        response = await call_next(request)
        elapsed = round((perf_counter() - inicio) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        api_logger.info("request.end", status_code=response.status_code, duration_ms=elapsed)
        if elapsed >= SLOW_REQUEST_MS:
            api_logger.warning("request.slow", duration_ms=elapsed)
        return response


app.add_middleware(RequestIdMiddleware)

