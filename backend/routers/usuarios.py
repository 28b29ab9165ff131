"""
Usuarios router - gestión de usuarios por parte de un admin.

Un admin solo ve y crea usuarios asociados a él (`creadoPor`).
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pymongo.database import Database

from backend.auth import CurrentUser, get_current_user, get_db
from backend.auth_service import create_user
from backend.routers.common import combinar, parse_bool
from bruce.database import USUARIOS
from bruce.error_handling import ErrorCode, api_error
from bruce.models.usuario import get_stats, usuario_to_json
from bruce.multi_tenancy import get_filtro_usuarios_visibles

api_logger = structlog.get_logger("backend.api.usuarios")

router = APIRouter(prefix="/api/usuarios", tags=["Usuarios"])

SOLO_ADMINS = "Solo los administradores pueden gestionar usuarios"


def _require_admin(user: CurrentUser) -> None:
    if user.role != "admin":
        raise api_error(403, ErrorCode.FORBIDDEN, SOLO_ADMINS, log_level="warning")


@router.get("")
def list_usuarios(
    role: Optional[str] = Query(default=None),
    activo: Optional[str] = Query(default=None),
    creadoPor: Optional[str] = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Lista los usuarios creados por el admin autenticado.

    Sin filtro `activo` solo se listan usuarios activos.
    """
    _require_admin(user)

    activo_flag = parse_bool(activo)
    if activo_flag is None:
        base = get_filtro_usuarios_visibles(user.email)
    else:
        base = {"creadoPor": user.email, "activo": activo_flag}

    extra: Dict[str, Any] = {}
    if role in ("admin", "user"):
        extra["role"] = role
    if creadoPor and creadoPor.strip().lower() != user.email:
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo puedes ver los usuarios que creaste", log_level="warning")

    query = combinar(base, extra)
    usuarios = [usuario_to_json(doc) for doc in db[USUARIOS].find(query).sort("fechaCreacion", -1)]

    return {
        "success": True,
        "data": usuarios,
        "stats": get_stats(db, {"creadoPor": user.email}),
        "message": "Usuarios obtenidos exitosamente",
    }


@router.post("", status_code=201)
def create_usuario(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Crea un usuario asociado al admin (role por defecto: user)."""
    _require_admin(user)

    payload = payload or {}
    email = payload.get("email")
    password = payload.get("password")
    if not email or not password:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Email y password son obligatorios", log_level="info")

    nuevo, error = create_user(
        db,
        str(email),
        str(password),
        role=payload.get("role") or "user",
        creado_por=user.email,
    )
    if error == "duplicate":
        raise api_error(409, ErrorCode.CONFLICT, "Ya existe un usuario con este email", log_level="info")
    if error or nuevo is None:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, error or "Datos inválidos", log_level="info")

    api_logger.info("usuarios.created", email=nuevo["email"], role=nuevo["role"], admin=user.email)
    return {
        "success": True,
        "data": usuario_to_json(nuevo),
        "message": "Usuario creado exitosamente",
    }
