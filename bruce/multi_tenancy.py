"""
Filtro multi-tenant y reglas de permisos por rol.

Modelo de propiedad:
    - Todo recurso lleva `creadoPor` (email del creador)
    - Un admin ve lo que creó y lo que crearon los usuarios que él dio de alta
    - Un user ve lo que creó y lo que creó el admin que lo dio de alta

Cada llamada consulta la colección de usuarios (sin caché).

Fallos de consulta:
    `construir_filtro_usuario` nunca amplía visibilidad ante un error: retorna
    el filtro "solo lo propio" marcado como degradado (`FiltroTenancy.degradado`)
    y con el error, para que el router lo reporte. Los chequeos de permisos
    responden False y loguean `tenancy.access_check_failed`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import structlog
from pymongo.database import Database
from pymongo.errors import PyMongoError

from bruce.database import USUARIOS

_logger = structlog.get_logger("bruce.multi_tenancy")


class UsuarioAutenticado(Protocol):
    email: str
    role: str


@dataclass
class FiltroTenancy:
    """
    Resultado de construir el filtro de visibilidad.

    Attributes:
        filtro: Predicado Mongo a combinar con el resto de la consulta
        degradado: True si un error forzó el filtro "solo lo propio"
        error: Descripción del error de consulta (si hubo)
    """
    filtro: Dict[str, Any]
    degradado: bool = False
    error: Optional[str] = None


def _filtro_propio(email: str) -> Dict[str, Any]:
    return {"creadoPor": email}


def get_usuarios_creados_por(db: Database, admin_email: str) -> List[str]:
    """Emails de los usuarios activos creados por un admin."""
    cursor = db[USUARIOS].find({"creadoPor": admin_email, "activo": True}, {"email": 1})
    return [doc["email"] for doc in cursor]


def _admin_creador(db: Database, user_email: str) -> Optional[str]:
    doc = db[USUARIOS].find_one({"email": user_email, "activo": True}, {"creadoPor": 1})
    if doc and doc.get("creadoPor"):
        return doc["creadoPor"]
    return None


def construir_filtro_usuario(db: Database, user: UsuarioAutenticado) -> FiltroTenancy:
    """
    Construye el filtro de visibilidad para el usuario autenticado.

    - admin: {"$or": [{"creadoPor": admin}, {"creadoPor": {"$in": creados}}]}
    - user:  {"$or": [{"creadoPor": user}, {"creadoPor": su_admin}]}
             o {"creadoPor": user} si no tiene admin creador activo
    """
    try:
        if user.role == "admin":
            creados = get_usuarios_creados_por(db, user.email)
            return FiltroTenancy({
                "$or": [
                    {"creadoPor": user.email},
                    {"creadoPor": {"$in": creados}},
                ]
            })

        admin = _admin_creador(db, user.email)
        if admin:
            return FiltroTenancy({
                "$or": [
                    {"creadoPor": user.email},
                    {"creadoPor": admin},
                ]
            })
        return FiltroTenancy(_filtro_propio(user.email))
    except PyMongoError as exc:
        _logger.warning(
            "tenancy.lookup_failed",
            email=user.email,
            role=user.role,
            error=str(exc),
        )
        return FiltroTenancy(_filtro_propio(user.email), degradado=True, error=str(exc))


def puede_acceder_a_recurso(db: Database, user: UsuarioAutenticado, creador_email: Optional[str]) -> bool:
    """
    True si el recurso es propio, de un usuario creado por el admin,
    o del admin creador del user.
    """
    if not creador_email:
        return False
    if creador_email == user.email:
        return True
    try:
        if user.role == "admin":
            return creador_email in get_usuarios_creados_por(db, user.email)
        return _admin_creador(db, user.email) == creador_email
    except PyMongoError as exc:
        _logger.warning(
            "tenancy.access_check_failed",
            email=user.email,
            creador=creador_email,
            error=str(exc),
        )
        return False


def puede_crear_recursos(user: Optional[UsuarioAutenticado]) -> bool:
    return user is not None and user.role == "admin"


def puede_editar_recurso(db: Database, user: UsuarioAutenticado, creador_email: Optional[str]) -> bool:
    """Requiere acceso; un user solo edita lo que creó él mismo."""
    if not puede_acceder_a_recurso(db, user, creador_email):
        return False
    if user.role == "admin":
        return True
    return creador_email == user.email


def puede_eliminar_recurso(db: Database, user: UsuarioAutenticado, creador_email: Optional[str]) -> bool:
    """Solo admins, y solo sobre recursos a los que tienen acceso."""
    if user.role != "admin":
        return False
    return puede_acceder_a_recurso(db, user, creador_email)


def get_filtro_usuarios_visibles(admin_email: str) -> Dict[str, Any]:
    """Filtro de usuarios gestionables por un admin."""
    return {"creadoPor": admin_email, "activo": True}
