"""
Cultivos router - CRUD de cultivos con filtro multi-tenant.

Rutas:
    GET    /api/cultivos        → listado paginado (q, activo, _sort, _order, _page, _limit)
    POST   /api/cultivos        → crear (solo admin)
    GET    /api/cultivos/{id}   → detalle
    PATCH  /api/cultivos/{id}   → actualizar (recalcula fases)
    DELETE /api/cultivos/{id}   → eliminar (solo admin con acceso)
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from backend.auth import CurrentUser, get_current_user, get_db
from backend.routers.common import (
    combinar,
    filtro_busqueda,
    limpiar_campos,
    orden,
    paginacion,
    parse_bool,
    require_object_id,
    total_paginas,
    validar_actualizacion,
    validar_payload,
)
from bruce.database import CULTIVOS
from bruce.error_handling import ErrorCode, api_error
from bruce.models.base import iso_utc
from bruce.models.cultivo import CAMPOS_SERVIDOR, CultivoSchema, calcular_fases, cultivo_to_json
from bruce.multi_tenancy import (
    construir_filtro_usuario,
    puede_acceder_a_recurso,
    puede_crear_recursos,
    puede_editar_recurso,
    puede_eliminar_recurso,
)

api_logger = structlog.get_logger("backend.api.cultivos")

router = APIRouter(prefix="/api/cultivos", tags=["Cultivos"])

CAMPOS_BUSQUEDA = ("nombre", "genetica", "sustrato", "notas")
CAMPOS_ORDEN = ("nombre", "fechaCreacion", "fechaComienzo", "metrosCuadrados", "numeroplantas", "genetica")
NO_ENCONTRADO = "Cultivo no encontrado o no autorizado"


def _fases(doc: Dict[str, Any]) -> Dict[str, int]:
    return calcular_fases(doc.get("fechaComienzo"), doc.get("fechaInicioFloracion"))


@router.get("")
def list_cultivos(
    q: Optional[str] = Query(default=None),
    activo: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default="fechaCreacion", alias="_sort"),
    order: Optional[str] = Query(default="desc", alias="_order"),
    page: int = Query(default=1, alias="_page"),
    limit: int = Query(default=50, alias="_limit"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    tenancy = construir_filtro_usuario(db, user)

    extra: Dict[str, Any] = {}
    activo_flag = parse_bool(activo)
    if activo_flag is not None:
        extra["activo"] = activo_flag

    query = combinar(tenancy.filtro, filtro_busqueda(q, CAMPOS_BUSQUEDA), extra)
    page, limit, skip = paginacion(page, limit)

    total = db[CULTIVOS].count_documents(query)
    cursor = (
        db[CULTIVOS]
        .find(query)
        .sort(orden(sort, order, CAMPOS_ORDEN, "fechaCreacion"))
        .skip(skip)
        .limit(limit)
    )

    body: Dict[str, Any] = {
        "success": True,
        "data": [cultivo_to_json(doc) for doc in cursor],
        "total": total,
        "page": page,
        "totalPages": total_paginas(total, limit),
        "limit": limit,
    }
    if tenancy.degradado:
        body["filtroDegradado"] = True
    return body


@router.post("", status_code=201)
def create_cultivo(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Crea un cultivo; solo admins. Estampa creadoPor, fechaCreacion y fases."""
    if not puede_crear_recursos(user):
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo los administradores pueden crear cultivos", log_level="warning")

    data = validar_payload(CultivoSchema, limpiar_campos(payload or {}, CAMPOS_SERVIDOR))
    ahora = iso_utc()
    data.update({
        "creadoPor": user.email,
        "fechaCreacion": ahora,
        "fechaActualizacion": ahora,
    })
    data.update(_fases(data))

    try:
        result = db[CULTIVOS].insert_one(data)
    except DuplicateKeyError as exc:
        raise api_error(409, ErrorCode.CONFLICT, "Ya existe un cultivo con esos datos", exc, log_level="info")

    api_logger.info("cultivos.created", cultivo_id=str(result.inserted_id), nombre=data.get("nombre"))
    return {
        "success": True,
        "data": cultivo_to_json(data),
        "message": "Cultivo creado exitosamente",
    }


@router.get("/{cultivo_id}")
def get_cultivo(
    cultivo_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = require_object_id(cultivo_id)
    doc = db[CULTIVOS].find_one({"_id": oid})
    if not doc or not puede_acceder_a_recurso(db, user, doc.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")
    return {"success": True, "data": cultivo_to_json(doc)}


@router.patch("/{cultivo_id}")
def update_cultivo(
    cultivo_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Actualización parcial; revalida el documento resultante y recalcula fases."""
    oid = require_object_id(cultivo_id)
    existing = db[CULTIVOS].find_one({"_id": oid})
    if not existing or not puede_editar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")

    updates = validar_actualizacion(CultivoSchema, existing, limpiar_campos(payload or {}, CAMPOS_SERVIDOR))
    merged = {**existing, **updates}
    updates.update(_fases(merged))
    updates.update({
        "editadoPor": user.email,
        "fechaActualizacion": iso_utc(),
    })

    doc = db[CULTIVOS].find_one_and_update(
        {"_id": oid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")
    api_logger.info("cultivos.updated", cultivo_id=cultivo_id, fields=sorted(updates))
    return {
        "success": True,
        "data": cultivo_to_json(doc),
        "message": "Cultivo actualizado exitosamente",
    }


@router.delete("/{cultivo_id}")
def delete_cultivo(
    cultivo_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    oid = require_object_id(cultivo_id)
    if user.role != "admin":
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo los administradores pueden eliminar cultivos", log_level="warning")

    existing = db[CULTIVOS].find_one({"_id": oid})
    if not existing or not puede_eliminar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")

    db[CULTIVOS].delete_one({"_id": oid})
    api_logger.info("cultivos.deleted", cultivo_id=cultivo_id)
    return {
        "success": True,
        "data": cultivo_to_json(existing),
        "message": "Cultivo eliminado exitosamente",
    }
