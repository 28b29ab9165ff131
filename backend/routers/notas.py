"""
Notas router - notas libres con categorías y etiquetas.

Los campos de auditoría (creadoPor, fechas internas) no se exponen en la API.
"""

import re
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from backend.auth import CurrentUser, get_current_user, get_db
from backend.routers.common import (
    combinar,
    filtro_busqueda,
    limpiar_campos,
    paginacion,
    require_object_id,
    total_paginas,
    validar_actualizacion,
    validar_payload,
)
from bruce.database import NOTAS
from bruce.error_handling import ErrorCode, api_error
from bruce.models.base import today_str
from bruce.models.nota import HIDDEN_FIELDS, NotaSchema, nota_to_json
from bruce.multi_tenancy import (
    construir_filtro_usuario,
    puede_acceder_a_recurso,
    puede_editar_recurso,
    puede_eliminar_recurso,
)

api_logger = structlog.get_logger("backend.api.notas")

router = APIRouter(prefix="/api/notas", tags=["Notas"])

CAMPOS_BUSQUEDA = ("title", "content", "tags")
NO_ENCONTRADA = "Nota no encontrada"


def _buscar(db: Database, user: CurrentUser, nota_id: str) -> Dict[str, Any]:
    oid = require_object_id(nota_id)
    doc = db[NOTAS].find_one({"_id": oid})
    if not doc or not puede_acceder_a_recurso(db, user, doc.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADA, log_level="info")
    return doc


@router.get("")
def list_notas(
    q: Optional[str] = Query(default=None),
    category: Optional[str] = Query(default=None),
    author: Optional[str] = Query(default=None),
    priority: Optional[str] = Query(default=None),
    page: int = Query(default=1, alias="_page"),
    limit: int = Query(default=50, alias="_limit"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Notas activas visibles para el usuario, más recientes primero."""
    tenancy = construir_filtro_usuario(db, user)

    extra: Dict[str, Any] = {"activa": True}
    if category:
        extra["category"] = category
    if author:
        extra["author"] = {"$regex": re.escape(author), "$options": "i"}
    if priority:
        extra["priority"] = priority

    query = combinar(tenancy.filtro, extra, filtro_busqueda(q, CAMPOS_BUSQUEDA))
    page, limit, skip = paginacion(page, limit)

    total = db[NOTAS].count_documents(query)
    cursor = db[NOTAS].find(query).sort([("date", DESCENDING), ("_id", DESCENDING)]).skip(skip).limit(limit)

    body: Dict[str, Any] = {
        "success": True,
        "data": [nota_to_json(doc) for doc in cursor],
        "total": total,
        "page": page,
        "totalPages": total_paginas(total, limit),
    }
    if tenancy.degradado:
        body["filtroDegradado"] = True
    return body


@router.post("", status_code=201)
def create_nota(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    data = validar_payload(NotaSchema, limpiar_campos(payload or {}, HIDDEN_FIELDS))
    hoy = today_str()
    data.update({
        "creadoPor": user.email,
        "fechaCreacion": hoy,
        "fechaActualizacion": hoy,
    })
    data.setdefault("author", user.email)

    result = db[NOTAS].insert_one(data)
    api_logger.info("notas.created", nota_id=str(result.inserted_id), category=data.get("category"))
    return {
        "success": True,
        "data": nota_to_json(data),
        "message": "Nota creada exitosamente",
    }


@router.get("/{nota_id}")
def get_nota(
    nota_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return {"success": True, "data": nota_to_json(_buscar(db, user, nota_id))}


@router.patch("/{nota_id}")
def update_nota(
    nota_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    existing = _buscar(db, user, nota_id)
    if not puede_editar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(403, ErrorCode.FORBIDDEN, "No tienes permisos para editar esta nota", log_level="warning")

    updates = validar_actualizacion(NotaSchema, existing, limpiar_campos(payload or {}, HIDDEN_FIELDS))
    if "content" in updates:
        # hasImages se deriva del contenido
        merged = validar_payload(NotaSchema, {**existing, **updates})
        updates["hasImages"] = merged["hasImages"]
    updates.update({"editadoPor": user.email, "fechaActualizacion": today_str()})

    doc = db[NOTAS].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADA, log_level="info")
    api_logger.info("notas.updated", nota_id=nota_id, fields=sorted(updates))
    return {"success": True, "data": nota_to_json(doc), "message": "Nota actualizada exitosamente"}


@router.delete("/{nota_id}")
def delete_nota(
    nota_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    existing = _buscar(db, user, nota_id)
    if not puede_eliminar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo los administradores pueden eliminar notas", log_level="warning")

    db[NOTAS].delete_one({"_id": existing["_id"]})
    api_logger.info("notas.deleted", nota_id=nota_id)
    return {"success": True, "message": "Nota eliminada exitosamente"}
