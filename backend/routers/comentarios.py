"""
Comentarios router - bitácora de observaciones por cultivo.

Al crear se estampan fecha, flags (resuelto/activo/destacado) y
numeroEdiciones=0; cada edición incrementa numeroEdiciones.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from backend.auth import CurrentUser, get_current_user, get_db
from backend.routers.common import (
    combinar,
    limpiar_campos,
    paginacion,
    parse_bool,
    require_object_id,
    total_paginas,
    validar_actualizacion,
    validar_payload,
)
from bruce.database import COMENTARIOS
from bruce.error_handling import ErrorCode, api_error
from bruce.models.base import iso_utc
from bruce.models.comentario import CAMPOS_SERVIDOR, ComentarioSchema, comentario_to_json
from bruce.multi_tenancy import (
    construir_filtro_usuario,
    puede_acceder_a_recurso,
    puede_editar_recurso,
    puede_eliminar_recurso,
)

api_logger = structlog.get_logger("backend.api.comentarios")

router = APIRouter(prefix="/api/comentarios", tags=["Comentarios"])

NO_ENCONTRADO = "Comentario no encontrado"


def _buscar(db: Database, user: CurrentUser, comentario_id: str) -> Dict[str, Any]:
    oid = require_object_id(comentario_id)
    doc = db[COMENTARIOS].find_one({"_id": oid})
    if not doc or not puede_acceder_a_recurso(db, user, doc.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")
    return doc


@router.get("")
def list_comentarios(
    cultivoId: Optional[str] = Query(default=None),
    tipo: Optional[str] = Query(default=None),
    prioridad: Optional[str] = Query(default=None),
    resuelto: Optional[str] = Query(default=None),
    page: int = Query(default=1, alias="_page"),
    limit: int = Query(default=50, alias="_limit"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    tenancy = construir_filtro_usuario(db, user)

    extra: Dict[str, Any] = {"activo": True}
    if cultivoId:
        extra["cultivoId"] = cultivoId
    if tipo:
        extra["tipo"] = tipo
    if prioridad:
        extra["prioridad"] = prioridad
    resuelto_flag = parse_bool(resuelto)
    if resuelto_flag is not None:
        extra["resuelto"] = resuelto_flag

    query = combinar(tenancy.filtro, extra)
    page, limit, skip = paginacion(page, limit)

    total = db[COMENTARIOS].count_documents(query)
    cursor = db[COMENTARIOS].find(query).sort("fecha", DESCENDING).skip(skip).limit(limit)

    body: Dict[str, Any] = {
        "success": True,
        "data": [comentario_to_json(doc) for doc in cursor],
        "total": total,
        "page": page,
        "totalPages": total_paginas(total, limit),
    }
    if tenancy.degradado:
        body["filtroDegradado"] = True
    return body


@router.post("", status_code=201)
def create_comentario(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    payload = limpiar_campos(payload or {}, CAMPOS_SERVIDOR)
    payload.setdefault("autor", user.email)
    data = validar_payload(ComentarioSchema, payload)
    data.update({
        "fecha": iso_utc(),
        "resuelto": False,
        "activo": True,
        "destacado": False,
        "numeroEdiciones": 0,
        "creadoPor": user.email,
    })

    result = db[COMENTARIOS].insert_one(data)
    api_logger.info("comentarios.created", comentario_id=str(result.inserted_id), cultivo_id=data["cultivoId"])
    return {
        "success": True,
        "data": comentario_to_json(data),
        "message": "Comentario creado exitosamente",
    }


@router.get("/{comentario_id}")
def get_comentario(
    comentario_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    doc = _buscar(db, user, comentario_id)
    return {"success": True, "data": comentario_to_json(doc), "message": "Comentario encontrado"}


@router.patch("/{comentario_id}")
def update_comentario(
    comentario_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    existing = _buscar(db, user, comentario_id)
    if not puede_editar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(403, ErrorCode.FORBIDDEN, "No tienes permisos para editar este comentario", log_level="warning")

    updates = validar_actualizacion(ComentarioSchema, existing, limpiar_campos(payload or {}, CAMPOS_SERVIDOR))
    updates.update({"editadoPor": user.email, "fechaActualizacion": iso_utc()})

    doc = db[COMENTARIOS].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": updates, "$inc": {"numeroEdiciones": 1}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")
    api_logger.info("comentarios.updated", comentario_id=comentario_id, edicion=doc.get("numeroEdiciones"))
    return {
        "success": True,
        "data": comentario_to_json(doc),
        "message": "Comentario actualizado exitosamente",
    }


@router.delete("/{comentario_id}")
def delete_comentario(
    comentario_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if user.role != "admin":
        raise api_error(
            403, ErrorCode.FORBIDDEN, "Solo los administradores pueden eliminar comentarios", log_level="warning",
        )
    existing = _buscar(db, user, comentario_id)
    if not puede_eliminar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADO, log_level="info")

    db[COMENTARIOS].delete_one({"_id": existing["_id"]})
    api_logger.info("comentarios.deleted", comentario_id=comentario_id)
    return {"success": True, "message": "Comentario eliminado exitosamente"}
