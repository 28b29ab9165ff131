"""
Tareas router - calendario de tareas por cultivo.

Comportamiento:
    - Las tareas `pendiente` con fecha pasada se reportan como `vencida`
    - Completar una tarea estampa `fechaCompletada` y, si es recurrente,
      crea la siguiente ocurrencia (retornada en `siguienteTarea`)
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query
from pymongo import ReturnDocument
from pymongo.database import Database

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
from bruce.database import TAREAS
from bruce.error_handling import ErrorCode, api_error
from bruce.models.base import today_str
from bruce.models.tarea import (
    CAMPOS_ORDENABLES,
    TareaSchema,
    aplicar_reglas_estado,
    construir_siguiente_tarea,
    tarea_to_json,
)
from bruce.multi_tenancy import (
    construir_filtro_usuario,
    puede_acceder_a_recurso,
    puede_crear_recursos,
    puede_editar_recurso,
    puede_eliminar_recurso,
)

api_logger = structlog.get_logger("backend.api.tareas")

router = APIRouter(prefix="/api/tareas", tags=["Tareas"])

CAMPOS_SERVIDOR = ("creadoPor", "editadoPor", "fechaCreacion", "fechaActualizacion")
CAMPOS_BUSQUEDA = ("titulo", "descripcion", "notas")
NO_ENCONTRADA = "Tarea no encontrada"


def _filtro_estado(estado: Optional[str]) -> Optional[Dict[str, Any]]:
    """El estado reportado considera las pendientes con fecha pasada como vencidas."""
    if not estado:
        return None
    hoy = today_str()
    if estado == "vencida":
        return {"$or": [
            {"estado": "vencida"},
            {"estado": "pendiente", "fechaProgramada": {"$lt": hoy}},
        ]}
    if estado == "pendiente":
        return {"estado": "pendiente", "fechaProgramada": {"$gte": hoy}}
    return {"estado": estado}


def _filtro_fechas(desde: Optional[str], hasta: Optional[str]) -> Optional[Dict[str, Any]]:
    rango: Dict[str, str] = {}
    if desde:
        rango["$gte"] = desde
    if hasta:
        rango["$lte"] = hasta
    return {"fechaProgramada": rango} if rango else None


def _buscar(db: Database, user: CurrentUser, tarea_id: str) -> Dict[str, Any]:
    oid = require_object_id(tarea_id)
    doc = db[TAREAS].find_one({"_id": oid})
    if not doc or not puede_acceder_a_recurso(db, user, doc.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADA, log_level="info")
    return doc


@router.get("")
def list_tareas(
    cultivoId: Optional[str] = Query(default=None),
    tipo: Optional[str] = Query(default=None),
    estado: Optional[str] = Query(default=None),
    prioridad: Optional[str] = Query(default=None),
    fechaDesde: Optional[str] = Query(default=None),
    fechaHasta: Optional[str] = Query(default=None),
    esRecurrente: Optional[str] = Query(default=None),
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default="fechaProgramada", alias="_sort"),
    order: Optional[str] = Query(default="asc", alias="_order"),
    page: int = Query(default=1, alias="_page"),
    limit: int = Query(default=50, alias="_limit"),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    tenancy = construir_filtro_usuario(db, user)

    extra: Dict[str, Any] = {}
    if cultivoId:
        extra["cultivoId"] = cultivoId
    if tipo:
        extra["tipo"] = tipo
    if prioridad:
        extra["prioridad"] = prioridad
    recurrente = parse_bool(esRecurrente)
    if recurrente is not None:
        extra["esRecurrente"] = recurrente

    query = combinar(
        tenancy.filtro,
        extra,
        _filtro_estado(estado),
        _filtro_fechas(fechaDesde, fechaHasta),
        filtro_busqueda(q, CAMPOS_BUSQUEDA),
    )
    page, limit, skip = paginacion(page, limit)

    total = db[TAREAS].count_documents(query)
    cursor = (
        db[TAREAS]
        .find(query)
        .sort(orden(sort, order, CAMPOS_ORDENABLES, "fechaProgramada"))
        .skip(skip)
        .limit(limit)
    )

    body: Dict[str, Any] = {
        "success": True,
        "data": [tarea_to_json(doc) for doc in cursor],
        "total": total,
        "page": page,
        "totalPages": total_paginas(total, limit),
        "limit": limit,
    }
    if tenancy.degradado:
        body["filtroDegradado"] = True
    return body


@router.post("", status_code=201)
def create_tarea(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if not puede_crear_recursos(user):
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo los administradores pueden crear tareas", log_level="warning")

    payload = limpiar_campos(payload or {}, CAMPOS_SERVIDOR)
    if not str(payload.get("titulo") or "").strip():
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "El título de la tarea es obligatorio", log_level="info")
    if not payload.get("cultivoId"):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "El ID del cultivo es obligatorio", log_level="info")
    if not payload.get("fechaProgramada"):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "La fecha programada es obligatoria", log_level="info")

    data = validar_payload(TareaSchema, payload)
    hoy = today_str()
    data.update({
        "creadoPor": user.email,
        "fechaCreacion": hoy,
        "fechaActualizacion": hoy,
    })
    aplicar_reglas_estado(data)

    result = db[TAREAS].insert_one(data)
    api_logger.info("tareas.created", tarea_id=str(result.inserted_id), cultivo_id=data["cultivoId"])
    return {
        "success": True,
        "data": tarea_to_json(data),
        "message": "Tarea creada exitosamente",
    }


@router.get("/{tarea_id}")
def get_tarea(
    tarea_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    doc = _buscar(db, user, tarea_id)
    return {"success": True, "data": tarea_to_json(doc), "message": "Tarea encontrada exitosamente"}


@router.patch("/{tarea_id}")
def update_tarea(
    tarea_id: str,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """
    Actualiza una tarea.

    Al pasar a `completada` se estampa `fechaCompletada`; si la tarea es
    recurrente se crea la siguiente ocurrencia.
    """
    payload = limpiar_campos(payload or {}, CAMPOS_SERVIDOR)
    if "titulo" in payload and not (isinstance(payload["titulo"], str) and payload["titulo"].strip()):
        raise api_error(
            400, ErrorCode.VALIDATION_ERROR,
            "El título de la tarea debe ser una cadena de texto no vacía", log_level="info",
        )

    existing = _buscar(db, user, tarea_id)
    if not puede_editar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(403, ErrorCode.FORBIDDEN, "No tienes permisos para editar tareas", log_level="warning")

    updates = validar_actualizacion(TareaSchema, existing, payload)
    merged = aplicar_reglas_estado({**existing, **updates}, estado_anterior=existing.get("estado"))
    for campo in ("estado", "fechaCompletada"):
        if merged.get(campo) != existing.get(campo):
            updates[campo] = merged.get(campo)
    updates.update({"editadoPor": user.email, "fechaActualizacion": today_str()})

    doc = db[TAREAS].find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADA, log_level="info")

    body: Dict[str, Any] = {
        "success": True,
        "data": tarea_to_json(doc),
        "message": "Tarea actualizada exitosamente",
    }

    if existing.get("estado") != "completada" and doc.get("estado") == "completada":
        siguiente = construir_siguiente_tarea(doc)
        if siguiente is not None:
            db[TAREAS].insert_one(siguiente)
            api_logger.info(
                "tareas.recurrence_created",
                tarea_id=tarea_id,
                siguiente_id=str(siguiente["_id"]),
                fecha=siguiente["fechaProgramada"],
            )
            body["siguienteTarea"] = tarea_to_json(siguiente)

    api_logger.info("tareas.updated", tarea_id=tarea_id, fields=sorted(updates))
    return body


@router.delete("/{tarea_id}")
def delete_tarea(
    tarea_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if user.role != "admin":
        raise api_error(403, ErrorCode.FORBIDDEN, "Solo los administradores pueden eliminar tareas", log_level="warning")

    existing = _buscar(db, user, tarea_id)
    if not puede_eliminar_recurso(db, user, existing.get("creadoPor")):
        raise api_error(404, ErrorCode.NOT_FOUND, NO_ENCONTRADA, log_level="info")

    db[TAREAS].delete_one({"_id": existing["_id"]})
    api_logger.info("tareas.deleted", tarea_id=tarea_id)
    return {
        "success": True,
        "data": tarea_to_json(existing),
        "message": "Tarea eliminada exitosamente",
    }
