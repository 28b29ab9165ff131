"""
Helpers compartidos por los routers de recursos.

- Validación de ids y payloads (400 con `details`)
- Paginación `_page` / `_limit` y orden `_sort` / `_order`
- Búsqueda por texto (regex case-insensitive sobre varios campos)
- Combinación del filtro multi-tenant con los filtros de consulta
"""

import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type

from bson import ObjectId
from pydantic import BaseModel, ValidationError
from pymongo import ASCENDING, DESCENDING

from bruce.error_handling import ErrorCode, api_error, validation_messages
from bruce.models.base import to_object_id, validate_model, validate_partial

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


def require_object_id(value: str) -> ObjectId:
    """ObjectId del path o 400 `ID inválido`."""
    oid = to_object_id(value)
    if oid is None:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "ID inválido", log_level="info")
    return oid


def validar_payload(model: Type[BaseModel], payload: Mapping[str, Any]) -> Dict[str, Any]:
    try:
        return validate_model(model, payload)
    except ValidationError as exc:
        raise api_error(
            400, ErrorCode.VALIDATION_ERROR, "Datos inválidos",
            log_level="info", details=validation_messages(exc),
        )


def validar_actualizacion(
    model: Type[BaseModel],
    existing: Mapping[str, Any],
    updates: Mapping[str, Any],
) -> Dict[str, Any]:
    try:
        return validate_partial(model, existing, updates)
    except ValidationError as exc:
        raise api_error(
            400, ErrorCode.VALIDATION_ERROR, "Datos inválidos",
            log_level="info", details=validation_messages(exc),
        )


def limpiar_campos(body: Mapping[str, Any], prohibidos: Iterable[str]) -> Dict[str, Any]:
    """Quita `id`, `_id` y los campos que solo estampa el servidor."""
    excluidos = {"id", "_id", *prohibidos}
    return {k: v for k, v in body.items() if k not in excluidos}


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value == "":
        return None
    return value.strip().lower() in {"1", "true", "yes", "si", "sí"}


def paginacion(page: Optional[int], limit: Optional[int]) -> Tuple[int, int, int]:
    """Normaliza (page, limit, skip); page >= 1, 1 <= limit <= MAX_LIMIT."""
    page = max(int(page or 1), 1)
    limit = min(max(int(limit or DEFAULT_LIMIT), 1), MAX_LIMIT)
    return page, limit, (page - 1) * limit


def total_paginas(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def orden(sort: Optional[str], order: Optional[str], permitidos: Iterable[str], default: str) -> List[Tuple[str, int]]:
    campo = sort if sort in set(permitidos) else default
    direccion = ASCENDING if (order or "").lower() == "asc" else DESCENDING
    return [(campo, direccion)]


def filtro_busqueda(q: Optional[str], campos: Iterable[str]) -> Optional[Dict[str, Any]]:
    """`$or` de regex case-insensitive sobre los campos indicados."""
    if not q or not q.strip():
        return None
    patron = re.escape(q.strip())
    return {"$or": [{campo: {"$regex": patron, "$options": "i"}} for campo in campos]}


def combinar(*filtros: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Combina predicados con `$and`, omitiendo los vacíos."""
    partes = [dict(f) for f in filtros if f]
    if not partes:
        return {}
    if len(partes) == 1:
        return partes[0]
    return {"$and": partes}
