"""
Utilidades compartidas por los modelos de dominio.

- Fechas: utcnow(), today_str(), parse_fecha(), FECHA_PATTERN
- Identificadores: is_valid_object_id(), to_object_id()
- Serialización: serialize_document() (ObjectId/datetime → JSON, _id → id)
- Validación: validate_model() y validate_partial() (payload → dict limpio)
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Type, TypeVar

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)

FECHA_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HORA_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


# =============================================================================
# FECHAS
# =============================================================================

def utcnow() -> datetime:
    """Datetime UTC naive (BSON no conserva tzinfo por defecto)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today_str() -> str:
    return utcnow().date().isoformat()


def iso_utc(value: Optional[datetime] = None) -> str:
    """ISO-8601 con milisegundos y sufijo Z (formato de fechas de suscripción)."""
    value = value or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_fecha(value: str) -> date:
    """Parsea YYYY-MM-DD; lanza ValueError si el formato o la fecha no son válidos."""
    if not isinstance(value, str) or not FECHA_PATTERN.match(value):
        raise ValueError("La fecha debe tener formato YYYY-MM-DD")
    return date.fromisoformat(value)


def validar_fecha(value: Optional[str], campo: str = "fecha") -> Optional[str]:
    if value is None or value == "":
        return None
    try:
        parse_fecha(value)
    except ValueError:
        raise ValueError(f"{campo} debe tener formato YYYY-MM-DD")
    return value


def to_datetime(value: Any) -> Optional[datetime]:
    """Normaliza datetime/ISO string a datetime UTC naive."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return to_datetime(parsed)
    raise ValueError(f"Fecha no reconocida: {value!r}")


# =============================================================================
# IDENTIFICADORES
# =============================================================================

def is_valid_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def to_object_id(value: str) -> Optional[ObjectId]:
    if not is_valid_object_id(value):
        return None
    try:
        return ObjectId(value)
    except InvalidId:
        return None


# =============================================================================
# SERIALIZACIÓN
# =============================================================================

def _to_json_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat(timespec="milliseconds") + ("Z" if value.tzinfo is None else "")
    if isinstance(value, Mapping):
        return {k: _to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json_value(v) for v in value]
    return value


def serialize_document(doc: Optional[Mapping[str, Any]], hidden: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """
    Convierte un documento Mongo a dict serializable.

    - `_id` se expone como `id`
    - ObjectId → str, datetime → ISO-8601 (sufijo Z)
    - Los campos en `hidden` no se incluyen
    """
    if doc is None:
        return None
    hidden_set = set(hidden)
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key in hidden_set or key == "__v":
            continue
        if key == "_id":
            out["id"] = _to_json_value(value)
            continue
        out[key] = _to_json_value(value)
    return out


# =============================================================================
# VALIDACIÓN
# =============================================================================

def _field_keys(model: Type[BaseModel]) -> set[str]:
    keys: set[str] = set()
    for name, info in model.model_fields.items():
        keys.add(info.alias or name)
    return keys


def validate_model(model: Type[M], payload: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Valida un payload completo y retorna el documento limpio (aliases, sin None).

    Raises:
        pydantic.ValidationError: con los errores de todos los campos
    """
    instance = model.model_validate(dict(payload))
    return instance.model_dump(by_alias=True, exclude_none=True)


def validate_partial(model: Type[M], existing: Mapping[str, Any], updates: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Valida una actualización parcial contra el documento resultante.

    Los campos no tocados se revalidan junto con los nuevos (reglas cruzadas
    como fechaInicioFloracion >= fechaComienzo), pero solo se retornan las
    claves presentes en `updates` que pertenecen al modelo.
    """
    merged = {k: v for k, v in existing.items() if k != "_id"}
    merged.update(updates)
    cleaned = model.model_validate(merged).model_dump(by_alias=True)
    allowed = _field_keys(model)
    return {k: cleaned.get(k) for k in updates if k in allowed}
