"""
Modelo de tareas de cultivo (calendario, recurrencia y recordatorios).

Comportamiento automático:
    - Al pasar a `completada` se estampa `fechaCompletada`
    - Una tarea `pendiente` con fecha pasada se reporta como `vencida`
    - Al completar una tarea recurrente se genera la siguiente ocurrencia
      (diaria +1, semanal +7, quincenal +15, mensual +1 mes, personalizada +N)
      hasta `fechaFinRepeticion`
"""

from __future__ import annotations

import calendar
import math
from datetime import date, datetime, timedelta
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bruce.models.base import (
    HORA_PATTERN,
    parse_fecha,
    serialize_document,
    today_str,
    utcnow,
    validar_fecha,
)

TIPOS_TAREA = ("siembra", "riego", "fertilizacion", "poda", "cosecha", "mantenimiento", "monitoreo", "otro")
ESTADOS_TAREA = ("pendiente", "en_progreso", "completada", "cancelada", "vencida")
PRIORIDADES_TAREA = ("baja", "media", "alta", "urgente")
FRECUENCIAS = ("diaria", "semanal", "quincenal", "mensual", "personalizada")

CAMPOS_ORDENABLES = ("titulo", "fechaProgramada", "fechaCreacion", "tipo", "estado", "prioridad")

_DIAS_POR_FRECUENCIA = {"diaria": 1, "semanal": 7, "quincenal": 15}


class TareaSchema(BaseModel):
    """Esquema validado de una tarea."""
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    cultivoId: str = Field(..., min_length=1)
    titulo: str = Field(..., min_length=1, max_length=100)
    descripcion: Optional[str] = Field(None, max_length=1000)
    tipo: Literal["siembra", "riego", "fertilizacion", "poda", "cosecha",
                  "mantenimiento", "monitoreo", "otro"] = "otro"
    estado: Literal["pendiente", "en_progreso", "completada", "cancelada", "vencida"] = "pendiente"
    prioridad: Literal["baja", "media", "alta", "urgente"] = "media"
    fechaProgramada: str
    horaProgramada: Optional[str] = None
    fechaCompletada: Optional[str] = None
    duracionEstimada: Optional[int] = Field(None, ge=1, le=1440)
    notas: Optional[str] = Field(None, max_length=1000)

    # Recurrencia
    esRecurrente: bool = False
    frecuencia: Optional[Literal["diaria", "semanal", "quincenal", "mensual", "personalizada"]] = None
    intervaloPersonalizado: Optional[int] = Field(None, ge=1, le=365)
    fechaFinRepeticion: Optional[str] = None
    tareaPadreId: Optional[str] = None

    # Recordatorios
    recordatorioActivado: bool = False
    minutosRecordatorio: int = Field(60, ge=1, le=10080)
    recordatorioEnviado: bool = False

    @field_validator("fechaProgramada")
    @classmethod
    def _check_programada(cls, v: str) -> str:
        if not validar_fecha(v, "fechaProgramada"):
            raise ValueError("La fecha programada es obligatoria")
        return v

    @field_validator("fechaCompletada", "fechaFinRepeticion")
    @classmethod
    def _check_fechas(cls, v: Optional[str], info) -> Optional[str]:
        return validar_fecha(v, info.field_name)

    @field_validator("horaProgramada")
    @classmethod
    def _check_hora(cls, v: Optional[str]) -> Optional[str]:
        if v and not HORA_PATTERN.match(v):
            raise ValueError("La hora debe tener formato HH:MM")
        return v or None

    @model_validator(mode="after")
    def _check_recurrencia(self) -> "TareaSchema":
        if self.esRecurrente and not self.frecuencia:
            raise ValueError("La frecuencia es obligatoria para tareas recurrentes")
        if self.esRecurrente and self.frecuencia == "personalizada" and not self.intervaloPersonalizado:
            raise ValueError("El intervalo personalizado es obligatorio para frecuencia personalizada")
        if self.esRecurrente and self.fechaFinRepeticion and self.fechaFinRepeticion < self.fechaProgramada:
            raise ValueError("La fecha fin de repetición debe ser posterior a la fecha programada")
        return self


# =============================================================================
# ESTADO
# =============================================================================

def esta_vencida(tarea: Mapping[str, Any], hoy: Optional[str] = None) -> bool:
    if tarea.get("estado") in ("completada", "cancelada"):
        return False
    fecha = tarea.get("fechaProgramada")
    return bool(fecha) and fecha < (hoy or today_str())


def aplicar_reglas_estado(
    tarea: Dict[str, Any],
    estado_anterior: Optional[str] = None,
    hoy: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Aplica las transiciones automáticas sobre el documento (in place).

    - completada (nueva) → fechaCompletada = hoy
    - pendiente con fecha pasada → vencida
    """
    hoy = hoy or today_str()
    if tarea.get("estado") == "completada" and estado_anterior != "completada" and not tarea.get("fechaCompletada"):
        tarea["fechaCompletada"] = hoy
    if tarea.get("estado") == "pendiente" and tarea.get("fechaProgramada", hoy) < hoy:
        tarea["estado"] = "vencida"
    return tarea


# =============================================================================
# RECURRENCIA
# =============================================================================

def _sumar_meses(fecha: date, meses: int) -> date:
    total = fecha.month - 1 + meses
    year, month = fecha.year + total // 12, total % 12 + 1
    day = min(fecha.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def calcular_siguiente_fecha(tarea: Mapping[str, Any]) -> Optional[str]:
    """
    Próxima fecha de una tarea recurrente, o None si la serie terminó.
    """
    actual = parse_fecha(tarea["fechaProgramada"])
    fin_raw = tarea.get("fechaFinRepeticion")
    fin = parse_fecha(fin_raw) if fin_raw else None
    if fin is not None and actual >= fin:
        return None

    frecuencia = tarea.get("frecuencia")
    if frecuencia in _DIAS_POR_FRECUENCIA:
        siguiente = actual + timedelta(days=_DIAS_POR_FRECUENCIA[frecuencia])
    elif frecuencia == "mensual":
        siguiente = _sumar_meses(actual, 1)
    elif frecuencia == "personalizada" and tarea.get("intervaloPersonalizado"):
        siguiente = actual + timedelta(days=int(tarea["intervaloPersonalizado"]))
    else:
        return None

    if fin is not None and siguiente > fin:
        return None
    return siguiente.isoformat()


def construir_siguiente_tarea(tarea: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Documento de la siguiente ocurrencia de una tarea recurrente completada.

    La nueva tarea hereda todo salvo estado/fechas y enlaza con la tarea raíz
    de la serie mediante `tareaPadreId`.
    """
    if not tarea.get("esRecurrente") or tarea.get("estado") != "completada":
        return None
    siguiente_fecha = calcular_siguiente_fecha(tarea)
    if siguiente_fecha is None:
        return None

    hoy = today_str()
    nueva = {k: v for k, v in tarea.items() if k not in ("_id", "id", "fechaCompletada", "editadoPor")}
    nueva.update({
        "fechaProgramada": siguiente_fecha,
        "estado": "pendiente",
        "recordatorioEnviado": False,
        "tareaPadreId": tarea.get("tareaPadreId") or str(tarea.get("_id") or tarea.get("id")),
        "fechaCreacion": hoy,
        "fechaActualizacion": hoy,
    })
    return nueva


# =============================================================================
# RECORDATORIOS Y SERIALIZACIÓN
# =============================================================================

def debe_enviar_recordatorio(tarea: Mapping[str, Any], ahora: Optional[datetime] = None) -> bool:
    if not tarea.get("recordatorioActivado") or tarea.get("recordatorioEnviado"):
        return False
    if tarea.get("estado") in ("completada", "cancelada"):
        return False
    hora = tarea.get("horaProgramada") or "12:00"
    programada = datetime.fromisoformat(f"{tarea['fechaProgramada']}T{hora}:00")
    aviso = programada - timedelta(minutes=int(tarea.get("minutosRecordatorio") or 0))
    return (ahora or utcnow()) >= aviso


def dias_hasta_vencimiento(tarea: Mapping[str, Any], ahora: Optional[datetime] = None) -> int:
    programada = datetime.combine(parse_fecha(tarea["fechaProgramada"]), datetime.min.time())
    return math.ceil((programada - (ahora or utcnow())).total_seconds() / 86400)


def tarea_to_json(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    data = serialize_document(doc)
    if data is None:
        return None
    if data.get("estado") == "pendiente" and esta_vencida(data):
        data["estado"] = "vencida"
    data["estaVencida"] = esta_vencida(data)
    try:
        data["diasHastaVencimiento"] = dias_hasta_vencimiento(data)
        data["debeEnviarRecordatorio"] = debe_enviar_recordatorio(data)
    except (KeyError, ValueError):
        data["diasHastaVencimiento"] = None
        data["debeEnviarRecordatorio"] = False
    return data
