"""
Modelo de cultivos (proyectos de cultivo).

Incluye:
    - Validación de rangos técnicos (superficie, plantas, potencia, objetivos EC/pH/clima)
    - Galería embebida (máximo 50 imágenes)
    - Cálculo de fases: días/semanas de vegetación y floración
    - Métricas derivadas: diasDesdeInicio, plantasPorM2, wattsPorM2, litrosTotales
"""

from __future__ import annotations

import math
import re
from datetime import datetime, time
from typing import Any, Dict, List, Mapping, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bruce.models.base import parse_fecha, serialize_document, today_str, utcnow, validar_fecha

MAX_IMAGENES_GALERIA = 50
URL_IMAGEN_PATTERN = re.compile(r"^(https?://|/|data:image/)")

# Campos que el servidor calcula o estampa; se ignoran en payloads de cliente
CAMPOS_SERVIDOR = (
    "creadoPor",
    "editadoPor",
    "fechaCreacion",
    "fechaActualizacion",
    "diasVegetacionActual",
    "diasFloracionActual",
    "semanaVegetacion",
    "semanaFloracion",
)


class ImagenCultivo(BaseModel):
    """Imagen de la galería de un cultivo (subdocumento sin _id)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(default_factory=lambda: str(ObjectId()))
    url: str
    nombre: str = Field(..., max_length=100)
    descripcion: Optional[str] = Field(None, max_length=500)
    fechaTomada: Optional[str] = None
    fechaSubida: str = Field(default_factory=today_str)
    tamano: Optional[float] = Field(None, ge=0, alias="tamaño")
    tipo: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not URL_IMAGEN_PATTERN.match(v):
            raise ValueError("La URL de la imagen no es válida")
        return v

    @field_validator("fechaTomada")
    @classmethod
    def _check_fecha(cls, v: Optional[str]) -> Optional[str]:
        return validar_fecha(v, "fechaTomada")

    @field_validator("tipo")
    @classmethod
    def _check_tipo(cls, v: Optional[str]) -> Optional[str]:
        if v and not v.startswith("image/"):
            raise ValueError("El tipo debe ser un MIME type de imagen válido")
        return v


class CultivoSchema(BaseModel):
    """Esquema validado de un cultivo (payload de creación o documento resultante)."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    nombre: str = Field(..., min_length=1, max_length=100)
    sustrato: Optional[str] = Field(None, max_length=100)
    metrosCuadrados: Optional[float] = Field(None, ge=0.01, le=10000)
    fechaComienzo: Optional[str] = None
    numeroplantas: Optional[int] = Field(None, ge=1, le=100000)
    litrosMaceta: Optional[float] = Field(None, ge=0.1, le=1000)
    potenciaLamparas: Optional[float] = Field(None, ge=1, le=50000)
    genetica: Optional[str] = Field(None, max_length=200)
    activo: bool = True
    notas: Optional[str] = Field(None, max_length=2000)
    galeria: List[ImagenCultivo] = Field(default_factory=list)

    # Fases
    fechaInicioFloracion: Optional[str] = None

    # Objetivos de cultivo
    ecObjetivo: Optional[float] = Field(None, ge=0, le=5000)
    phObjetivo: Optional[float] = Field(None, ge=0, le=14)
    aguaDiariaObjetivo: Optional[float] = Field(None, ge=0, le=10000)
    tempObjetivoVegetacion: Optional[float] = Field(None, ge=10, le=50)
    tempObjetivoFloracion: Optional[float] = Field(None, ge=10, le=50)
    humedadObjetivoVegetacion: Optional[float] = Field(None, ge=10, le=100)
    humedadObjetivoFloracion: Optional[float] = Field(None, ge=10, le=100)

    @field_validator("nombre", mode="before")
    @classmethod
    def _check_nombre(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("El nombre del cultivo es obligatorio")
        return v

    @field_validator("fechaComienzo")
    @classmethod
    def _check_comienzo(cls, v: Optional[str]) -> Optional[str]:
        return validar_fecha(v, "fechaComienzo")

    @field_validator("fechaInicioFloracion")
    @classmethod
    def _check_floracion(cls, v: Optional[str]) -> Optional[str]:
        return validar_fecha(v, "fechaInicioFloracion")

    @field_validator("galeria")
    @classmethod
    def _check_galeria(cls, v: List[ImagenCultivo]) -> List[ImagenCultivo]:
        if len(v) > MAX_IMAGENES_GALERIA:
            raise ValueError(f"No se pueden tener más de {MAX_IMAGENES_GALERIA} imágenes por cultivo")
        return v

    @model_validator(mode="after")
    def _check_orden_fases(self) -> "CultivoSchema":
        if self.fechaInicioFloracion and self.fechaComienzo:
            if parse_fecha(self.fechaInicioFloracion) < parse_fecha(self.fechaComienzo):
                raise ValueError(
                    "La fecha de inicio de floración debe ser posterior a la fecha de comienzo del cultivo"
                )
        return self


# =============================================================================
# CÁLCULOS DERIVADOS
# =============================================================================

def _dias_entre(desde: datetime, hasta: datetime) -> int:
    """Días (redondeo hacia arriba) entre dos instantes, en valor absoluto."""
    return math.ceil(abs((hasta - desde).total_seconds()) / 86400)


def _inicio_del_dia(fecha: str) -> datetime:
    return datetime.combine(parse_fecha(fecha), time())


def calcular_fases(
    fecha_comienzo: Optional[str],
    fecha_floracion: Optional[str] = None,
    hoy: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Calcula días y semanas de cada fase.

    - Con fecha de floración: vegetación = inicio→floración, floración = floración→hoy
    - Sin fecha de floración: vegetación = inicio→hoy, floración = 0
    - semana = días // 7 + 1 (semanaFloracion = 0 si no hay días de floración)

    Returns:
        Dict vacío si no hay fecha de comienzo
    """
    if not fecha_comienzo:
        return {}
    hoy = hoy or utcnow()
    inicio = _inicio_del_dia(fecha_comienzo)

    if fecha_floracion:
        floracion = _inicio_del_dia(fecha_floracion)
        dias_veg = _dias_entre(inicio, floracion)
        dias_flor = _dias_entre(floracion, hoy)
    else:
        dias_veg = _dias_entre(inicio, hoy)
        dias_flor = 0

    return {
        "diasVegetacionActual": dias_veg,
        "diasFloracionActual": dias_flor,
        "semanaVegetacion": dias_veg // 7 + 1,
        "semanaFloracion": dias_flor // 7 + 1 if dias_flor > 0 else 0,
    }


def _ratio(numerador: Any, denominador: Any) -> float:
    if not numerador or not denominador:
        return 0
    return round(numerador / denominador, 2)


def calcular_metricas(cultivo: Mapping[str, Any], hoy: Optional[datetime] = None) -> Dict[str, Any]:
    """Métricas derivadas que se agregan al serializar."""
    dias_desde_inicio = 0
    if cultivo.get("fechaComienzo"):
        try:
            inicio = _inicio_del_dia(cultivo["fechaComienzo"])
            dias_desde_inicio = math.ceil(((hoy or utcnow()) - inicio).total_seconds() / 86400)
        except ValueError:
            dias_desde_inicio = 0

    litros_maceta = cultivo.get("litrosMaceta")
    plantas = cultivo.get("numeroplantas")
    return {
        "diasDesdeInicio": dias_desde_inicio,
        "plantasPorM2": _ratio(plantas, cultivo.get("metrosCuadrados")),
        "wattsPorM2": _ratio(cultivo.get("potenciaLamparas"), cultivo.get("metrosCuadrados")),
        "litrosTotales": litros_maceta * plantas if litros_maceta and plantas else 0,
    }


def cultivo_to_json(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    data = serialize_document(doc)
    if data is None:
        return None
    data.update(calcular_metricas(data))
    return data
