"""Modelo de notas libres (categorías, etiquetas y detección de imágenes)."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bruce.models.base import serialize_document, today_str, validar_fecha
from bruce.models.usuario import EMAIL_PATTERN

CATEGORIAS = (
    "general", "cultivo", "nutricion", "plagas", "riego", "cosecha",
    "mantenimiento", "observacion", "problema", "solucion", "investigacion",
)
PRIORIDADES = ("baja", "media", "alta", "critica")
MAX_TAGS = 10
TAG_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_]+$")

IMAGE_PATTERNS = (
    re.compile(r"!\[.*?\]\(.*?\)"),
    re.compile(r"<img.*?>", re.IGNORECASE),
    re.compile(r"data:image/", re.IGNORECASE),
    re.compile(r"https?://.*\.(jpg|jpeg|png|gif|bmp|webp)", re.IGNORECASE),
)

# Auditoría interna; no se expone en la API
HIDDEN_FIELDS = ("creadoPor", "editadoPor", "fechaCreacion", "fechaActualizacion")


def normalizar_tags(tags: List[str]) -> List[str]:
    """Minúsculas, sin espacios extremos, sin vacíos ni duplicados (orden estable)."""
    vistos: List[str] = []
    for tag in tags:
        limpio = str(tag).strip().lower()
        if limpio and limpio not in vistos:
            vistos.append(limpio)
    return vistos


def detectar_imagenes(content: str) -> bool:
    return any(p.search(content or "") for p in IMAGE_PATTERNS)


def validar_autor(value: Optional[str]) -> Optional[str]:
    if value and not (EMAIL_PATTERN.match(value) or len(value) >= 2):
        raise ValueError("El autor debe ser un email válido o un nombre de al menos 2 caracteres")
    return value


class NotaSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1, max_length=10000)
    category: Literal[
        "general", "cultivo", "nutricion", "plagas", "riego", "cosecha",
        "mantenimiento", "observacion", "problema", "solucion", "investigacion",
    ] = "general"
    tags: List[str] = Field(default_factory=list)
    date: str = Field(default_factory=today_str)
    author: Optional[str] = Field(None, max_length=100)
    priority: Literal["baja", "media", "alta", "critica"] = "media"
    hasImages: bool = False
    cropArea: Optional[str] = Field(None, max_length=100)
    activa: bool = True
    destacada: bool = False

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, v: List[str]) -> List[str]:
        if len(v) > MAX_TAGS:
            raise ValueError(f"No se pueden tener más de {MAX_TAGS} etiquetas")
        for tag in v:
            if not TAG_PATTERN.match(str(tag)):
                raise ValueError(f"Etiqueta inválida: {tag}")
        return normalizar_tags(v)

    @field_validator("date")
    @classmethod
    def _check_date(cls, v: str) -> str:
        return validar_fecha(v, "date") or today_str()

    @field_validator("author")
    @classmethod
    def _check_author(cls, v: Optional[str]) -> Optional[str]:
        return validar_autor(v)

    @model_validator(mode="after")
    def _detect_images(self) -> "NotaSchema":
        self.hasImages = detectar_imagenes(self.content)
        return self


def nota_to_json(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    return serialize_document(doc, hidden=HIDDEN_FIELDS)
