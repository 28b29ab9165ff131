"""
Modelo de comentarios de cultivo (bitácora de observaciones, problemas y soluciones).

Cada comentario puede adjuntar hasta 10 imágenes (máximo 10MB cada una).
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Literal, Mapping, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from bruce.models.base import iso_utc, serialize_document
from bruce.models.cultivo import URL_IMAGEN_PATTERN
from bruce.models.nota import validar_autor

TIPOS_COMENTARIO = (
    "observacion", "problema", "solucion", "fertilizacion", "riego",
    "plagas", "enfermedad", "cosecha", "mantenimiento",
)
MAX_IMAGENES = 10
MAX_TAGS = 8
MAX_IMAGE_BYTES = 10 * 1024 * 1024

ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")
BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")

# Campos que solo estampa el servidor
CAMPOS_SERVIDOR = ("fecha", "fechaActualizacion", "numeroEdiciones", "creadoPor", "editadoPor")


class ImagenComentario(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=lambda: str(ObjectId()))
    name: str = Field(..., min_length=1, max_length=255)
    url: str
    base64: Optional[str] = None
    mimeType: str
    size: int = Field(..., ge=1, le=MAX_IMAGE_BYTES)
    uploadedAt: str = Field(default_factory=iso_utc)

    @field_validator("url")
    @classmethod
    def _check_url(cls, v: str) -> str:
        if not URL_IMAGEN_PATTERN.match(v):
            raise ValueError("La URL de la imagen no es válida")
        return v

    @field_validator("base64")
    @classmethod
    def _check_base64(cls, v: Optional[str]) -> Optional[str]:
        if v and not BASE64_PATTERN.match(v):
            raise ValueError("El formato base64 no es válido")
        return v

    @field_validator("mimeType")
    @classmethod
    def _check_mime(cls, v: str) -> str:
        if not v.startswith("image/"):
            raise ValueError("El tipo MIME debe ser de imagen")
        return v


class ComentarioSchema(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    cultivoId: str = Field(..., min_length=1)
    titulo: str = Field(..., min_length=1, max_length=100)
    contenido: str = Field(..., min_length=1, max_length=2000)
    autor: str = Field(..., min_length=1, max_length=100)
    fecha: Optional[str] = None
    tipo: Literal[
        "observacion", "problema", "solucion", "fertilizacion", "riego",
        "plagas", "enfermedad", "cosecha", "mantenimiento",
    ]
    prioridad: Literal["baja", "media", "alta", "critica"] = "media"
    imagenes: List[ImagenComentario] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    resuelto: bool = False
    activo: bool = True
    destacado: bool = False
    numeroEdiciones: int = Field(0, ge=0)

    @field_validator("autor")
    @classmethod
    def _check_autor(cls, v: str) -> str:
        return validar_autor(v) or v

    @field_validator("fecha")
    @classmethod
    def _check_fecha(cls, v: Optional[str]) -> Optional[str]:
        if v and not ISO_PATTERN.match(v):
            raise ValueError("La fecha debe estar en formato ISO string")
        return v

    @field_validator("imagenes")
    @classmethod
    def _check_imagenes(cls, v: List[ImagenComentario]) -> List[ImagenComentario]:
        if len(v) > MAX_IMAGENES:
            raise ValueError(f"No se pueden tener más de {MAX_IMAGENES} imágenes por comentario")
        return v

    @field_validator("tags")
    @classmethod
    def _check_tags(cls, v: List[str]) -> List[str]:
        if len(v) > MAX_TAGS:
            raise ValueError(f"No se pueden tener más de {MAX_TAGS} etiquetas por comentario")
        return [t.strip().lower() for t in v if t and t.strip()]


def comentario_to_json(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    return serialize_document(doc)
