"""Modelos de dominio validados con pydantic sobre documentos MongoDB."""

from bruce.models.base import (
    is_valid_object_id,
    serialize_document,
    to_object_id,
    validate_model,
    validate_partial,
)
from bruce.models.comentario import ComentarioSchema, comentario_to_json
from bruce.models.cultivo import CultivoSchema, calcular_fases, cultivo_to_json
from bruce.models.nota import NotaSchema, nota_to_json
from bruce.models.tarea import TareaSchema, tarea_to_json
from bruce.models.usuario import UsuarioCreate, usuario_to_json

__all__ = [
    "ComentarioSchema",
    "CultivoSchema",
    "NotaSchema",
    "TareaSchema",
    "UsuarioCreate",
    "calcular_fases",
    "comentario_to_json",
    "cultivo_to_json",
    "is_valid_object_id",
    "nota_to_json",
    "serialize_document",
    "tarea_to_json",
    "to_object_id",
    "usuario_to_json",
    "validate_model",
    "validate_partial",
]
