"""
Galería router - subida de imágenes de cultivos.

POST /api/galeria
    multipart `file` (image/*, máximo 10MB) → 201 {success, data: ImagenSubida}
GET /api/galeria/temp/{filename}
    Placeholder SVG para imágenes guardadas sin Cloudinary
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import Response

from backend.auth import CurrentUser, get_current_user
from backend.dependencies import get_media_uploader
from bruce.error_handling import ErrorCode, MediaUploadError, api_error, handle_service_error
from bruce.media_upload import MAX_IMAGE_BYTES, MediaUploader, es_nombre_seguro, placeholder_svg

api_logger = structlog.get_logger("backend.api.galeria")

router = APIRouter(prefix="/api/galeria", tags=["Galería"])

SIN_IMAGEN = "No se recibió ninguna imagen válida para subir."


@router.post("", status_code=201)
def upload_imagen(
    file: Optional[UploadFile] = File(default=None),
    user: CurrentUser = Depends(get_current_user),
    uploader: MediaUploader = Depends(get_media_uploader),
):
    if file is None or not file.filename:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, SIN_IMAGEN, log_level="info")

    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise api_error(415, ErrorCode.UNSUPPORTED_MEDIA, "Solo se permiten archivos de imagen.", log_level="info")

    content = file.file.read(MAX_IMAGE_BYTES + 1)
    if not content:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, SIN_IMAGEN, log_level="info")
    if len(content) > MAX_IMAGE_BYTES:
        raise api_error(413, ErrorCode.PAYLOAD_TOO_LARGE, "La imagen supera el máximo de 10MB.", log_level="info")

    try:
        imagen = uploader.subir(content, file.filename, content_type)
    except MediaUploadError as exc:
        raise handle_service_error(exc, "subida de imagen")

    api_logger.info("galeria.uploaded", email=user.email, public_id=imagen.publicId, bytes=imagen.bytes)
    return {"success": True, "data": imagen.to_dict()}


@router.get("/temp/{filename}")
def imagen_temporal(filename: str):
    if not es_nombre_seguro(filename):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Nombre de archivo inválido", log_level="warning")
    return Response(
        content=placeholder_svg(filename),
        media_type="image/svg+xml",
        headers={"Cache-Control": "public, max-age=3600"},
    )
