"""
Subida de imágenes de la galería.

Si Cloudinary está configurado (CLOUDINARY_CLOUD_NAME + CLOUDINARY_UPLOAD_PRESET)
la imagen se sube mediante upload sin firma; si no, se retorna una URL local
de placeholder servida por GET /api/galeria/temp/{filename}.

Límites:
    - Solo MIME image/*
    - Máximo 10MB por archivo
"""

from __future__ import annotations

import html
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import httpx
import structlog

from bruce.error_handling import MediaUploadError
from bruce.settings import CloudinarySettings

logger = structlog.get_logger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024
CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"
LOCAL_PREFIX = "/api/galeria/temp"


@dataclass
class ImagenSubida:
    """Metadatos retornados al cliente tras la subida."""
    secureUrl: str
    publicId: str
    originalFilename: str
    bytes: int
    format: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def formato_desde_mime(content_type: Optional[str]) -> str:
    if not content_type or "/" not in content_type:
        return "jpeg"
    return content_type.split("/", 1)[1].split(";", 1)[0].strip() or "jpeg"


def es_nombre_seguro(filename: Optional[str]) -> bool:
    return bool(filename) and ".." not in filename and "/" not in filename and "\\" not in filename


def placeholder_svg(filename: str) -> str:
    """SVG de reemplazo para imágenes sin almacenamiento externo."""
    nombre = html.escape(filename)
    return (
        '<svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">'
        '<rect width="100%" height="100%" fill="#f3f4f6"/>'
        '<text x="50%" y="50%" font-family="Arial, sans-serif" font-size="16" fill="#6b7280" '
        f'text-anchor="middle" dy=".3em">Imagen: {nombre}</text>'
        '<text x="50%" y="60%" font-family="Arial, sans-serif" font-size="12" fill="#9ca3af" '
        'text-anchor="middle" dy=".3em">(Almacenamiento temporal)</text>'
        "</svg>"
    )


class MediaUploader:
    """Sube imágenes a Cloudinary o genera la URL local de placeholder."""

    def __init__(self, settings: CloudinarySettings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self._transport = transport

    def subir(self, content: bytes, filename: str, content_type: str) -> ImagenSubida:
        formato = formato_desde_mime(content_type)
        if not self.settings.configured:
            public_id = f"local-galeria-{int(time.time() * 1000)}"
            logger.info("galeria.local_placeholder", public_id=public_id, bytes=len(content))
            return ImagenSubida(
                secureUrl=f"{LOCAL_PREFIX}/{public_id}.{formato}",
                publicId=public_id,
                originalFilename=filename,
                bytes=len(content),
                format=formato,
            )
        return self._subir_cloudinary(content, filename, content_type, formato)

    def _subir_cloudinary(self, content: bytes, filename: str, content_type: str, formato: str) -> ImagenSubida:
        url = CLOUDINARY_UPLOAD_URL.format(cloud_name=self.settings.cloud_name)
        data = {
            "upload_preset": self.settings.upload_preset,
            "folder": self.settings.folder,
        }
        files = {"file": (filename, content, content_type)}
        timeout_config = httpx.Timeout(60.0, connect=10.0)
        try:
            with httpx.Client(timeout=timeout_config, transport=self._transport) as client:
                response = client.post(url, data=data, files=files)
        except httpx.HTTPError as exc:
            logger.error("galeria.cloudinary_unreachable", error=str(exc))
            raise MediaUploadError("No se pudo contactar Cloudinary") from exc

        if response.status_code >= 400:
            logger.error(
                "galeria.cloudinary_error",
                status=response.status_code,
                body=response.text[:500] if response.text else "",
            )
            raise MediaUploadError(f"Cloudinary respondió {response.status_code}")

        result = response.json()
        logger.info("galeria.cloudinary_uploaded", public_id=result.get("public_id"), bytes=result.get("bytes"))
        return ImagenSubida(
            secureUrl=result.get("secure_url") or result.get("url", ""),
            publicId=result.get("public_id", ""),
            originalFilename=filename,
            bytes=int(result.get("bytes") or len(content)),
            format=result.get("format") or formato,
        )
