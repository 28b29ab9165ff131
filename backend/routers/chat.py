"""
Chat router - asistente IA del cultivo vía webhook.

POST /api/chat
    Body: {mensaje, cultivoContext, historialReciente?, imagenes?}
    Respuesta: {success, data: "<respuesta>", message, timestamp}

GET /api/chat
    Estado del servicio: {success, message, timestamp, hasWebhook}
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends

from backend.auth import CurrentUser, get_current_user
from backend.dependencies import get_chat_proxy
from bruce.chat_proxy import ChatProxy, construir_payload
from bruce.error_handling import ChatServiceError, ErrorCode, api_error, handle_service_error
from bruce.models.base import iso_utc

api_logger = structlog.get_logger("backend.api.chat")

router = APIRouter(prefix="/api/chat", tags=["Chat"])

FALTAN_DATOS = "Faltan datos requeridos: mensaje y contexto del cultivo"


@router.post("")
def api_chat(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    proxy: ChatProxy = Depends(get_chat_proxy),
):
    payload = payload or {}
    mensaje = payload.get("mensaje")
    cultivo_context = payload.get("cultivoContext")
    if not isinstance(mensaje, str) or not mensaje.strip() or not isinstance(cultivo_context, dict) or not cultivo_context:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, FALTAN_DATOS, log_level="info")

    if not proxy.configured:
        raise api_error(503, ErrorCode.SERVICE_UNAVAILABLE, "El asistente IA no está configurado", log_level="warning")

    historial = payload.get("historialReciente")
    imagenes = payload.get("imagenes")
    body = construir_payload(
        mensaje.strip(),
        cultivo_context,
        historial if isinstance(historial, list) else None,
        imagenes if isinstance(imagenes, list) else None,
    )

    try:
        respuesta = proxy.enviar(body)
    except ChatServiceError as exc:
        raise handle_service_error(exc, "consulta al asistente")

    api_logger.info("chat.response", email=user.email, chars=len(respuesta))
    return {
        "success": True,
        "data": respuesta,
        "message": "Respuesta generada exitosamente",
        "timestamp": iso_utc(),
    }


@router.get("")
def api_chat_status(proxy: ChatProxy = Depends(get_chat_proxy)):
    return {
        "success": True,
        "message": "Servicio de chat con IA activo",
        "timestamp": iso_utc(),
        "hasWebhook": proxy.configured,
    }
