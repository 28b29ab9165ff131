"""
Proxy hacia el webhook del asistente IA (flujo n8n u otro motor de workflows).

El webhook recibe:
    {mensaje, cultivoContext, historialReciente (últimos 5), imagenes, timestamp}

y puede responder con distintas formas, que se normalizan a un string:
    - "texto plano"
    - [{"output": "..."}]  (también text / response / message)
    - {"output": "..."}    (también respuesta / data / text / message)
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import httpx
import structlog

from bruce.error_handling import ChatServiceError
from bruce.models.base import iso_utc
from bruce.settings import ChatSettings

logger = structlog.get_logger(__name__)

HISTORIAL_MAXIMO = 5
_LIST_KEYS = ("output", "text", "response", "message")
_DICT_KEYS = ("output", "respuesta", "data", "text", "message")


def construir_payload(
    mensaje: str,
    cultivo_context: Dict[str, Any],
    historial: Optional[List[Dict[str, Any]]] = None,
    imagenes: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    return {
        "mensaje": mensaje,
        "cultivoContext": cultivo_context,
        "historialReciente": list(historial or [])[-HISTORIAL_MAXIMO:],
        "imagenes": list(imagenes or []),
        "timestamp": iso_utc(),
    }


def _first_text(source: Dict[str, Any], keys: tuple) -> Optional[str]:
    for key in keys:
        value = source.get(key)
        if isinstance(value, str) and value.strip():
            return value
        if isinstance(value, dict):
            nested = _first_text(value, keys)
            if nested:
                return nested
    return None


def normalizar_respuesta(raw: Any) -> Optional[str]:
    """
    Extrae el texto de respuesta de las formas que devuelve el webhook.

    Returns:
        Texto de la respuesta o None si no se reconoce ninguna forma
    """
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, list):
        if not raw:
            return None
        first = raw[0]
        if isinstance(first, str):
            return first.strip() or None
        if isinstance(first, dict):
            return _first_text(first, _LIST_KEYS)
        return None
    if isinstance(raw, dict):
        return _first_text(raw, _DICT_KEYS)
    return None


class ChatProxy:
    """Cliente HTTP del webhook de chat."""

    def __init__(self, settings: ChatSettings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.webhook_url)

    def enviar(self, payload: Dict[str, Any]) -> str:
        """
        Envía el payload al webhook y retorna la respuesta normalizada.

        Raises:
            ChatServiceError: status=429 si el webhook limitó, 504 por timeout,
                502 por error HTTP o respuesta irreconocible
        """
        if not self.configured:
            raise ChatServiceError("CHAT_WEBHOOK_URL no está configurada", status=503)

        timeout_config = httpx.Timeout(self.settings.timeout_seconds, connect=10.0)
        try:
            with httpx.Client(timeout=timeout_config, transport=self._transport) as client:
                response = client.post(self.settings.webhook_url, json=payload)
        except httpx.TimeoutException as exc:
            logger.error("chat.webhook_timeout", timeout=self.settings.timeout_seconds)
            raise ChatServiceError("Timeout del webhook de chat", status=504) from exc
        except httpx.HTTPError as exc:
            logger.error("chat.webhook_unreachable", error=str(exc))
            raise ChatServiceError("No se pudo contactar el webhook de chat", status=502) from exc

        if response.status_code == 429:
            logger.warning("chat.webhook_rate_limited")
            raise ChatServiceError("Límite de peticiones del asistente", status=429)
        if response.status_code >= 400:
            logger.error(
                "chat.webhook_error",
                status=response.status_code,
                body=response.text[:500] if response.text else "",
            )
            raise ChatServiceError(f"Webhook respondió {response.status_code}", status=502)

        try:
            raw: Any = response.json()
        except json.JSONDecodeError:
            raw = response.text

        texto = normalizar_respuesta(raw)
        if not texto:
            logger.error("chat.webhook_unrecognized", body_type=type(raw).__name__)
            raise ChatServiceError("Respuesta del asistente no reconocida", status=502)

        logger.info("chat.webhook_success", chars=len(texto))
        return texto
