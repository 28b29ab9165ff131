"""
Errores de dominio y su traducción a respuestas HTTP.

Toda respuesta de error de la API tiene la forma (ver handlers en backend/app.py):

    {"success": false, "error": "<mensaje para el usuario>", "code": "<CODIGO>", "details": [...]}

El detalle técnico (excepción original, URIs, cuerpos upstream) va solo al log.

Uso típico en un router:

    try:
        link = payments.create_payment_link(email)
    except PaymentError as exc:
        raise handle_service_error(exc, "creación del pago")
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

import structlog
from fastapi import HTTPException
from pydantic import ValidationError

_logger = structlog.get_logger("bruce.errors")
T = TypeVar("T")


class ErrorCode:
    """Valores del campo `code` en las respuestas de error."""

    # Integraciones
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    DATABASE_ERROR = "DATABASE_ERROR"
    PAYMENT_ERROR = "PAYMENT_ERROR"
    CHAT_ERROR = "CHAT_ERROR"
    MEDIA_ERROR = "MEDIA_ERROR"

    # Sesión y permisos
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    FORBIDDEN = "FORBIDDEN"

    # Datos de entrada
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA = "UNSUPPORTED_MEDIA"

    OPERATION_FAILED = "OPERATION_FAILED"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"


class ServiceError(Exception):
    """Fallo de una dependencia externa (MongoDB, MercadoPago, chat, Cloudinary)."""

    code = ErrorCode.OPERATION_FAILED

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def log_fields(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "context": self.context}


class DatabaseError(ServiceError):
    code = ErrorCode.DATABASE_ERROR


class PaymentError(ServiceError):
    code = ErrorCode.PAYMENT_ERROR


class ChatServiceError(ServiceError):
    """`status` conserva el código HTTP upstream (429, 504 por timeout...)."""

    code = ErrorCode.CHAT_ERROR

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None, status: Optional[int] = None):
        super().__init__(message, context)
        self.status = status


class MediaUploadError(ServiceError):
    code = ErrorCode.MEDIA_ERROR


def api_error(
    status_code: int,
    code: str,
    message: str,
    exc: Optional[Exception] = None,
    log_level: str = "error",
    details: Optional[List[str]] = None,
) -> HTTPException:
    """
    Construye la HTTPException de una respuesta de error y registra el evento `api.error`.

    `exc` se registra (tipo y texto, con traceback si status >= 500) pero
    nunca llega al cliente; `details` sí (mensajes de validación).
    """
    fields: Dict[str, Any] = {"status": status_code, "code": code, "message": message}
    if exc is not None:
        fields.update(error_type=type(exc).__name__, error_detail=str(exc))
        if isinstance(exc, ServiceError) and exc.context:
            fields["context"] = exc.context

    log = getattr(_logger, log_level, _logger.error)
    log("api.error", exc_info=exc is not None and status_code >= 500, **fields)

    detail: Dict[str, Any] = {"code": code, "error": message}
    if details:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


# (tipo, status, code, plantilla del mensaje)
_SERVICE_STATUS: Tuple[Tuple[Type[ServiceError], int, str, str], ...] = (
    (DatabaseError, 503, ErrorCode.DATABASE_ERROR, "Base de datos no disponible durante {op}"),
    (PaymentError, 502, ErrorCode.PAYMENT_ERROR, "Servicio de pagos no disponible durante {op}"),
    (MediaUploadError, 502, ErrorCode.MEDIA_ERROR, "Servicio de imágenes no disponible durante {op}"),
)


def handle_service_error(exc: Exception, operation: str = "operación") -> HTTPException:
    """
    Traduce una excepción de servicio al HTTPException correspondiente.

        DatabaseError     → 503
        PaymentError      → 502
        MediaUploadError  → 502
        ChatServiceError  → 429 (upstream saturado) | 504 (timeout) | 502
        TimeoutError      → 504
        otra              → 500
    """
    for error_type, status_code, code, template in _SERVICE_STATUS:
        if isinstance(exc, error_type):
            return api_error(status_code, code, template.format(op=operation), exc)

    if isinstance(exc, ChatServiceError):
        if exc.status == 429:
            return api_error(429, ErrorCode.RATE_LIMITED,
                             "El asistente está saturado. Intenta nuevamente en unos segundos.", exc,
                             log_level="warning")
        if exc.status == 504:
            return api_error(504, ErrorCode.TIMEOUT, "El asistente demoró demasiado en responder.", exc)
        return api_error(502, ErrorCode.CHAT_ERROR, f"Servicio de IA no disponible durante {operation}", exc)

    if isinstance(exc, TimeoutError):
        return api_error(504, ErrorCode.TIMEOUT, f"La {operation} demoró demasiado.", exc)
    if isinstance(exc, ServiceError):
        return api_error(500, exc.code, exc.message, exc)
    return api_error(500, ErrorCode.OPERATION_FAILED, f"Error inesperado durante {operation}", exc)


def validation_messages(exc: ValidationError) -> List[str]:
    """
    Aplana errores de pydantic en mensajes legibles.

    Example:
        ["nombre: El nombre es requerido", "phObjetivo: Input should be less than or equal to 14"]
    """
    messages: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
        msg = str(err.get("msg", "Valor inválido"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        messages.append(f"{loc}: {msg}" if loc else msg)
    return messages


def log_and_continue(event: str, default: Any = None):
    """
    Decorator para pasos opcionales: registra el fallo como warning y retorna `default`.

    Solo para pasos cuyo fallo no debe cortar la operación principal
    (ej: preferencia de pago durante el registro).
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except (ServiceError, ValueError, KeyError) as exc:
                _logger.warning(event, func=func.__name__, error=str(exc), error_type=type(exc).__name__)
                return default
        return wrapper
    return decorator
