"""
Logging estructurado de Bruce App (structlog sobre logging estándar).

Destinos:
    - Consola: ConsoleRenderer (coloreado solo si stdout es una TTY)
    - Archivo: JSONL en LOGS_DIR con rotación a medianoche

Variables de entorno (leídas al configurar, no al importar):
    - LOGS_DIR: directorio de logs (default: logs)
    - LOG_FILENAME: archivo JSONL (default: app.jsonl)
    - LOG_BACKUP_DAYS: días de retención (default: 30)

Los valores de claves sensibles (password, token, secret...) se reemplazan
por "[REDACTED]" antes de renderizar, en consola y en archivo.

Ejemplo de línea JSONL:
    {"event": "auth.login.success", "email": "a@b.com", "request_id": "...", "level": "info", ...}
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any, Dict, MutableMapping

import structlog

DEFAULT_LOGS_DIR = "logs"
DEFAULT_LOG_FILENAME = "app.jsonl"
DEFAULT_BACKUP_DAYS = 30

QUIET_LOGGERS = ("uvicorn.access", "pymongo", "httpcore", "httpx")

SENSITIVE_KEYS = frozenset({
    "password",
    "token",
    "access_token",
    "authorization",
    "jwt_secret",
    "secret",
    "cookie",
})
REDACTED = "[REDACTED]"


def redact_sensitive(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Processor structlog: oculta valores de claves sensibles (no recursivo)."""
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def log_file_path() -> Path:
    directory = Path(os.getenv("LOGS_DIR", DEFAULT_LOGS_DIR))
    return directory / os.getenv("LOG_FILENAME", DEFAULT_LOG_FILENAME)


def _file_handler(path: Path) -> logging.Handler:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.TimedRotatingFileHandler(
            filename=path,
            when="midnight",
            backupCount=int(os.getenv("LOG_BACKUP_DAYS", str(DEFAULT_BACKUP_DAYS))),
            encoding="utf-8",
        )
    except OSError:
        # Sistema de archivos de solo lectura (contenedores)
        return logging.StreamHandler(sys.stderr)


def _formatter(renderer: Any) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(log_level: str = "INFO") -> Dict[str, str]:
    """
    Configura structlog y el logger raíz.

    Es idempotente: reemplaza los handlers existentes (p.ej. los de uvicorn)
    en vez de acumularlos.

    Returns:
        {"level": ..., "file": ...} con la configuración aplicada
    """
    path = log_file_path()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(_formatter(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())))

    archivo = _file_handler(path)
    archivo.setFormatter(_formatter(structlog.processors.JSONRenderer(ensure_ascii=False)))

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(console)
    root.addHandler(archivo)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger("bruce.logging").info("logging.configured", level=log_level, file=str(path))
    return {"level": log_level, "file": str(path)}
