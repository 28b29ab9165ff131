"""
Ciclo de vida de la conexión MongoDB.

El cliente es un singleton de proceso con inicialización y cierre explícitos:

    init_database(settings)     # al arrancar (lifespan de FastAPI o scripts)
    db = get_database()         # en cada request (inicializa perezosamente si hace falta)
    close_database(reason=...)  # al apagar

Los tests inyectan un cliente en memoria:

    init_database(client=mongomock.MongoClient())

Colecciones:
    - usuarios, cultivos, tareas, notas, comentarios
"""

from __future__ import annotations

import re
import threading
from typing import Any, Optional

import structlog
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from bruce.error_handling import DatabaseError
from bruce.settings import AppSettings, load_settings

_logger = structlog.get_logger("bruce.database")

USUARIOS = "usuarios"
CULTIVOS = "cultivos"
TAREAS = "tareas"
NOTAS = "notas"
COMENTARIOS = "comentarios"

MAX_DATABASE_NAME_LENGTH = 38

_client: Optional[Any] = None
_database: Optional[Database] = None
_db_lock = threading.Lock()


def init_database(settings: Optional[AppSettings] = None, *, client: Optional[Any] = None) -> Database:
    """
    Inicializa el cliente MongoDB (thread-safe singleton).

    Args:
        settings: Configuración; si falta se carga desde el entorno
        client: Cliente ya construido (tests: mongomock.MongoClient())

    Raises:
        DatabaseError: Si la conexión o la creación de índices falla
    """
    global _client, _database

    with _db_lock:
        if client is None and _database is not None:
            return _database

        settings = settings or load_settings()
        db_name = settings.mongo.database
        try:
            if client is None:
                client = MongoClient(
                    settings.mongo.uri,
                    serverSelectionTimeoutMS=settings.mongo.timeout_ms,
                    appname="bruce-app",
                )
            elif _client is not None and _client is not client:
                _client.close()
            database = client[db_name]
            ensure_indexes(database)
        except PyMongoError as exc:
            _logger.error("database.init_failed", database=db_name, error=str(exc))
            raise DatabaseError("No se pudo conectar a MongoDB", {"database": db_name}) from exc

        _client = client
        _database = database
        _logger.info("database.initialized", database=db_name)
        return database


def get_database() -> Database:
    """Retorna la base de datos activa, inicializándola si hace falta."""
    if _database is not None:
        return _database
    return init_database()


def close_database(*, reason: str = "shutdown") -> None:
    """Cierra el cliente y limpia el singleton."""
    global _client, _database
    with _db_lock:
        if _client is None:
            return
        try:
            _client.close()
            _logger.info("database.closed", reason=reason)
        except PyMongoError as exc:
            _logger.error("database.close_failed", reason=reason, error=str(exc))
        finally:
            _client = None
            _database = None


def ping_database() -> bool:
    """Verifica conectividad; usado por el health check."""
    if _database is None:
        return False
    try:
        _database.command("ping")
        return True
    except PyMongoError as exc:
        _logger.warning("database.ping_failed", error=str(exc))
        return False


def ensure_indexes(db: Database) -> None:
    """Crea los índices usados por login, filtros multi-tenant y listados."""
    db[USUARIOS].create_index([("email", ASCENDING)], unique=True)
    db[USUARIOS].create_index([("creadoPor", ASCENDING), ("activo", ASCENDING)])
    db[USUARIOS].create_index([("role", ASCENDING)])

    db[CULTIVOS].create_index([("creadoPor", ASCENDING)])
    db[CULTIVOS].create_index([("activo", ASCENDING), ("fechaCreacion", DESCENDING)])

    db[TAREAS].create_index([("cultivoId", ASCENDING), ("fechaProgramada", ASCENDING)])
    db[TAREAS].create_index([("creadoPor", ASCENDING)])
    db[TAREAS].create_index([("estado", ASCENDING)])

    db[NOTAS].create_index([("creadoPor", ASCENDING)])
    db[NOTAS].create_index([("category", ASCENDING), ("date", DESCENDING)])

    db[COMENTARIOS].create_index([("cultivoId", ASCENDING), ("fecha", DESCENDING)])


def get_database_name(email: str) -> str:
    """
    Nombre de base de datos asociado a un admin.

    Example:
        >>> get_database_name("Juan.Perez@correo.com")
        'bruce_juan_perez'
    """
    local_part = (email or "").split("@", 1)[0].lower()
    normalized = re.sub(r"[^a-z0-9_]", "_", local_part)
    return f"bruce_{normalized}"[:MAX_DATABASE_NAME_LENGTH]
