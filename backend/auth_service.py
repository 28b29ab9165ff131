"""
Servicio de Autenticación.

Este módulo implementa la lógica de negocio para:
- Registro de usuarios (admins con trial) y altas hechas por un admin
- Login con bcrypt
- Generación y validación de JWT (payload {email, role, iat, exp})

Sesiones:
- Token de login/registro: 24 horas
- Cookie `auth-token` persistente: 7 días
- Passwords hasheados con bcrypt (cost=12)
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple

import bcrypt
import structlog
from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError
from fastapi import Response
from pydantic import ValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from bruce.database import USUARIOS
from bruce.models.usuario import (
    UsuarioCreate,
    build_usuario_document,
    find_by_email,
    normalize_email,
)
from bruce.settings import PRODUCTION_ENVS, is_production_env


# =============================================================================
# CONFIGURACIÓN
# =============================================================================

_logger = structlog.get_logger("backend.auth")


DEFAULT_DEV_SECRET = "bruce-app-development-secret-key-2024"


def _read_secret() -> Optional[str]:
    return os.getenv("JWT_SECRET") or os.getenv("JWT_SECRET_KEY")


def _get_jwt_secret(*, strict: bool = False) -> str:
    """
    Obtiene JWT secret con fail-fast en producción.

    En producción:
        - Requiere JWT_SECRET (o JWT_SECRET_KEY) configurado
        - Requiere mínimo 32 caracteres
        - Falla al firmar si no cumple (strict=True)

    En desarrollo:
        - Usa default inseguro si no está configurado
        - Log warning para recordar configurar
    """
    secret = _read_secret()

    app_env = os.getenv("APP_ENV", "development").strip().lower()

    if app_env in PRODUCTION_ENVS:
        if not secret:
            message = (
                "JWT_SECRET es requerido en producción. "
                "Configure la variable de entorno antes de iniciar."
            )
            if strict:
                raise RuntimeError(message)
            _logger.error("auth.jwt_secret_missing", message=message, env=app_env)
            return ""
        if len(secret) < 32:
            message = (
                "JWT_SECRET debe tener al menos 32 caracteres en producción "
                f"(actual: {len(secret)}). Use un secret más seguro."
            )
            if strict:
                raise RuntimeError(message)
            _logger.error("auth.jwt_secret_short", message=message, env=app_env)
            return secret
        return secret

    # Desarrollo/test
    if not secret:
        _logger.warning(
            "auth.jwt_default_secret",
            message="Usando JWT secret por defecto. NO usar en producción.",
            env=app_env,
        )
        return DEFAULT_DEV_SECRET

    return secret


ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = 24
COOKIE_MAX_AGE_SECONDS = 7 * 24 * 60 * 60
AUTH_COOKIE_NAME = "auth-token"
BCRYPT_COST = 12

# Mensajes de verify-token
TOKEN_EXPIRED = "Token expirado"
TOKEN_MALFORMED = "Token malformado"
TOKEN_INVALID = "Token inválido o expirado"


# =============================================================================
# FUNCIONES DE HASHING
# =============================================================================

def hash_password(password: str) -> str:
    """Genera hash bcrypt del password (cost=12)."""
    salt = bcrypt.gensalt(rounds=BCRYPT_COST)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifica password contra hash; hashes corruptos cuentan como no coincidentes."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        _logger.warning("auth.invalid_password_hash")
        return False


# =============================================================================
# FUNCIONES JWT
# =============================================================================

def create_access_token(
    email: str,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Crea JWT con payload {email, role, iat, exp}."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS))

    payload = {
        "email": email,
        "role": role,
        "iat": now,
        "exp": expire,
    }

    secret = _get_jwt_secret(strict=True)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Decodifica y valida un token.

    Returns:
        Tuple (payload, error)
        Si válido: (payload, None)
        Si no: (None, "Token expirado" | "Token malformado" | "Token inválido o expirado")
    """
    if not token or not token.strip():
        return None, TOKEN_INVALID
    if len(token.split(".")) != 3:
        return None, TOKEN_MALFORMED

    secret = _get_jwt_secret(strict=False)
    if not secret:
        return None, TOKEN_INVALID
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        return None, TOKEN_EXPIRED
    except JWTError:
        return None, TOKEN_INVALID

    if not payload.get("email") or payload.get("role") not in ("admin", "user"):
        return None, TOKEN_INVALID
    return payload, None


# =============================================================================
# SERVICIO DE AUTENTICACIÓN
# =============================================================================

def create_user(
    db: Database,
    email: str,
    password: str,
    role: str = "user",
    creado_por: Optional[str] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Crea un usuario validado con password hasheado.

    Returns:
        Tuple (user_doc, error_message)
        error "duplicate" si el email ya existe; otro texto si la validación falla
    """
    try:
        data = UsuarioCreate.model_validate({
            "email": email,
            "password": password,
            "role": role,
            "creadoPor": creado_por,
        })
    except ValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        return None, str(first.get("msg", "Datos inválidos")).replace("Value error, ", "")

    if find_by_email(db, data.email):
        return None, "duplicate"

    doc = build_usuario_document(
        data.email,
        hash_password(data.password),
        role=data.role,
        creado_por=data.creadoPor,
    )
    try:
        result = db[USUARIOS].insert_one(doc)
    except DuplicateKeyError:
        return None, "duplicate"
    doc["_id"] = result.inserted_id
    _logger.info("auth.user_created", email=data.email, role=data.role, creado_por=data.creadoPor)
    return doc, None


def authenticate_user(
    db: Database,
    email: str,
    password: str,
) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Autentica usuario activo con email y password.

    Returns:
        Tuple (user_doc, error_message)
    """
    user = find_by_email(db, normalize_email(email), only_active=True)
    if not user:
        return None, "Credenciales inválidas"
    if not verify_password(password, user.get("password", "")):
        return None, "Credenciales inválidas"
    return user, None


# =============================================================================
# COOKIE DE SESIÓN
# =============================================================================

def set_auth_cookie(response: Response, token: str) -> None:
    """Cookie httpOnly de 7 días; `secure` solo en producción."""
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=COOKIE_MAX_AGE_SECONDS,
        httponly=True,
        secure=is_production_env(),
        samesite="lax",
        path="/",
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=AUTH_COOKIE_NAME,
        httponly=True,
        secure=is_production_env(),
        samesite="lax",
        path="/",
    )
