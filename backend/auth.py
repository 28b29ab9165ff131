"""
Autenticación y autorización para la API REST.

Flujo de autenticación:
    1. Cliente envía Authorization: Bearer <token> o la cookie `auth-token`
    2. get_current_user() valida el JWT (payload {email, role, iat, exp})
    3. Si es válido, retorna CurrentUser y fija el contexto de la petición
    4. Si no es válido, retorna 401 "No autorizado"

Tokens legacy `fake-<base64 email>`:
    Solo se aceptan con ALLOW_FAKE_TOKENS=true fuera de producción.

Dependencias FastAPI:
    - get_db: Base de datos MongoDB activa
    - get_current_user: Usuario autenticado (401 si falta)
    - get_optional_user: Usuario autenticado o None
    - require_role: Factory que exige uno de los roles indicados

Example:
    @router.get("/api/protegido")
    def protegido(user: CurrentUser = Depends(get_current_user)):
        return {"email": user.email}
"""

import base64
import binascii
import os
from typing import Optional, Dict, Any, List, Tuple

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from pymongo.database import Database

from backend.auth_service import AUTH_COOKIE_NAME, decode_access_token
from bruce.database import get_database
from bruce.models.usuario import is_valid_email, normalize_email
from bruce.settings import is_production_env
from bruce.tenant_context import set_current_user_context

_logger = structlog.get_logger("backend.auth")

FAKE_TOKEN_PREFIX = "fake-"
FAKE_ADMIN_EMAIL = "admin@bruce.app"

# Esquema OAuth2 para extraer token del header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/login", auto_error=False)


# =============================================================================
# MODELOS PYDANTIC
# =============================================================================

class CurrentUser(BaseModel):
    """
    Usuario autenticado.

    Attributes:
        email: Email del usuario (sujeto del token)
        role: admin | user
    """
    email: str
    role: str = "user"


# =============================================================================
# FUNCIONES DE AUTENTICACIÓN
# =============================================================================

def get_db() -> Database:
    return get_database()


def _fake_tokens_allowed() -> bool:
    flag = os.getenv("ALLOW_FAKE_TOKENS", "false").strip().lower() in {"1", "true", "yes", "on"}
    return flag and not is_production_env()


def decode_fake_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decodifica un token legacy `fake-<base64 email>`.

    Returns:
        Payload {email, role} o None si no está habilitado o no es válido
    """
    if not token.startswith(FAKE_TOKEN_PREFIX) or not _fake_tokens_allowed():
        return None
    encoded = token[len(FAKE_TOKEN_PREFIX):]
    try:
        email = base64.b64decode(encoded + "=" * (-len(encoded) % 4), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    email = normalize_email(email)
    if not is_valid_email(email):
        return None
    _logger.warning("auth.fake_token_used", email=email)
    return {"email": email, "role": "admin" if email == FAKE_ADMIN_EMAIL else "user"}


def token_from_request(request: Request, bearer: Optional[str]) -> Optional[str]:
    """Bearer primero, luego la cookie de sesión."""
    if bearer:
        return bearer
    return request.cookies.get(AUTH_COOKIE_NAME)


def resolve_token(token: Optional[str]) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Valida un token (JWT o legacy).

    Returns:
        Tuple (payload, error)
    """
    if not token:
        return None, "Token no proporcionado"
    fake = decode_fake_token(token)
    if fake:
        return fake, None
    return decode_access_token(token)


def _unauthorized(message: str = "No autorizado") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> CurrentUser:
    """
    Dependencia principal de autenticación.

    Raises:
        HTTPException 401: Si no hay token o no es válido
    """
    payload, error = resolve_token(token_from_request(request, token))
    if payload is None:
        _logger.info("auth.rejected", reason=error, path=request.url.path)
        raise _unauthorized()

    user = CurrentUser(email=payload["email"], role=payload.get("role", "user"))
    set_current_user_context(user.email, user.role)
    return user


def get_optional_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[CurrentUser]:
    """Igual que get_current_user pero retorna None en vez de 401."""
    payload, _error = resolve_token(token_from_request(request, token))
    if payload is None:
        return None
    user = CurrentUser(email=payload["email"], role=payload.get("role", "user"))
    set_current_user_context(user.email, user.role)
    return user


def require_role(allowed_roles: List[str]):
    """
    Factory de dependencia que verifica que el usuario tiene uno de los roles permitidos.

    Example:
        @router.get("/api/usuarios")
        def list_users(user: CurrentUser = Depends(require_role(["admin"]))):
            ...
    """
    allowed_set = {str(r).strip().lower() for r in allowed_roles if str(r).strip()}

    def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role.strip().lower() not in allowed_set:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Acceso denegado. Se requiere uno de estos roles: {', '.join(allowed_roles)}",
            )
        return user

    return role_checker
