"""
Auth router - login, logout, verificación de token y registro público.

Rutas:
    POST /api/login         → {success, token, user} + cookie auth-token
    POST /api/logout        → borra la cookie
    POST /api/verify-token  → {valid, user} o 401 {valid: false, error}
    POST /api/register      → admin nuevo con 7 días de trial
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse
from pymongo.database import Database

from backend.auth import get_db, resolve_token
from backend.auth_service import (
    AUTH_COOKIE_NAME,
    authenticate_user,
    clear_auth_cookie,
    create_access_token,
    create_user,
    set_auth_cookie,
)
from backend.dependencies import get_payment_client
from backend.rate_limit import LOGIN_LIMIT, limiter
from bruce.database import USUARIOS, get_database_name
from bruce.error_handling import ErrorCode, api_error, log_and_continue
from bruce.models.usuario import PASSWORD_MIN_LENGTH, TRIAL_DAYS, is_valid_email, normalize_email
from bruce.payments import MercadoPagoClient

api_logger = structlog.get_logger("backend.api.auth")

router = APIRouter(prefix="/api", tags=["Authentication"])


def _credenciales(payload: Optional[Dict[str, Any]]) -> tuple[str, str]:
    payload = payload or {}
    email = payload.get("email")
    password = payload.get("password")
    if not email or not password or not isinstance(email, str) or not isinstance(password, str):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Email y password son requeridos", log_level="info")
    if not is_valid_email(email):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Email inválido", log_level="info")
    return normalize_email(email), password


@router.post("/login")
@limiter.limit(LOGIN_LIMIT)
def api_login(
    request: Request,
    response: Response,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    db: Database = Depends(get_db),
):
    """Login con email y password; retorna JWT de 24h y fija la cookie de sesión."""
    email, password = _credenciales(payload)

    user, error = authenticate_user(db, email, password)
    if error or user is None:
        api_logger.info("auth.login.failed", email=email)
        raise api_error(401, ErrorCode.INVALID_CREDENTIALS, "Credenciales inválidas", log_level="info")

    token = create_access_token(user["email"], user.get("role", "user"))
    set_auth_cookie(response, token)

    api_logger.info("auth.login.success", email=user["email"], role=user.get("role"))
    return {
        "success": True,
        "token": token,
        "user": {"email": user["email"], "role": user.get("role", "user")},
    }


@router.post("/logout")
def api_logout(response: Response):
    clear_auth_cookie(response)
    return {"success": True, "message": "Sesión cerrada"}


@router.post("/verify-token")
def api_verify_token(
    request: Request,
    payload: Optional[Dict[str, Any]] = Body(default=None),
):
    """
    Verifica un token del body (`{token}`) o, si falta, el de la cookie.

    Respuestas:
        200 {valid: true, user: {email, role}}
        400 {valid: false, error: "Token es requerido"}
        401 {valid: false, error: "Token expirado" | "Token malformado" | ...}
    """
    token = (payload or {}).get("token") or request.cookies.get(AUTH_COOKIE_NAME)
    if not token:
        return JSONResponse(status_code=400, content={"valid": False, "error": "Token es requerido"})

    decoded, error = resolve_token(str(token))
    if decoded is None:
        api_logger.info("auth.verify_token.invalid", reason=error)
        return JSONResponse(status_code=401, content={"valid": False, "error": error})

    return {
        "valid": True,
        "user": {"email": decoded["email"], "role": decoded.get("role", "user")},
    }


@log_and_continue("auth.register.preference_failed")
def _crear_preferencia(client: MercadoPagoClient, email: str) -> Optional[Dict[str, Any]]:
    base_url = client.settings.base_url
    return client.create_subscription_preference(
        email,
        f"{base_url}/login?status=success",
        f"{base_url}/login?status=failure",
        f"{base_url}/login?status=pending",
    )


@router.post("/register")
def api_register(
    response: Response,
    payload: Optional[Dict[str, Any]] = Body(default=None),
    db: Database = Depends(get_db),
    payments: MercadoPagoClient = Depends(get_payment_client),
):
    """
    Registro público: crea un admin con trial de 7 días.

    Si MercadoPago está disponible se crea la preferencia de pago y se
    retorna su URL; si falla, el registro continúa sin ella.
    """
    email, password = _credenciales(payload)
    if len(password) < PASSWORD_MIN_LENGTH:
        raise api_error(
            400, ErrorCode.VALIDATION_ERROR,
            f"La contraseña debe tener al menos {PASSWORD_MIN_LENGTH} caracteres", log_level="info",
        )

    if db[USUARIOS].find_one({"email": email, "activo": True}):
        raise api_error(409, ErrorCode.CONFLICT, "Ya existe un usuario con este email", log_level="info")

    preference = _crear_preferencia(payments, email) or {}

    user, error = create_user(db, email, password, role="admin")
    if error == "duplicate":
        raise api_error(409, ErrorCode.CONFLICT, "Ya existe un usuario con este email", log_level="info")
    if error or user is None:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, error or "Datos inválidos", log_level="info")

    if preference.get("id"):
        db[USUARIOS].update_one({"_id": user["_id"]}, {"$set": {"mercadopagoPreferenceId": preference["id"]}})

    token = create_access_token(user["email"], user["role"])
    set_auth_cookie(response, token)

    db_name = get_database_name(user["email"])
    payment_url = preference.get("init_point")
    api_logger.info("auth.register.success", email=user["email"], database=db_name, payment=bool(payment_url))

    return {
        "success": True,
        "token": token,
        "user": {"email": user["email"], "role": user["role"]},
        "database": db_name,
        "requiresPayment": bool(payment_url),
        "paymentUrl": payment_url,
        "trialEndsAt": user["trialEndDate"],
        "message": (
            f"Cuenta creada exitosamente. Tienes {TRIAL_DAYS} días de prueba gratuita."
            if payment_url
            else f"Admin registrado exitosamente. Base de datos: {db_name}"
        ),
    }
