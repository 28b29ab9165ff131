"""
Subscription router - checkout y gestión de la suscripción mensual.

Rutas:
    POST /api/subscription/checkout → {success, paymentUrl, preferenceId}
    GET  /api/subscription/manage   → {success, subscription}
    POST /api/subscription/manage   → {action: cancel | check-payment, paymentId?}
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends
from pymongo.database import Database

from backend.auth import CurrentUser, get_current_user, get_db
from backend.dependencies import get_payment_client
from bruce.database import USUARIOS
from bruce.error_handling import ErrorCode, PaymentError, api_error, handle_service_error
from bruce.models.usuario import find_by_email
from bruce.payments import MercadoPagoClient
from bruce.subscription import (
    activate_subscription,
    cancel_subscription,
    email_from_external_reference,
    subscription_summary,
)

api_logger = structlog.get_logger("backend.api.subscription")

router = APIRouter(prefix="/api/subscription", tags=["Subscription"])


def _usuario_activo(db: Database, email: str) -> Dict[str, Any]:
    usuario = find_by_email(db, email, only_active=True)
    if not usuario:
        raise api_error(404, ErrorCode.NOT_FOUND, "Usuario no encontrado", log_level="info")
    return usuario


@router.post("/checkout")
def checkout(
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    payments: MercadoPagoClient = Depends(get_payment_client),
):
    """Genera el link de pago de la suscripción mensual."""
    usuario = _usuario_activo(db, user.email)
    if usuario.get("subscriptionStatus") == "active":
        raise api_error(400, ErrorCode.CONFLICT, "Ya tienes una suscripción activa", log_level="info")
    if usuario.get("exemptFromPayments"):
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Usuario exento del sistema de pagos", log_level="info")

    try:
        link = payments.create_payment_link(usuario["email"])
    except PaymentError as exc:
        raise handle_service_error(exc, "creación del pago")

    db[USUARIOS].update_one({"_id": usuario["_id"]}, {"$set": {"mercadopagoPreferenceId": link["preferenceId"]}})
    api_logger.info("subscription.checkout", email=usuario["email"], preference_id=link["preferenceId"])
    return {
        "success": True,
        "paymentUrl": link["paymentUrl"],
        "preferenceId": link["preferenceId"],
    }


@router.get("/manage")
def get_subscription(
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    usuario = _usuario_activo(db, user.email)
    subscription = subscription_summary(usuario)
    subscription["mercadopagoPreferenceId"] = usuario.get("mercadopagoPreferenceId")
    return {"success": True, "subscription": subscription}


@router.post("/manage")
def manage_subscription(
    payload: Optional[Dict[str, Any]] = Body(default=None),
    user: CurrentUser = Depends(get_current_user),
    db: Database = Depends(get_db),
    payments: MercadoPagoClient = Depends(get_payment_client),
):
    """
    Acciones sobre la suscripción.

    - cancel: estado `canceled` (el acceso sigue hasta el fin del período)
    - check-payment: consulta el pago y activa la suscripción si está aprobado
    """
    payload = payload or {}
    action = payload.get("action")
    usuario = _usuario_activo(db, user.email)

    if usuario.get("exemptFromPayments") and action != "check-payment":
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "Usuario exento del sistema de pagos", log_level="info")

    if action == "cancel":
        cancel_subscription(db, usuario["email"])
        return {
            "success": True,
            "message": "Suscripción cancelada exitosamente. Seguirás teniendo acceso hasta el final del período actual.",
        }

    if action == "check-payment":
        return _check_payment(db, payments, usuario, payload.get("paymentId"))

    raise api_error(400, ErrorCode.VALIDATION_ERROR, "Acción no válida", log_level="info")


def _check_payment(
    db: Database,
    payments: MercadoPagoClient,
    usuario: Dict[str, Any],
    payment_id: Any,
) -> Dict[str, Any]:
    if not payment_id:
        raise api_error(400, ErrorCode.VALIDATION_ERROR, "ID de pago requerido", log_level="info")

    try:
        info = payments.check_payment_status(payment_id)
    except PaymentError as exc:
        raise handle_service_error(exc, "verificación del pago")

    referencia = email_from_external_reference(info.get("external_reference"))
    if referencia and referencia != usuario["email"]:
        api_logger.warning("subscription.payment_mismatch", email=usuario["email"], payment_id=payment_id)
        raise api_error(403, ErrorCode.FORBIDDEN, "El pago no corresponde a este usuario", log_level="warning")

    aprobado = info.get("status") == "approved"
    if aprobado:
        activate_subscription(
            db,
            usuario["email"],
            payment_type=info.get("payment_type_id"),
            payment_id=payment_id,
        )

    return {
        "success": True,
        "payment": {
            "id": info.get("id"),
            "status": info.get("status"),
            "status_detail": info.get("status_detail"),
            "payment_method": info.get("payment_method_id"),
            "amount": info.get("transaction_amount"),
            "date_approved": info.get("date_approved"),
        },
        "subscriptionUpdated": aprobado,
    }
