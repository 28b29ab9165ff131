"""
Webhooks router - notificaciones de MercadoPago.

POST /api/webhooks/mercadopago
    Siempre responde 200 {received: true}; MercadoPago reintenta ante
    cualquier otro status. Solo actúa sobre notificaciones `type=payment`
    cuyo pago está aprobado y tiene referencia `subscription_<email>_<ts>`.
"""

import json
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from backend.auth import get_db
from backend.dependencies import get_payment_client
from bruce.error_handling import PaymentError
from bruce.models.usuario import find_by_email
from bruce.payments import MercadoPagoClient
from bruce.subscription import activate_subscription, email_from_external_reference

api_logger = structlog.get_logger("backend.api.webhooks")

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])

RECEIVED = {"received": True}


def _payment_id(body: Dict[str, Any]) -> Optional[Any]:
    data = body.get("data")
    if isinstance(data, dict) and data.get("id"):
        return data["id"]
    return body.get("id")


def procesar_notificacion(db: Database, payments: MercadoPagoClient, body: Dict[str, Any]) -> Optional[str]:
    """
    Procesa una notificación de pago.

    Returns:
        Email del usuario activado o None si la notificación se ignora
    """
    if body.get("type") != "payment":
        return None
    payment_id = _payment_id(body)
    if not payment_id:
        return None

    info = payments.check_payment_status(payment_id)
    if info.get("status") != "approved":
        api_logger.info("webhook.mercadopago.ignored", payment_id=payment_id, status=info.get("status"))
        return None

    email = email_from_external_reference(info.get("external_reference"))
    if not email:
        api_logger.info("webhook.mercadopago.no_reference", payment_id=payment_id)
        return None
    if not find_by_email(db, email, only_active=True):
        api_logger.warning("webhook.mercadopago.user_missing", payment_id=payment_id, email=email)
        return None

    activate_subscription(db, email, payment_type=info.get("payment_type_id"), payment_id=payment_id)
    api_logger.info("webhook.mercadopago.activated", payment_id=payment_id, email=email)
    return email


@router.post("/mercadopago")
async def mercadopago_webhook(
    request: Request,
    db: Database = Depends(get_db),
    payments: MercadoPagoClient = Depends(get_payment_client),
):
    raw = await request.body()
    try:
        body = json.loads(raw or b"{}")
    except ValueError:
        api_logger.warning("webhook.mercadopago.invalid_body", size=len(raw))
        return RECEIVED
    if not isinstance(body, dict):
        return RECEIVED

    # Notificaciones IPN: ?type=payment&data.id=<id>
    params = request.query_params
    if not body.get("type") and params.get("type"):
        body["type"] = params["type"]
    if not _payment_id(body) and params.get("data.id"):
        body["data"] = {"id": params["data.id"]}

    try:
        await run_in_threadpool(procesar_notificacion, db, payments, body)
    except (PaymentError, PyMongoError) as exc:
        api_logger.error(
            "webhook.mercadopago.failed",
            error=str(exc),
            error_type=type(exc).__name__,
            type=body.get("type"),
        )
    except Exception:
        # MercadoPago reintenta ante cualquier respuesta distinta de 200
        api_logger.error("webhook.mercadopago.failed", exc_info=True, type=body.get("type"))
    return RECEIVED
