"""
Reglas de suscripción de usuarios.

Estados: trial | active | past_due | canceled | unpaid

    hasActiveSubscription = exento OR active OR (trial AND trialEndDate > ahora)
    trialExpired          = NOT exento AND trial AND trialEndDate <= ahora

La activación (checkout manual o webhook de MercadoPago) fija el período en
SUBSCRIPTION_PERIOD_DAYS días desde el pago aprobado.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.database import Database

from bruce.database import USUARIOS
from bruce.models.base import iso_utc, to_datetime, utcnow
from bruce.models.usuario import PAYMENT_METHODS, normalize_email

_logger = structlog.get_logger("bruce.subscription")

SUBSCRIPTION_PERIOD_DAYS = 7


def _trial_end(usuario: Mapping[str, Any]) -> Optional[datetime]:
    try:
        return to_datetime(usuario.get("trialEndDate"))
    except ValueError:
        return None


def has_active_subscription(usuario: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    if usuario.get("exemptFromPayments"):
        return True
    status = usuario.get("subscriptionStatus", "trial")
    if status == "active":
        return True
    if status == "trial":
        trial_end = _trial_end(usuario)
        return trial_end is not None and trial_end > (now or utcnow())
    return False


def is_trial_expired(usuario: Mapping[str, Any], now: Optional[datetime] = None) -> bool:
    if usuario.get("exemptFromPayments"):
        return False
    if usuario.get("subscriptionStatus", "trial") != "trial":
        return False
    trial_end = _trial_end(usuario)
    return trial_end is not None and trial_end <= (now or utcnow())


def subscription_summary(usuario: Mapping[str, Any]) -> Dict[str, Any]:
    """Vista pública de la suscripción (GET /api/subscription/manage)."""
    return {
        "status": usuario.get("subscriptionStatus", "trial"),
        "hasActiveSubscription": has_active_subscription(usuario),
        "trialExpired": is_trial_expired(usuario),
        "exemptFromPayments": bool(usuario.get("exemptFromPayments", False)),
        "startDate": usuario.get("subscriptionStartDate"),
        "endDate": usuario.get("subscriptionEndDate"),
        "trialEndDate": usuario.get("trialEndDate"),
        "lastPaymentDate": usuario.get("lastPaymentDate"),
        "paymentMethod": usuario.get("paymentMethod"),
    }


def _payment_method(payment_type: Optional[str]) -> Optional[str]:
    return payment_type if payment_type in PAYMENT_METHODS else None


def activate_subscription(
    db: Database,
    email: str,
    *,
    payment_type: Optional[str] = None,
    payment_id: Optional[Any] = None,
) -> Optional[Dict[str, Any]]:
    """
    Marca la suscripción como activa tras un pago aprobado.

    Returns:
        Documento actualizado o None si el usuario no existe
    """
    now = utcnow()
    updates: Dict[str, Any] = {
        "subscriptionStatus": "active",
        "subscriptionStartDate": iso_utc(now),
        "subscriptionEndDate": iso_utc(now + timedelta(days=SUBSCRIPTION_PERIOD_DAYS)),
        "lastPaymentDate": iso_utc(now),
    }
    method = _payment_method(payment_type)
    if method:
        updates["paymentMethod"] = method

    usuario = db[USUARIOS].find_one_and_update(
        {"email": normalize_email(email)},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if usuario is None:
        _logger.warning("subscription.activate.user_missing", email=email, payment_id=payment_id)
        return None
    _logger.info("subscription.activated", email=email, payment_id=payment_id, method=method)
    return usuario


def cancel_subscription(db: Database, email: str) -> Optional[Dict[str, Any]]:
    usuario = db[USUARIOS].find_one_and_update(
        {"email": normalize_email(email)},
        {"$set": {"subscriptionStatus": "canceled"}},
        return_document=ReturnDocument.AFTER,
    )
    if usuario is not None:
        _logger.info("subscription.canceled", email=email)
    return usuario


def email_from_external_reference(reference: Any) -> Optional[str]:
    """
    Extrae el email de `subscription_<email>_<timestamp>`.

    Returns:
        Email normalizado o None si la referencia no corresponde a una suscripción
    """
    if not isinstance(reference, str) or not reference.startswith("subscription_"):
        return None
    body = reference[len("subscription_"):]
    email, sep, _ts = body.rpartition("_")
    if not sep:
        email = body
    email = normalize_email(email)
    return email or None
