"""
Integración con MercadoPago (API REST) para suscripciones.

Funcionalidades:
    - create_subscription_preference(): preferencia de checkout de la suscripción mensual
    - create_payment_link(): preferencia con back_urls por defecto (login?status=...)
    - get_payment() / check_payment_status(): consulta de pagos (webhook y verificación manual)

Referencia externa de las preferencias:
    subscription_<email>_<timestamp_ms>
    (el webhook la usa para identificar al usuario a activar)

Variables de entorno:
    - MERCADOPAGO_ACCESS_TOKEN (requerido)
    - BASE_URL (URLs de retorno y notification_url)
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx
import structlog

from bruce.error_handling import PaymentError
from bruce.settings import AppSettings, load_settings

_logger = structlog.get_logger("bruce.payments")

API_BASE_URL = "https://api.mercadopago.com"
PREFERENCES_PATH = "/checkout/preferences"
PAYMENTS_PATH = "/v1/payments/{payment_id}"

MONTHLY_SUBSCRIPTION_PRICE = 9.99  # USD
SUBSCRIPTION_TITLE = "Suscripción Mensual - Bruce App"
SUBSCRIPTION_DESCRIPTION = "Acceso completo a todas las funciones de Bruce App"
NOTIFICATION_PATH = "/api/webhooks/mercadopago"


class MercadoPagoClient:
    """
    Cliente HTTP de la API de MercadoPago.

    Cualquier status fuera de 2xx, timeout o error de red se traduce a PaymentError.
    `transport` permite inyectar httpx.MockTransport en tests.
    """

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        transport: Optional[httpx.BaseTransport] = None,
        timeout_seconds: float = 15.0,
    ):
        self.settings = settings or load_settings()
        self._transport = transport
        self._timeout = httpx.Timeout(timeout_seconds, connect=5.0)

    def _headers(self) -> Dict[str, str]:
        token = self.settings.mercadopago.access_token
        if not token:
            raise PaymentError("MERCADOPAGO_ACCESS_TOKEN no está configurada")
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Dict[str, Any]:
        headers = self._headers()
        try:
            with httpx.Client(
                base_url=API_BASE_URL,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            _logger.error("mercadopago.unreachable", operation=operation, error=str(exc))
            raise PaymentError(f"No se pudo contactar MercadoPago en {operation}") from exc

        if not 200 <= response.status_code < 300:
            _logger.error(
                "mercadopago.api_error",
                operation=operation,
                status=response.status_code,
                body=response.text[:500] if response.text else "",
            )
            raise PaymentError(
                f"MercadoPago respondió {response.status_code} en {operation}",
                {"status": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise PaymentError(f"Respuesta inválida de MercadoPago en {operation}") from exc

    def create_subscription_preference(
        self,
        email: str,
        success_url: str,
        failure_url: str,
        pending_url: str,
    ) -> Dict[str, Any]:
        """
        Crea la preferencia de pago de la suscripción mensual.

        Returns:
            Respuesta de la API (incluye id, init_point, external_reference)
        """
        base_url = self.settings.base_url
        preference = {
            "items": [
                {
                    "title": SUBSCRIPTION_TITLE,
                    "description": SUBSCRIPTION_DESCRIPTION,
                    "quantity": 1,
                    "currency_id": "USD",
                    "unit_price": MONTHLY_SUBSCRIPTION_PRICE,
                    "category_id": "services",
                }
            ],
            "payer": {"email": email},
            "back_urls": {
                "success": success_url,
                "failure": failure_url,
                "pending": pending_url,
            },
            "auto_return": "approved",
            "external_reference": f"subscription_{email}_{int(time.time() * 1000)}",
            "notification_url": f"{base_url}{NOTIFICATION_PATH}",
            "metadata": {
                "subscription_type": "monthly",
                "user_email": email,
            },
        }
        response = self._request("POST", PREFERENCES_PATH, "preference.create", json=preference)
        _logger.info("mercadopago.preference_created", email=email, preference_id=response.get("id"))
        return response

    def create_payment_link(self, email: str) -> Dict[str, Any]:
        """Preferencia con URLs de retorno por defecto hacia /login."""
        base_url = self.settings.base_url
        preference = self.create_subscription_preference(
            email,
            f"{base_url}/login?status=success",
            f"{base_url}/login?status=failure",
            f"{base_url}/login?status=pending",
        )
        return {
            "paymentUrl": preference.get("init_point"),
            "preferenceId": preference.get("id"),
            "externalReference": preference.get("external_reference"),
        }

    def get_payment(self, payment_id: Any) -> Dict[str, Any]:
        path = PAYMENTS_PATH.format(payment_id=payment_id)
        return self._request("GET", path, "payment.get")

    def check_payment_status(self, payment_id: Any) -> Dict[str, Any]:
        payment = self.get_payment(payment_id)
        return {
            "id": payment.get("id"),
            "status": payment.get("status"),
            "status_detail": payment.get("status_detail"),
            "payment_method_id": payment.get("payment_method_id"),
            "payment_type_id": payment.get("payment_type_id"),
            "transaction_amount": payment.get("transaction_amount"),
            "date_approved": payment.get("date_approved"),
            "date_created": payment.get("date_created"),
            "external_reference": payment.get("external_reference"),
        }
