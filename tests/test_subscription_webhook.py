"""Tests de suscripción: reglas de estado, checkout, gestión, cliente MercadoPago y webhook."""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from bruce.database import USUARIOS
from bruce.error_handling import PaymentError
from bruce.models.base import iso_utc, to_datetime
from bruce.payments import MONTHLY_SUBSCRIPTION_PRICE, MercadoPagoClient
from bruce.settings import load_settings
from bruce.subscription import (
    SUBSCRIPTION_PERIOD_DAYS,
    email_from_external_reference,
    has_active_subscription,
    is_trial_expired,
)
from conftest import ADMIN_EMAIL, USER_EMAIL

AHORA = datetime(2025, 6, 1, 12, 0, 0)


class TestReglas:
    def test_trial_vigente(self):
        usuario = {"subscriptionStatus": "trial", "trialEndDate": iso_utc(AHORA + timedelta(days=1))}
        assert has_active_subscription(usuario, now=AHORA)
        assert not is_trial_expired(usuario, now=AHORA)

    def test_trial_vencido(self):
        usuario = {"subscriptionStatus": "trial", "trialEndDate": iso_utc(AHORA - timedelta(seconds=1))}
        assert not has_active_subscription(usuario, now=AHORA)
        assert is_trial_expired(usuario, now=AHORA)

    def test_exento_siempre_activo(self):
        usuario = {"subscriptionStatus": "unpaid", "exemptFromPayments": True}
        assert has_active_subscription(usuario, now=AHORA)
        assert not is_trial_expired(usuario, now=AHORA)

    @pytest.mark.parametrize("estado", ["past_due", "canceled", "unpaid"])
    def test_estados_sin_acceso(self, estado):
        assert not has_active_subscription({"subscriptionStatus": estado}, now=AHORA)

    @pytest.mark.parametrize(
        "referencia,email",
        [
            ("subscription_ana@correo.com_1700000000000", "ana@correo.com"),
            ("subscription_ana_maria@correo.com_1700000000000", "ana_maria@correo.com"),
            ("subscription_Ana@Correo.com", "ana@correo.com"),
            ("otra_cosa_1", None),
            (None, None),
            (12345, None),
            ({"email": "ana@correo.com"}, None),
        ],
    )
    def test_referencia_externa(self, referencia, email):
        assert email_from_external_reference(referencia) == email


class TestMercadoPagoClient:
    def _client(self, handler, monkeypatch, token="TEST-token"):
        if token:
            monkeypatch.setenv("MERCADOPAGO_ACCESS_TOKEN", token)
        else:
            monkeypatch.delenv("MERCADOPAGO_ACCESS_TOKEN", raising=False)
        monkeypatch.setenv("BASE_URL", "https://bruce.test")
        return MercadoPagoClient(load_settings(), transport=httpx.MockTransport(handler))

    def test_preferencia(self, monkeypatch):
        recibido = {}

        def handler(request: httpx.Request) -> httpx.Response:
            recibido["path"] = request.url.path
            recibido["auth"] = request.headers["authorization"]
            recibido["body"] = json.loads(request.content)
            return httpx.Response(201, json={
                "id": "pref-123",
                "init_point": "https://mp/checkout/pref-123",
                "external_reference": recibido["body"]["external_reference"],
            })

        link = self._client(handler, monkeypatch).create_payment_link("ana@correo.com")
        body = recibido["body"]
        assert recibido["path"] == "/checkout/preferences"
        assert recibido["auth"] == "Bearer TEST-token"
        assert body["items"][0]["unit_price"] == MONTHLY_SUBSCRIPTION_PRICE
        assert body["items"][0]["currency_id"] == "USD"
        assert body["notification_url"] == "https://bruce.test/api/webhooks/mercadopago"
        assert body["back_urls"]["success"] == "https://bruce.test/login?status=success"
        assert email_from_external_reference(body["external_reference"]) == "ana@correo.com"
        assert link["paymentUrl"] == "https://mp/checkout/pref-123"
        assert link["preferenceId"] == "pref-123"

    def test_consulta_de_pago(self, monkeypatch):
        def handler(request):
            assert request.url.path == "/v1/payments/987"
            return httpx.Response(200, json={"id": 987, "status": "approved", "payment_type_id": "credit_card"})

        info = self._client(handler, monkeypatch).check_payment_status(987)
        assert info["status"] == "approved"
        assert info["payment_type_id"] == "credit_card"
        assert info["external_reference"] is None

    def test_errores(self, monkeypatch):
        with pytest.raises(PaymentError):
            self._client(lambda r: httpx.Response(404, json={}), monkeypatch).get_payment(1)
        with pytest.raises(PaymentError):
            self._client(lambda r: httpx.Response(200), monkeypatch, token=None).get_payment(1)


class TestCheckoutYGestion:
    def test_checkout(self, client, db, admin_headers):
        resp = client.post("/api/subscription/checkout", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["paymentUrl"].startswith("https://mp.test/")
        assert db[USUARIOS].find_one({"email": ADMIN_EMAIL})["mercadopagoPreferenceId"] == "pref-1"

    def test_checkout_con_suscripcion_activa(self, client, db, admin_headers):
        db[USUARIOS].update_one({"email": ADMIN_EMAIL}, {"$set": {"subscriptionStatus": "active"}})
        resp = client.post("/api/subscription/checkout", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Ya tienes una suscripción activa"

    def test_checkout_exento(self, client, db, admin_headers):
        db[USUARIOS].update_one({"email": ADMIN_EMAIL}, {"$set": {"exemptFromPayments": True}})
        resp = client.post("/api/subscription/checkout", headers=admin_headers)
        assert resp.status_code == 400

    def test_usuario_inexistente(self, client):
        from conftest import headers_for
        resp = client.get("/api/subscription/manage", headers=headers_for("fantasma@correo.com", "admin"))
        assert resp.status_code == 404

    def test_resumen(self, client, admin_headers):
        resp = client.get("/api/subscription/manage", headers=admin_headers)
        sub = resp.json()["subscription"]
        assert sub["status"] == "trial"
        assert sub["hasActiveSubscription"] is True
        assert sub["trialExpired"] is False
        assert sub["exemptFromPayments"] is False

    def test_cancelar(self, client, db, admin_headers):
        resp = client.post("/api/subscription/manage", json={"action": "cancel"}, headers=admin_headers)
        assert resp.status_code == 200
        assert db[USUARIOS].find_one({"email": ADMIN_EMAIL})["subscriptionStatus"] == "canceled"

    def test_accion_invalida(self, client, admin_headers):
        resp = client.post("/api/subscription/manage", json={"action": "reembolsar"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Acción no válida"

    def test_check_payment_aprobado_activa(self, client, db, payments, admin_headers):
        payments.payments["555"] = {
            "status": "approved",
            "payment_type_id": "debit_card",
            "external_reference": f"subscription_{ADMIN_EMAIL}_1700000000000",
        }
        resp = client.post(
            "/api/subscription/manage",
            json={"action": "check-payment", "paymentId": "555"},
            headers=admin_headers,
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["subscriptionUpdated"] is True
        assert body["payment"]["status"] == "approved"

        doc = db[USUARIOS].find_one({"email": ADMIN_EMAIL})
        assert doc["subscriptionStatus"] == "active"
        assert doc["paymentMethod"] == "debit_card"
        periodo = to_datetime(doc["subscriptionEndDate"]) - to_datetime(doc["subscriptionStartDate"])
        assert periodo == timedelta(days=SUBSCRIPTION_PERIOD_DAYS)

    def test_check_payment_de_otro_usuario(self, client, db, payments, admin_headers):
        payments.payments["556"] = {
            "status": "approved",
            "external_reference": "subscription_otro@correo.com_1700000000000",
        }
        resp = client.post(
            "/api/subscription/manage",
            json={"action": "check-payment", "paymentId": "556"},
            headers=admin_headers,
        )
        assert resp.status_code == 403
        assert db[USUARIOS].find_one({"email": ADMIN_EMAIL})["subscriptionStatus"] == "trial"

    def test_check_payment_sin_id(self, client, admin_headers):
        resp = client.post("/api/subscription/manage", json={"action": "check-payment"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["error"] == "ID de pago requerido"

    def test_check_payment_error_de_mercadopago(self, client, admin_headers):
        resp = client.post(
            "/api/subscription/manage",
            json={"action": "check-payment", "paymentId": "no-existe"},
            headers=admin_headers,
        )
        assert resp.status_code == 502
        assert resp.json()["code"] == "PAYMENT_ERROR"


class TestWebhook:
    def _aprobar(self, payments, payment_id="777", email=USER_EMAIL):
        payments.payments[payment_id] = {
            "status": "approved",
            "payment_type_id": "credit_card",
            "external_reference": f"subscription_{email}_1700000000000",
        }

    def test_pago_aprobado_activa(self, client, db, payments, usuario):
        self._aprobar(payments)
        resp = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "777"}})
        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        doc = db[USUARIOS].find_one({"email": USER_EMAIL})
        assert doc["subscriptionStatus"] == "active"
        assert doc["paymentMethod"] == "credit_card"

    def test_notificacion_ipn_por_query(self, client, db, payments, usuario):
        self._aprobar(payments, "778")
        resp = client.post("/api/webhooks/mercadopago?type=payment&data.id=778")
        assert resp.status_code == 200
        assert db[USUARIOS].find_one({"email": USER_EMAIL})["subscriptionStatus"] == "active"

    def test_pago_pendiente_no_activa(self, client, db, payments, usuario):
        payments.payments["779"] = {
            "status": "pending",
            "external_reference": f"subscription_{USER_EMAIL}_1",
        }
        client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "779"}})
        assert db[USUARIOS].find_one({"email": USER_EMAIL})["subscriptionStatus"] == "trial"

    def test_usuario_inactivo_no_se_activa(self, client, db, payments, usuario):
        db[USUARIOS].update_one({"email": USER_EMAIL}, {"$set": {"activo": False}})
        self._aprobar(payments)
        client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "777"}})
        assert db[USUARIOS].find_one({"email": USER_EMAIL})["subscriptionStatus"] == "trial"

    @pytest.mark.parametrize(
        "contenido",
        [
            json.dumps({"type": "merchant_order", "data": {"id": "1"}}),
            json.dumps({"type": "payment", "data": {"id": "no-existe"}}),
            json.dumps({"type": "payment"}),
            "esto no es json",
            json.dumps([1, 2, 3]),
        ],
    )
    def test_siempre_responde_200(self, client, contenido):
        resp = client.post(
            "/api/webhooks/mercadopago",
            content=contenido,
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"received": True}

    def test_referencia_no_textual_responde_200(self, client, db, payments, usuario):
        payments.payments["900"] = {"status": "approved", "external_reference": 12345}
        resp = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "900"}})
        assert resp.status_code == 200
        assert resp.json() == {"received": True}
        assert db[USUARIOS].find_one({"email": USER_EMAIL})["subscriptionStatus"] == "trial"

    def test_error_inesperado_responde_200(self, client, payments, monkeypatch):
        def explotar(payment_id):
            raise RuntimeError("respuesta inesperada")

        monkeypatch.setattr(payments, "check_payment_status", explotar)
        resp = client.post("/api/webhooks/mercadopago", json={"type": "payment", "data": {"id": "901"}})
        assert resp.status_code == 200
        assert resp.json() == {"received": True}
