from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

# Entorno de test antes de importar la app (rate limiter y logging se configuran al importar)
os.environ["APP_ENV"] = "test"
os.environ["JWT_SECRET"] = "test-secret-key-for-bruce-app-tests-0123456789"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ALLOW_FAKE_TOKENS"] = "false"
os.environ.setdefault("LOGS_DIR", tempfile.mkdtemp(prefix="bruce-logs-"))
os.environ.pop("CHAT_WEBHOOK_URL", None)
os.environ.pop("N8N_WEBHOOK_URL", None)

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).parent.parent))

import mongomock
import pytest
from fastapi.testclient import TestClient

from backend import auth_service
from backend.app import app
from backend.auth_service import create_access_token, create_user
from backend.dependencies import get_chat_proxy, get_media_uploader, get_payment_client
from bruce.chat_proxy import ChatProxy
from bruce.database import close_database, init_database
from bruce.error_handling import PaymentError
from bruce.media_upload import MediaUploader
from bruce.settings import ChatSettings, CloudinarySettings


ADMIN_EMAIL = "admin@bruce.app"
USER_EMAIL = "cultivador@bruce.app"
OTHER_ADMIN_EMAIL = "otro.admin@bruce.app"
PASSWORD = "secreto123"


class FakePayments:
    """Doble de MercadoPagoClient: registra llamadas y responde pagos configurables."""

    def __init__(self):
        self.settings = SimpleNamespace(base_url="http://localhost:3000")
        self.payments: Dict[str, Dict[str, Any]] = {}
        self.preferences: List[str] = []
        self.fail_preferences = False

    def create_subscription_preference(self, email, success_url, failure_url, pending_url):
        if self.fail_preferences:
            raise PaymentError("MercadoPago caído")
        self.preferences.append(email)
        return {
            "id": f"pref-{len(self.preferences)}",
            "init_point": f"https://mp.test/checkout/pref-{len(self.preferences)}",
            "external_reference": f"subscription_{email}_1700000000000",
        }

    def create_payment_link(self, email):
        pref = self.create_subscription_preference(email, "", "", "")
        return {
            "paymentUrl": pref["init_point"],
            "preferenceId": pref["id"],
            "externalReference": pref["external_reference"],
        }

    def check_payment_status(self, payment_id):
        info = self.payments.get(str(payment_id))
        if info is None:
            raise PaymentError("Pago no encontrado", {"payment_id": payment_id})
        return {"id": payment_id, **info}


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(auth_service, "BCRYPT_COST", 4)


@pytest.fixture
def db():
    close_database(reason="test")
    database = init_database(client=mongomock.MongoClient())
    yield database
    close_database(reason="test")


@pytest.fixture
def payments() -> FakePayments:
    return FakePayments()


@pytest.fixture
def client(db, payments):
    app.dependency_overrides[get_payment_client] = lambda: payments
    app.dependency_overrides[get_chat_proxy] = lambda: ChatProxy(ChatSettings(webhook_url=None))
    app.dependency_overrides[get_media_uploader] = lambda: MediaUploader(CloudinarySettings(None, None))
    yield TestClient(app)
    app.dependency_overrides.clear()


def headers_for(email: str, role: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(email, role)}"}


@pytest.fixture
def admin(db) -> Dict[str, Any]:
    user, error = create_user(db, ADMIN_EMAIL, PASSWORD, role="admin")
    assert error is None
    return user


@pytest.fixture
def usuario(db, admin) -> Dict[str, Any]:
    user, error = create_user(db, USER_EMAIL, PASSWORD, role="user", creado_por=ADMIN_EMAIL)
    assert error is None
    return user


@pytest.fixture
def otro_admin(db) -> Dict[str, Any]:
    user, error = create_user(db, OTHER_ADMIN_EMAIL, PASSWORD, role="admin")
    assert error is None
    return user


@pytest.fixture
def admin_headers(admin) -> Dict[str, str]:
    return headers_for(ADMIN_EMAIL, "admin")


@pytest.fixture
def user_headers(usuario) -> Dict[str, str]:
    return headers_for(USER_EMAIL, "user")


@pytest.fixture
def otro_admin_headers(otro_admin) -> Dict[str, str]:
    return headers_for(OTHER_ADMIN_EMAIL, "admin")


def crear_cultivo(client: TestClient, headers: Dict[str, str], **campos: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"nombre": "Indoor 1", "metrosCuadrados": 2, "numeroplantas": 4}
    payload.update(campos)
    resp = client.post("/api/cultivos", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def crear_tarea(
    client: TestClient,
    headers: Dict[str, str],
    cultivo_id: Optional[str] = "cultivo-1",
    **campos: Any,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "cultivoId": cultivo_id,
        "titulo": "Regar",
        "tipo": "riego",
        "fechaProgramada": "2099-01-10",
    }
    payload.update(campos)
    resp = client.post("/api/tareas", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()
