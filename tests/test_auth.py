"""Tests de autenticación: login, cookie de sesión, verify-token, registro y tokens legacy."""

import base64
from datetime import timedelta

from jose import jwt

from backend.auth_service import (
    AUTH_COOKIE_NAME,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from bruce.database import USUARIOS
from conftest import ADMIN_EMAIL, PASSWORD, USER_EMAIL


class TestPasswords:
    def test_hash_y_verificacion(self):
        hashed = hash_password("secreto123")
        assert hashed != "secreto123"
        assert verify_password("secreto123", hashed)
        assert not verify_password("otra", hashed)

    def test_hash_corrupto_no_coincide(self):
        assert verify_password("secreto123", "no-es-un-hash") is False
        assert verify_password("", "x") is False


class TestTokens:
    def test_payload_incluye_email_role_iat_exp(self):
        payload, error = decode_access_token(create_access_token(ADMIN_EMAIL, "admin"))
        assert error is None
        assert payload["email"] == ADMIN_EMAIL
        assert payload["role"] == "admin"
        assert payload["exp"] - payload["iat"] == 24 * 3600

    def test_token_expirado(self):
        token = create_access_token(ADMIN_EMAIL, "admin", expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) == (None, "Token expirado")

    def test_token_malformado(self):
        assert decode_access_token("abc.def") == (None, "Token malformado")

    def test_firma_ajena(self):
        token = jwt.encode({"email": ADMIN_EMAIL, "role": "admin"}, "otro-secreto", algorithm="HS256")
        assert decode_access_token(token) == (None, "Token inválido o expirado")

    def test_role_desconocido(self):
        token = create_access_token(ADMIN_EMAIL, "root")
        assert decode_access_token(token) == (None, "Token inválido o expirado")


class TestLogin:
    def test_login_exitoso_fija_cookie(self, client, admin):
        resp = client.post("/api/login", json={"email": "ADMIN@bruce.app ", "password": PASSWORD})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["user"] == {"email": ADMIN_EMAIL, "role": "admin"}
        assert resp.cookies.get(AUTH_COOKIE_NAME) == body["token"]

        set_cookie = resp.headers["set-cookie"].lower()
        assert "httponly" in set_cookie
        assert "max-age=604800" in set_cookie
        assert "samesite=lax" in set_cookie

    def test_password_incorrecta(self, client, admin):
        resp = client.post("/api/login", json={"email": ADMIN_EMAIL, "password": "incorrecta"})
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "code": "INVALID_CREDENTIALS", "error": "Credenciales inválidas"}

    def test_usuario_inactivo_no_inicia_sesion(self, client, db, usuario):
        db[USUARIOS].update_one({"email": USER_EMAIL}, {"$set": {"activo": False}})
        resp = client.post("/api/login", json={"email": USER_EMAIL, "password": PASSWORD})
        assert resp.status_code == 401

    def test_faltan_campos(self, client):
        resp = client.post("/api/login", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Email y password son requeridos"

    def test_email_invalido(self, client):
        resp = client.post("/api/login", json={"email": "no-es-email", "password": "x"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Email inválido"

    def test_body_no_objeto(self, client):
        resp = client.post("/api/login", json=["a", "b"])
        assert resp.status_code == 400
        assert resp.json()["error"] == "Datos inválidos"

    def test_logout_borra_cookie(self, client):
        resp = client.post("/api/logout")
        assert resp.status_code == 200
        set_cookie = resp.headers["set-cookie"].lower()
        assert set_cookie.startswith(AUTH_COOKIE_NAME)
        assert "max-age=0" in set_cookie


class TestVerifyToken:
    def test_token_en_body(self, client):
        token = create_access_token(USER_EMAIL, "user")
        resp = client.post("/api/verify-token", json={"token": token})
        assert resp.status_code == 200
        assert resp.json() == {"valid": True, "user": {"email": USER_EMAIL, "role": "user"}}

    def test_token_desde_cookie(self, client, admin):
        client.post("/api/login", json={"email": ADMIN_EMAIL, "password": PASSWORD})
        resp = client.post("/api/verify-token")
        assert resp.status_code == 200
        assert resp.json()["user"]["email"] == ADMIN_EMAIL

    def test_sin_token(self, client):
        resp = client.post("/api/verify-token", json={})
        assert resp.status_code == 400
        assert resp.json() == {"valid": False, "error": "Token es requerido"}

    def test_token_expirado(self, client):
        token = create_access_token(USER_EMAIL, "user", expires_delta=timedelta(seconds=-5))
        resp = client.post("/api/verify-token", json={"token": token})
        assert resp.status_code == 401
        assert resp.json() == {"valid": False, "error": "Token expirado"}


class TestRutasProtegidas:
    def test_sin_token_401(self, client):
        resp = client.get("/api/cultivos")
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "No autorizado"}
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_cookie_autentica(self, client, admin):
        client.cookies.set(AUTH_COOKIE_NAME, create_access_token(ADMIN_EMAIL, "admin"))
        resp = client.get("/api/cultivos")
        assert resp.status_code == 200


class TestFakeTokens:
    def _fake(self, email):
        return "fake-" + base64.b64encode(email.encode()).decode()

    def test_rechazados_por_defecto(self, client):
        resp = client.get("/api/cultivos", headers={"Authorization": f"Bearer {self._fake(ADMIN_EMAIL)}"})
        assert resp.status_code == 401

    def test_aceptados_con_flag_fuera_de_produccion(self, client, monkeypatch):
        monkeypatch.setenv("ALLOW_FAKE_TOKENS", "true")
        resp = client.post("/api/verify-token", json={"token": self._fake(ADMIN_EMAIL)})
        assert resp.json() == {"valid": True, "user": {"email": ADMIN_EMAIL, "role": "admin"}}

        resp = client.post("/api/verify-token", json={"token": self._fake("alguien@correo.com")})
        assert resp.json()["user"]["role"] == "user"

    def test_rechazados_en_produccion(self, client, monkeypatch):
        monkeypatch.setenv("ALLOW_FAKE_TOKENS", "true")
        monkeypatch.setenv("APP_ENV", "production")
        resp = client.get("/api/cultivos", headers={"Authorization": f"Bearer {self._fake(ADMIN_EMAIL)}"})
        assert resp.status_code == 401


class TestRegister:
    def test_registro_crea_admin_con_trial(self, client, db, payments):
        resp = client.post("/api/register", json={"email": "Nuevo.Admin@correo.com", "password": "abcdef"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["user"] == {"email": "nuevo.admin@correo.com", "role": "admin"}
        assert body["database"] == "bruce_nuevo_admin"
        assert body["requiresPayment"] is True
        assert body["paymentUrl"].startswith("https://mp.test/")
        assert body["trialEndsAt"].endswith("Z")
        assert resp.cookies.get(AUTH_COOKIE_NAME) == body["token"]

        doc = db[USUARIOS].find_one({"email": "nuevo.admin@correo.com"})
        assert doc["subscriptionStatus"] == "trial"
        assert doc["mercadopagoPreferenceId"] == "pref-1"
        assert doc["password"] != "abcdef"
        assert "creadoPor" not in doc

    def test_registro_continua_si_falla_mercadopago(self, client, payments):
        payments.fail_preferences = True
        resp = client.post("/api/register", json={"email": "sinpago@correo.com", "password": "abcdef"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["requiresPayment"] is False
        assert body["paymentUrl"] is None
        assert "Base de datos: bruce_sinpago" in body["message"]

    def test_email_duplicado(self, client, admin):
        resp = client.post("/api/register", json={"email": ADMIN_EMAIL, "password": "abcdef"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "Ya existe un usuario con este email"

    def test_password_corta(self, client):
        resp = client.post("/api/register", json={"email": "corta@correo.com", "password": "abc"})
        assert resp.status_code == 400
        assert "6 caracteres" in resp.json()["error"]
