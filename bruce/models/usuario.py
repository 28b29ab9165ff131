"""
Modelo de usuarios del sistema.

Reglas:
    - email único, normalizado (minúsculas, sin espacios)
    - password mínimo 6 caracteres (se almacena hash bcrypt, nunca se serializa)
    - role: admin | user
    - creadoPor: email del admin que creó al usuario (vacío para admins registrados)
    - Suscripción: trial de 7 días al registrarse; exemptFromPayments omite el cobro
"""

from __future__ import annotations

import re
from datetime import timedelta
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pymongo.database import Database

from bruce.database import USUARIOS
from bruce.models.base import iso_utc, serialize_document, today_str, utcnow

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_MIN_LENGTH = 6
TRIAL_DAYS = 7

ROLES = ("admin", "user")
SUBSCRIPTION_STATUSES = ("trial", "active", "past_due", "canceled", "unpaid")
PAYMENT_METHODS = ("credit_card", "debit_card", "ticket", "bank_transfer", "account_money")

# Nunca expuestos en respuestas JSON
HIDDEN_FIELDS = ("password",)


def normalize_email(value: Any) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Any) -> bool:
    return bool(EMAIL_PATTERN.match(normalize_email(value)))


class UsuarioCreate(BaseModel):
    """Payload para crear usuarios (registro o alta por admin)."""
    model_config = ConfigDict(extra="ignore")

    email: str
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    role: Literal["admin", "user"] = "user"
    creadoPor: Optional[str] = None

    @field_validator("email", "creadoPor", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> Any:
        return normalize_email(v) if v is not None else v

    @field_validator("email")
    @classmethod
    def _check_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("El email no es válido")
        return v

    @field_validator("creadoPor")
    @classmethod
    def _check_creador(cls, v: Optional[str]) -> Optional[str]:
        if v and not EMAIL_PATTERN.match(v):
            raise ValueError("El email del creador no es válido")
        return v or None


def build_usuario_document(
    email: str,
    password_hash: str,
    role: str = "user",
    creado_por: Optional[str] = None,
    *,
    trial_days: int = TRIAL_DAYS,
) -> Dict[str, Any]:
    """Documento inicial de usuario con los defaults de suscripción."""
    doc: Dict[str, Any] = {
        "email": normalize_email(email),
        "password": password_hash,
        "role": role,
        "fechaCreacion": today_str(),
        "activo": True,
        "subscriptionStatus": "trial",
        "trialEndDate": iso_utc(utcnow() + timedelta(days=trial_days)),
        "exemptFromPayments": False,
    }
    if creado_por:
        doc["creadoPor"] = normalize_email(creado_por)
    return doc


def find_by_email(db: Database, email: str, *, only_active: bool = False) -> Optional[Dict[str, Any]]:
    query: Dict[str, Any] = {"email": normalize_email(email)}
    if only_active:
        query["activo"] = True
    return db[USUARIOS].find_one(query)


def get_stats(db: Database, base_filter: Optional[Mapping[str, Any]] = None) -> Dict[str, int]:
    """Estadísticas {total, activos, admins, users} dentro de `base_filter`."""
    base = dict(base_filter or {})
    coll = db[USUARIOS]
    return {
        "total": coll.count_documents(base),
        "activos": coll.count_documents({**base, "activo": True}),
        "admins": coll.count_documents({**base, "role": "admin"}),
        "users": coll.count_documents({**base, "role": "user"}),
    }


def usuario_to_json(doc: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    return serialize_document(doc, hidden=HIDDEN_FIELDS)
