#!/usr/bin/env python3
"""
Script para crear el administrador inicial de Bruce App.

Uso:
    python scripts/seed_admin.py
    python scripts/seed_admin.py --email admin@bruce.app --password "admin123"
    python scripts/seed_admin.py --email admin@bruce.app --reset   # nueva password

Si ya existe un admin activo con ese email no se modifica (salvo --reset).
"""

import argparse
import getpass
import os
import sys
from typing import Any, Dict, Optional, Tuple

# Agregar path del proyecto
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from pymongo.database import Database

from backend.auth_service import create_user, hash_password
from bruce.database import USUARIOS, close_database, init_database
from bruce.error_handling import DatabaseError
from bruce.models.usuario import PASSWORD_MIN_LENGTH, find_by_email, is_valid_email, normalize_email
from bruce.settings import load_settings

DEFAULT_EMAIL = "admin@bruce.app"


def seed_admin(
    db: Database,
    email: str,
    password: str,
    *,
    reset: bool = False,
    exempt: bool = False,
) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Crea (o resetea) el admin inicial.

    Returns:
        Tuple (resultado, documento) con resultado: created | reset | exists | error:<mensaje>
    """
    email = normalize_email(email)
    existing = find_by_email(db, email)

    if existing and not reset:
        return "exists", existing

    if existing:
        updates: Dict[str, Any] = {"password": hash_password(password), "role": "admin", "activo": True}
        if exempt:
            updates["exemptFromPayments"] = True
        db[USUARIOS].update_one({"_id": existing["_id"]}, {"$set": updates})
        return "reset", find_by_email(db, email)

    user, error = create_user(db, email, password, role="admin")
    if error or user is None:
        return f"error:{error}", None
    if exempt:
        db[USUARIOS].update_one({"_id": user["_id"]}, {"$set": {"exemptFromPayments": True}})
        user["exemptFromPayments"] = True
    return "created", user


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Crear administrador inicial de Bruce App")
    parser.add_argument("--email", default=DEFAULT_EMAIL, help="Email del administrador")
    parser.add_argument("--password", help="Password (si no se especifica, se pide interactivo)")
    parser.add_argument("--reset", action="store_true", help="Resetear password si el usuario ya existe")
    parser.add_argument("--exempt", action="store_true", help="Marcar como exento del sistema de pagos")
    args = parser.parse_args(argv)

    print("=" * 50)
    print("CREAR ADMINISTRADOR INICIAL")
    print("=" * 50)

    if not is_valid_email(args.email):
        print(f"❌ Error: Email inválido: {args.email}")
        return 1

    password = args.password
    if not password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirmar password: "):
            print("❌ Error: Los passwords no coinciden")
            return 1
    if len(password) < PASSWORD_MIN_LENGTH:
        print(f"❌ Error: La password debe tener al menos {PASSWORD_MIN_LENGTH} caracteres")
        return 1

    print("\n📡 Conectando a MongoDB...")
    try:
        db = init_database(load_settings())
    except DatabaseError as e:
        print(f"❌ Error de conexión: {e.message}")
        return 1

    try:
        print("🔐 Generando hash de password...")
        result, user = seed_admin(db, args.email, password, reset=args.reset, exempt=args.exempt)
    finally:
        close_database(reason="script")

    if result == "exists":
        print(f"⚠️  Usuario {user['email']} ya existe (rol: {user.get('role')}). Use --reset para cambiar la password.")
        return 0
    if result.startswith("error:"):
        print(f"❌ Error: {result[len('error:'):]}")
        return 1

    print("\n" + "=" * 50)
    print("✅ ADMINISTRADOR CREADO" if result == "created" else "✅ PASSWORD RESETEADA")
    print("=" * 50)
    print(f"   Email: {user['email']}")
    print(f"   Rol: {user['role']}")
    print(f"   Suscripción: {user.get('subscriptionStatus')}")
    print(f"   Exento de pagos: {user.get('exemptFromPayments', False)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
