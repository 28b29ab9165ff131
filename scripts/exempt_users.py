#!/usr/bin/env python3
"""
Gestión de usuarios exentos del sistema de pagos.

Uso:
    python scripts/exempt_users.py --list
    python scripts/exempt_users.py --email a@correo.com --email b@correo.com
    python scripts/exempt_users.py --email a@correo.com --remove
    python scripts/exempt_users.py --all          # todos los usuarios activos

Un usuario exento tiene acceso completo sin suscripción activa.
"""

import argparse
import os
import sys
from typing import Any, Dict, Iterable, List

# Agregar path del proyecto
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from pymongo.database import Database

from bruce.database import USUARIOS, close_database, init_database
from bruce.error_handling import DatabaseError
from bruce.models.usuario import normalize_email
from bruce.settings import load_settings


def set_exempt(db: Database, emails: Iterable[str], exempt: bool = True) -> Dict[str, List[str]]:
    """
    Marca o desmarca `exemptFromPayments`.

    Returns:
        {"updated": [...], "missing": [...]}
    """
    result: Dict[str, List[str]] = {"updated": [], "missing": []}
    for raw in emails:
        email = normalize_email(raw)
        update = db[USUARIOS].update_one({"email": email}, {"$set": {"exemptFromPayments": exempt}})
        if update.matched_count:
            result["updated"].append(email)
        else:
            result["missing"].append(email)
    return result


def exempt_all(db: Database) -> int:
    update = db[USUARIOS].update_many({"activo": True}, {"$set": {"exemptFromPayments": True}})
    return update.modified_count


def list_exempt(db: Database) -> List[Dict[str, Any]]:
    cursor = db[USUARIOS].find(
        {"exemptFromPayments": True},
        {"email": 1, "role": 1, "activo": 1, "subscriptionStatus": 1},
    ).sort("email", 1)
    return list(cursor)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Usuarios exentos de pagos")
    parser.add_argument("--email", action="append", default=[], help="Email a marcar (repetible)")
    parser.add_argument("--remove", action="store_true", help="Quitar la exención en vez de otorgarla")
    parser.add_argument("--all", action="store_true", help="Eximir a todos los usuarios activos")
    parser.add_argument("--list", action="store_true", help="Listar usuarios exentos")
    args = parser.parse_args(argv)

    if not (args.email or args.all or args.list):
        parser.print_help()
        return 1

    print("=" * 50)
    print("USUARIOS EXENTOS DE PAGOS")
    print("=" * 50)

    print("\n📡 Conectando a MongoDB...")
    try:
        db = init_database(load_settings())
    except DatabaseError as e:
        print(f"❌ Error de conexión: {e.message}")
        return 1

    try:
        if args.all:
            count = exempt_all(db)
            print(f"✅ {count} usuarios marcados como exentos")

        if args.email:
            result = set_exempt(db, args.email, exempt=not args.remove)
            accion = "sin exención" if args.remove else "exento"
            for email in result["updated"]:
                print(f"✅ {email}: {accion}")
            for email in result["missing"]:
                print(f"⚠️  {email}: no encontrado")

        if args.list:
            usuarios = list_exempt(db)
            print(f"\n📊 Usuarios exentos: {len(usuarios)}")
            for u in usuarios:
                estado = "activo" if u.get("activo") else "inactivo"
                print(f"   - {u['email']} ({u.get('role', 'user')}, {estado})")
    finally:
        close_database(reason="script")
    return 0


if __name__ == "__main__":
    sys.exit(main())
