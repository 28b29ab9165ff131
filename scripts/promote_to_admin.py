#!/usr/bin/env python3
"""
Promueve un usuario existente a administrador.

Uso:
    python scripts/promote_to_admin.py --email usuario@correo.com
    python scripts/promote_to_admin.py --email usuario@correo.com --detach

--detach quita `creadoPor`: el usuario deja de pertenecer al admin que lo creó
y pasa a ser dueño de su propio espacio.
"""

import argparse
import os
import sys
from typing import Any, Dict, Optional

# Agregar path del proyecto
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from pymongo import ReturnDocument
from pymongo.database import Database

from bruce.database import USUARIOS, close_database, init_database
from bruce.error_handling import DatabaseError
from bruce.models.usuario import normalize_email
from bruce.settings import load_settings


def promote_to_admin(db: Database, email: str, *, detach: bool = False) -> Optional[Dict[str, Any]]:
    """Retorna el documento actualizado o None si el usuario no existe."""
    update: Dict[str, Any] = {"$set": {"role": "admin"}}
    if detach:
        update["$unset"] = {"creadoPor": ""}
    return db[USUARIOS].find_one_and_update(
        {"email": normalize_email(email)},
        update,
        return_document=ReturnDocument.AFTER,
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Promover usuario a administrador")
    parser.add_argument("--email", required=True, help="Email del usuario")
    parser.add_argument("--detach", action="store_true", help="Quitar la asociación con el admin creador")
    args = parser.parse_args(argv)

    print("=" * 50)
    print("PROMOVER A ADMINISTRADOR")
    print("=" * 50)

    print("\n📡 Conectando a MongoDB...")
    try:
        db = init_database(load_settings())
    except DatabaseError as e:
        print(f"❌ Error de conexión: {e.message}")
        return 1

    try:
        user = promote_to_admin(db, args.email, detach=args.detach)
    finally:
        close_database(reason="script")

    if user is None:
        print(f"❌ Error: Usuario {args.email} no encontrado")
        return 1

    print(f"\n✅ {user['email']} ahora es admin")
    if user.get("creadoPor"):
        print(f"   Sigue asociado a: {user['creadoPor']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
