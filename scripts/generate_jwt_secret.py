#!/usr/bin/env python3
"""
Genera un JWT_SECRET aleatorio para producción.

Uso:
    python scripts/generate_jwt_secret.py               # solo imprime
    python scripts/generate_jwt_secret.py --write .env  # guarda en el archivo
"""

import argparse
import secrets
import sys

from dotenv import set_key

MIN_BYTES = 32


def generate_secret(nbytes: int = 64) -> str:
    return secrets.token_hex(max(nbytes, MIN_BYTES))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Generar JWT_SECRET")
    parser.add_argument("--bytes", type=int, default=64, help="Bytes aleatorios (mínimo 32)")
    parser.add_argument("--write", metavar="ENV_FILE", help="Archivo .env donde guardar JWT_SECRET")
    args = parser.parse_args(argv)

    secret = generate_secret(args.bytes)

    print("=" * 50)
    print("JWT_SECRET GENERADO")
    print("=" * 50)
    print(f"\nJWT_SECRET={secret}\n")

    if args.write:
        set_key(args.write, "JWT_SECRET", secret)
        print(f"✅ Guardado en {args.write}")
    else:
        print("Copie la línea anterior en su .env o en las variables del servidor.")
    print("⚠️  Cambiar el secret invalida todas las sesiones activas.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
