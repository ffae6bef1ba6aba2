#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from roomservice.core.database import SessionLocal  # noqa: E402
from roomservice.services.rooms import deactivate_room_code, upsert_room  # noqa: E402
from roomservice.services.sessions import create_admin_session  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Quartos, códigos QR e sessões de staff.")
    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add-room", help="Cria/atualiza um quarto e seu código")
    add.add_argument("--number", required=True, help="Número do quarto")
    add.add_argument("--label", help="Nome exibido")
    add.add_argument("--code", help="Código do QR (gerado se omitido)")

    off = sub.add_parser("deactivate-code", help="Desativa um código de quarto")
    off.add_argument("--code", required=True)

    token = sub.add_parser("admin-token", help="Emite um token de sessão de staff")
    token.add_argument("--user-id", required=True)
    token.add_argument("--role", default="admin")
    return parser.parse_args()


def main() -> int:
    args = parse_args()

    if args.command == "admin-token":
        print(create_admin_session({"user_id": args.user_id, "role": args.role}))
        return 0

    db = SessionLocal()
    try:
        if args.command == "add-room":
            room, room_code, created = upsert_room(db, number=args.number, label=args.label, code=args.code)
            action = "created" if created else "updated"
            print(f"Room {action}: id={room.id} number={room.number} code={room_code.code}")
            return 0

        if not deactivate_room_code(db, args.code):
            print(f"Código não encontrado: {args.code}")
            return 1
        print(f"Código desativado: {args.code}")
        return 0
    except ValueError as exc:
        print(str(exc))
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
