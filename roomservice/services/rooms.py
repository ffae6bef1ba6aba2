from __future__ import annotations

import logging
import secrets

from sqlalchemy.orm import Session

from roomservice.models.room import Room, RoomCode

logger = logging.getLogger(__name__)


def generate_room_code() -> str:
    return secrets.token_urlsafe(9)


def upsert_room(
    db: Session,
    *,
    number: str,
    label: str | None = None,
    code: str | None = None,
) -> tuple[Room, RoomCode, bool]:
    """Cria o quarto (ou reaproveita pelo número) e garante um código ativo."""
    number = (number or "").strip()
    if not number:
        raise ValueError("Número do quarto é obrigatório")

    room = db.query(Room).filter(Room.number == number).first()
    created = room is None
    if room is None:
        room = Room(number=number, label=(label or f"Room {number}").strip())
        db.add(room)
        db.flush()
    elif label:
        room.label = label.strip()

    code = (code or "").strip() or generate_room_code()
    room_code = db.query(RoomCode).filter(RoomCode.code == code).first()
    if room_code is not None and room_code.room_id != room.id:
        raise ValueError("Código já pertence a outro quarto")
    if room_code is None:
        room_code = RoomCode(room_id=room.id, code=code)
        db.add(room_code)
    room_code.is_active = True

    db.commit()
    db.refresh(room)
    logger.info("Room %s %s with code", number, "created" if created else "updated")
    return room, room_code, created


def deactivate_room_code(db: Session, code: str) -> bool:
    room_code = db.query(RoomCode).filter(RoomCode.code == code).first()
    if room_code is None:
        return False
    room_code.is_active = False
    db.commit()
    return True
