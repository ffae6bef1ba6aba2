from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from roomservice.core.errors import ValidationError
from roomservice.models.order import Order, OrderStatus
from roomservice.models.room import Room
from roomservice.services.order_status import BILLABLE_STATUSES


@dataclass
class RoomBillingSummary:
    room_id: str
    room_label: str
    room_number: str
    order_count: int = 0
    delivered_count: int = 0
    total_amount: int = 0


@dataclass
class BillingRow:
    order_id: str
    room_id: str
    room_label: str
    room_number: str
    guest_id: str
    status: str
    payment_status: str
    subtotal: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _room_sort_key(number: str) -> tuple[int, int, str]:
    text = (number or "").strip()
    if text.isdigit():
        return (0, int(text), text)
    return (1, 0, text)


def get_unbilled_summary(db: Session) -> list[RoomBillingSummary]:
    """Totais em aberto por quarto, recalculados a cada chamada."""
    rows = (
        db.query(Order.room_id, Order.status, Order.subtotal, Room.label, Room.number)
        .join(Room, Room.id == Order.room_id)
        .filter(Order.status.in_([status.value for status in BILLABLE_STATUSES]))
        .all()
    )

    summaries: dict[str, RoomBillingSummary] = {}
    for room_id, status, subtotal, label, number in rows:
        summary = summaries.get(room_id)
        if summary is None:
            summary = RoomBillingSummary(room_id=room_id, room_label=label, room_number=number)
            summaries[room_id] = summary
        summary.order_count += 1
        summary.total_amount += subtotal or 0
        if status == OrderStatus.DELIVERED.value:
            summary.delivered_count += 1

    return sorted(summaries.values(), key=lambda summary: _room_sort_key(summary.room_number))


def get_billing_rows(db: Session, status: str | None = None) -> list[BillingRow]:
    query = db.query(Order, Room).join(Room, Room.id == Order.room_id)
    if status:
        normalized = status.strip().upper()
        if normalized not in OrderStatus.__members__:
            raise ValidationError(f"Status inválido: {status}")
        query = query.filter(Order.status == normalized)

    return [
        BillingRow(
            order_id=order.id,
            room_id=room.id,
            room_label=room.label,
            room_number=room.number,
            guest_id=order.guest_id,
            status=order.status,
            payment_status=order.payment_status,
            subtotal=order.subtotal,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        for order, room in query.order_by(Order.created_at.desc()).all()
    ]
