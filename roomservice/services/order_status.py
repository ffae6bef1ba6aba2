from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from roomservice.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from roomservice.models.order import Order, OrderStatus
from roomservice.models.room import Room
from roomservice.services.orders import get_order
from roomservice.services.realtime import RealtimeNotifier, order_status_event, publish

logger = logging.getLogger(__name__)

# REJECTED é terminal: não pode ser faturado.
BILLABLE_STATUSES = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.ACCEPTED,
        OrderStatus.IN_PREP,
        OrderStatus.READY,
        OrderStatus.DELIVERED,
    }
)

_ALLOWED_SOURCES: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.ACCEPTED: frozenset({OrderStatus.PENDING}),
    OrderStatus.REJECTED: frozenset({OrderStatus.PENDING}),
    OrderStatus.IN_PREP: frozenset({OrderStatus.ACCEPTED}),
    OrderStatus.READY: frozenset({OrderStatus.IN_PREP}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.READY}),
    OrderStatus.BILLED: BILLABLE_STATUSES,
}


def _coerce_status(value: OrderStatus | str) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    normalized = (value or "").strip().upper()
    try:
        return OrderStatus(normalized)
    except ValueError:
        raise ValidationError(f"Status inválido: {value}") from None


def allowed_sources(target: OrderStatus | str) -> frozenset[OrderStatus]:
    return _ALLOWED_SOURCES.get(_coerce_status(target), frozenset())


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    return _coerce_status(current) in allowed_sources(target)


def transition_order(
    db: Session,
    order_id: str,
    target: OrderStatus | str,
    *,
    notifier: RealtimeNotifier | None,
    reason: str | None = None,
) -> Order:
    target = _coerce_status(target)
    order = get_order(db, order_id)
    current = _coerce_status(order.status)

    if target == OrderStatus.BILLED and current == OrderStatus.BILLED:
        return order

    clean_reason = None
    if target == OrderStatus.REJECTED:
        clean_reason = (reason or "").strip()
        if not clean_reason:
            raise ValidationError("Motivo da recusa é obrigatório")

    sources = allowed_sources(target)
    if current not in sources:
        raise InvalidTransitionError(current.value, target.value)

    values = {Order.status: target.value, Order.updated_at: datetime.now(timezone.utc)}
    if clean_reason:
        values[Order.rejection_reason] = clean_reason

    updated = (
        db.query(Order)
        .filter(Order.id == order.id, Order.status.in_([source.value for source in sources]))
        .update(values, synchronize_session=False)
    )
    db.commit()
    db.refresh(order)

    if not updated:
        # Outro ator mudou o pedido entre a leitura e o UPDATE.
        if target == OrderStatus.BILLED and order.status == OrderStatus.BILLED.value:
            return order
        raise InvalidTransitionError(order.status, target.value)

    logger.info(
        "Order status %s -> %s",
        current.value,
        target.value,
        extra={"order_id": order.id},
    )
    publish(notifier, order.room_id, order_status_event(order.id, target.value, clean_reason))
    return order


def accept_order(db: Session, order_id: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.ACCEPTED, notifier=notifier)


def reject_order(db: Session, order_id: str, reason: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.REJECTED, notifier=notifier, reason=reason)


def start_preparing(db: Session, order_id: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.IN_PREP, notifier=notifier)


def mark_ready(db: Session, order_id: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.READY, notifier=notifier)


def mark_delivered(db: Session, order_id: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.DELIVERED, notifier=notifier)


def mark_billed(db: Session, order_id: str, *, notifier: RealtimeNotifier | None) -> Order:
    return transition_order(db, order_id, OrderStatus.BILLED, notifier=notifier)


def bill_room(db: Session, room_id: str, *, notifier: RealtimeNotifier | None) -> list[str]:
    """Fatura de uma vez todos os pedidos faturáveis do quarto.

    Retorna os ids efetivamente faturados; pedidos alterados por outro ator
    no meio do caminho ficam de fora.
    """
    room = db.query(Room).filter(Room.id == room_id).first()
    if room is None:
        raise NotFoundError("Quarto não encontrado")

    billable = [status.value for status in BILLABLE_STATUSES]
    candidate_ids = [
        row.id
        for row in db.query(Order.id)
        .filter(Order.room_id == room_id, Order.status.in_(billable))
        .all()
    ]
    if not candidate_ids:
        return []

    now = datetime.now(timezone.utc)
    billed: list[str] = []
    try:
        for order_id in candidate_ids:
            updated = (
                db.query(Order)
                .filter(Order.id == order_id, Order.status.in_(billable))
                .update(
                    {Order.status: OrderStatus.BILLED.value, Order.updated_at: now},
                    synchronize_session=False,
                )
            )
            if updated:
                billed.append(order_id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Room %s billed: %s orders", room_id, len(billed))
    for order_id in billed:
        publish(notifier, room_id, order_status_event(order_id, OrderStatus.BILLED.value))
    return billed
