from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from roomservice.core.config import EXTERNAL_ID_MAX_ATTEMPTS, PAYMENT_CURRENCY
from roomservice.core.errors import ConflictError, NotFoundError, ValidationError
from roomservice.models.order import Order, OrderStatus, PaymentStatus
from roomservice.models.order_item import OrderItem
from roomservice.models.room import Room, RoomCode
from roomservice.services.payment_intents import generate_external_reference

logger = logging.getLogger(__name__)


@dataclass
class CartItem:
    menu_item_id: str
    menu_item_name: str
    unit_price: int
    quantity: int
    note: Optional[str] = None


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, dict):
        return raw.get(name)
    return getattr(raw, name, None)


def _as_int(value: Any, label: str, position: int) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"Item {position}: {label} inválido")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Item {position}: {label} inválido") from None


def normalize_cart(items: Iterable[Any] | None) -> list[CartItem]:
    """Valida o carrinho recebido (dicts, modelos pydantic ou CartItem)."""
    raw_items = list(items or [])
    if not raw_items:
        raise ValidationError("Pedido precisa de ao menos um item")

    cart: list[CartItem] = []
    for position, raw in enumerate(raw_items, start=1):
        menu_item_id = str(_field(raw, "menu_item_id") or "").strip()
        name = str(_field(raw, "menu_item_name") or "").strip()
        if not menu_item_id:
            raise ValidationError(f"Item {position}: menu_item_id obrigatório")
        if not name:
            raise ValidationError(f"Item {position}: nome obrigatório")

        quantity = _as_int(_field(raw, "quantity"), "quantidade", position)
        unit_price = _as_int(_field(raw, "unit_price"), "preço", position)
        if quantity <= 0:
            raise ValidationError(f"Item {position}: quantidade deve ser maior que zero")
        if unit_price < 0:
            raise ValidationError(f"Item {position}: preço não pode ser negativo")

        note = _field(raw, "note")
        cart.append(
            CartItem(
                menu_item_id=menu_item_id,
                menu_item_name=name,
                unit_price=unit_price,
                quantity=quantity,
                note=(str(note).strip() or None) if note is not None else None,
            )
        )
    return cart


def compute_subtotal(cart: Iterable[CartItem]) -> int:
    return sum(item.unit_price * item.quantity for item in cart)


def _is_external_id_violation(exc: IntegrityError) -> bool:
    return "external_id" in str(exc.orig).lower()


def resolve_room(db: Session, room_code: str) -> Room:
    code = (room_code or "").strip()
    if not code:
        raise NotFoundError("Quarto não encontrado")
    row = (
        db.query(RoomCode)
        .filter(RoomCode.code == code, RoomCode.is_active.is_(True))
        .first()
    )
    if row is None or row.room is None or not row.room.is_active:
        raise NotFoundError("Quarto não encontrado")
    return row.room


def create_order(
    db: Session,
    *,
    room_id: str,
    guest_id: str,
    items: Iterable[Any],
    note: str | None = None,
    guest_phone: str | None = None,
    currency: str = PAYMENT_CURRENCY,
    max_attempts: int = EXTERNAL_ID_MAX_ATTEMPTS,
    reference_factory: Callable[[], str] = generate_external_reference,
) -> Order:
    cart = normalize_cart(items)
    if not (guest_id or "").strip():
        raise ValidationError("Hóspede não identificado")

    room = db.query(Room).filter(Room.id == room_id).first()
    if room is None or not room.is_active:
        raise NotFoundError("Quarto não encontrado")

    subtotal = compute_subtotal(cart)
    clean_note = (note or "").strip() or None
    clean_phone = (guest_phone or "").strip() or None

    for attempt in range(1, max_attempts + 1):
        now = datetime.now(timezone.utc)
        external_id = reference_factory()
        order = Order(
            room_id=room.id,
            guest_id=guest_id,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            subtotal=subtotal,
            currency=currency,
            note=clean_note,
            guest_phone=clean_phone,
            external_id=external_id,
            created_at=now,
            updated_at=now,
        )
        order.items = [
            OrderItem(
                position=position,
                menu_item_id=item.menu_item_id,
                menu_item_name=item.menu_item_name,
                unit_price=item.unit_price,
                quantity=item.quantity,
                note=item.note,
                created_at=now,
            )
            for position, item in enumerate(cart)
        ]
        db.add(order)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not _is_external_id_violation(exc):
                raise
            logger.warning(
                "External reference collision (attempt %s/%s)",
                attempt,
                max_attempts,
                extra={"external_id": external_id},
            )
            continue
        except Exception:
            db.rollback()
            raise

        db.refresh(order)
        logger.info(
            "Order created room=%s items=%s subtotal=%s",
            room.id,
            len(cart),
            subtotal,
            extra={"order_id": order.id, "external_id": order.external_id},
        )
        return order

    raise ConflictError("Não foi possível gerar uma referência de pagamento única")


def get_order(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Pedido não encontrado")
    return order


def list_guest_orders(db: Session, guest_id: str, room_id: str) -> list[Order]:
    return (
        db.query(Order)
        .filter(Order.guest_id == guest_id, Order.room_id == room_id)
        .order_by(Order.created_at.desc())
        .all()
    )


def list_orders(
    db: Session,
    status: str | None = None,
    room_id: str | None = None,
    limit: int = 200,
) -> list[Order]:
    query = db.query(Order)
    if status:
        normalized = status.strip().upper()
        if normalized not in OrderStatus.__members__:
            raise ValidationError(f"Status inválido: {status}")
        query = query.filter(Order.status == normalized)
    if room_id:
        query = query.filter(Order.room_id == room_id)
    return query.order_by(Order.created_at.desc()).limit(limit).all()
