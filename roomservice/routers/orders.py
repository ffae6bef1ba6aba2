import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from roomservice.core.database import get_db
from roomservice.core.errors import LifecycleError, NotFoundError, UpstreamError
from roomservice.core.request_context import set_request_context
from roomservice.deps import get_gateway, get_guest_id, to_http_exception
from roomservice.gateway.base import PaymentGateway
from roomservice.models.order import Order
from roomservice.schemas.order import OrderCreate, intent_to_dict, order_to_dict
from roomservice.services.orders import create_order, get_order, list_guest_orders, resolve_room
from roomservice.services.payment_intents import begin_payment_intent

router = APIRouter(prefix="/api", tags=["orders"])
logger = logging.getLogger(__name__)


def _guest_order(db: Session, order_id: str, guest_id: str) -> Order:
    try:
        order = get_order(db, order_id)
    except NotFoundError as exc:
        raise to_http_exception(exc) from exc
    if order.guest_id != guest_id:
        # Não revela a existência de pedidos de outros hóspedes.
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    return order


@router.post("/rooms/{room_code}/orders", status_code=status.HTTP_201_CREATED)
def submit_order(
    room_code: str,
    payload: OrderCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    guest_id: str = Depends(get_guest_id),
):
    try:
        room = resolve_room(db, room_code)
        set_request_context(room_id=room.id)
        order = create_order(
            db,
            room_id=room.id,
            guest_id=guest_id,
            items=payload.items,
            note=payload.note,
            guest_phone=payload.guest_phone,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc

    try:
        intent = begin_payment_intent(db, order, gateway)
    except UpstreamError as exc:
        # O pedido fica salvo; o hóspede pode tentar o pagamento de novo.
        logger.warning("Payment intent failed after order creation", extra={"order_id": order.id})
        return {"order": order_to_dict(order), "payment": None, "payment_error": exc.message}
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc

    return {"order": order_to_dict(order), "payment": intent_to_dict(intent)}


@router.get("/rooms/{room_code}/orders")
def list_room_orders(
    room_code: str,
    db: Session = Depends(get_db),
    guest_id: str = Depends(get_guest_id),
):
    try:
        room = resolve_room(db, room_code)
    except NotFoundError as exc:
        raise to_http_exception(exc) from exc
    return {
        "room": {"id": room.id, "label": room.label, "number": room.number},
        "orders": [order_to_dict(order) for order in list_guest_orders(db, guest_id, room.id)],
    }


@router.get("/orders/{order_id}")
def read_order(
    order_id: str,
    db: Session = Depends(get_db),
    guest_id: str = Depends(get_guest_id),
):
    return order_to_dict(_guest_order(db, order_id, guest_id))


@router.post("/orders/{order_id}/payment-intent")
def start_payment(
    order_id: str,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_gateway),
    guest_id: str = Depends(get_guest_id),
):
    order = _guest_order(db, order_id, guest_id)
    try:
        intent = begin_payment_intent(db, order, gateway)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return {"order_id": order.id, "payment": intent_to_dict(intent)}
