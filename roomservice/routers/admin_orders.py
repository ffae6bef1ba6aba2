from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from roomservice.core.database import get_db
from roomservice.core.errors import LifecycleError
from roomservice.deps import get_notifier, require_admin, to_http_exception
from roomservice.schemas.order import PaymentStatusWrite, RejectRequest, StatusChangeRequest, order_to_dict
from roomservice.services.order_status import accept_order, bill_room, mark_billed, reject_order, transition_order
from roomservice.services.orders import get_order, list_orders
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.webhook_reconciler import apply_payment_status

router = APIRouter(prefix="/api/admin", tags=["admin-orders"], dependencies=[Depends(require_admin)])


@router.get("/orders")
def admin_list_orders(
    status: Optional[str] = None,
    room_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        orders = list_orders(db, status=status, room_id=room_id)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return [order_to_dict(order) for order in orders]


@router.post("/orders/{order_id}/accept")
def admin_accept_order(
    order_id: str,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    try:
        order = accept_order(db, order_id, notifier=notifier)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/reject")
def admin_reject_order(
    order_id: str,
    payload: RejectRequest,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    try:
        order = reject_order(db, order_id, payload.reason, notifier=notifier)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/status")
def admin_change_status(
    order_id: str,
    payload: StatusChangeRequest,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    try:
        order = transition_order(db, order_id, payload.status, notifier=notifier, reason=payload.reason)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/bill")
def admin_bill_order(
    order_id: str,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    try:
        order = mark_billed(db, order_id, notifier=notifier)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return order_to_dict(order)


@router.post("/orders/{order_id}/payment")
def admin_write_payment_status(
    order_id: str,
    payload: PaymentStatusWrite,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    """Baixa manual (ex.: pagamento no balcão), mesma regra idempotente do webhook."""
    try:
        order = get_order(db, order_id)
        result = apply_payment_status(
            db,
            order,
            payload.status,
            notifier=notifier,
            payment_method=payload.payment_method,
        )
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return {"order": order_to_dict(order), "changed": result.changed}


@router.post("/rooms/{room_id}/bill")
def admin_bill_room(
    room_id: str,
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    try:
        billed = bill_room(db, room_id, notifier=notifier)
    except LifecycleError as exc:
        raise to_http_exception(exc) from exc
    return {"room_id": room_id, "billed_order_ids": billed, "count": len(billed)}
