from __future__ import annotations

import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from roomservice.core.errors import NotFoundError, Unauthorized, ValidationError
from roomservice.gateway.base import map_provider_status, parse_provider_datetime
from roomservice.models.order import Order, PaymentStatus
from roomservice.services.realtime import (
    PAYMENT_CONFIRMED,
    PAYMENT_FAILED,
    RealtimeNotifier,
    payment_status_event,
    publish,
)

logger = logging.getLogger(__name__)

_EVENT_TYPE_BY_STATUS = {
    PaymentStatus.PAID: PAYMENT_CONFIRMED,
    PaymentStatus.EXPIRED: PAYMENT_FAILED,
    PaymentStatus.FAILED: PAYMENT_FAILED,
}


@dataclass
class ProviderCallback:
    external_id: str
    status: str
    invoice_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_channel: Optional[str] = None
    paid_at: Optional[datetime] = None


@dataclass
class ReconciliationResult:
    order_id: str
    room_id: str
    external_id: str
    payment_status: str
    previous_status: str
    changed: bool


def _coerce_payment_status(value: PaymentStatus | str) -> PaymentStatus:
    if isinstance(value, PaymentStatus):
        return value
    try:
        return PaymentStatus(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError(f"Status de pagamento inválido: {value}") from None


def verify_callback_token(received: str | None, expected: str | None) -> bool:
    """Token estático da conta no provedor, comparado por igualdade exata."""
    if not expected or not received:
        return False
    return hmac.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


def parse_callback(raw_payload: bytes | str | dict[str, Any]) -> ProviderCallback:
    if isinstance(raw_payload, (bytes, bytearray)):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError:
            raise ValidationError("Payload inválido") from None
    if isinstance(raw_payload, str):
        try:
            raw_payload = json.loads(raw_payload)
        except json.JSONDecodeError:
            raise ValidationError("Payload inválido") from None
    if not isinstance(raw_payload, dict):
        raise ValidationError("Payload inválido")

    external_id = str(raw_payload.get("external_id") or "").strip()
    status = str(raw_payload.get("status") or "").strip()
    if not external_id or not status:
        raise ValidationError("Payload sem external_id ou status")

    return ProviderCallback(
        external_id=external_id,
        status=status,
        invoice_id=raw_payload.get("id"),
        payment_method=raw_payload.get("payment_method"),
        payment_channel=raw_payload.get("payment_channel"),
        paid_at=parse_provider_datetime(raw_payload.get("paid_at")),
    )


def apply_payment_status(
    db: Session,
    order: Order,
    new_status: PaymentStatus | str,
    *,
    notifier: RealtimeNotifier | None,
    invoice_id: str | None = None,
    payment_method: str | None = None,
    payment_channel: str | None = None,
    paid_at: datetime | None = None,
) -> ReconciliationResult:
    """Escrita idempotente do status de pagamento.

    PAID nunca regride e reentregas com o mesmo status não fazem nada. A
    condição fica no próprio UPDATE, então webhooks concorrentes não se
    atropelam.
    """
    status = _coerce_payment_status(new_status)

    previous = order.payment_status
    now = datetime.now(timezone.utc)
    values: dict[Any, Any] = {Order.payment_status: status.value, Order.updated_at: now}
    if status == PaymentStatus.PAID:
        values[Order.paid_at] = paid_at or now
    if payment_method:
        values[Order.payment_method] = payment_method
    if payment_channel:
        values[Order.payment_channel] = payment_channel
    if invoice_id and not order.payment_invoice_id:
        values[Order.payment_invoice_id] = invoice_id

    updated = (
        db.query(Order)
        .filter(
            Order.id == order.id,
            Order.payment_status != PaymentStatus.PAID.value,
            Order.payment_status != status.value,
        )
        .update(values, synchronize_session=False)
    )
    db.commit()
    db.refresh(order)

    changed = bool(updated)
    if changed:
        logger.info(
            "Payment status %s -> %s",
            previous,
            status.value,
            extra={"order_id": order.id, "external_id": order.external_id, "payment_status": status.value},
        )
        event_type = _EVENT_TYPE_BY_STATUS.get(status)
        if event_type:
            publish(notifier, order.room_id, payment_status_event(order.id, status.value, event_type))
    else:
        logger.info(
            "Payment status update ignored (current=%s, requested=%s)",
            order.payment_status,
            status.value,
            extra={"order_id": order.id, "external_id": order.external_id},
        )

    return ReconciliationResult(
        order_id=order.id,
        room_id=order.room_id,
        external_id=order.external_id,
        payment_status=order.payment_status,
        previous_status=previous,
        changed=changed,
    )


def handle_provider_callback(
    db: Session,
    raw_payload: bytes | str | dict[str, Any],
    callback_token: str | None,
    *,
    expected_token: str | None,
    notifier: RealtimeNotifier | None,
) -> ReconciliationResult:
    if not verify_callback_token(callback_token, expected_token):
        logger.warning("Webhook rejected: invalid callback token")
        raise Unauthorized("Token inválido")

    callback = parse_callback(raw_payload)

    order = db.query(Order).filter(Order.external_id == callback.external_id).first()
    if order is None:
        logger.warning("Webhook for unknown order", extra={"external_id": callback.external_id})
        raise NotFoundError("Pedido não encontrado")

    logger.info(
        "Webhook received",
        extra={
            "order_id": order.id,
            "external_id": callback.external_id,
            "invoice_id": callback.invoice_id,
            "provider_status": callback.status,
        },
    )

    return apply_payment_status(
        db,
        order,
        map_provider_status(callback.status),
        notifier=notifier,
        invoice_id=callback.invoice_id,
        payment_method=callback.payment_method,
        payment_channel=callback.payment_channel,
        paid_at=callback.paid_at,
    )
