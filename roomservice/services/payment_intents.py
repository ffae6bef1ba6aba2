from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from sqlalchemy import and_, exists, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomservice.core.config import (
    INVOICE_DURATION_SECONDS,
    PAYMENT_DESCRIPTION,
    PAYMENT_HTTP_TIMEOUT_SECONDS,
    PAYMENT_METHODS,
)
from roomservice.core.database import SessionLocal
from roomservice.core.errors import ConflictError, InvalidTransitionError
from roomservice.gateway.base import Invoice, InvoiceLine, InvoiceRequest, PaymentGateway
from roomservice.models.order import Order, PaymentStatus
from roomservice.models.reconciliation_issue import PaymentReconciliationIssue

logger = logging.getLogger(__name__)

# Claims mais antigos que isto são considerados abandonados (processo caiu no meio da chamada).
CLAIM_STALE_AFTER = timedelta(seconds=max(120, int(PAYMENT_HTTP_TIMEOUT_SECONDS * 4)))


@dataclass
class PaymentIntent:
    order_id: str
    external_reference: str
    invoice_id: Optional[str]
    invoice_url: Optional[str]
    expires_at: Optional[datetime] = None
    payment_methods: list[str] = field(default_factory=list)
    degraded: bool = False


def generate_external_reference(now: datetime | None = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"order-{int(moment.timestamp() * 1000)}-{uuid.uuid4().hex[:8]}"


def ensure_unique_reference(db: Session, order: Order) -> None:
    clash = (
        db.query(Order.id)
        .filter(Order.external_id == order.external_id, Order.id != order.id)
        .first()
    )
    if clash is not None:
        logger.error(
            "External reference already used by another order",
            extra={"order_id": order.id, "external_id": order.external_id},
        )
        raise ConflictError("Referência de pagamento duplicada")


def _existing_intent(order: Order, methods: Sequence[str]) -> PaymentIntent:
    return PaymentIntent(
        order_id=order.id,
        external_reference=order.external_id,
        invoice_id=order.payment_invoice_id,
        invoice_url=order.payment_url,
        expires_at=order.payment_expires_at,
        payment_methods=list(methods),
    )


def _build_invoice_request(order: Order, methods: Sequence[str]) -> InvoiceRequest:
    return InvoiceRequest(
        external_id=order.external_id,
        amount=order.subtotal,
        currency=order.currency,
        payment_methods=list(methods),
        items=[
            InvoiceLine(name=item.menu_item_name, quantity=item.quantity, price=item.unit_price)
            for item in order.items
        ],
        customer_phone=order.guest_phone,
        description=PAYMENT_DESCRIPTION,
        duration_seconds=INVOICE_DURATION_SECONDS,
    )


def _open_issue_filter(order_id: str):
    return exists().where(
        PaymentReconciliationIssue.order_id == order_id,
        PaymentReconciliationIssue.resolved_at.is_(None),
        PaymentReconciliationIssue.invoice_id.isnot(None),
    )


def _open_issue(db: Session, order_id: str) -> Optional[PaymentReconciliationIssue]:
    return (
        db.query(PaymentReconciliationIssue)
        .filter(
            PaymentReconciliationIssue.order_id == order_id,
            PaymentReconciliationIssue.resolved_at.is_(None),
            PaymentReconciliationIssue.invoice_id.isnot(None),
        )
        .order_by(PaymentReconciliationIssue.created_at.desc())
        .first()
    )


def _claim_intent(db: Session, order_id: str, now: datetime) -> bool:
    # Um claim antigo só é abandonado se nenhuma fatura órfã estiver registrada.
    claimed = (
        db.query(Order)
        .filter(
            Order.id == order_id,
            Order.payment_invoice_id.is_(None),
            or_(
                Order.invoice_requested_at.is_(None),
                and_(
                    Order.invoice_requested_at < now - CLAIM_STALE_AFTER,
                    ~_open_issue_filter(order_id),
                ),
            ),
        )
        .update({Order.invoice_requested_at: now}, synchronize_session=False)
    )
    db.commit()
    return bool(claimed)


def _release_claim(db: Session, order_id: str) -> None:
    try:
        db.query(Order).filter(
            Order.id == order_id,
            Order.payment_invoice_id.is_(None),
        ).update({Order.invoice_requested_at: None}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to release payment intent claim", extra={"order_id": order_id})


def _persist_invoice_link(db: Session, order_id: str, invoice: Invoice) -> None:
    db.query(Order).filter(
        Order.id == order_id,
        Order.payment_invoice_id.is_(None),
    ).update(
        {
            Order.payment_invoice_id: invoice.invoice_id,
            Order.payment_url: invoice.invoice_url,
            Order.payment_expires_at: invoice.expires_at,
            Order.updated_at: datetime.now(timezone.utc),
        },
        synchronize_session=False,
    )
    db.commit()


def _flag_for_reconciliation(
    order: Order,
    invoice: Invoice,
    reason: str,
    session_factory: Callable[[], Session],
) -> None:
    session = session_factory()
    try:
        session.add(
            PaymentReconciliationIssue(
                order_id=order.id,
                external_id=order.external_id,
                invoice_id=invoice.invoice_id,
                invoice_url=invoice.invoice_url,
                reason=reason[:500],
            )
        )
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.critical(
            "Could not record reconciliation issue; invoice is orphaned",
            exc_info=True,
            extra={
                "order_id": order.id,
                "external_id": order.external_id,
                "invoice_id": invoice.invoice_id,
                "reconciliation_required": True,
            },
        )
    finally:
        session.close()


def _resume_from_issue(
    db: Session,
    order: Order,
    issue: PaymentReconciliationIssue,
    methods: Sequence[str],
) -> PaymentIntent:
    """Devolve a fatura órfã registrada e tenta gravar o vínculo de novo."""
    intent = PaymentIntent(
        order_id=order.id,
        external_reference=order.external_id,
        invoice_id=issue.invoice_id,
        invoice_url=issue.invoice_url,
        payment_methods=list(methods),
        degraded=True,
    )
    invoice = Invoice(
        invoice_id=issue.invoice_id,
        external_id=issue.external_id,
        status=PaymentStatus.PENDING.value,
        invoice_url=issue.invoice_url,
    )
    issue_id = issue.id

    try:
        _persist_invoice_link(db, order.id, invoice)
    except SQLAlchemyError:
        db.rollback()
        logger.warning(
            "Invoice link still missing; returning recorded invoice",
            exc_info=True,
            extra={"order_id": order.id, "invoice_id": issue.invoice_id, "reconciliation_required": True},
        )
        return intent

    try:
        db.query(PaymentReconciliationIssue).filter(
            PaymentReconciliationIssue.id == issue_id,
            PaymentReconciliationIssue.resolved_at.is_(None),
        ).update({PaymentReconciliationIssue.resolved_at: datetime.now(timezone.utc)}, synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to close reconciliation issue", extra={"order_id": order.id})

    db.refresh(order)
    if order.payment_invoice_id != invoice.invoice_id:
        # Outro vínculo venceu a corrida; o registrado no pedido prevalece.
        return _existing_intent(order, methods)
    logger.info(
        "Invoice link restored from reconciliation issue",
        extra={"order_id": order.id, "invoice_id": invoice.invoice_id},
    )
    intent.degraded = False
    return intent


def begin_payment_intent(
    db: Session,
    order: Order,
    gateway: PaymentGateway,
    payment_methods: Sequence[str] | None = None,
    session_factory: Callable[[], Session] = SessionLocal,
) -> PaymentIntent:
    """Garante no máximo uma fatura viva por pedido.

    Pedido com fatura vinculada devolve a intenção existente sem chamar o
    gateway. Falha ao gravar o vínculo depois da fatura criada não bloqueia o
    hóspede: a intenção volta com ``degraded=True`` e o caso fica registrado
    para reconciliação. Enquanto esse registro estiver aberto, novas chamadas
    devolvem a mesma fatura em vez de criar outra.
    """
    methods = list(payment_methods or PAYMENT_METHODS)

    if order.payment_invoice_id:
        return _existing_intent(order, methods)

    if order.payment_status != PaymentStatus.PENDING.value:
        raise InvalidTransitionError(
            order.payment_status,
            "PAYMENT_INTENT",
            f"Pagamento já está {order.payment_status}",
        )

    issue = _open_issue(db, order.id)
    if issue is not None:
        return _resume_from_issue(db, order, issue, methods)

    ensure_unique_reference(db, order)

    if not _claim_intent(db, order.id, datetime.now(timezone.utc)):
        db.refresh(order)
        if order.payment_invoice_id:
            return _existing_intent(order, methods)
        issue = _open_issue(db, order.id)
        if issue is not None:
            return _resume_from_issue(db, order, issue, methods)
        raise ConflictError("Pagamento já está sendo iniciado para este pedido")

    try:
        invoice = gateway.create_invoice(_build_invoice_request(order, methods))
    except Exception:
        _release_claim(db, order.id)
        raise

    intent = PaymentIntent(
        order_id=order.id,
        external_reference=order.external_id,
        invoice_id=invoice.invoice_id,
        invoice_url=invoice.invoice_url,
        expires_at=invoice.expires_at,
        payment_methods=methods,
    )

    try:
        _persist_invoice_link(db, order.id, invoice)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Invoice created but linking it to the order failed",
            exc_info=True,
            extra={
                "order_id": order.id,
                "external_id": order.external_id,
                "invoice_id": invoice.invoice_id,
                "reconciliation_required": True,
            },
        )
        _flag_for_reconciliation(order, invoice, f"{type(exc).__name__}: {exc}", session_factory)
        intent.degraded = True
        return intent

    db.refresh(order)
    logger.info(
        "Payment intent created",
        extra={"order_id": order.id, "external_id": order.external_id, "invoice_id": invoice.invoice_id},
    )
    return intent
