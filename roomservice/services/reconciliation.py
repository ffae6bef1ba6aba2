"""Sincronização ativa de pagamentos com o gateway.

Complementa o webhook: pedidos cujo callback se perdeu são consultados
diretamente no provedor, e vínculos de fatura que falharam ao gravar são
reaplicados a partir dos registros de reconciliação.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from roomservice.core.errors import UpstreamError
from roomservice.gateway.base import PaymentGateway
from roomservice.models.order import Order, PaymentStatus
from roomservice.models.reconciliation_issue import PaymentReconciliationIssue
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.webhook_reconciler import ReconciliationResult, apply_payment_status

logger = logging.getLogger(__name__)


def reconcile_pending_payments(
    db: Session,
    gateway: PaymentGateway,
    notifier: RealtimeNotifier | None,
    limit: int = 100,
) -> list[ReconciliationResult]:
    orders = (
        db.query(Order)
        .filter(
            Order.payment_status == PaymentStatus.PENDING.value,
            Order.payment_invoice_id.isnot(None),
        )
        .order_by(Order.created_at.asc())
        .limit(limit)
        .all()
    )

    results: list[ReconciliationResult] = []
    for order in orders:
        try:
            invoice = gateway.get_invoice(order.payment_invoice_id)
        except UpstreamError as exc:
            logger.warning(
                "Could not fetch invoice during reconciliation: %s",
                exc.message,
                extra={"order_id": order.id, "invoice_id": order.payment_invoice_id},
            )
            continue

        status = invoice.payment_status
        if status == PaymentStatus.PENDING:
            continue

        results.append(
            apply_payment_status(
                db,
                order,
                status,
                notifier=notifier,
                payment_method=invoice.payment_method,
                payment_channel=invoice.payment_channel,
                paid_at=invoice.paid_at,
            )
        )

    logger.info("Reconciled %s of %s pending payments", len(results), len(orders))
    return results


def resolve_reconciliation_issues(db: Session) -> int:
    issues = (
        db.query(PaymentReconciliationIssue)
        .filter(PaymentReconciliationIssue.resolved_at.is_(None))
        .order_by(PaymentReconciliationIssue.created_at.asc())
        .all()
    )

    resolved = 0
    for issue in issues:
        order = db.query(Order).filter(Order.id == issue.order_id).first()
        if order is None:
            logger.error(
                "Reconciliation issue points to a missing order",
                extra={"order_id": issue.order_id, "invoice_id": issue.invoice_id},
            )
            continue

        if not order.payment_invoice_id and issue.invoice_id:
            db.query(Order).filter(
                Order.id == order.id,
                Order.payment_invoice_id.is_(None),
            ).update(
                {
                    Order.payment_invoice_id: issue.invoice_id,
                    Order.payment_url: issue.invoice_url,
                    Order.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        elif order.payment_invoice_id != issue.invoice_id:
            logger.warning(
                "Order already linked to a different invoice; orphan invoice left for manual review",
                extra={"order_id": order.id, "invoice_id": issue.invoice_id},
            )

        issue.resolved_at = datetime.now(timezone.utc)
        resolved += 1

    db.commit()
    if resolved:
        logger.info("Resolved %s reconciliation issues", resolved)
    return resolved
