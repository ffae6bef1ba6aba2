from sqlalchemy import Column, DateTime, Integer, String, Text, func

from roomservice.core.database import Base


class PaymentReconciliationIssue(Base):
    """Fatura criada no provedor cujo vínculo com o pedido não foi gravado."""

    __tablename__ = "payment_reconciliation_issues"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(36), nullable=False, index=True)
    external_id = Column(String(64), nullable=False, index=True)
    invoice_id = Column(String(64), nullable=True)
    invoice_url = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
