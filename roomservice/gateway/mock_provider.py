from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from threading import Lock

from roomservice.core.errors import UpstreamError
from roomservice.gateway.base import Invoice, InvoiceRequest, PaymentGateway


class MockPaymentGateway(PaymentGateway):
    """Gateway em memória para desenvolvimento e testes."""

    def __init__(self, base_url: str = "https://checkout.mock.local/invoices") -> None:
        self._base_url = base_url.rstrip("/")
        self._invoices: dict[str, Invoice] = {}
        self._lock = Lock()
        self.created_requests: list[InvoiceRequest] = []

    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        invoice_id = f"mock-{uuid.uuid4().hex[:10]}"
        invoice = Invoice(
            invoice_id=invoice_id,
            external_id=request.external_id,
            status="PENDING",
            invoice_url=f"{self._base_url}/{invoice_id}",
            amount=request.amount,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=request.duration_seconds),
        )
        with self._lock:
            self._invoices[invoice_id] = invoice
            self.created_requests.append(request)
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise UpstreamError("Fatura não encontrada no gateway")
        return invoice

    def expire_invoice(self, invoice_id: str) -> Invoice:
        return self.set_status(invoice_id, "EXPIRED")

    def set_status(self, invoice_id: str, status: str, payment_method: str | None = None) -> Invoice:
        invoice = self.get_invoice(invoice_id)
        with self._lock:
            invoice.status = status
            if status in {"PAID", "SETTLED"}:
                invoice.paid_at = invoice.paid_at or datetime.now(timezone.utc)
                invoice.payment_method = payment_method or invoice.payment_method
        return invoice
