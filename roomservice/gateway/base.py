from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from roomservice.models.order import PaymentStatus

logger = logging.getLogger(__name__)

PAID_PROVIDER_STATUSES = {"PAID", "SETTLED"}


@dataclass
class InvoiceLine:
    name: str
    quantity: int
    price: int


@dataclass
class InvoiceRequest:
    external_id: str
    amount: int
    currency: str
    payment_methods: list[str]
    items: list[InvoiceLine] = field(default_factory=list)
    customer_phone: str | None = None
    description: str = ""
    duration_seconds: int = 3600


@dataclass
class Invoice:
    invoice_id: str
    external_id: str
    status: str
    invoice_url: str | None = None
    amount: int | None = None
    expires_at: datetime | None = None
    paid_at: datetime | None = None
    payment_method: str | None = None
    payment_channel: str | None = None
    raw: dict[str, Any] | None = None

    @property
    def payment_status(self) -> PaymentStatus:
        return map_provider_status(self.status)


class PaymentGateway(Protocol):
    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        ...

    def get_invoice(self, invoice_id: str) -> Invoice:
        ...

    def expire_invoice(self, invoice_id: str) -> Invoice:
        ...


def map_provider_status(provider_status: str | None) -> PaymentStatus:
    """PAID/SETTLED -> PAID, EXPIRED -> EXPIRED, PENDING -> PENDING, resto -> FAILED."""
    normalized = (provider_status or "").strip().upper()
    if normalized in PAID_PROVIDER_STATUSES:
        return PaymentStatus.PAID
    if normalized == "EXPIRED":
        return PaymentStatus.EXPIRED
    if normalized == "PENDING":
        return PaymentStatus.PENDING
    logger.warning(
        "Unrecognized provider status %r mapped to FAILED",
        provider_status,
        extra={"provider_status": provider_status},
    )
    return PaymentStatus.FAILED


def parse_provider_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Could not parse provider datetime %r", value)
        return None
