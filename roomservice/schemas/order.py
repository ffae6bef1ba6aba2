from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from roomservice.models.order import Order
from roomservice.services.payment_intents import PaymentIntent


class OrderItemIn(BaseModel):
    menu_item_id: str = Field(..., min_length=1, max_length=64)
    menu_item_name: str = Field(..., min_length=1)
    unit_price: int = Field(..., ge=0)
    quantity: int = Field(..., gt=0)
    note: Optional[str] = None


class OrderCreate(BaseModel):
    items: List[OrderItemIn]
    note: Optional[str] = None
    guest_phone: Optional[str] = Field(None, max_length=30)


class RejectRequest(BaseModel):
    reason: str


class StatusChangeRequest(BaseModel):
    status: str
    reason: Optional[str] = None


class PaymentStatusWrite(BaseModel):
    status: Literal["PENDING", "PAID", "FAILED", "EXPIRED"]
    payment_method: Optional[str] = None


def order_to_dict(order: Order) -> dict:
    return {
        "id": order.id,
        "room_id": order.room_id,
        "guest_id": order.guest_id,
        "status": order.status,
        "rejection_reason": order.rejection_reason,
        "note": order.note,
        "subtotal": order.subtotal,
        "currency": order.currency,
        "payment_status": order.payment_status,
        "external_id": order.external_id,
        "payment_url": order.payment_url,
        "payment_method": order.payment_method,
        "paid_at": order.paid_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [
            {
                "id": item.id,
                "menu_item_id": item.menu_item_id,
                "menu_item_name": item.menu_item_name,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
                "note": item.note,
            }
            for item in order.items
        ],
    }


def intent_to_dict(intent: PaymentIntent) -> dict:
    return {
        "external_reference": intent.external_reference,
        "invoice_id": intent.invoice_id,
        "invoice_url": intent.invoice_url,
        "expires_at": intent.expires_at,
        "payment_methods": intent.payment_methods,
        "degraded": intent.degraded,
    }
