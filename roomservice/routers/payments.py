from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from roomservice.core.database import get_db
from roomservice.deps import get_guest_id
from roomservice.models.order import Order

router = APIRouter(prefix="/api/payment", tags=["payments"])


@router.get("/status")
def payment_status(
    order_id: str = Query(..., alias="orderId", min_length=1),
    db: Session = Depends(get_db),
    guest_id: str = Depends(get_guest_id),
):
    """Fallback de polling quando o evento em tempo real se perde."""
    order = (
        db.query(Order)
        .filter(Order.id == order_id, Order.guest_id == guest_id)
        .first()
    )
    if not order:
        raise HTTPException(status_code=404, detail="Pedido não encontrado")
    return {
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "paid_at": order.paid_at,
    }
