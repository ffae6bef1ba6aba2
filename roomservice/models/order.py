import enum
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from roomservice.core.database import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IN_PREP = "IN_PREP"
    READY = "READY"
    DELIVERED = "DELIVERED"
    BILLED = "BILLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


def _new_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_new_id)
    room_id = Column(String(36), ForeignKey("rooms.id"), index=True, nullable=False)
    guest_id = Column(String(64), index=True, nullable=False)

    # Fluxo da cozinha: PENDING / ACCEPTED / IN_PREP / READY / DELIVERED / BILLED (+ REJECTED)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)
    note = Column(Text, nullable=True)

    # Valores inteiros na menor unidade da moeda
    subtotal = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="IDR")

    # Pagamento (eixo independente do status)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False, index=True)
    external_id = Column(String(64), unique=True, nullable=False)
    guest_phone = Column(String(30), nullable=True)
    payment_invoice_id = Column(String(64), nullable=True, index=True)
    payment_url = Column(Text, nullable=True)
    payment_expires_at = Column(DateTime(timezone=True), nullable=True)
    invoice_requested_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(40), nullable=True)
    payment_channel = Column(String(40), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    room = relationship("Room", back_populates="orders")
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
