from roomservice.models.room import Room, RoomCode
from roomservice.models.order import Order, OrderStatus, PaymentStatus
from roomservice.models.order_item import OrderItem
from roomservice.models.reconciliation_issue import PaymentReconciliationIssue
