import pytest
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roomservice.core.database import Base
from roomservice.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from roomservice.models.order import Order, OrderStatus
from roomservice.models.room import Room
from roomservice.services.order_status import (
    accept_order,
    bill_room,
    can_transition,
    mark_billed,
    mark_delivered,
    mark_ready,
    reject_order,
    start_preparing,
    transition_order,
)
from roomservice.services.orders import create_order
from roomservice.services.realtime import RealtimeNotifier
from tests.fixtures_data import HAPPY_PATH_CART, ROOM_101, ROOM_205


def _build_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    for room in (ROOM_101, ROOM_205):
        db.add(Room(id=room["id"], number=room["number"], label=room["label"]))
    db.commit()
    return db


def _recording_notifier(*room_ids):
    notifier = RealtimeNotifier()
    events = []
    for room_id in room_ids or (ROOM_101["id"],):
        notifier.subscribe(room_id, events.append)
    return notifier, events


def _new_order(db, room_id=ROOM_101["id"]):
    return create_order(db, room_id=room_id, guest_id="guest-1", items=HAPPY_PATH_CART)


def test_full_fulfillment_sequence_emits_one_event_per_step():
    db = _build_session()
    notifier, events = _recording_notifier()
    order = _new_order(db)

    accept_order(db, order.id, notifier=notifier)
    start_preparing(db, order.id, notifier=notifier)
    mark_ready(db, order.id, notifier=notifier)
    delivered = mark_delivered(db, order.id, notifier=notifier)

    assert delivered.status == OrderStatus.DELIVERED.value
    assert [event["payload"]["status"] for event in events] == ["ACCEPTED", "IN_PREP", "READY", "DELIVERED"]
    assert all(event["event"] == "order-status" for event in events)
    assert all(event["payload"]["order_id"] == order.id for event in events)


def test_skipping_states_is_rejected_with_current_and_requested():
    db = _build_session()
    notifier, events = _recording_notifier()
    order = _new_order(db)

    with pytest.raises(InvalidTransitionError) as exc_info:
        start_preparing(db, order.id, notifier=notifier)

    assert exc_info.value.current == "PENDING"
    assert exc_info.value.requested == "IN_PREP"
    assert db.query(Order).filter(Order.id == order.id).first().status == "PENDING"
    assert events == []


def test_reject_requires_reason_and_is_terminal():
    db = _build_session()
    notifier, events = _recording_notifier()
    order = _new_order(db)

    with pytest.raises(ValidationError):
        reject_order(db, order.id, "   ", notifier=notifier)

    rejected = reject_order(db, order.id, "out of stock", notifier=notifier)

    assert rejected.status == "REJECTED"
    assert rejected.rejection_reason == "out of stock"
    assert events == [
        {"event": "order-status", "payload": {"order_id": order.id, "status": "REJECTED", "reason": "out of stock"}}
    ]
    for target in ("ACCEPTED", "IN_PREP", "READY", "DELIVERED", "BILLED", "PENDING"):
        with pytest.raises(InvalidTransitionError):
            transition_order(db, order.id, target, notifier=notifier)
    assert len(events) == 1


def test_reject_only_from_pending():
    db = _build_session()
    order = _new_order(db)
    accept_order(db, order.id, notifier=None)

    with pytest.raises(InvalidTransitionError):
        reject_order(db, order.id, "changed mind", notifier=None)


def test_billing_is_allowed_from_any_open_state_and_idempotent():
    db = _build_session()
    notifier, events = _recording_notifier()
    order = _new_order(db)
    accept_order(db, order.id, notifier=notifier)

    mark_billed(db, order.id, notifier=notifier)
    again = mark_billed(db, order.id, notifier=notifier)

    assert again.status == "BILLED"
    assert [event["payload"]["status"] for event in events] == ["ACCEPTED", "BILLED"]


def test_unknown_order_and_unknown_status():
    db = _build_session()

    with pytest.raises(NotFoundError):
        accept_order(db, "missing", notifier=None)

    order = _new_order(db)
    with pytest.raises(ValidationError):
        transition_order(db, order.id, "COOKING", notifier=None)


def test_transition_is_conditional_on_the_stored_status():
    db = _build_session()
    notifier, events = _recording_notifier()
    order = _new_order(db)
    assert order.status == "PENDING"

    # Outro ator recusa o pedido sem que a sessão perceba.
    db.execute(
        update(Order)
        .where(Order.id == order.id)
        .values(status="REJECTED", rejection_reason="staff")
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(InvalidTransitionError) as exc_info:
        accept_order(db, order.id, notifier=notifier)

    assert exc_info.value.current == "REJECTED"
    assert events == []


def test_bill_room_bills_open_orders_and_skips_rejected():
    db = _build_session()
    notifier, events = _recording_notifier(ROOM_101["id"], ROOM_205["id"])
    delivered = _new_order(db)
    for step in (accept_order, start_preparing, mark_ready, mark_delivered):
        step(db, delivered.id, notifier=None)
    pending = _new_order(db)
    rejected = _new_order(db)
    reject_order(db, rejected.id, "kitchen closed", notifier=None)
    other_room = _new_order(db, room_id=ROOM_205["id"])

    billed = bill_room(db, ROOM_101["id"], notifier=notifier)

    assert sorted(billed) == sorted([delivered.id, pending.id])
    statuses = {order.id: order.status for order in db.query(Order).all()}
    assert statuses[rejected.id] == "REJECTED"
    assert statuses[other_room.id] == "PENDING"
    assert sorted(event["payload"]["order_id"] for event in events) == sorted(billed)

    assert bill_room(db, ROOM_101["id"], notifier=notifier) == []


def test_bill_room_unknown_room():
    db = _build_session()

    with pytest.raises(NotFoundError):
        bill_room(db, "room-999", notifier=None)


def test_transition_table():
    assert can_transition("PENDING", "ACCEPTED")
    assert can_transition("READY", "BILLED")
    assert not can_transition("REJECTED", "BILLED")
    assert not can_transition("BILLED", "BILLED")
    assert not can_transition("ACCEPTED", "READY")
