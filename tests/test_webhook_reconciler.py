import json
import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roomservice.core.database import Base
from roomservice.core.errors import NotFoundError, Unauthorized, ValidationError
from roomservice.models.order import Order
from roomservice.models.room import Room
from roomservice.services.order_status import accept_order
from roomservice.services.orders import create_order
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.webhook_reconciler import (
    apply_payment_status,
    handle_provider_callback,
    verify_callback_token,
)
from tests.fixtures_data import HAPPY_PATH_CART, ROOM_101, WEBHOOK_TOKEN, webhook_payload


def _build_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    db.add(Room(id=ROOM_101["id"], number=ROOM_101["number"], label=ROOM_101["label"]))
    db.commit()
    order = create_order(db, room_id=ROOM_101["id"], guest_id="guest-1", items=HAPPY_PATH_CART)
    notifier = RealtimeNotifier()
    events = []
    notifier.subscribe(ROOM_101["id"], events.append)
    return db, order, notifier, events


def _deliver(db, notifier, payload, token=WEBHOOK_TOKEN):
    return handle_provider_callback(
        db,
        json.dumps(payload).encode("utf-8"),
        token,
        expected_token=WEBHOOK_TOKEN,
        notifier=notifier,
    )


def test_duplicate_paid_callback_emits_single_confirmation():
    db, order, notifier, events = _build_session()
    payload = webhook_payload(order.external_id, "PAID", payment_method="QRIS", payment_channel="QRIS")

    first = _deliver(db, notifier, payload)
    second = _deliver(db, notifier, payload)

    assert first.changed is True
    assert first.previous_status == "PENDING"
    assert second.changed is False
    assert second.payment_status == "PAID"
    assert events == [
        {
            "event": "payment-status",
            "payload": {"order_id": order.id, "status": "PAID", "type": "payment-confirmed"},
        }
    ]
    stored = db.query(Order).filter(Order.id == order.id).first()
    assert stored.payment_method == "QRIS"
    assert stored.paid_at is not None
    assert stored.payment_invoice_id == "inv-test-1"


def test_settled_maps_to_paid_and_paid_is_sticky():
    db, order, notifier, events = _build_session()

    _deliver(db, notifier, webhook_payload(order.external_id, "SETTLED", paid_at="2024-05-01T10:00:00.000Z"))
    late = _deliver(db, notifier, webhook_payload(order.external_id, "PENDING"))
    expired = _deliver(db, notifier, webhook_payload(order.external_id, "EXPIRED"))

    assert late.changed is False
    assert expired.changed is False
    assert db.query(Order).filter(Order.id == order.id).first().payment_status == "PAID"
    assert [event["payload"]["type"] for event in events] == ["payment-confirmed"]


def test_expired_and_failed_emit_payment_failed():
    db, order, notifier, events = _build_session()

    result = _deliver(db, notifier, webhook_payload(order.external_id, "EXPIRED"))

    assert result.payment_status == "EXPIRED"
    assert events[-1]["payload"] == {"order_id": order.id, "status": "EXPIRED", "type": "payment-failed"}


def test_unknown_provider_status_maps_to_failed_and_is_logged(caplog):
    db, order, notifier, events = _build_session()

    with caplog.at_level(logging.WARNING):
        result = _deliver(db, notifier, webhook_payload(order.external_id, "VOIDED_BY_BANK"))

    assert result.payment_status == "FAILED"
    assert any("VOIDED_BY_BANK" in record.getMessage() for record in caplog.records)
    assert events[-1]["payload"]["type"] == "payment-failed"


def test_payment_axis_does_not_touch_fulfillment():
    db, order, notifier, _events = _build_session()
    accept_order(db, order.id, notifier=None)

    _deliver(db, notifier, webhook_payload(order.external_id, "PAID"))

    stored = db.query(Order).filter(Order.id == order.id).first()
    assert stored.status == "ACCEPTED"
    assert stored.payment_status == "PAID"


def test_wrong_token_is_rejected_without_mutation():
    db, order, notifier, events = _build_session()

    with pytest.raises(Unauthorized):
        _deliver(db, notifier, webhook_payload(order.external_id, "PAID"), token="guessed")
    with pytest.raises(Unauthorized):
        _deliver(db, notifier, webhook_payload(order.external_id, "PAID"), token=None)

    assert db.query(Order).filter(Order.id == order.id).first().payment_status == "PENDING"
    assert events == []


def test_empty_configured_token_rejects_everything():
    assert verify_callback_token("", "") is False
    assert verify_callback_token("anything", "") is False
    assert verify_callback_token(WEBHOOK_TOKEN, WEBHOOK_TOKEN) is True


@pytest.mark.parametrize("raw", [b"not-json", b"[]", json.dumps({"status": "PAID"}).encode(), b"\xff\xfe"])
def test_malformed_payloads_are_validation_errors(raw):
    db, order, notifier, events = _build_session()

    with pytest.raises(ValidationError):
        handle_provider_callback(db, raw, WEBHOOK_TOKEN, expected_token=WEBHOOK_TOKEN, notifier=notifier)

    assert events == []


def test_unknown_external_reference_is_not_found():
    db, _order, notifier, events = _build_session()

    with pytest.raises(NotFoundError):
        _deliver(db, notifier, webhook_payload("order-0-00000000", "PAID"))

    assert events == []


def test_failed_payment_can_be_retried_to_paid():
    db, order, notifier, events = _build_session()

    apply_payment_status(db, order, "FAILED", notifier=notifier)
    apply_payment_status(db, order, "PENDING", notifier=notifier)
    result = apply_payment_status(db, order, "PAID", notifier=notifier)

    assert result.changed is True
    assert [event["payload"]["type"] for event in events] == ["payment-failed", "payment-confirmed"]


def test_direct_write_rejects_unknown_status():
    db, order, notifier, _events = _build_session()

    with pytest.raises(ValidationError):
        apply_payment_status(db, order, "REFUNDED", notifier=notifier)
