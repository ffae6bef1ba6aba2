import json

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from roomservice.core.database import Base, get_db
from roomservice.deps import get_gateway, get_webhook_token
from roomservice.gateway.mock_provider import MockPaymentGateway
from roomservice.middleware.observability import ObservabilityMiddleware
from roomservice.models.order import Order
from roomservice.models.room import Room, RoomCode
from roomservice.routers.admin_orders import router as admin_orders_router
from roomservice.routers.billing import router as billing_router
from roomservice.routers.orders import router as orders_router
from roomservice.routers.payments import router as payments_router
from roomservice.routers.realtime import router as realtime_router
from roomservice.routers.webhook import router as webhook_router
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.sessions import GUEST_SESSION_COOKIE, create_admin_session
from tests.fixtures_data import (
    GUEST_ROLE_SESSION,
    HAPPY_PATH_ORDER_PAYLOAD,
    HAPPY_PATH_SUBTOTAL,
    ROOM_101,
    STAFF_SESSION,
    WEBHOOK_TOKEN,
    webhook_payload,
)


def _build_client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    db.add(Room(id=ROOM_101["id"], number=ROOM_101["number"], label=ROOM_101["label"]))
    db.add(RoomCode(room_id=ROOM_101["id"], code=ROOM_101["code"]))
    db.commit()

    gateway = MockPaymentGateway()
    app = FastAPI()
    app.state.notifier = RealtimeNotifier()
    app.add_middleware(ObservabilityMiddleware)
    for router in (orders_router, payments_router, webhook_router, admin_orders_router, billing_router, realtime_router):
        app.include_router(router)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_webhook_token] = lambda: WEBHOOK_TOKEN

    return TestClient(app), db, gateway


def _staff_headers(session=STAFF_SESSION):
    return {"Authorization": f"Bearer {create_admin_session(dict(session))}"}


def _submit(client):
    response = client.post(f"/api/rooms/{ROOM_101['code']}/orders", json=HAPPY_PATH_ORDER_PAYLOAD)
    assert response.status_code == 201, response.text
    return response.json()


def _webhook(client, payload, token=WEBHOOK_TOKEN):
    return client.post(
        "/api/webhooks/xendit",
        content=json.dumps(payload),
        headers={"x-callback-token": token, "Content-Type": "application/json"},
    )


def test_guest_checkout_then_webhook_marks_order_paid():
    client, db, gateway = _build_client()

    body = _submit(client)

    assert client.cookies.get(GUEST_SESSION_COOKIE)
    order = body["order"]
    assert order["subtotal"] == HAPPY_PATH_SUBTOTAL
    assert order["status"] == "PENDING"
    assert body["payment"]["invoice_url"].startswith("https://checkout.mock.local/")
    assert body["payment"]["external_reference"] == order["external_id"]
    assert len(gateway.created_requests) == 1

    poll = client.get("/api/payment/status", params={"orderId": order["id"]})
    assert poll.json() == {"payment_status": "PENDING", "payment_method": None, "paid_at": None}

    response = _webhook(client, webhook_payload(order["external_id"], "SETTLED", payment_method="QRIS"))
    assert response.status_code == 200
    assert response.json()["payment_status"] == "PAID"

    poll = client.get("/api/payment/status", params={"orderId": order["id"]})
    assert poll.json()["payment_status"] == "PAID"
    assert poll.json()["payment_method"] == "QRIS"
    assert poll.json()["paid_at"] is not None


def test_payment_intent_endpoint_is_idempotent():
    client, _db, gateway = _build_client()
    order = _submit(client)["order"]

    first = client.post(f"/api/orders/{order['id']}/payment-intent")
    second = client.post(f"/api/orders/{order['id']}/payment-intent")

    assert first.status_code == 200
    assert first.json()["payment"]["invoice_id"] == second.json()["payment"]["invoice_id"]
    assert len(gateway.created_requests) == 1


def test_other_guest_cannot_see_order():
    client, _db, _gateway = _build_client()
    order = _submit(client)["order"]

    client.cookies.clear()
    response = client.get("/api/payment/status", params={"orderId": order["id"]})

    assert response.status_code == 404


def test_unknown_room_code_and_empty_cart():
    client, db, _gateway = _build_client()

    missing = client.post("/api/rooms/nope/orders", json=HAPPY_PATH_ORDER_PAYLOAD)
    empty = client.post(f"/api/rooms/{ROOM_101['code']}/orders", json={"items": []})

    assert missing.status_code == 404
    assert empty.status_code == 422
    assert db.query(Order).count() == 0


def test_webhook_rejections_use_generic_bodies():
    client, db, _gateway = _build_client()
    order = _submit(client)["order"]

    bad_token = _webhook(client, webhook_payload(order["external_id"], "PAID"), token="wrong")
    bad_payload = client.post(
        "/api/webhooks/xendit",
        content=b"{not json",
        headers={"x-callback-token": WEBHOOK_TOKEN},
    )
    unknown = _webhook(client, webhook_payload("order-0-ffffffff", "PAID"))

    assert (bad_token.status_code, bad_token.json()) == (401, {"error": "Invalid token"})
    assert (bad_payload.status_code, bad_payload.json()) == (400, {"error": "Invalid payload"})
    assert (unknown.status_code, unknown.json()) == (404, {"error": "Order not found"})
    assert db.query(Order).filter(Order.id == order["id"]).first().payment_status == "PENDING"


def test_staff_endpoints_require_admin_session():
    client, _db, _gateway = _build_client()
    order = _submit(client)["order"]

    anonymous = client.post(f"/api/admin/orders/{order['id']}/accept")
    forbidden = client.post(f"/api/admin/orders/{order['id']}/accept", headers=_staff_headers(GUEST_ROLE_SESSION))
    garbage = client.get("/api/admin/orders", headers={"Authorization": "Bearer not-a-token"})

    assert anonymous.status_code == 401
    assert forbidden.status_code == 403
    assert garbage.status_code == 401


def test_staff_fulfillment_billing_and_errors():
    client, _db, _gateway = _build_client()
    order = _submit(client)["order"]
    headers = _staff_headers()

    accepted = client.post(f"/api/admin/orders/{order['id']}/accept", headers=headers)
    skipped = client.post(f"/api/admin/orders/{order['id']}/status", json={"status": "READY"}, headers=headers)
    prep = client.post(f"/api/admin/orders/{order['id']}/status", json={"status": "IN_PREP"}, headers=headers)
    reject_late = client.post(f"/api/admin/orders/{order['id']}/reject", json={"reason": "late"}, headers=headers)
    missing = client.post("/api/admin/orders/missing/accept", headers=headers)

    assert accepted.json()["status"] == "ACCEPTED"
    assert skipped.status_code == 409
    assert "ACCEPTED -> READY" in skipped.json()["detail"]
    assert prep.json()["status"] == "IN_PREP"
    assert reject_late.status_code == 409
    assert missing.status_code == 404

    board = client.get("/api/admin/orders", params={"status": "IN_PREP"}, headers=headers)
    assert [row["id"] for row in board.json()] == [order["id"]]

    summary = client.get("/api/admin/billing/summary", headers=headers).json()
    assert summary[0]["room_number"] == ROOM_101["number"]
    assert summary[0]["total_amount"] == HAPPY_PATH_SUBTOTAL

    billed = client.post(f"/api/admin/rooms/{ROOM_101['id']}/bill", headers=headers)
    assert billed.json()["billed_order_ids"] == [order["id"]]
    assert client.get("/api/admin/billing/summary", headers=headers).json() == []
    rows = client.get("/api/admin/billing/rows", params={"status": "BILLED"}, headers=headers).json()
    assert [row["order_id"] for row in rows] == [order["id"]]


def test_staff_manual_payment_write_is_idempotent():
    client, _db, _gateway = _build_client()
    order = _submit(client)["order"]
    headers = _staff_headers()

    first = client.post(f"/api/admin/orders/{order['id']}/payment", json={"status": "PAID", "payment_method": "CASH"}, headers=headers)
    second = client.post(f"/api/admin/orders/{order['id']}/payment", json={"status": "PAID"}, headers=headers)
    regress = client.post(f"/api/admin/orders/{order['id']}/payment", json={"status": "PENDING"}, headers=headers)

    assert first.json()["changed"] is True
    assert second.json()["changed"] is False
    assert regress.json()["changed"] is False
    assert regress.json()["order"]["payment_status"] == "PAID"


def test_room_channel_receives_staff_transition():
    client, _db, _gateway = _build_client()
    order = _submit(client)["order"]

    with client.websocket_connect(f"/ws/rooms/{ROOM_101['id']}") as websocket:
        client.post(f"/api/admin/orders/{order['id']}/reject", json={"reason": "out of stock"}, headers=_staff_headers())
        message = websocket.receive_json()

    assert message == {
        "event": "order-status",
        "payload": {"order_id": order["id"], "status": "REJECTED", "reason": "out of stock"},
    }
