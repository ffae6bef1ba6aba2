import asyncio
import logging
import threading

from roomservice.services.realtime import (
    QueueListener,
    RealtimeNotifier,
    order_status_event,
    payment_status_event,
    publish,
    room_channel,
)


def test_events_only_reach_listeners_of_the_same_room():
    notifier = RealtimeNotifier()
    room_a, room_b = [], []
    notifier.subscribe("a", room_a.append)
    notifier.subscribe("b", room_b.append)

    notifier.notify_room("a", order_status_event("order-1", "ACCEPTED"))

    assert room_a == [{"event": "order-status", "payload": {"order_id": "order-1", "status": "ACCEPTED"}}]
    assert room_b == []
    assert room_channel("a") == "room:a"


def test_failing_listener_is_logged_and_others_still_receive(caplog):
    notifier = RealtimeNotifier()
    received = []

    def broken(_message):
        raise RuntimeError("socket closed")

    notifier.subscribe("a", broken)
    notifier.subscribe("a", received.append)

    with caplog.at_level(logging.ERROR):
        notifier.notify_room("a", payment_status_event("order-1", "PAID", "payment-confirmed"))

    assert received[0]["payload"]["type"] == "payment-confirmed"
    assert any("Realtime listener failed" in record.getMessage() for record in caplog.records)


def test_unsubscribe_and_publish_without_notifier():
    notifier = RealtimeNotifier()
    received = []
    notifier.subscribe("a", received.append)
    notifier.unsubscribe("a", received.append)

    publish(notifier, "a", order_status_event("order-1", "READY"))
    publish(None, "a", order_status_event("order-1", "READY"))

    assert received == []
    assert notifier.subscriber_count("a") == 0


def test_queue_listener_hands_events_from_worker_threads_to_the_loop():
    async def scenario():
        notifier = RealtimeNotifier()
        listener = QueueListener(asyncio.get_running_loop())
        notifier.subscribe("a", listener)

        worker = threading.Thread(
            target=notifier.notify_room,
            args=("a", order_status_event("order-9", "REJECTED", reason="out of stock")),
        )
        worker.start()
        message = await asyncio.wait_for(listener.queue.get(), timeout=2)
        worker.join()
        return message

    message = asyncio.run(scenario())

    assert message["payload"] == {"order_id": "order-9", "status": "REJECTED", "reason": "out of stock"}


def test_queue_listener_drops_when_full(caplog):
    async def scenario():
        listener = QueueListener(asyncio.get_running_loop(), maxsize=1)
        listener({"event": "order-status"})
        listener({"event": "order-status"})
        await asyncio.sleep(0)
        return listener.queue.qsize()

    with caplog.at_level(logging.WARNING):
        size = asyncio.run(scenario())

    assert size == 1
    assert any("queue full" in record.getMessage() for record in caplog.records)
