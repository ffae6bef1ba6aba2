from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Callable, DefaultDict, List, Optional


Listener = Callable[[dict[str, Any]], None]

ORDER_STATUS_EVENT = "order-status"
PAYMENT_STATUS_EVENT = "payment-status"
PAYMENT_CONFIRMED = "payment-confirmed"
PAYMENT_FAILED = "payment-failed"

logger = logging.getLogger(__name__)


@dataclass
class RoomEvent:
    event: str
    order_id: str
    status: str
    reason: Optional[str] = None
    type: Optional[str] = None

    def to_message(self) -> dict[str, Any]:
        payload = {key: value for key, value in asdict(self).items() if key != "event" and value is not None}
        return {"event": self.event, "payload": payload}


def order_status_event(order_id: str, status: str, reason: str | None = None) -> RoomEvent:
    return RoomEvent(event=ORDER_STATUS_EVENT, order_id=order_id, status=status, reason=reason)


def payment_status_event(order_id: str, status: str, type_hint: str) -> RoomEvent:
    return RoomEvent(event=PAYMENT_STATUS_EVENT, order_id=order_id, status=status, type=type_hint)


def room_channel(room_id: str) -> str:
    return f"room:{room_id}"


class RealtimeNotifier:
    """Fan-out por quarto, sem persistência nem replay.

    Quem perdeu eventos reconsulta o estado pelo endpoint de polling.
    """

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)
        self._lock = Lock()

    def subscribe(self, room_id: str, listener: Listener) -> None:
        with self._lock:
            self._listeners[room_channel(room_id)].append(listener)

    def unsubscribe(self, room_id: str, listener: Listener) -> None:
        channel = room_channel(room_id)
        with self._lock:
            listeners = self._listeners.get(channel, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(channel, None)

    def subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._listeners.get(room_channel(room_id), []))

    def notify_room(self, room_id: str, event: RoomEvent) -> None:
        channel = room_channel(room_id)
        with self._lock:
            listeners = list(self._listeners.get(channel, []))
        if not listeners:
            logger.debug("Realtime: no listeners for %s", channel)
            return
        message = event.to_message()
        for listener in listeners:
            try:
                listener(message)
            except Exception:
                logger.exception("Realtime listener failed for %s", channel, extra={"order_id": event.order_id})


def publish(notifier: RealtimeNotifier | None, room_id: str, event: RoomEvent) -> None:
    """Entrega best-effort; o estado já foi gravado quando isto roda."""
    if notifier is None:
        return
    try:
        notifier.notify_room(room_id, event)
    except Exception:
        logger.exception("Realtime publish failed for %s", room_channel(room_id), extra={"order_id": event.order_id})


class QueueListener:
    """Ponte entre as threads de request e o event loop de um WebSocket."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = 100) -> None:
        self._loop = loop
        self.queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=maxsize)

    def __call__(self, message: dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._offer, message)

    def _offer(self, message: dict[str, Any]) -> None:
        try:
            self.queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Realtime queue full; dropping %s", message.get("event"))
