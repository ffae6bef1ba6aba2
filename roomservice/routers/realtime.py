import asyncio
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from roomservice.deps import get_notifier
from roomservice.services.realtime import QueueListener, RealtimeNotifier

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Mensagens do cliente são ignoradas; o canal é só de saída.
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/rooms/{room_id}")
async def room_events(
    websocket: WebSocket,
    room_id: str,
    notifier: RealtimeNotifier = Depends(get_notifier),
):
    listener = QueueListener(asyncio.get_running_loop())
    # Inscreve antes do accept para não perder eventos logo após o handshake.
    notifier.subscribe(room_id, listener)
    disconnect = None
    try:
        await websocket.accept()
        disconnect = asyncio.ensure_future(_wait_for_disconnect(websocket))
        logger.info("Realtime subscriber connected to room %s", room_id)
        while True:
            next_message = asyncio.ensure_future(listener.queue.get())
            done, _ = await asyncio.wait({next_message, disconnect}, return_when=asyncio.FIRST_COMPLETED)
            if disconnect in done:
                next_message.cancel()
                break
            await websocket.send_json(next_message.result())
    except WebSocketDisconnect:
        pass
    finally:
        if disconnect is not None:
            disconnect.cancel()
        notifier.unsubscribe(room_id, listener)
        logger.info("Realtime subscriber left room %s", room_id)
