from __future__ import annotations

from contextvars import ContextVar


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_ROOM_ID_CTX: ContextVar[str | None] = ContextVar("room_id", default=None)
_ACTOR_ID_CTX: ContextVar[str | None] = ContextVar("actor_id", default=None)


def set_request_context(
    *, request_id: str | None = None, room_id: str | None = None, actor_id: str | None = None
) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if room_id is not None:
        _ROOM_ID_CTX.set(room_id)
    if actor_id is not None:
        _ACTOR_ID_CTX.set(actor_id)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_room_id() -> str | None:
    return _ROOM_ID_CTX.get()


def get_actor_id() -> str | None:
    return _ACTOR_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _ROOM_ID_CTX.set(None)
    _ACTOR_ID_CTX.set(None)
