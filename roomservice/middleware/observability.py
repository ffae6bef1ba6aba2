from __future__ import annotations

import logging
import re
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from roomservice.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{8,64}$")


def _incoming_request_id(request: Request) -> str:
    candidate = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    if _REQUEST_ID_PATTERN.match(candidate):
        return candidate
    return uuid.uuid4().hex


def _room_from_path(request: Request) -> str | None:
    # path_params só existe depois que o roteamento aconteceu.
    path_params = request.scope.get("path_params") or {}
    room = path_params.get("room_id") or path_params.get("room_code")
    return str(room) if room else None


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id por requisição e uma linha de log ao final de cada chamada."""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = _incoming_request_id(request)
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception:
            self._log_completion(request, request_id, 500, started)
            clear_request_context()
            raise

        response.headers[REQUEST_ID_HEADER] = request_id
        self._log_completion(request, request_id, response.status_code, started)
        clear_request_context()
        return response

    @staticmethod
    def _log_completion(request: Request, request_id: str, status_code: int, started: float) -> None:
        room_id = _room_from_path(request)
        set_request_context(room_id=room_id)
        level = logging.ERROR if status_code >= 500 else logging.INFO
        logger.log(
            level,
            "%s %s -> %s",
            request.method,
            request.url.path,
            status_code,
            extra={
                "request_id": request_id,
                "room_id": room_id,
                "actor_id": getattr(request.state, "actor_id", None),
                "status_code": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
