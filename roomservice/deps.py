# roomservice/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, Response, status
from fastapi.requests import HTTPConnection

from roomservice.core.config import XENDIT_WEBHOOK_TOKEN
from roomservice.core.errors import LifecycleError
from roomservice.core.request_context import set_request_context
from roomservice.gateway.base import PaymentGateway
from roomservice.gateway.service import build_gateway
from roomservice.services.realtime import RealtimeNotifier
from roomservice.services.sessions import (
    ADMIN_SESSION_COOKIE,
    GUEST_SESSION_COOKIE,
    create_guest_session,
    decode_admin_session,
    decode_guest_session,
    new_guest_id,
    set_guest_session_cookie,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def to_http_exception(exc: LifecycleError) -> HTTPException:
    """Traduz erro de domínio em resposta HTTP com mensagem curta."""
    return HTTPException(status_code=exc.status_code, detail=exc.message or "Erro")


def get_notifier(connection: HTTPConnection) -> RealtimeNotifier:
    state = connection.app.state
    notifier = getattr(state, "notifier", None)
    if notifier is None:
        notifier = RealtimeNotifier()
        state.notifier = notifier
    return notifier


def get_gateway(request: Request) -> PaymentGateway:
    state = request.app.state
    gateway = getattr(state, "gateway", None)
    if gateway is None:
        gateway = build_gateway()
        state.gateway = gateway
    return gateway


def get_webhook_token() -> str:
    return XENDIT_WEBHOOK_TOKEN


def get_guest_id(request: Request, response: Response) -> str:
    """Identidade do hóspede via cookie assinado; emite um novo no primeiro acesso."""
    token = request.cookies.get(GUEST_SESSION_COOKIE)
    payload = decode_guest_session(token) if token else None
    guest_id = (payload or {}).get("guest_id")
    if not guest_id:
        guest_id = new_guest_id()
        set_guest_session_cookie(response, create_guest_session(guest_id))
        logger.info("Guest session issued")
    request.state.actor_id = str(guest_id)
    set_request_context(actor_id=str(guest_id))
    return str(guest_id)


def _admin_token(request: Request) -> str | None:
    header = request.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return request.cookies.get(ADMIN_SESSION_COOKIE)


def require_admin(request: Request) -> Dict[str, Any]:
    token = _admin_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Admin não autenticado")

    payload = decode_admin_session(token)
    if not payload:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sessão expirada")

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sessão inválida")

    role = str(payload.get("role") or "").strip().lower()
    if role != ADMIN_ROLE:
        logger.warning(
            "Access denied: user_id=%s role=%s endpoint=%s %s",
            user_id,
            role,
            request.method,
            request.url.path,
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Sem permissão")

    request.state.actor_id = str(user_id)
    set_request_context(actor_id=str(user_id))
    return payload
