from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Response
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from roomservice.core.config import SESSION_COOKIE_SECURE, SESSION_MAX_AGE_SECONDS, SESSION_SECRET

GUEST_SESSION_COOKIE = "guest_session"
ADMIN_SESSION_COOKIE = "admin_session"
GUEST_SESSION_SALT = "guest-session"
ADMIN_SESSION_SALT = "admin-session"


def _serializer(salt: str) -> URLSafeTimedSerializer:
    if not SESSION_SECRET:
        raise RuntimeError("SESSION_SECRET não configurado.")
    return URLSafeTimedSerializer(SESSION_SECRET, salt=salt)


def _with_expiry(payload: Dict[str, Any]) -> Dict[str, Any]:
    if "exp" in payload:
        return payload
    return {**payload, "exp": int(time.time()) + SESSION_MAX_AGE_SECONDS}


def _decode(token: str, salt: str) -> Optional[Dict[str, Any]]:
    try:
        payload = _serializer(salt).loads(token, max_age=SESSION_MAX_AGE_SECONDS)
    except (BadSignature, SignatureExpired, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    exp = payload.get("exp")
    if exp is not None:
        try:
            if int(exp) < int(time.time()):
                return None
        except (TypeError, ValueError):
            return None
    return payload


def new_guest_id() -> str:
    return f"guest-{uuid.uuid4().hex}"


def create_guest_session(guest_id: str) -> str:
    return _serializer(GUEST_SESSION_SALT).dumps(_with_expiry({"guest_id": guest_id}))


def decode_guest_session(token: str) -> Optional[Dict[str, Any]]:
    return _decode(token, GUEST_SESSION_SALT)


def create_admin_session(payload: Dict[str, Any]) -> str:
    return _serializer(ADMIN_SESSION_SALT).dumps(_with_expiry(payload))


def decode_admin_session(token: str) -> Optional[Dict[str, Any]]:
    return _decode(token, ADMIN_SESSION_SALT)


def set_guest_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=GUEST_SESSION_COOKIE,
        value=token,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
        path="/",
    )
