"""Erros de domínio do ciclo de vida de pedidos e pagamentos.

Os serviços levantam estas exceções; os routers traduzem para HTTP.
"""

from __future__ import annotations


class LifecycleError(Exception):
    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    status_code = 422


class NotFoundError(LifecycleError):
    status_code = 404


class ConflictError(LifecycleError):
    status_code = 409


class InvalidTransitionError(LifecycleError):
    status_code = 409

    def __init__(self, current: str, requested: str, message: str | None = None) -> None:
        self.current = current
        self.requested = requested
        super().__init__(message or f"Transição inválida: {current} -> {requested}")


class Unauthorized(LifecycleError):
    status_code = 401


class UpstreamError(LifecycleError):
    status_code = 502
