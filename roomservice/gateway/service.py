from __future__ import annotations

import logging

from roomservice.core.config import IS_PROD, PAYMENT_PROVIDER, XENDIT_SECRET_KEY
from roomservice.gateway.base import PaymentGateway
from roomservice.gateway.mock_provider import MockPaymentGateway
from roomservice.gateway.xendit_provider import XenditGateway

logger = logging.getLogger(__name__)


def build_gateway(provider: str = PAYMENT_PROVIDER, secret_key: str = XENDIT_SECRET_KEY) -> PaymentGateway:
    provider = (provider or "").strip().lower()
    if provider == "xendit":
        return XenditGateway(secret_key)
    if provider == "mock":
        if IS_PROD:
            raise RuntimeError("Gateway mock não é permitido em produção")
        logger.warning("Using mock payment gateway")
        return MockPaymentGateway()
    raise RuntimeError(f"PAYMENT_PROVIDER desconhecido: {provider}")
