from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from roomservice.core.config import PAYMENT_HTTP_TIMEOUT_SECONDS, XENDIT_API_URL
from roomservice.core.errors import UpstreamError
from roomservice.gateway.base import Invoice, InvoiceRequest, PaymentGateway, parse_provider_datetime

logger = logging.getLogger(__name__)


def parse_invoice(data: dict[str, Any]) -> Invoice:
    return Invoice(
        invoice_id=str(data.get("id") or ""),
        external_id=str(data.get("external_id") or ""),
        status=str(data.get("status") or ""),
        invoice_url=data.get("invoice_url"),
        amount=data.get("amount"),
        expires_at=parse_provider_datetime(data.get("expiry_date")),
        paid_at=parse_provider_datetime(data.get("paid_at")),
        payment_method=data.get("payment_method"),
        payment_channel=data.get("payment_channel"),
        raw=data,
    )


def build_invoice_payload(request: InvoiceRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "external_id": request.external_id,
        "amount": request.amount,
        "description": request.description,
        "invoice_duration": request.duration_seconds,
        "currency": request.currency,
        "payment_methods": list(request.payment_methods),
        "items": [
            {"name": line.name, "quantity": line.quantity, "price": line.price}
            for line in request.items
        ],
    }
    channels = ["sms"] if request.customer_phone else []
    if request.customer_phone:
        payload["customer"] = {"mobile_number": request.customer_phone}
    payload["customer_notification_preference"] = {
        "invoice_created": channels,
        "invoice_paid": channels,
        "invoice_expired": channels,
    }
    return payload


class XenditGateway(PaymentGateway):
    """Invoices hospedadas da Xendit (API v2)."""

    INTEGRATION_NAME = "xendit_invoice"

    def __init__(
        self,
        secret_key: str,
        *,
        base_url: str = XENDIT_API_URL,
        timeout: float = PAYMENT_HTTP_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not secret_key:
            raise RuntimeError("XENDIT_SECRET_KEY não configurado.")
        self._secret_key = secret_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        data = self._request("POST", "/v2/invoices", json_body=build_invoice_payload(request))
        return parse_invoice(data)

    def get_invoice(self, invoice_id: str) -> Invoice:
        return parse_invoice(self._request("GET", f"/v2/invoices/{invoice_id}"))

    def expire_invoice(self, invoice_id: str) -> Invoice:
        return parse_invoice(self._request("POST", f"/v2/invoices/{invoice_id}/expire!"))

    def _request(self, method: str, path: str, json_body: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            with httpx.Client(timeout=self._timeout, auth=(self._secret_key, ""), transport=self._transport) as client:
                response = client.request(method, url, json=json_body)
        except httpx.TimeoutException as exc:
            logger.error("Xendit request timed out: %s %s", method, path)
            raise UpstreamError("Gateway de pagamento não respondeu") from exc
        except httpx.HTTPError as exc:
            logger.error("Xendit request failed: %s %s error=%s", method, path, exc)
            raise UpstreamError("Gateway de pagamento indisponível") from exc

        if not 200 <= response.status_code < 300:
            error_code = ""
            message = response.text
            try:
                body = response.json()
                error_code = body.get("error_code", "")
                message = body.get("message", message)
            except (json.JSONDecodeError, AttributeError):
                pass
            logger.error(
                "Xendit API error %s: %s - %s",
                response.status_code,
                error_code,
                message,
                extra={"endpoint": path, "status_code": response.status_code},
            )
            raise UpstreamError(f"Gateway de pagamento recusou a requisição ({response.status_code})")

        try:
            return response.json()
        except json.JSONDecodeError as exc:
            logger.error("Xendit returned a non-JSON body for %s %s", method, path)
            raise UpstreamError("Resposta inválida do gateway de pagamento") from exc
