"""Khalti ePayment client.

Thin synchronous wrapper over the Khalti HTTP API
(``/epayment/initiate/``, ``/epayment/lookup/``, ``/epayment/refund/``).
Amounts are sent in paisa.  Every transport or HTTP error surfaces as
``PaymentGatewayError`` carrying the gateway's ``detail`` when present.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
import structlog
from django.conf import settings

from modules.payments.exceptions import PaymentGatewayError

logger = structlog.get_logger(__name__)


def to_paisa(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


class KhaltiGateway:
    def __init__(
        self,
        base_url: Optional[str] = None,
        secret_key: Optional[str] = None,
        app_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = (base_url or settings.KHALTI_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.KHALTI_SECRET_KEY
        self.app_url = (app_url or settings.APP_URL).rstrip("/")
        self._http_client = http_client
        self._timeout = timeout

    def initiate(
        self, order_id: str, amount: Decimal, customer: Dict[str, str]
    ) -> Dict[str, Any]:
        """Start a payment; the response carries ``pidx`` and ``payment_url``."""
        payload = {
            "return_url": f"{self.app_url}/api/v1/payments/khalti/verify/",
            "website_url": self.app_url,
            "amount": to_paisa(amount),
            "purchase_order_id": order_id,
            "purchase_order_name": f"Order {order_id}",
            "customer_info": {
                "name": customer.get("name", ""),
                "email": customer.get("email", ""),
                "phone": customer.get("phone", ""),
            },
        }
        return self._post("/epayment/initiate/", payload)

    def verify(self, pidx: str) -> Dict[str, Any]:
        """Look a payment up; ``status == "Completed"`` means paid."""
        return self._post("/epayment/lookup/", {"pidx": pidx})

    def refund(self, pidx: str, amount: Decimal, reason: str = "") -> Dict[str, Any]:
        return self._post(
            "/epayment/refund/",
            {"pidx": pidx, "amount": to_paisa(amount), "reason": reason},
        )

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.secret_key or not self.base_url:
            raise PaymentGatewayError("Khalti configuration is missing.")

        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Key {self.secret_key}",
            "Content-Type": "application/json",
        }
        log = logger.bind(gateway="khalti", path=path)

        try:
            if self._http_client is not None:
                response = self._http_client.post(url, json=payload, headers=headers)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            log.warning("payment.gateway_error", status=exc.response.status_code, detail=detail)
            raise PaymentGatewayError(f"Khalti Error: {detail}") from exc
        except httpx.RequestError as exc:
            log.warning("payment.gateway_unreachable", error=str(exc))
            raise PaymentGatewayError(f"Khalti Error: {exc}") from exc

        log.info("payment.gateway_call", status=response.status_code)
        return response.json()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return f"HTTP {response.status_code}"
