from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from devkit.config import ConfigurationError

from payment_service.exceptions import GatewayError
from payment_service.models import PaymentIntent

PAYMENT_CHANNELS = ("card", "bank", "ussd", "qr", "mobile_money")
CHECKOUT_LABEL = "HealthCheck Premium Advice"
PREMIUM_SERVICE_NAME = "Premium Health Advice"


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).to_integral_value())


def build_checkout_config(intent: PaymentIntent, public_key: str, email: str) -> dict[str, Any]:
    """Configuration handed to the gateway's embedded checkout widget."""
    return {
        "public_key": public_key,
        "email": email,
        "amount": to_minor_units(intent.amount),
        "reference": intent.reference,
        "currency": intent.currency,
        "channels": list(PAYMENT_CHANNELS),
        "label": CHECKOUT_LABEL,
        "metadata": {
            "custom_fields": [
                {
                    "display_name": "Service",
                    "variable_name": "service",
                    "value": PREMIUM_SERVICE_NAME,
                }
            ]
        },
    }


@dataclass(frozen=True)
class GatewayTransaction:
    reference: str
    status: str
    amount: int | None


class PaystackGateway:
    def __init__(
        self,
        base_url: str,
        secret_key: str | None,
        timeout_seconds: float = 10.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def verify_transaction(self, reference: str) -> GatewayTransaction:
        if not self._secret_key:
            raise ConfigurationError("PAYSTACK_SECRET_KEY")
        try:
            factory = self._client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout_seconds))
            async with factory() as client:
                response = await client.get(
                    f"{self._base_url}/transaction/verify/{reference}",
                    headers={"Authorization": f"Bearer {self._secret_key}", "Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise GatewayError("gateway timeout") from exc
        except httpx.HTTPStatusError as exc:
            raise GatewayError(f"gateway returned {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise GatewayError("gateway request failed") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayError("gateway response is not json") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict) or not data.get("status"):
            raise GatewayError("gateway response has no transaction status")
        amount = data.get("amount")
        return GatewayTransaction(
            reference=str(data.get("reference") or reference),
            status=str(data["status"]),
            amount=int(amount) if isinstance(amount, (int, float)) else None,
        )
