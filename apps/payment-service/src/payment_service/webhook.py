from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from shared.security import VerifiedPayload

from payment_service.exceptions import WebhookPayloadError

CHARGE_SUCCESS_EVENT = "charge.success"


@dataclass(frozen=True)
class WebhookEvent:
    payload: VerifiedPayload
    event_type: str
    reference: str | None
    external_status: str | None
    amount: int | None

    @property
    def is_charge_success(self) -> bool:
        return self.event_type == CHARGE_SUCCESS_EVENT


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_webhook_event(payload: VerifiedPayload) -> WebhookEvent:
    """Parse a gateway event out of a body whose signature was already checked."""
    try:
        body = payload.json()
    except ValueError as exc:
        raise WebhookPayloadError("webhook body is not valid json") from exc
    if not isinstance(body, dict):
        raise WebhookPayloadError("webhook body must be a json object")

    data = body.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise WebhookPayloadError("webhook data must be a json object")

    amount = data.get("amount")
    if amount is not None:
        try:
            amount = int(amount)
        except (TypeError, ValueError) as exc:
            raise WebhookPayloadError("webhook amount is not an integer") from exc

    return WebhookEvent(
        payload=payload,
        event_type=str(body.get("event") or ""),
        reference=_optional_str(data.get("reference")),
        external_status=_optional_str(data.get("status")),
        amount=amount,
    )
