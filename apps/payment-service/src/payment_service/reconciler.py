from __future__ import annotations

from dataclasses import dataclass
import logging

from payment_service.exceptions import PaymentNotFoundError, WebhookPayloadError
from payment_service.gateway import PaystackGateway, to_minor_units
from payment_service.models import PaymentStatus
from payment_service.store import PaymentIntentStore
from payment_service.webhook import WebhookEvent

logger = logging.getLogger(__name__)

EXTERNAL_STATUS_MAP: dict[str, PaymentStatus] = {
    "success": PaymentStatus.PAID,
    "failed": PaymentStatus.FAILED,
    "abandoned": PaymentStatus.CANCELLED,
}


def map_external_status(external_status: str | None) -> PaymentStatus:
    return EXTERNAL_STATUS_MAP.get((external_status or "").lower(), PaymentStatus.PENDING)


@dataclass(frozen=True)
class ReconcileResult:
    applied: bool
    resulting_status: PaymentStatus | None
    reference: str | None


class PaymentReconciler:
    """The single path through which payment status changes.

    Webhook events and client success signals both end in
    ``PaymentIntentStore.transition``; whichever lands first wins and every
    later signal for that reference is a no-op.
    """

    def __init__(self, store: PaymentIntentStore, gateway: PaystackGateway | None = None) -> None:
        self._store = store
        self._gateway = gateway

    async def reconcile(self, event: WebhookEvent) -> ReconcileResult:
        if not event.is_charge_success:
            logger.info(
                "payment_webhook_event_ignored",
                extra={"component": "payment_reconciler", "event_type": event.event_type},
            )
            return ReconcileResult(applied=False, resulting_status=None, reference=event.reference)
        if event.reference is None:
            raise WebhookPayloadError("missing payment reference")
        return await self._apply(event.reference, event.external_status, event.amount, channel="webhook")

    async def reconcile_client_success(self, reference: str) -> ReconcileResult:
        """Apply a checkout widget success signal once the gateway confirms it.

        Without a gateway API the signal proves nothing; it is acknowledged and
        the webhook stays the only authority.
        """
        if self._gateway is None:
            intent = await self._store.get_by_reference(reference)
            if intent is None:
                raise PaymentNotFoundError(reference)
            logger.warning(
                "payment_client_signal_unconfirmed",
                extra={"component": "payment_reconciler", "reference": reference, "status": intent.status.value},
            )
            return ReconcileResult(applied=False, resulting_status=intent.status, reference=reference)

        transaction = await self._gateway.verify_transaction(reference)
        return await self._apply(reference, transaction.status, transaction.amount, channel="client")

    async def _apply(
        self,
        reference: str,
        external_status: str | None,
        amount_minor: int | None,
        channel: str,
    ) -> ReconcileResult:
        # always re-read; no status is carried between calls
        intent = await self._store.get_by_reference(reference)
        if intent is None:
            raise PaymentNotFoundError(reference)

        target = map_external_status(external_status)
        if target is PaymentStatus.PENDING:
            logger.info(
                "payment_status_unmapped",
                extra={
                    "component": "payment_reconciler",
                    "reference": reference,
                    "external_status": external_status,
                    "channel": channel,
                },
            )
            return ReconcileResult(applied=False, resulting_status=intent.status, reference=reference)

        expected_minor = to_minor_units(intent.amount)
        if amount_minor is not None and amount_minor != expected_minor:
            logger.warning(
                "payment_amount_mismatch",
                extra={
                    "component": "payment_reconciler",
                    "reference": reference,
                    "expected_minor": expected_minor,
                    "received_minor": amount_minor,
                    "channel": channel,
                },
            )

        applied = await self._store.transition(reference, target)
        if applied:
            logger.info(
                "payment_transition_applied",
                extra={
                    "component": "payment_reconciler",
                    "reference": reference,
                    "status": target.value,
                    "channel": channel,
                },
            )
            return ReconcileResult(applied=True, resulting_status=target, reference=reference)

        current = await self._store.get_by_reference(reference)
        resulting = current.status if current is not None else None
        logger.info(
            "payment_transition_noop",
            extra={
                "component": "payment_reconciler",
                "reference": reference,
                "requested": target.value,
                "status": resulting.value if resulting else None,
                "channel": channel,
            },
        )
        return ReconcileResult(applied=False, resulting_status=resulting, reference=reference)
