class PersistenceError(Exception):
    """A payment intent write could not be committed."""


class PaymentNotFoundError(LookupError):
    def __init__(self, reference: str) -> None:
        super().__init__(f"payment {reference} not found")
        self.reference = reference


class WebhookPayloadError(ValueError):
    """A verified webhook body is not a usable gateway event."""


class GatewayError(Exception):
    """The payment gateway API could not confirm a transaction."""
