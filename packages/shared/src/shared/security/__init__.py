from shared.security.hmac_signing import (
    SignatureValidationError,
    VerifiedPayload,
    authenticate_webhook,
    build_webhook_signature,
    verify_webhook_signature,
)

__all__ = [
    "SignatureValidationError",
    "VerifiedPayload",
    "authenticate_webhook",
    "build_webhook_signature",
    "verify_webhook_signature",
]
