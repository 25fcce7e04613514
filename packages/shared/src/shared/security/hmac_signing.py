from __future__ import annotations

from dataclasses import dataclass, field
import hashlib
import hmac
import json
from typing import Any

_ISSUED = object()


class SignatureValidationError(ValueError):
    pass


@dataclass(frozen=True)
class VerifiedPayload:
    """Raw webhook body whose signature has already been checked.

    Only ``authenticate_webhook`` can build one, so any parser that takes a
    ``VerifiedPayload`` cannot run on unauthenticated input.
    """

    raw_body: bytes
    _token: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._token is not _ISSUED:
            raise TypeError("VerifiedPayload is issued by authenticate_webhook only")

    def json(self) -> Any:
        return json.loads(self.raw_body)


def _secret_bytes(secret: bytes | str) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


def _require_raw_body(raw_body: bytes) -> bytes:
    if not isinstance(raw_body, (bytes, bytearray)):
        raise TypeError("webhook signatures are computed over the raw request bytes")
    return bytes(raw_body)


def build_webhook_signature(secret: bytes | str, raw_body: bytes) -> str:
    if not secret:
        raise ValueError("secret required")
    return hmac.new(_secret_bytes(secret), _require_raw_body(raw_body), hashlib.sha512).hexdigest()


def verify_webhook_signature(
    raw_body: bytes,
    signature_header: str | None,
    secret: bytes | str | None,
) -> bool:
    body = _require_raw_body(raw_body)
    if not secret or not signature_header:
        return False
    expected = build_webhook_signature(secret, body)
    try:
        provided = signature_header.strip().lower().encode("ascii")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), provided)


def authenticate_webhook(
    raw_body: bytes,
    signature_header: str | None,
    secret: bytes | str | None,
) -> VerifiedPayload:
    if not verify_webhook_signature(raw_body, signature_header, secret):
        # same message for every cause
        raise SignatureValidationError("invalid signature")
    return VerifiedPayload(raw_body=bytes(raw_body), _token=_ISSUED)
