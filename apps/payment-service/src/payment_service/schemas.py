from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class PaymentCreateRequest(BaseModel):
    # no underscores: the reference is split on "_"
    user_id: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9-]+$")
    email: str = Field(min_length=3, max_length=255)
    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
