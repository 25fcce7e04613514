from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from devkit.clock import now_utc_iso


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.FAILED, PaymentStatus.CANCELLED})


@dataclass(frozen=True)
class PaymentIntent:
    reference: str
    user_id: str
    amount: Decimal
    status: PaymentStatus = PaymentStatus.PENDING
    currency: str = "KES"
    email: str | None = None
    created_at: str = field(default_factory=now_utc_iso)
    updated_at: str = field(default_factory=now_utc_iso)

    def to_dict(self) -> dict[str, object]:
        return {
            "reference": self.reference,
            "user_id": self.user_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class StatusTotals:
    status: PaymentStatus
    count: int = 0
    amount: Decimal = Decimal("0")


@dataclass(frozen=True)
class PaymentStats:
    """Counts and amounts per status, in the order of ``PaymentStatus``."""

    by_status: tuple[StatusTotals, ...]

    @classmethod
    def from_totals(cls, totals: dict[PaymentStatus, StatusTotals]) -> PaymentStats:
        return cls(by_status=tuple(totals.get(status, StatusTotals(status)) for status in PaymentStatus))

    @property
    def total_payments(self) -> int:
        return sum(item.count for item in self.by_status)

    @property
    def total_revenue(self) -> Decimal:
        return self._totals(PaymentStatus.PAID).amount

    @property
    def success_rate(self) -> float:
        # paid share of every intent, pending included
        return self._totals(PaymentStatus.PAID).count / max(self.total_payments, 1)

    def _totals(self, status: PaymentStatus) -> StatusTotals:
        return next(item for item in self.by_status if item.status is status)

    def to_dict(self) -> dict[str, object]:
        return {
            "total_payments": self.total_payments,
            "total_revenue": float(self.total_revenue),
            "success_rate": round(self.success_rate, 4),
            "by_status": [
                {"status": item.status.value, "count": item.count, "amount": float(item.amount)}
                for item in self.by_status
            ],
        }
