from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
import logging
import threading

from sqlalchemy import DateTime, Numeric, String, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, mapped_column

from devkit.clock import now_utc, now_utc_iso
from devkit.db import AsyncDatabaseManager, Base, create_all_tables

from payment_service.exceptions import PaymentNotFoundError, PersistenceError
from payment_service.models import PaymentIntent, PaymentStats, PaymentStatus, StatusTotals
from payment_service.references import ReferenceGenerator

logger = logging.getLogger(__name__)


class PaymentIntentORM(Base):
    __tablename__ = "payments"

    reference: Mapped[str] = mapped_column(String(255), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PaymentIntentStore:
    """Owns every payment intent record.

    ``transition`` is a compare-and-set against the stored status: under a
    lock in memory, and a conditional ``UPDATE ... WHERE status = 'pending'``
    against the database.
    """

    def __init__(
        self,
        database_url: str | None = None,
        namespace: str = "healthcheck",
        currency: str = "KES",
        reference_generator: ReferenceGenerator | None = None,
    ) -> None:
        self._items: dict[str, PaymentIntent] = {}
        self._lock = threading.Lock()
        self._namespace = namespace
        self._currency = currency
        self._references = reference_generator or ReferenceGenerator()
        self._db = AsyncDatabaseManager(database_url) if database_url else None
        self._orm_ready = False

    async def ensure_ready(self) -> None:
        try:
            await self._ensure_orm_ready()
        except SQLAlchemyError as exc:
            raise PersistenceError("payment store is not reachable") from exc

    async def close(self) -> None:
        if self._db is not None:
            await self._db.disconnect()

    async def create(self, user_id: str, amount: Decimal | int | str, email: str | None = None) -> PaymentIntent:
        value = Decimal(str(amount))
        if not value.is_finite() or value <= 0:
            raise ValueError("amount must be positive")
        intent = PaymentIntent(
            reference=self._references.generate(self._namespace, user_id),
            user_id=user_id,
            amount=value,
            currency=self._currency,
            email=email,
        )

        if self._db is None:
            with self._lock:
                self._items[intent.reference] = intent
            logger.info("payment_intent_created", extra={"component": "payment_store", "reference": intent.reference})
            return intent

        async def _run(session):
            now = now_utc()
            session.add(
                PaymentIntentORM(
                    reference=intent.reference,
                    user_id=intent.user_id,
                    email=intent.email,
                    amount=intent.amount,
                    currency=intent.currency,
                    status=intent.status.value,
                    created_at=now,
                    updated_at=now,
                )
            )
            await session.flush()

        try:
            await self._ensure_orm_ready()
            await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            logger.error(
                "payment_intent_persist_failed",
                extra={"component": "payment_store", "reference": intent.reference, "error": type(exc).__name__},
            )
            raise PersistenceError(f"could not persist payment {intent.reference}") from exc
        logger.info("payment_intent_created", extra={"component": "payment_store", "reference": intent.reference})
        return intent

    async def get_by_reference(self, reference: str) -> PaymentIntent | None:
        if self._db is None:
            return self._items.get(reference)

        async def _run(session):
            row = await session.get(PaymentIntentORM, reference)
            return self._to_entity(row) if row is not None else None

        try:
            await self._ensure_orm_ready()
            return await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            raise PersistenceError("payment lookup failed") from exc

    async def list_for_user(self, user_id: str) -> list[PaymentIntent]:
        if self._db is None:
            items = [item for item in self._items.values() if item.user_id == user_id]
            return sorted(items, key=lambda item: (item.created_at, item.reference), reverse=True)

        async def _run(session):
            rows = (
                await session.scalars(
                    select(PaymentIntentORM)
                    .where(PaymentIntentORM.user_id == user_id)
                    .order_by(PaymentIntentORM.created_at.desc(), PaymentIntentORM.reference.desc())
                )
            ).all()
            return [self._to_entity(row) for row in rows]

        try:
            await self._ensure_orm_ready()
            return await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            raise PersistenceError("payment history lookup failed") from exc

    async def payment_stats(self) -> PaymentStats:
        totals: dict[PaymentStatus, StatusTotals] = {}
        if self._db is None:
            with self._lock:
                items = list(self._items.values())
            for item in items:
                current = totals.get(item.status, StatusTotals(item.status))
                totals[item.status] = StatusTotals(item.status, current.count + 1, current.amount + item.amount)
            return PaymentStats.from_totals(totals)

        async def _run(session):
            rows = await session.execute(
                select(
                    PaymentIntentORM.status,
                    func.count(PaymentIntentORM.reference),
                    func.coalesce(func.sum(PaymentIntentORM.amount), 0),
                ).group_by(PaymentIntentORM.status)
            )
            return [tuple(row) for row in rows]

        try:
            await self._ensure_orm_ready()
            rows = await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            raise PersistenceError("payment statistics lookup failed") from exc
        for status, count, amount in rows:
            parsed = PaymentStatus(status)
            totals[parsed] = StatusTotals(parsed, int(count), Decimal(str(amount)))
        return PaymentStats.from_totals(totals)

    async def transition(self, reference: str, new_status: PaymentStatus) -> bool:
        """Move a pending intent to ``new_status``.

        Returns ``False`` without writing when the intent is already terminal.
        Raises ``PaymentNotFoundError`` for an unknown reference.
        """
        if not new_status.is_terminal:
            raise ValueError(f"{new_status.value} is not a terminal status")

        if self._db is None:
            with self._lock:
                current = self._items.get(reference)
                if current is None:
                    raise PaymentNotFoundError(reference)
                if current.status is not PaymentStatus.PENDING:
                    return False
                self._items[reference] = replace(current, status=new_status, updated_at=now_utc_iso())
                return True

        async def _run(session):
            result = await session.execute(
                update(PaymentIntentORM)
                .where(
                    PaymentIntentORM.reference == reference,
                    PaymentIntentORM.status == PaymentStatus.PENDING.value,
                )
                .values(status=new_status.value, updated_at=now_utc())
            )
            if result.rowcount == 1:
                return True
            exists = await session.scalar(
                select(PaymentIntentORM.reference).where(PaymentIntentORM.reference == reference)
            )
            if exists is None:
                raise PaymentNotFoundError(reference)
            return False

        try:
            await self._ensure_orm_ready()
            return await self._db.run_with_session(_run)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"could not update payment {reference}") from exc

    async def _ensure_orm_ready(self) -> None:
        if self._db is None or self._orm_ready:
            return
        await self._db.connect()
        await create_all_tables(self._db.engine, Base.metadata, tables=[PaymentIntentORM.__table__])
        self._orm_ready = True

    def _to_entity(self, row: PaymentIntentORM) -> PaymentIntent:
        return PaymentIntent(
            reference=row.reference,
            user_id=row.user_id,
            email=row.email,
            amount=Decimal(row.amount),
            currency=row.currency,
            status=PaymentStatus(row.status),
            created_at=row.created_at.isoformat(),
            updated_at=row.updated_at.isoformat(),
        )
