import asyncio
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from payment_service.exceptions import PaymentNotFoundError, PersistenceError
from payment_service.models import PaymentStatus
from payment_service.store import PaymentIntentStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return PaymentIntentStore()
    return PaymentIntentStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")


@pytest.mark.asyncio
async def test_create_persists_pending_intent(store) -> None:
    intent = await store.create("user-1", 100, email="user@example.com")
    loaded = await store.get_by_reference(intent.reference)

    assert intent.status is PaymentStatus.PENDING
    assert intent.reference.startswith("healthcheck_user-1_")
    assert loaded is not None
    assert loaded.status is PaymentStatus.PENDING
    assert loaded.amount == Decimal("100")
    assert loaded.currency == "KES"
    await store.close()


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected(store) -> None:
    with pytest.raises(ValueError):
        await store.create("user-1", 0)


@pytest.mark.asyncio
async def test_unknown_reference(store) -> None:
    assert await store.get_by_reference("missing") is None
    with pytest.raises(PaymentNotFoundError):
        await store.transition("missing", PaymentStatus.PAID)
    await store.close()


@pytest.mark.asyncio
async def test_terminal_status_is_never_overwritten(store) -> None:
    intent = await store.create("user-1", 100)

    first = await store.transition(intent.reference, PaymentStatus.PAID)
    second = await store.transition(intent.reference, PaymentStatus.FAILED)

    assert first is True
    assert second is False
    assert (await store.get_by_reference(intent.reference)).status is PaymentStatus.PAID
    await store.close()


@pytest.mark.asyncio
async def test_transition_to_pending_is_rejected(store) -> None:
    intent = await store.create("user-1", 100)
    with pytest.raises(ValueError):
        await store.transition(intent.reference, PaymentStatus.PENDING)
    await store.close()


@pytest.mark.asyncio
async def test_concurrent_transitions_apply_exactly_once(store) -> None:
    intent = await store.create("user-1", 100)

    results = await asyncio.gather(
        store.transition(intent.reference, PaymentStatus.PAID),
        store.transition(intent.reference, PaymentStatus.CANCELLED),
    )
    final = await store.get_by_reference(intent.reference)

    assert sorted(results) == [False, True]
    expected = PaymentStatus.PAID if results[0] else PaymentStatus.CANCELLED
    assert final.status is expected
    await store.close()


def test_threaded_transitions_apply_exactly_once() -> None:
    store = PaymentIntentStore()
    intent = asyncio.run(store.create("user-1", 100))
    targets = [PaymentStatus.PAID, PaymentStatus.CANCELLED, PaymentStatus.FAILED] * 10

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda status: asyncio.run(store.transition(intent.reference, status)), targets))

    assert results.count(True) == 1
    final = asyncio.run(store.get_by_reference(intent.reference))
    assert final.status is targets[results.index(True)]


@pytest.mark.asyncio
async def test_history_is_newest_first_and_scoped_to_user(store) -> None:
    first = await store.create("user-1", 100)
    second = await store.create("user-1", 250)
    await store.create("user-2", 100)

    history = await store.list_for_user("user-1")

    assert [item.reference for item in history] == [second.reference, first.reference]
    await store.close()


@pytest.mark.asyncio
async def test_payment_stats_group_by_status(store) -> None:
    paid = await store.create("user-1", 100)
    also_paid = await store.create("user-2", Decimal("50.50"))
    failed = await store.create("user-1", 100)
    await store.create("user-3", 100)
    await store.transition(paid.reference, PaymentStatus.PAID)
    await store.transition(also_paid.reference, PaymentStatus.PAID)
    await store.transition(failed.reference, PaymentStatus.FAILED)

    stats = await store.payment_stats()
    by_status = {item.status: item for item in stats.by_status}

    assert [item.status for item in stats.by_status] == list(PaymentStatus)
    assert (by_status[PaymentStatus.PAID].count, by_status[PaymentStatus.PAID].amount) == (2, Decimal("150.50"))
    assert (by_status[PaymentStatus.FAILED].count, by_status[PaymentStatus.FAILED].amount) == (1, Decimal("100"))
    assert (by_status[PaymentStatus.PENDING].count, by_status[PaymentStatus.CANCELLED].count) == (1, 0)
    assert by_status[PaymentStatus.CANCELLED].amount == Decimal("0")
    assert stats.total_payments == 4
    assert stats.total_revenue == Decimal("150.50")
    assert stats.success_rate == 0.5
    await store.close()


@pytest.mark.asyncio
async def test_payment_stats_on_empty_store(store) -> None:
    stats = await store.payment_stats()

    assert stats.total_payments == 0
    assert stats.total_revenue == Decimal("0")
    assert stats.success_rate == 0.0
    assert all(item.count == 0 for item in stats.by_status)
    await store.close()


@pytest.mark.asyncio
async def test_unreachable_database_is_persistence_error(tmp_path) -> None:
    store = PaymentIntentStore(database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'payments.db'}")

    with pytest.raises(PersistenceError):
        await store.create("user-1", 100)
