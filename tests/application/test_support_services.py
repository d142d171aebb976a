import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW
from application.services.entity_locks import KeyedLock, account_key, ticket_key
from domain.analytics.entity import AnalyticsEventType


@pytest.mark.asyncio
async def test_analytics_revenue_totals(analytics):
    await analytics.emit(AnalyticsEventType.TICKET_PURCHASED, "TKT1", revenue=Decimal("10.00"), user_id="u1")
    await analytics.emit(AnalyticsEventType.TICKET_PURCHASED, "TKT2", revenue=Decimal("2.55"))
    await analytics.emit(AnalyticsEventType.ORDER_PAID, "ORD1", revenue=Decimal("150.00"))

    assert await analytics.total_revenue(AnalyticsEventType.TICKET_PURCHASED) == Decimal("12.55")
    assert await analytics.total_revenue(AnalyticsEventType.ORDER_PAID) == Decimal("150.00")
    assert await analytics.total_revenue(AnalyticsEventType.ESCROW_RELEASED) == Decimal("0.00")


@pytest.mark.asyncio
async def test_analytics_since_filter(analytics, db):
    await analytics.emit(AnalyticsEventType.TICKET_PURCHASED, "TKT1", revenue=Decimal("10.00"))
    await analytics.emit(AnalyticsEventType.TICKET_PURCHASED, "TKT2", revenue=Decimal("5.00"))
    db.state.events[0].timestamp = NOW - timedelta(days=10)
    db.state.events[1].timestamp = NOW

    assert await analytics.total_revenue(AnalyticsEventType.TICKET_PURCHASED, since=NOW - timedelta(days=1)) == Decimal("5.00")


@pytest.mark.asyncio
async def test_analytics_failure_is_swallowed(analytics, db):
    db.fail_analytics = True
    await analytics.emit(AnalyticsEventType.ORDER_PLACED, "ORD1", note="ignored")
    assert db.state.events == []


@pytest.mark.asyncio
async def test_keyed_lock_serialises_same_key():
    locks = KeyedLock()
    order = []

    async def worker(name: str, delay: float):
        async with locks.hold(account_key("u1")):
            order.append(f"{name}-in")
            await asyncio.sleep(delay)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a", 0.02), worker("b", 0))
    assert order == ["a-in", "a-out", "b-in", "b-out"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_keyed_lock_multi_key_order_avoids_deadlock():
    locks = KeyedLock()
    done = []

    async def worker(keys):
        async with locks.hold(*keys):
            await asyncio.sleep(0.01)
            done.append(keys)

    await asyncio.wait_for(
        asyncio.gather(
            worker((ticket_key("T1"), account_key("u1"))),
            worker((account_key("u1"), ticket_key("T1"))),
        ),
        timeout=2,
    )
    assert len(done) == 2
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_concurrent_wallet_debits_never_overdraw(wallet_service, seed_account, db):
    from application.dtos.wallet import WalletPaymentDTO
    from domain.common.exceptions import InsufficientBalanceException

    seed_account("u1", balance=Decimal("100"))
    results = await asyncio.gather(
        *[
            wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("30"), reference=f"R{i}"))
            for i in range(5)
        ],
        return_exceptions=True,
    )
    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, InsufficientBalanceException)]
    assert len(succeeded) == 3 and len(failed) == 2
    assert db.state.accounts["u1"].wallet.balance == Decimal("10.00")
