"""
Repository and unit-of-work behaviour against a throwaway SQLite file.
"""
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, Clock, StubGateway, sign
from application.dtos.tickets import EventDetailsDTO, PaymentConfirmationDTO, TicketPurchaseDTO, TicketValidateDTO
from application.dtos.wallet import OpenAccountDTO, RechargeConfirmDTO, RechargeDTO
from application.services.analytics_service import AnalyticsRecorder
from application.services.payment_service import PaymentService
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from domain.account.entity import Account
from domain.analytics.entity import AnalyticsEvent, AnalyticsEventType
from domain.common.exceptions import AccountAlreadyExistsException, InvalidTicketSecretException
from domain.order.entity import Order, OrderItem, OrderPayment, TrackingEntry, VendorPayout
from domain.order.pricing import price_order
from domain.order.status import OrderPaymentMethod, OrderPaymentStatus, OrderStatus
from domain.ticket.entity import TicketStatus
from infrastructure.database import build_engine, build_session_factory, create_tables
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


async def _setup(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}")
    await create_tables(engine)
    session_factory = build_session_factory(engine)

    def uow_factory(**kwargs):
        return SQLAlchemyUnitOfWork(session_factory, **kwargs)

    return engine, uow_factory


@pytest.mark.asyncio
async def test_account_round_trip_and_duplicate(tmp_path):
    engine, uow_factory = await _setup(tmp_path)
    try:
        async with uow_factory() as uow:
            await uow.accounts.create(Account(id=None, user_id="u1", name="Asha", created_at=NOW))

        async with uow_factory() as uow:
            account = await uow.accounts.get_for_update("u1")
            account.wallet.balance = Decimal("120.50")
            account.rewards.points = 30
            await uow.accounts.update(account)

        async with uow_factory(readonly=True) as uow:
            loaded = await uow.accounts.get_by_user_id("u1")
            assert await uow.accounts.exists("u1")
            assert not await uow.accounts.exists("u2")
        assert loaded.wallet.balance == Decimal("120.50")
        assert loaded.rewards.points == 30
        assert loaded.created_at.tzinfo is not None

        with pytest.raises(AccountAlreadyExistsException):
            async with uow_factory() as uow:
                await uow.accounts.create(Account(id=None, user_id="u1", name="Dup"))
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_exception_rolls_back(tmp_path):
    engine, uow_factory = await _setup(tmp_path)
    try:
        with pytest.raises(RuntimeError):
            async with uow_factory() as uow:
                await uow.accounts.create(Account(id=None, user_id="u9", name="Gone"))
                raise RuntimeError("boom")

        async with uow_factory(readonly=True) as uow:
            assert await uow.accounts.get_by_user_id("u9") is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_order_round_trip(tmp_path):
    engine, uow_factory = await _setup(tmp_path)
    try:
        items = [OrderItem(product_id="p1", name="Rug", unit_price=Decimal("400"), quantity=2, village="Bagru")]
        pricing = price_order(items, shipping_cost=Decimal("50"))
        order = Order(
            id=None,
            order_id="ORD-RT",
            customer_id="c1",
            vendor_id="v1",
            items=items,
            pricing=pricing,
            payment=OrderPayment(method=OrderPaymentMethod.RAZORPAY, gateway_order_id="order_rt"),
            vendor_payout=VendorPayout(amount=pricing.vendor_payout),
            shipping_address={"city": "Jaipur"},
            created_at=NOW,
        )
        order.apply_pricing(pricing)
        order.tracking.status_history.append(TrackingEntry(status="pending", timestamp=NOW))
        async with uow_factory() as uow:
            await uow.orders.create(order)

        async with uow_factory() as uow:
            loaded = await uow.orders.get_by_gateway_order_id("order_rt")
            loaded.confirm_payment("pay_1", now=NOW)
            await uow.orders.update(loaded)

        async with uow_factory(readonly=True) as uow:
            stored = await uow.orders.get_by_order_id("ORD-RT")
            by_vendor = await uow.orders.list_by_vendor("v1", status=OrderStatus.CONFIRMED)
        assert stored.status == OrderStatus.CONFIRMED
        assert stored.pricing.total_amount == Decimal("1003.00")
        assert stored.pricing.vendor_payout == Decimal("680.00")
        assert stored.items[0].village == "Bagru"
        assert stored.items[0].subtotal == Decimal("800.00")
        assert [e.status for e in stored.tracking.status_history] == ["pending", "confirmed"]
        assert stored.shipping_address == {"city": "Jaipur"}
        assert [o.order_id for o in by_vendor] == ["ORD-RT"]

        async with uow_factory() as uow:
            reserved = await uow.orders.get_by_payment_id("pay_1")
            reserved.begin_refund(OrderStatus.CANCELLED, now=NOW)
            await uow.orders.update(reserved)

        async with uow_factory(readonly=True) as uow:
            pending = await uow.orders.get_by_payment_id("pay_1")
            missing = await uow.orders.get_by_payment_id("pay_unknown")
        assert pending.order_id == "ORD-RT"
        assert pending.payment.status == OrderPaymentStatus.REFUND_PENDING
        assert pending.payment.refund_target == OrderStatus.CANCELLED
        assert pending.payment.refund_amount == Decimal("1003.00")
        assert missing is None
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_processed_keys_and_analytics(tmp_path):
    engine, uow_factory = await _setup(tmp_path)
    try:
        async with uow_factory() as uow:
            assert await uow.idempotency.claim("evt_1", "webhook:razorpay") is True
            assert await uow.idempotency.claim("evt_1", "webhook:razorpay") is False
            await uow.analytics.add(
                AnalyticsEvent(event_type=AnalyticsEventType.ORDER_PAID, entity_id="ORD1", revenue=Decimal("150.00"))
            )
            await uow.analytics.add(
                AnalyticsEvent(event_type=AnalyticsEventType.ORDER_PAID, entity_id="ORD2", revenue=Decimal("12.25"))
            )

        async with uow_factory(readonly=True) as uow:
            assert await uow.idempotency.seen("evt_1")
            assert not await uow.idempotency.seen("evt_2")
            assert await uow.analytics.total_revenue(AnalyticsEventType.ORDER_PAID) == Decimal("162.25")
            assert await uow.analytics.total_revenue(AnalyticsEventType.TICKET_PURCHASED) == Decimal("0")
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_ticket_flow_persists_through_sqlalchemy(tmp_path):
    engine, uow_factory = await _setup(tmp_path)
    clock = Clock()
    payments = PaymentService(gateway=StubGateway())
    analytics = AnalyticsRecorder(uow_factory)
    wallet = WalletApplicationService(uow_factory, payments, analytics=analytics, clock=clock)
    tickets = TicketApplicationService(uow_factory, payments, analytics=analytics, clock=clock)
    try:
        await wallet.open_account(OpenAccountDTO(user_id="u1", name="Asha"))
        created = await tickets.purchase(
            TicketPurchaseDTO(
                user_id="u1",
                event_type="tour",
                event=EventDetailsDTO(name="Old City", location="Udaipur", date=NOW + timedelta(days=2)),
                base_price=Decimal("100"),
                quantity=2,
            )
        )
        gid = created.ticket.gateway_order_id
        dto = PaymentConfirmationDTO(gateway_order_id=gid, payment_id="pay_1", signature=sign(gid, "pay_1"))
        await tickets.confirm_payment(created.ticket.ticket_id, dto)
        await tickets.confirm_payment(created.ticket.ticket_id, dto)

        with pytest.raises(InvalidTicketSecretException):
            await tickets.validate(created.ticket.ticket_id, TicketValidateDTO(secret="wrong"))
        used = await tickets.validate(created.ticket.ticket_id, TicketValidateDTO(secret=created.qr_secret))

        assert used.status == TicketStatus.USED.value
        assert used.validation_attempts == 1
        account = await wallet.get_account("u1")
        assert account.points == 2
        assert await analytics.total_revenue(AnalyticsEventType.TICKET_PURCHASED) == Decimal("10.00")

        started = await wallet.start_recharge("u1", RechargeDTO(amount=Decimal("6000")))
        confirm = RechargeConfirmDTO(
            gateway_order_id=started.gateway_order_id,
            payment_id="pay_2",
            signature=sign(started.gateway_order_id, "pay_2"),
        )
        first = await wallet.confirm_recharge("u1", confirm)
        again = await wallet.confirm_recharge("u1", confirm)
        assert first.balance == Decimal("6300.00")
        assert again.already_applied is True
        assert (await wallet.get_account("u1")).balance == Decimal("6300.00")
    finally:
        await payments.aclose()
        await engine.dispose()
