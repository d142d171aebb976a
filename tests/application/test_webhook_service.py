from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, webhook_body
from application.dtos.orders import OrderItemDTO, PlaceOrderDTO
from application.dtos.tickets import EventDetailsDTO, TicketPurchaseDTO
from application.dtos.wallet import RechargeDTO
from application.services.webhook_service import WebhookService
from domain.account.entity import RechargeStatus
from domain.order.status import OrderPaymentStatus, OrderStatus
from domain.ticket.entity import EventType, TicketPaymentStatus, TicketStatus
from infrastructure.external.payments.exceptions import PaymentSignatureError


def _headers(event_id: str) -> dict:
    return {"x-razorpay-signature": "valid", "x-razorpay-event-id": event_id}


async def _pending_ticket(ticket_service):
    result = await ticket_service.purchase(
        TicketPurchaseDTO(
            user_id="u1",
            event_type=EventType.ACTIVITY,
            event=EventDetailsDTO(name="Camel Safari", location="Jaisalmer", date=NOW + timedelta(days=5)),
            base_price=Decimal("100"),
            quantity=2,
        )
    )
    return result.ticket


@pytest.mark.asyncio
async def test_capture_confirms_ticket_once(webhook_service, ticket_service, seed_account, db):
    seed_account("u1")
    ticket = await _pending_ticket(ticket_service)
    body = webhook_body("payment.captured", ticket.gateway_order_id, "pay_7")

    first = await webhook_service.handle(_headers("evt_1"), body)
    second = await webhook_service.handle(_headers("evt_1"), body)

    assert first["status"] == "processed"
    assert second["status"] == "duplicate"
    stored = db.state.tickets[ticket.ticket_id]
    assert stored.status == TicketStatus.CONFIRMED
    assert stored.payment.payment_id == "pay_7"
    assert db.state.accounts["u1"].rewards.points == 2
    assert "evt_1" in db.state.keys


@pytest.mark.asyncio
async def test_capture_after_client_confirmation_is_noop(webhook_service, ticket_service, db):
    ticket = await _pending_ticket(ticket_service)
    await ticket_service.confirm_captured(ticket.gateway_order_id, "pay_7")

    result = await webhook_service.handle(
        _headers("evt_2"), webhook_body("payment.captured", ticket.gateway_order_id, "pay_7")
    )
    assert result["status"] == "processed"
    assert db.state.tickets[ticket.ticket_id].payment.paid_at == NOW


@pytest.mark.asyncio
async def test_capture_routes_to_order(webhook_service, order_service, seed_account, db):
    seed_account("v1")
    placed = await order_service.place_order(
        PlaceOrderDTO(
            customer_id="c1",
            vendor_id="v1",
            items=[OrderItemDTO(product_id="p1", name="Rug", unit_price=Decimal("1000"), quantity=1)],
        )
    )
    result = await webhook_service.handle(
        _headers("evt_3"), webhook_body("payment.captured", placed.order.gateway_order_id)
    )
    assert result["status"] == "processed"
    stored = db.state.orders[placed.order.order_id]
    assert stored.status == OrderStatus.CONFIRMED
    assert stored.payment.status == OrderPaymentStatus.HELD_IN_ESCROW


@pytest.mark.asyncio
async def test_capture_routes_to_recharge(webhook_service, wallet_service, seed_account, db):
    seed_account("u1")
    started = await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("300")))
    result = await webhook_service.handle(
        _headers("evt_4"), webhook_body("payment.captured", started.gateway_order_id)
    )
    assert result["status"] == "processed"
    assert db.state.recharges[started.gateway_order_id].status == RechargeStatus.COMPLETED
    assert db.state.accounts["u1"].wallet.balance == Decimal("300.00")


@pytest.mark.asyncio
async def test_unknown_gateway_order_is_ignored(webhook_service, db):
    result = await webhook_service.handle(_headers("evt_5"), webhook_body("payment.captured", "order_nobody"))
    assert result["status"] == "ignored"
    assert "evt_5" in db.state.keys


@pytest.mark.asyncio
async def test_failure_then_late_capture_is_a_conflict(webhook_service, ticket_service, db):
    ticket = await _pending_ticket(ticket_service)
    failed = await webhook_service.handle(_headers("evt_6"), webhook_body("payment.failed", ticket.gateway_order_id))
    assert failed["status"] == "processed"
    assert db.state.tickets[ticket.ticket_id].payment.status == TicketPaymentStatus.FAILED

    late = await webhook_service.handle(_headers("evt_7"), webhook_body("payment.captured", ticket.gateway_order_id))
    assert late["status"] == "conflict"
    assert db.state.tickets[ticket.ticket_id].status == TicketStatus.PENDING


@pytest.mark.asyncio
async def test_other_events(webhook_service):
    refund = await webhook_service.handle(
        _headers("evt_8"),
        b'{"event": "refund.created", "payload": {"refund": {"entity": {"id": "rfnd_1", "payment_id": "pay_1"}}}}',
    )
    assert refund["status"] == "processed"
    other = await webhook_service.handle(_headers("evt_9"), b'{"event": "order.paid", "payload": {}}')
    assert other["status"] == "ignored"
    missing = await webhook_service.handle(_headers("evt_10"), b'{"event": "payment.captured", "payload": {}}')
    assert missing["status"] == "ignored"


@pytest.mark.asyncio
async def test_bad_signature_records_nothing(webhook_service, db):
    with pytest.raises(PaymentSignatureError):
        await webhook_service.handle({"x-razorpay-signature": "forged"}, webhook_body("payment.captured", "order_1"))
    assert db.state.keys == set()


@pytest.mark.asyncio
async def test_handler_error_leaves_event_retryable(
    uow_factory, payments, ticket_service, order_service, wallet_service, db, monkeypatch
):
    ticket = await _pending_ticket(ticket_service)
    calls = []

    async def broken(gateway_order_id, payment_id):
        calls.append(gateway_order_id)
        raise RuntimeError("database went away")

    monkeypatch.setattr(ticket_service, "confirm_captured", broken)
    flaky = WebhookService(uow_factory, payments, ticket_service, order_service, wallet_service)
    body = webhook_body("payment.captured", ticket.gateway_order_id)

    with pytest.raises(RuntimeError):
        await flaky.handle(_headers("evt_11"), body)
    assert "evt_11" not in db.state.keys

    monkeypatch.undo()
    healthy = WebhookService(uow_factory, payments, ticket_service, order_service, wallet_service)
    result = await healthy.handle(_headers("evt_11"), body)
    assert result["status"] == "processed"
    assert calls == [ticket.gateway_order_id]
