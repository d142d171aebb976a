"""Pytest bootstrap configuration.

Environment variables are set before any application module is imported,
then in-memory fakes of the repository ports, unit of work and payment
gateway are exposed as fixtures.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_ID", "rzp_test_key")
os.environ.setdefault("PAYMENT__RAZORPAY__KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("PAYMENT__RAZORPAY__WEBHOOK_SECRET", "whsec_test")

import copy
import itertools
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from application.dtos.payments import CreatePayment, PaymentIntent, RefundRequest, RefundResult, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.analytics_service import AnalyticsRecorder
from application.services.entity_locks import KeyedLock
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentService
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from application.services.webhook_service import WebhookService
from domain.account.entity import Account, WalletRecharge
from domain.account.repository import AccountRepository, WalletRechargeRepository
from domain.analytics.entity import AnalyticsEvent
from domain.analytics.repository import AnalyticsRepository
from domain.common.exceptions import AccountAlreadyExistsException
from domain.common.idempotency import IdempotencyRepository
from domain.common.money import ZERO, SettlementRates
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.order.repository import OrderRepository
from domain.ticket.entity import TERMINAL_STATUSES, Ticket
from domain.ticket.repository import TicketRepository
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError


NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@dataclass
class FakeState:
    tickets: dict[str, Ticket] = field(default_factory=dict)
    orders: dict[str, Order] = field(default_factory=dict)
    accounts: dict[str, Account] = field(default_factory=dict)
    recharges: dict[str, WalletRecharge] = field(default_factory=dict)
    events: list[AnalyticsEvent] = field(default_factory=list)
    keys: set[str] = field(default_factory=set)


class FakeDatabase:
    """Committed state; each unit of work edits a deep copy of it."""

    def __init__(self):
        self.state = FakeState()
        self.ids = itertools.count(1)
        self.fail_analytics = False

    def snapshot(self) -> FakeState:
        return copy.deepcopy(self.state)


class InMemoryTicketRepository(TicketRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._db, self._items = db, state.tickets

    async def create(self, ticket):
        ticket = copy.deepcopy(ticket)
        ticket.id = next(self._db.ids)
        self._items[ticket.ticket_id] = ticket
        return copy.deepcopy(ticket)

    async def get_by_ticket_id(self, ticket_id):
        return copy.deepcopy(self._items.get(ticket_id))

    get_for_update = get_by_ticket_id

    async def get_by_gateway_order_id(self, gateway_order_id):
        for t in self._items.values():
            if t.payment.gateway_order_id == gateway_order_id:
                return copy.deepcopy(t)
        return None

    async def get_by_payment_id(self, payment_id):
        for t in self._items.values():
            if t.payment.payment_id == payment_id:
                return copy.deepcopy(t)
        return None

    async def list_by_user(self, user_id, skip=0, limit=100, status=None):
        found = [t for t in self._items.values() if t.user_id == user_id and (status is None or t.status == status)]
        return copy.deepcopy(found[skip:skip + limit])

    async def list_expirable(self, now, limit=100):
        found = [t for t in self._items.values() if t.status not in TERMINAL_STATUSES and t.valid_until <= now]
        return copy.deepcopy(found[:limit])

    async def update(self, ticket):
        self._items[ticket.ticket_id] = copy.deepcopy(ticket)
        return copy.deepcopy(ticket)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._db, self._items = db, state.orders

    async def create(self, order):
        order = copy.deepcopy(order)
        order.id = next(self._db.ids)
        self._items[order.order_id] = order
        return copy.deepcopy(order)

    async def get_by_order_id(self, order_id):
        return copy.deepcopy(self._items.get(order_id))

    get_for_update = get_by_order_id

    async def get_by_gateway_order_id(self, gateway_order_id):
        for o in self._items.values():
            if o.payment.gateway_order_id == gateway_order_id:
                return copy.deepcopy(o)
        return None

    async def get_by_payment_id(self, payment_id):
        for o in self._items.values():
            if o.payment.payment_id == payment_id:
                return copy.deepcopy(o)
        return None

    async def list_by_customer(self, customer_id, skip=0, limit=100):
        found = [o for o in self._items.values() if o.customer_id == customer_id]
        return copy.deepcopy(found[skip:skip + limit])

    async def list_by_vendor(self, vendor_id, skip=0, limit=100, status=None):
        found = [o for o in self._items.values() if o.vendor_id == vendor_id and (status is None or o.status == status)]
        return copy.deepcopy(found[skip:skip + limit])

    async def update(self, order):
        self._items[order.order_id] = copy.deepcopy(order)
        return copy.deepcopy(order)


class InMemoryAccountRepository(AccountRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._db, self._items = db, state.accounts

    async def create(self, account):
        if account.user_id in self._items:
            raise AccountAlreadyExistsException(account.user_id)
        account = copy.deepcopy(account)
        account.id = next(self._db.ids)
        self._items[account.user_id] = account
        return copy.deepcopy(account)

    async def get_by_user_id(self, user_id):
        return copy.deepcopy(self._items.get(user_id))

    get_for_update = get_by_user_id

    async def update(self, account):
        self._items[account.user_id] = copy.deepcopy(account)
        return copy.deepcopy(account)

    async def exists(self, user_id):
        return user_id in self._items


class InMemoryWalletRechargeRepository(WalletRechargeRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._db, self._items = db, state.recharges

    async def create(self, recharge):
        recharge = copy.deepcopy(recharge)
        recharge.id = next(self._db.ids)
        self._items[recharge.gateway_order_id] = recharge
        return copy.deepcopy(recharge)

    async def get_by_gateway_order_id(self, gateway_order_id):
        return copy.deepcopy(self._items.get(gateway_order_id))

    get_for_update = get_by_gateway_order_id

    async def update(self, recharge):
        self._items[recharge.gateway_order_id] = copy.deepcopy(recharge)
        return copy.deepcopy(recharge)


class InMemoryAnalyticsRepository(AnalyticsRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._db, self._events = db, state.events

    async def add(self, event):
        if self._db.fail_analytics:
            raise RuntimeError("analytics store unavailable")
        self._events.append(copy.deepcopy(event))
        return event

    async def total_revenue(self, event_type, since=None):
        return sum(
            (e.revenue for e in self._events if e.event_type == event_type and (since is None or e.timestamp >= since)),
            ZERO,
        )


class InMemoryIdempotencyRepository(IdempotencyRepository):
    def __init__(self, db: FakeDatabase, state: FakeState):
        self._keys = state.keys

    async def claim(self, key, scope):
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    async def seen(self, key):
        return key in self._keys


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, db: FakeDatabase, *, readonly: bool = False):
        super().__init__(readonly=readonly)
        self._db = db
        self._state: Optional[FakeState] = None

    async def __aenter__(self):
        self._committed = False
        self._state = self._db.snapshot()
        self.tickets = InMemoryTicketRepository(self._db, self._state)
        self.orders = InMemoryOrderRepository(self._db, self._state)
        self.accounts = InMemoryAccountRepository(self._db, self._state)
        self.recharges = InMemoryWalletRechargeRepository(self._db, self._state)
        self.analytics = InMemoryAnalyticsRepository(self._db, self._state)
        self.idempotency = InMemoryIdempotencyRepository(self._db, self._state)
        return self

    async def commit(self):
        if not self._readonly and self._state is not None:
            self._db.state = copy.deepcopy(self._state)
        self._committed = True

    async def rollback(self):
        self._committed = False


class StubGateway(PaymentGateway):
    """Checkout signatures are ``sig:<order>|<payment>``; webhook bodies are trusted JSON."""

    provider = "razorpay"

    def __init__(self):
        self.orders: list[CreatePayment] = []
        self.refunds: list[RefundRequest] = []
        self.fail_refund = False
        self._seq = itertools.count(1)

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        self.orders.append(req)
        gid = f"order_{next(self._seq)}"
        return PaymentIntent(
            intent_id=gid,
            status="pending",
            client_secret_or_params={"order_id": gid},
            provider=self.provider,
            order_id=req.order_id,
        )

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:  # type: ignore[override]
        return signature == sign(gateway_order_id, payment_id)

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        if self.fail_refund:
            raise PaymentProviderError("refund rejected", provider=self.provider)
        self.refunds.append(req)
        return RefundResult(refund_id=f"rfnd_{next(self._seq)}", status="refunded", provider=self.provider)

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:  # type: ignore[override]
        if headers.get("x-razorpay-signature") != "valid":
            raise PaymentSignatureError("Webhook signature mismatch", provider=self.provider)
        event = json.loads(body)
        return WebhookEvent(
            id=headers.get("x-razorpay-event-id") or "evt_default",
            type=event["event"],
            provider=self.provider,
            data=event.get("payload") or {},
        )


def sign(gateway_order_id: str, payment_id: str) -> str:
    return f"sig:{gateway_order_id}|{payment_id}"


def webhook_body(event: str, gateway_order_id: str, payment_id: str = "pay_1") -> bytes:
    return json.dumps(
        {
            "event": event,
            "payload": {"payment": {"entity": {"id": payment_id, "order_id": gateway_order_id}}},
        }
    ).encode()


def refund_body(refund_id: str, payment_id: str = "pay_1", event: str = "refund.processed") -> bytes:
    return json.dumps(
        {"event": event, "payload": {"refund": {"entity": {"id": refund_id, "payment_id": payment_id}}}}
    ).encode()


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def uow_factory(db):
    def factory(**kwargs):
        return FakeUnitOfWork(db, **kwargs)
    return factory


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def payments(gateway) -> PaymentService:
    return PaymentService(gateway=gateway)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def rates() -> SettlementRates:
    return SettlementRates()


@pytest.fixture
def analytics(uow_factory) -> AnalyticsRecorder:
    return AnalyticsRecorder(uow_factory=uow_factory)


@pytest.fixture
def locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture
def ticket_service(uow_factory, payments, rates, analytics, locks, clock) -> TicketApplicationService:
    return TicketApplicationService(uow_factory, payments, rates=rates, analytics=analytics, locks=locks, clock=clock)


@pytest.fixture
def order_service(uow_factory, payments, rates, analytics, locks, clock) -> OrderApplicationService:
    return OrderApplicationService(uow_factory, payments, rates=rates, analytics=analytics, locks=locks, clock=clock)


@pytest.fixture
def wallet_service(uow_factory, payments, rates, analytics, locks, clock) -> WalletApplicationService:
    return WalletApplicationService(uow_factory, payments, rates=rates, analytics=analytics, locks=locks, clock=clock)


@pytest.fixture
def webhook_service(uow_factory, payments, ticket_service, order_service, wallet_service) -> WebhookService:
    return WebhookService(uow_factory, payments, ticket_service, order_service, wallet_service)


@pytest.fixture
def seed_account(db):
    """Insert a committed account directly into the fake store."""

    def _seed(user_id: str = "u1", balance: Decimal = ZERO, points: int = 0, **kwargs) -> Account:
        account = Account(id=next(db.ids), user_id=user_id, name=user_id.upper(), created_at=NOW, **kwargs)
        account.wallet.balance = Decimal(balance)
        account.rewards.points = points
        db.state.accounts[user_id] = account
        return account

    return _seed
