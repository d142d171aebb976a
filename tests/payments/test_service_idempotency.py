import pytest
from decimal import Decimal

from application.dtos.payments import CreatePayment, PaymentIntent, RefundRequest, RefundResult, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentService
from domain.common.exceptions import PaymentVerificationFailedException


class RecordingGateway(PaymentGateway):
    provider = "stub"

    def __init__(self):
        self.created: list[CreatePayment] = []
        self.refunded: list[RefundRequest] = []

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        self.created.append(req)
        return PaymentIntent(intent_id="order_1", status="pending", client_secret_or_params=None, provider=self.provider)

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:  # type: ignore[override]
        return signature == "ok"

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        self.refunded.append(req)
        return RefundResult(refund_id="rfnd_1", status="refund_pending", provider=self.provider)

    def parse_webhook(self, headers: dict, body: bytes) -> WebhookEvent:  # type: ignore[override]
        return WebhookEvent(id="evt_1", type="stub.event", provider=self.provider, data={})


@pytest.mark.asyncio
async def test_create_payment_generates_idempotency_key():
    gw = RecordingGateway()
    svc = PaymentService(gateway=gw)
    intent = await svc.create_payment("TKT1", Decimal("247.80"), "INR")
    assert intent.intent_id == "order_1"
    key = gw.created[0].idempotency_key
    assert isinstance(key, str) and len(key) == 64


@pytest.mark.asyncio
async def test_idempotency_key_is_stable_for_same_reference():
    gw = RecordingGateway()
    svc = PaymentService(gateway=gw)
    await svc.create_payment("TKT1", Decimal("10.00"), "INR")
    await svc.create_payment("TKT1", Decimal("10.00"), "INR")
    await svc.create_payment("TKT2", Decimal("10.00"), "INR")
    keys = [r.idempotency_key for r in gw.created]
    assert keys[0] == keys[1]
    assert keys[0] != keys[2]


@pytest.mark.asyncio
async def test_refund_generates_idempotency_key():
    gw = RecordingGateway()
    svc = PaymentService(gateway=gw)
    result = await svc.refund("TKT1", "pay_1", Decimal("1.00"), "INR", reason="changed plans")
    assert result.refund_id == "rfnd_1"
    req = gw.refunded[0]
    assert req.provider_ref == "pay_1"
    assert isinstance(req.idempotency_key, str) and len(req.idempotency_key) == 64


def test_verify_raises_on_bad_signature():
    svc = PaymentService(gateway=RecordingGateway())
    svc.verify("order_1", "pay_1", "ok")
    with pytest.raises(PaymentVerificationFailedException):
        svc.verify("order_1", "pay_1", "forged")
