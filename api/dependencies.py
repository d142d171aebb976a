"""
API dependencies - composition root for the settlement services
"""
from functools import lru_cache

from fastapi import Depends

from application.services.analytics_service import AnalyticsRecorder
from application.services.entity_locks import KeyedLock
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentService
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from application.services.webhook_service import WebhookService
from core.config import settings
from domain.common.money import SettlementRates
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# one lock table per process, shared by every service instance
entity_locks = KeyedLock()


@lru_cache
def get_rates() -> SettlementRates:
    return settings.settlement.to_rates()


@lru_cache
def get_payment_service() -> PaymentService:
    # built on first use so the app starts without gateway credentials
    return PaymentService(gateway=get_payment_gateway())


def get_analytics() -> AnalyticsRecorder:
    return AnalyticsRecorder(uow_factory=SQLAlchemyUnitOfWork)


async def get_ticket_service(
    payments: PaymentService = Depends(get_payment_service),
    analytics: AnalyticsRecorder = Depends(get_analytics),
) -> TicketApplicationService:
    return TicketApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        payments=payments,
        rates=get_rates(),
        analytics=analytics,
        locks=entity_locks,
    )


async def get_order_service(
    payments: PaymentService = Depends(get_payment_service),
    analytics: AnalyticsRecorder = Depends(get_analytics),
) -> OrderApplicationService:
    return OrderApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        payments=payments,
        rates=get_rates(),
        analytics=analytics,
        locks=entity_locks,
    )


async def get_wallet_service(
    payments: PaymentService = Depends(get_payment_service),
    analytics: AnalyticsRecorder = Depends(get_analytics),
) -> WalletApplicationService:
    return WalletApplicationService(
        uow_factory=SQLAlchemyUnitOfWork,
        payments=payments,
        rates=get_rates(),
        analytics=analytics,
        locks=entity_locks,
    )


async def get_webhook_service(
    payments: PaymentService = Depends(get_payment_service),
    tickets: TicketApplicationService = Depends(get_ticket_service),
    orders: OrderApplicationService = Depends(get_order_service),
    wallet: WalletApplicationService = Depends(get_wallet_service),
) -> WebhookService:
    return WebhookService(
        uow_factory=SQLAlchemyUnitOfWork,
        payments=payments,
        tickets=tickets,
        orders=orders,
        wallet=wallet,
    )


async def close_payment_service() -> None:
    if get_payment_service.cache_info().currsize:
        await get_payment_service().aclose()
        get_payment_service.cache_clear()
