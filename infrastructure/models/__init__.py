"""Infrastructure models package exports."""
from .base import Base, metadata
from .ticket import TicketModel
from .order import OrderModel
from .account import AccountModel, WalletRechargeModel
from .analytics import AnalyticsEventModel, ProcessedKeyModel

__all__ = [
    "Base",
    "metadata",
    "TicketModel",
    "OrderModel",
    "AccountModel",
    "WalletRechargeModel",
    "AnalyticsEventModel",
    "ProcessedKeyModel",
]
