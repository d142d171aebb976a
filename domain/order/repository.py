"""
Order repository port.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Order
from .status import OrderStatus


class OrderRepository(ABC):

    @abstractmethod
    async def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: str) -> Optional[Order]:
        """Load the order with its row locked until the transaction ends."""
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def list_by_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[Order]:
        pass

    @abstractmethod
    async def list_by_vendor(
        self,
        vendor_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        pass

    @abstractmethod
    async def update(self, order: Order) -> Order:
        pass
