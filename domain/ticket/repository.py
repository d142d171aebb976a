"""
Ticket repository port.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from .entity import Ticket, TicketStatus


class TicketRepository(ABC):

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        pass

    @abstractmethod
    async def get_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def get_for_update(self, ticket_id: str) -> Optional[Ticket]:
        """Load the ticket with its row locked until the transaction ends."""
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def get_by_payment_id(self, payment_id: str) -> Optional[Ticket]:
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        pass

    @abstractmethod
    async def list_expirable(self, now: datetime, limit: int = 100) -> List[Ticket]:
        """Non-terminal tickets whose ``valid_until`` has passed."""
        pass

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        pass
