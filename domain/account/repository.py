"""
Account repository port.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Account, WalletRecharge


class AccountRepository(ABC):

    @abstractmethod
    async def create(self, account: Account) -> Account:
        pass

    @abstractmethod
    async def get_by_user_id(self, user_id: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def get_for_update(self, user_id: str) -> Optional[Account]:
        """Load the account with its row locked until the transaction ends."""
        pass

    @abstractmethod
    async def update(self, account: Account) -> Account:
        pass

    @abstractmethod
    async def exists(self, user_id: str) -> bool:
        pass


class WalletRechargeRepository(ABC):

    @abstractmethod
    async def create(self, recharge: WalletRecharge) -> WalletRecharge:
        pass

    @abstractmethod
    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[WalletRecharge]:
        pass

    @abstractmethod
    async def get_for_update(self, gateway_order_id: str) -> Optional[WalletRecharge]:
        pass

    @abstractmethod
    async def update(self, recharge: WalletRecharge) -> WalletRecharge:
        pass
