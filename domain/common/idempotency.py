"""Processed-key store port used to drop duplicate deliveries."""
from abc import ABC, abstractmethod


class IdempotencyRepository(ABC):

    @abstractmethod
    async def claim(self, key: str, scope: str) -> bool:
        """Record ``key``; False when it was already recorded."""
        pass

    @abstractmethod
    async def seen(self, key: str) -> bool:
        pass
