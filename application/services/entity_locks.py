"""
Per-entity exclusive sections for read-modify-write flows.

Inside one process, callers touching the same key are serialised by an
``asyncio.Lock``; across processes the repositories' ``get_for_update``
(SELECT ... FOR UPDATE) gives the same guarantee at the row level.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLock:
    """Reference-counted map of key -> asyncio.Lock; idle keys are dropped."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, *keys: str) -> AsyncIterator[None]:
        """Hold every key; keys are taken in sorted order so two callers never deadlock."""
        ordered = sorted(set(keys))
        acquired: list[str] = []
        try:
            for key in ordered:
                lock = self._locks.setdefault(key, asyncio.Lock())
                self._waiters[key] = self._waiters.get(key, 0) + 1
                try:
                    await lock.acquire()
                except BaseException:
                    self._release_ref(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._release_ref(key)

    def _release_ref(self, key: str) -> None:
        self._waiters[key] -= 1
        if self._waiters[key] == 0:
            del self._waiters[key]
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


def ticket_key(ticket_id: str) -> str:
    return f"ticket:{ticket_id}"


def order_key(order_id: str) -> str:
    return f"order:{order_id}"


def account_key(user_id: str) -> str:
    return f"account:{user_id}"


def recharge_key(gateway_order_id: str) -> str:
    return f"recharge:{gateway_order_id}"
