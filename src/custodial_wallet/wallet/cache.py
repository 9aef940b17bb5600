"""Balance cache: string key/value with expiry.

The registry and submitter only need ``get``, ``set`` with a TTL and
``delete``. :class:`MemoryCache` is the in-process implementation; a shared
cache service can be dropped in by implementing :class:`BalanceCache`.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


def balance_key(address: str) -> str:
    return f"wallet:balance:{address}"


class BalanceCache(ABC):
    """Async key/value cache with per-entry expiry."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


@dataclass
class _Entry:
    value: str
    expires_at: float


class MemoryCache(BalanceCache):
    """In-process TTL cache on the monotonic clock."""

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: str, ttl_seconds: float) -> None:
        self._entries[key] = _Entry(value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)
