import datetime
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar

from balance_tracker.shared.monitoring.logging import LoggerMixin

K = TypeVar("K")
V = TypeVar("V")


class LookupCache(Generic[K, V], LoggerMixin):
    """
    In-memory map from a natural key to a storage identifier.

    The whole map is replaced on ``refresh()``; there is no per-entry
    invalidation. Entries added elsewhere stay invisible until the next
    refresh.
    """

    def __init__(self, name: str, loader: Callable[[], Awaitable[Dict[K, V]]]):
        self.name = name
        self._loader = loader
        self._entries: Dict[K, V] = {}
        self.loaded_at: Optional[datetime.datetime] = None

    async def refresh(self) -> int:
        entries = await self._loader()
        # Swap in one assignment so readers never observe a half-built map
        self._entries = dict(entries)
        self.loaded_at = datetime.datetime.now(datetime.timezone.utc)
        self.logger.info(f"Lookup cache '{self.name}' loaded with {len(self._entries)} entries")
        return len(self._entries)

    def get(self, key: K) -> Optional[V]:
        return self._entries.get(key)

    def __contains__(self, key: K) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
