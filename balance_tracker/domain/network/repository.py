from abc import ABC, abstractmethod
from typing import Dict, List

from balance_tracker.domain.network.entity import Network
from balance_tracker.infrastructure.config import NetworkConfig


class NetworkRepository(ABC):
    @abstractmethod
    async def upsert_network(self, network: NetworkConfig) -> Network:
        pass

    @abstractmethod
    async def list_networks(self) -> List[Network]:
        pass

    @abstractmethod
    async def get_name_map(self) -> Dict[str, int]:
        pass
