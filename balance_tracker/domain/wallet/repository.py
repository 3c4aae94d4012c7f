from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from balance_tracker.domain.wallet.entity import Wallet

class WalletRepository(ABC):
    @abstractmethod
    async def upsert_wallet(self, address: str, label: Optional[str] = None) -> Wallet:
        pass

    @abstractmethod
    async def list_wallets(self) -> List[Wallet]:
        pass

    @abstractmethod
    async def deactivate_wallet(self, address: str) -> bool:
        pass

    @abstractmethod
    async def get_address_map(self) -> Dict[str, int]:
        pass
