from typing import Optional


class BalanceTrackerError(Exception):
    """Base class for balance collection and query errors"""


class BalanceFetchError(BalanceTrackerError):
    def __init__(self, network: str, address: str, message: str):
        self.network = network
        self.address = address
        super().__init__(f"{network}/{address}: {message}")


class ConnectivityError(BalanceFetchError):
    """RPC endpoint unreachable, timed out or not configured"""


class ContractCallError(BalanceFetchError):
    """RPC answered but the balance response was malformed"""


class UnresolvedReferenceError(BalanceTrackerError):
    """A fetched (wallet, network) pair has no storage identifier"""

    def __init__(self, address: str, network: str, missing: Optional[str] = None):
        self.address = address
        self.network = network
        self.missing = missing
        detail = f" ({missing} not found)" if missing else ""
        super().__init__(f"Cannot resolve {address} on {network}{detail}")


class PersistenceError(BalanceTrackerError):
    """Writing balance snapshots failed"""


class QueryValidationError(BalanceTrackerError):
    """Malformed parameters on a read path"""
