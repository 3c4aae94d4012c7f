import asyncio
import datetime
from typing import Awaitable, Callable, Dict, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from balance_tracker.domain.balance.entity import BalanceResult
from balance_tracker.domain.balance.exceptions import (
    BalanceTrackerError,
    ConnectivityError,
    ContractCallError,
)
from balance_tracker.domain.balance.repository import BlockchainBalanceRepository
from balance_tracker.infrastructure.config import NetworkConfig
from balance_tracker.shared.monitoring.logging import LoggerMixin, log_blockchain_operation
from balance_tracker.shared.monitoring.metrics import MetricsContext, record_network_status
from balance_tracker.shared.utils.validators import normalize_balance

# Read-only subset of the ERC20 interface
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "symbol",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "name",
        "outputs": [{"name": "", "type": "string"}],
        "type": "function",
    },
]


def create_web3(rpc_url: str) -> AsyncWeb3:
    return AsyncWeb3(AsyncHTTPProvider(rpc_url))


class Web3BalanceRepository(BlockchainBalanceRepository, LoggerMixin):
    """
    Balance reads against one RPC endpoint per configured network.

    Native networks report the account balance; token networks call
    ``balanceOf`` on the configured contract. Balances are returned in the
    smallest unit, no decimal conversion.
    """

    def __init__(
        self,
        networks: Dict[str, NetworkConfig],
        timeout: float = 10.0,
        web3_factory: Optional[Callable[[str], AsyncWeb3]] = None,
    ):
        self.networks = networks
        self.timeout = timeout
        self._web3_factory = web3_factory or create_web3
        self.providers: Dict[str, AsyncWeb3] = {}
        self.token_contracts: Dict[str, object] = {}
        self._initialize_providers()

    def _initialize_providers(self) -> None:
        for key, network in self.networks.items():
            if not network.rpc_url:
                self.logger.warning(f"No RPC URL configured for network: {network.name}")
                continue

            try:
                web3 = self._web3_factory(network.rpc_url)
                self.providers[key] = web3

                if not network.is_native and network.token_address:
                    self.token_contracts[key] = web3.eth.contract(
                        address=AsyncWeb3.to_checksum_address(network.token_address),
                        abi=ERC20_ABI,
                    )

                self.logger.info(f"Initialized provider for network: {network.name}")
            except Exception as e:
                # The network stays without a provider; its lookups fail with ConnectivityError
                self.logger.error(f"Failed to initialize provider for network {network.name}: {str(e)}")

    def refresh_providers(self) -> None:
        """Rebuild every RPC client, e.g. after RPC URLs changed"""
        self.providers.clear()
        self.token_contracts.clear()
        self._initialize_providers()
        self.logger.info("Blockchain providers refreshed")

    async def _guard(self, network_key: str, address: str, awaitable: Awaitable):
        """Apply the RPC timeout and map failures to ConnectivityError / ContractCallError"""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ConnectivityError(
                network_key, address, f"RPC call timed out after {self.timeout}s"
            ) from e
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise ContractCallError(network_key, address, f"Malformed contract response: {e}") from e
        except BalanceTrackerError:
            raise
        except Exception as e:
            raise ConnectivityError(network_key, address, f"RPC call failed: {e}") from e

    async def get_balance(self, network_key: str, address: str) -> BalanceResult:
        network = self.networks.get(network_key)
        if network is None:
            raise ConnectivityError(network_key, address, "Network not configured")

        web3 = self.providers.get(network_key)
        if web3 is None:
            raise ConnectivityError(network_key, address, "Provider not initialized")

        try:
            checksum_address = AsyncWeb3.to_checksum_address(address)
        except ValueError as e:
            raise ContractCallError(network_key, address, f"Invalid address: {e}") from e

        contract = None
        if not network.is_native:
            contract = self.token_contracts.get(network_key)
            if contract is None:
                raise ContractCallError(network_key, address, "Token contract not initialized")

        async def read_balance_and_block():
            if contract is None:
                raw = await web3.eth.get_balance(checksum_address)
            else:
                raw = await contract.functions.balanceOf(checksum_address).call()
            # Block height only once the balance read succeeded
            return raw, await web3.eth.block_number

        with MetricsContext("get_balance", "blockchain"):
            raw_balance, block_number = await self._guard(
                network_key, address, read_balance_and_block()
            )

            try:
                balance = normalize_balance(raw_balance)
            except ValueError as e:
                raise ContractCallError(network_key, address, str(e)) from e

        self.logger.debug(
            f"Balance fetched - Network: {network_key}, Address: {address}, "
            f"Balance: {balance}, Block: {block_number}",
            extra=log_blockchain_operation("get_balance", network=network_key),
        )
        return BalanceResult(
            address=address,
            network_name=network_key,
            balance=balance,
            block_number=int(block_number),
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )

    async def test_connection(self, network_key: str) -> bool:
        """Liveness probe via the current block height; never raises"""
        web3 = self.providers.get(network_key)
        if web3 is None:
            self.logger.warning(f"Network {network_key} has no initialized provider")
            record_network_status(network_key, False)
            return False

        try:
            block_number = await asyncio.wait_for(web3.eth.block_number, timeout=self.timeout)
        except Exception as e:
            self.logger.error(f"Network {network_key} connection test failed: {str(e)}")
            record_network_status(network_key, False)
            return False

        self.logger.info(
            f"Network {network_key} connection test successful. Block number: {block_number}"
        )
        record_network_status(network_key, True)
        return True

    async def test_all_connections(self) -> Dict[str, bool]:
        keys = list(self.networks)
        results = await asyncio.gather(*(self.test_connection(key) for key in keys))
        return dict(zip(keys, results))

    async def get_token_info(self, network_key: str) -> Optional[dict]:
        """``{name, symbol, decimals}`` of the token contract, None for native networks or on failure"""
        contract = self.token_contracts.get(network_key)
        if contract is None:
            return None

        try:
            name, symbol, decimals = await asyncio.wait_for(
                asyncio.gather(
                    contract.functions.name().call(),
                    contract.functions.symbol().call(),
                    contract.functions.decimals().call(),
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            self.logger.error(f"Failed to get token info for network {network_key}: {str(e)}")
            return None

        return {"name": name, "symbol": symbol, "decimals": int(decimals)}
