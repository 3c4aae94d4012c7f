import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from web3.exceptions import BadFunctionCallOutput

from balance_tracker.domain.balance.exceptions import ConnectivityError, ContractCallError
from balance_tracker.infrastructure.blockchain.balance.node_repository import (
    Web3BalanceRepository,
)
from balance_tracker.infrastructure.config import NetworkConfig

WALLET = "0xa62162a652de844510a694ae1f666930b3224cca"
TOKEN = "0xaa9806c938836627ed1a41ae871c7e1889ae02ca"


class MockEth:
    """Mock object that behaves like the AsyncWeb3 ``eth`` module"""

    def __init__(self, block_number=19000000, block_delay=0.0):
        self._block_number = block_number
        self._block_delay = block_delay
        self.block_reads = 0
        self.get_balance = AsyncMock(return_value=5 * 10**18)
        self.token_contract = Mock()
        self.token_contract.functions.balanceOf.return_value.call = AsyncMock(
            return_value=123456789012345678901234567890
        )
        self.contract = Mock(return_value=self.token_contract)

    async def _read_block(self):
        if self._block_delay:
            await asyncio.sleep(self._block_delay)
        if isinstance(self._block_number, Exception):
            raise self._block_number
        return self._block_number

    @property
    def block_number(self):
        self.block_reads += 1
        return self._read_block()


def make_web3(eth: MockEth):
    web3 = Mock()
    web3.eth = eth
    return web3


@pytest.fixture
def networks():
    return {
        "ETH": NetworkConfig(
            key="ETH",
            name="Ethereum",
            chain_id=1,
            rpc_url="https://eth.example",
            is_native=False,
            symbol="ERC20",
            token_address=TOKEN,
        ),
        "EDGEN": NetworkConfig(
            key="EDGEN",
            name="Edgen Network",
            chain_id=2026,
            rpc_url="https://edgen.example",
            is_native=True,
            symbol="EDGEN",
        ),
        "BSC": NetworkConfig(
            key="BSC",
            name="Binance Smart Chain",
            chain_id=56,
            rpc_url="",
            is_native=False,
            symbol="ERC20",
            token_address=TOKEN,
        ),
    }


class TestWeb3BalanceRepository:
    """Test balance reads against mocked RPC clients"""

    @pytest.fixture
    def eth_modules(self):
        return {"https://eth.example": MockEth(), "https://edgen.example": MockEth(block_number=777)}

    @pytest.fixture
    def repository(self, networks, eth_modules):
        return Web3BalanceRepository(
            networks, timeout=0.5, web3_factory=lambda url: make_web3(eth_modules[url])
        )

    def test_providers_skip_networks_without_rpc_url(self, repository):
        assert set(repository.providers) == {"ETH", "EDGEN"}
        assert set(repository.token_contracts) == {"ETH"}

    @pytest.mark.asyncio
    async def test_native_balance(self, repository, eth_modules):
        result = await repository.get_balance("EDGEN", WALLET)

        assert result.balance == str(5 * 10**18)
        assert result.block_number == 777
        assert result.network_name == "EDGEN"
        assert result.address == WALLET
        assert result.is_fallback is False
        eth_modules["https://edgen.example"].get_balance.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_token_balance_keeps_full_precision(self, repository, eth_modules):
        result = await repository.get_balance("ETH", WALLET)

        assert result.balance == "123456789012345678901234567890"
        assert result.block_number == 19000000
        eth_modules["https://eth.example"].get_balance.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_network(self, repository):
        with pytest.raises(ConnectivityError, match="Network not configured"):
            await repository.get_balance("SOL", WALLET)

    @pytest.mark.asyncio
    async def test_network_without_provider(self, repository):
        with pytest.raises(ConnectivityError, match="Provider not initialized"):
            await repository.get_balance("BSC", WALLET)

    @pytest.mark.asyncio
    async def test_invalid_address(self, repository):
        with pytest.raises(ContractCallError, match="Invalid address"):
            await repository.get_balance("ETH", "0xnot-an-address")

    @pytest.mark.asyncio
    async def test_timeout_maps_to_connectivity_error(self, networks):
        eth = MockEth(block_delay=1.0)
        repository = Web3BalanceRepository(
            {"EDGEN": networks["EDGEN"]}, timeout=0.01, web3_factory=lambda url: make_web3(eth)
        )

        with pytest.raises(ConnectivityError, match="timed out"):
            await repository.get_balance("EDGEN", WALLET)

    @pytest.mark.asyncio
    async def test_rpc_failure_maps_to_connectivity_error(self, repository, eth_modules):
        eth_modules["https://edgen.example"].get_balance.side_effect = OSError("connection refused")

        with pytest.raises(ConnectivityError, match="connection refused"):
            await repository.get_balance("EDGEN", WALLET)

    @pytest.mark.asyncio
    async def test_failed_balance_read_skips_block_height(self, repository, eth_modules):
        eth = eth_modules["https://edgen.example"]
        eth.get_balance.side_effect = OSError("connection refused")

        with pytest.raises(ConnectivityError):
            await repository.get_balance("EDGEN", WALLET)
        assert eth.block_reads == 0

    @pytest.mark.asyncio
    async def test_block_height_failure_maps_to_connectivity_error(self, networks):
        eth = MockEth(block_number=OSError("node syncing"))
        repository = Web3BalanceRepository(
            {"EDGEN": networks["EDGEN"]}, timeout=0.5, web3_factory=lambda url: make_web3(eth)
        )

        with pytest.raises(ConnectivityError, match="node syncing"):
            await repository.get_balance("EDGEN", WALLET)
        eth.get_balance.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_malformed_contract_response(self, repository, eth_modules):
        call = eth_modules["https://eth.example"].token_contract.functions.balanceOf.return_value.call
        call.side_effect = BadFunctionCallOutput("empty response")

        with pytest.raises(ContractCallError, match="Malformed contract response"):
            await repository.get_balance("ETH", WALLET)

    @pytest.mark.asyncio
    async def test_negative_balance_rejected(self, repository, eth_modules):
        eth_modules["https://edgen.example"].get_balance.return_value = -1

        with pytest.raises(ContractCallError, match="non-negative"):
            await repository.get_balance("EDGEN", WALLET)

    @pytest.mark.asyncio
    async def test_connection_probes(self, repository, eth_modules):
        eth_modules["https://eth.example"]._block_number = OSError("down")

        assert await repository.test_connection("EDGEN") is True
        assert await repository.test_connection("ETH") is False
        assert await repository.test_all_connections() == {
            "ETH": False,
            "EDGEN": True,
            "BSC": False,
        }

    @pytest.mark.asyncio
    async def test_token_info(self, repository, eth_modules):
        functions = eth_modules["https://eth.example"].token_contract.functions
        functions.name.return_value.call = AsyncMock(return_value="Edge Token")
        functions.symbol.return_value.call = AsyncMock(return_value="EDGE")
        functions.decimals.return_value.call = AsyncMock(return_value=18)

        assert await repository.get_token_info("ETH") == {
            "name": "Edge Token",
            "symbol": "EDGE",
            "decimals": 18,
        }
        assert await repository.get_token_info("EDGEN") is None

    def test_refresh_providers(self, repository, eth_modules):
        old = repository.providers["ETH"]

        repository.refresh_providers()

        assert repository.providers["ETH"] is not old
        assert set(repository.providers) == {"ETH", "EDGEN"}

    def test_provider_init_failure_is_isolated(self, networks):
        def factory(url):
            if "eth" in url and "edgen" not in url:
                raise ValueError("bad url")
            return make_web3(MockEth())

        repository = Web3BalanceRepository(networks, web3_factory=factory)

        assert set(repository.providers) == {"EDGEN"}
