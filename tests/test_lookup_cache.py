from unittest.mock import AsyncMock

import pytest

from balance_tracker.shared.utils.lookup_cache import LookupCache


class TestLookupCache:
    """Test wholesale-refresh identifier cache"""

    @pytest.mark.asyncio
    async def test_empty_until_refreshed(self):
        loader = AsyncMock(return_value={"0xA": 1})
        cache = LookupCache("wallets", loader)

        assert cache.get("0xA") is None
        assert len(cache) == 0
        assert cache.loaded_at is None

        assert await cache.refresh() == 1
        assert cache.get("0xA") == 1
        assert "0xA" in cache
        assert cache.loaded_at is not None

    @pytest.mark.asyncio
    async def test_refresh_replaces_entries(self):
        loader = AsyncMock(side_effect=[{"0xA": 1, "0xB": 2}, {"0xB": 2, "0xC": 3}])
        cache = LookupCache("wallets", loader)

        await cache.refresh()
        await cache.refresh()

        assert cache.get("0xA") is None
        assert cache.get("0xC") == 3
        assert len(cache) == 2

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_entries(self):
        loader = AsyncMock(side_effect=[{"ETH": 1}, Exception("database down")])
        cache = LookupCache("networks", loader)
        await cache.refresh()

        with pytest.raises(Exception, match="database down"):
            await cache.refresh()

        assert cache.get("ETH") == 1

    @pytest.mark.asyncio
    async def test_lookup_is_exact(self):
        cache = LookupCache("wallets", AsyncMock(return_value={"0xAbC": 1}))
        await cache.refresh()

        assert cache.get("0xabc") is None
