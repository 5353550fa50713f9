import pytest

from core.data_models import AssetClass
from market_data.fetcher_registry import FetcherRegistry
from tests.conftest import StubFetcher


def test_lookup_by_class(stock_fetcher):
    registry = FetcherRegistry([stock_fetcher])

    fetcher, found = registry.get_fetcher(AssetClass.STOCK)
    assert found is True
    assert fetcher is stock_fetcher

    fetcher, found = registry.get_fetcher(AssetClass.CRYPTO)
    assert found is False
    assert fetcher is None


def test_duplicate_class_is_rejected():
    with pytest.raises(ValueError, match="Duplicate fetcher for class stock"):
        FetcherRegistry([StubFetcher(AssetClass.STOCK), StubFetcher(AssetClass.STOCK)])


@pytest.mark.asyncio
async def test_close_closes_every_fetcher(stock_fetcher, crypto_fetcher):
    registry = FetcherRegistry([stock_fetcher, crypto_fetcher])
    assert registry.fetchers() == [stock_fetcher, crypto_fetcher]

    # No sessions were opened, close must still succeed
    await registry.close()
