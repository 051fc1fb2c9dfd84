"""Tests for quote sources and price feed aggregation."""

import asyncio
import random
import pytest
from unittest.mock import Mock, AsyncMock

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError

from dexarb.core.errors import SourceUnavailable
from dexarb.core.quotes import PriceFeedAggregator
from dexarb.core.types import PriceQuote, TokenPair
from dexarb.sources.base import QuoteSource
from dexarb.sources.factory import SourceFactory
from dexarb.sources.oracle import OracleQuoteSource
from dexarb.sources.router import RouterQuoteSource
from dexarb.sources.simulated import SimulatedQuoteSource

from sample_data import make_config

PAIR = TokenPair.parse("WETH/USDC")


class StaticSource(QuoteSource):
    """Returns a fixed price, raises, or hangs."""

    def __init__(self, name, price=3000.0, error=None, delay=0.0):
        super().__init__(name, {'enabled': True})
        self.price = price
        self.error = error
        self.delay = delay

    async def fetch_price(self, pair):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return PriceQuote(pair_key=pair.key, exchange_id=self.name, price=self.price)


class TestPriceFeedAggregator:
    """Test independent per-source fetching."""

    def test_collects_all_sources(self):
        aggregator = PriceFeedAggregator([StaticSource("a", 3000.0), StaticSource("b", 3030.0)])

        quotes = asyncio.run(aggregator.fetch_all([PAIR]))

        assert sorted(q.price for q in quotes) == [3000.0, 3030.0]

    def test_failed_source_is_excluded_not_fatal(self):
        aggregator = PriceFeedAggregator([
            StaticSource("ok", 3000.0),
            StaticSource("down", error=SourceUnavailable("no pool")),
            StaticSource("buggy", error=KeyError("price")),
        ])

        quotes = asyncio.run(aggregator.fetch_all([PAIR]))

        assert [q.exchange_id for q in quotes] == ["ok"]
        status = aggregator.get_status()
        assert status['sources']['down']['failures'] == 1
        assert status['sources']['buggy']['failures'] == 1

    def test_slow_source_times_out(self):
        aggregator = PriceFeedAggregator([StaticSource("fast"), StaticSource("slow", delay=5.0)],
                                         source_timeout_s=0.05)

        quotes = asyncio.run(aggregator.fetch_all([PAIR]))

        assert [q.exchange_id for q in quotes] == ["fast"]

    def test_non_positive_price_excluded(self):
        aggregator = PriceFeedAggregator([StaticSource("zero", 0.0)])
        assert asyncio.run(aggregator.fetch_all([PAIR])) == []

    def test_disabled_sources_skipped(self):
        disabled = StaticSource("off")
        disabled.enabled = False
        aggregator = PriceFeedAggregator([StaticSource("on"), disabled])

        quotes = asyncio.run(aggregator.fetch_all([PAIR]))

        assert [q.exchange_id for q in quotes] == ["on"]

    def test_no_sources(self):
        assert asyncio.run(PriceFeedAggregator([]).fetch_all([PAIR])) == []


class TestSimulatedQuoteSource:
    """Test paper price feeds."""

    def test_jitter_within_band(self):
        config = make_config()
        source = SimulatedQuoteSource("sim", {'jitter_bps': 50}, config.tokens, rng=random.Random(3))

        for _ in range(20):
            quote = asyncio.run(source.fetch_price(PAIR))
            assert 3000.0 * 0.995 <= quote.price <= 3000.0 * 1.005
            assert quote.exchange_id == "sim"

    def test_missing_reference_price(self):
        config = make_config()
        source = SimulatedQuoteSource("sim", {}, config.tokens)

        with pytest.raises(SourceUnavailable):
            asyncio.run(source.fetch_price(TokenPair("WETH", "DAI")))


class TestRouterQuoteSource:
    """Test getAmountsOut quoting through a web3 contract."""

    ROUTER = "0x4752ba5dbc23f44d87826276bf6fd6b1c372ad24"

    def setup_method(self):
        self.config = make_config()
        self.w3 = AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:8545"))
        self.source = RouterQuoteSource("uni", {'router_address': self.ROUTER, 'liquidity_usd': 123.0},
                                        self.w3, self.config.tokens)

    def stub_amounts_out(self, **kwargs) -> Mock:
        router = Mock()
        router.functions.getAmountsOut.return_value.call = AsyncMock(**kwargs)
        self.source.router = router
        return router

    def test_router_address_is_checksummed(self):
        assert self.source.router.address == Web3.to_checksum_address(self.ROUTER)

    def test_price_from_amounts_out(self):
        router = self.stub_amounts_out(return_value=[10 ** 18, 3012_500_000])

        quote = asyncio.run(self.source.fetch_price(PAIR))

        assert quote.price == pytest.approx(3012.5)
        assert quote.liquidity == 123.0
        amount_in, path = router.functions.getAmountsOut.call_args[0]
        assert amount_in == 10 ** 18
        assert path == [Web3.to_checksum_address(self.config.tokens["WETH"].address),
                        Web3.to_checksum_address(self.config.tokens["USDC"].address)]

    def test_contract_error_becomes_source_unavailable(self):
        self.stub_amounts_out(side_effect=ContractLogicError("execution reverted"))
        with pytest.raises(SourceUnavailable):
            asyncio.run(self.source.fetch_price(PAIR))

    def test_zero_output_is_no_liquidity(self):
        self.stub_amounts_out(return_value=[10 ** 18, 0])
        with pytest.raises(SourceUnavailable):
            asyncio.run(self.source.fetch_price(PAIR))

    def test_requires_router_address(self):
        with pytest.raises(ValueError):
            RouterQuoteSource("uni", {}, self.w3, self.config.tokens)


class TestOracleQuoteSource:
    """Test cross rates from USD oracle prices."""

    def test_cross_rate(self):
        tokens = make_config().model_dump()['tokens']
        tokens['WETH']['coingecko_id'] = "ethereum"
        tokens['USDC']['coingecko_id'] = "usd-coin"
        config = make_config(tokens=tokens)
        source = OracleQuoteSource("cg", {}, config.tokens)
        source._usd_prices = AsyncMock(return_value={"ethereum": 3000.0, "usd-coin": 0.999})

        quote = asyncio.run(source.fetch_price(PAIR))

        assert quote.price == pytest.approx(3000.0 / 0.999)

    def test_missing_price(self):
        config = make_config()
        source = OracleQuoteSource("cg", {}, config.tokens)
        source._usd_prices = AsyncMock(return_value={})

        with pytest.raises(SourceUnavailable):
            asyncio.run(source.fetch_price(PAIR))


class TestSourceFactory:
    """Test building sources from configuration."""

    def test_builds_enabled_simulated_sources(self):
        sources = SourceFactory.create_all(make_config(), w3=None)
        assert [s.name for s in sources] == ["uniswap", "sushiswap", "baseswap"]

    def test_router_without_provider_skipped(self):
        config = make_config(exchanges=[{"name": "uni", "kind": "router", "router_address": "0x01"}])
        assert SourceFactory.create_all(config, w3=None) == []
