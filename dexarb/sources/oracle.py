"""HTTP price oracle quote source (CoinGecko simple/price)."""

import time
from typing import Dict, Any, Optional

import aiohttp
from loguru import logger

from .base import QuoteSource
from dexarb.core.errors import SourceUnavailable
from dexarb.core.types import PriceQuote, TokenPair


class OracleQuoteSource(QuoteSource):
    """Derives a cross rate from two USD oracle prices."""

    def __init__(self, name: str, config: Dict[str, Any], tokens: Dict[str, Any], timeout_s: float = 10.0):
        super().__init__(name, config)
        self.tokens = tokens
        self.url = config.get('oracle_url', "https://api.coingecko.com/api/v3/simple/price")
        self.cache_ttl_s = config.get('cache_ttl_s', 60.0)
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, float] = {}
        self._cache_ts = 0.0

    async def _usd_prices(self) -> Dict[str, float]:
        now = time.time()
        if self._cache and now - self._cache_ts < self.cache_ttl_s:
            return self._cache

        ids = sorted({t.coingecko_id for t in self.tokens.values() if t.coingecko_id})
        if not ids:
            raise SourceUnavailable(f"{self.name}: no oracle ids configured")

        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        try:
            async with self._session.get(self.url, params={'ids': ','.join(ids), 'vs_currencies': 'usd'}) as response:
                if response.status != 200:
                    raise SourceUnavailable(f"{self.name}: HTTP {response.status}")
                data = await response.json()
        except aiohttp.ClientError as e:
            raise SourceUnavailable(f"{self.name}: {e}") from e

        self._cache = {cid: float(v['usd']) for cid, v in data.items() if 'usd' in v}
        self._cache_ts = now
        logger.debug(f"{self.name}: refreshed {len(self._cache)} oracle prices")
        return self._cache

    async def fetch_price(self, pair: TokenPair) -> PriceQuote:
        base = self.tokens.get(pair.base)
        quote = self.tokens.get(pair.quote)
        if base is None or quote is None:
            raise SourceUnavailable(f"{self.name}: unknown pair {pair}")

        prices = await self._usd_prices()
        base_usd = prices.get(base.coingecko_id)
        quote_usd = prices.get(quote.coingecko_id)
        if not base_usd or not quote_usd:
            raise SourceUnavailable(f"{self.name}: no oracle price for {pair}")

        self._last_update = time.time()
        return PriceQuote(
            pair_key=pair.key,
            exchange_id=self.name,
            price=base_usd / quote_usd,
            observed_at=self._last_update,
            liquidity=self.get_liquidity_usd()
        )

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
