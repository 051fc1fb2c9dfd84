"""Simulated quote source for paper trading."""

import asyncio
import random
import time
from typing import Dict, Any, Optional

from .base import QuoteSource
from dexarb.core.errors import SourceUnavailable
from dexarb.core.types import PriceQuote, TokenPair


class SimulatedQuoteSource(QuoteSource):
    """Jitters configured reference prices to mimic venue dispersion."""

    def __init__(self, name: str, config: Dict[str, Any], tokens: Dict[str, Any], rng: Optional[random.Random] = None):
        super().__init__(name, config)
        self.tokens = tokens
        self.jitter_bps = config.get('jitter_bps', 40.0)
        self.latency_s = config.get('latency_s', 0.0)
        self.rng = rng or random.Random()

    async def fetch_price(self, pair: TokenPair) -> PriceQuote:
        base = self.tokens.get(pair.base)
        quote = self.tokens.get(pair.quote)
        if base is None or quote is None or not base.reference_price_usd or not quote.reference_price_usd:
            raise SourceUnavailable(f"{self.name}: no reference price for {pair}")

        if self.latency_s:
            await asyncio.sleep(self.latency_s)

        mid = base.reference_price_usd / quote.reference_price_usd
        jitter = self.rng.uniform(-self.jitter_bps, self.jitter_bps) / 10000
        self._last_update = time.time()

        return PriceQuote(
            pair_key=pair.key,
            exchange_id=self.name,
            price=mid * (1 + jitter),
            observed_at=self._last_update,
            liquidity=self.get_liquidity_usd()
        )
