"""Price feed aggregation across quote sources."""

import asyncio
import time
from typing import Dict, List, Optional, Any, TYPE_CHECKING
from loguru import logger

from .errors import SourceUnavailable
from .types import PriceQuote, TokenPair

if TYPE_CHECKING:
    from dexarb.sources.base import QuoteSource


class PriceFeedAggregator:
    """Fans out to every enabled source for every configured pair once per scan."""

    def __init__(self, sources: List["QuoteSource"], source_timeout_s: float = 3.0, log_quotes: bool = False):
        self.sources = sources
        self.source_timeout_s = source_timeout_s
        self.log_quotes = log_quotes
        self._failures: Dict[str, int] = {}
        self._last_cycle: Dict[str, Any] = {}

    def enabled_sources(self) -> List["QuoteSource"]:
        return [s for s in self.sources if s.enabled]

    async def _fetch_one(self, source: "QuoteSource", pair: TokenPair) -> Optional[PriceQuote]:
        """Fetch one quote; failures are logged and excluded."""
        try:
            quote = await asyncio.wait_for(source.fetch_price(pair), timeout=self.source_timeout_s)
            if quote.price <= 0:
                raise SourceUnavailable(f"{source.name} returned non-positive price for {pair}")
            if self.log_quotes:
                logger.debug(f"Quote {source.name} {pair}: {quote.price:.6f}")
            return quote
        except asyncio.TimeoutError:
            logger.warning(f"Quote source {source.name} timed out for {pair} after {self.source_timeout_s}s")
        except SourceUnavailable as e:
            logger.warning(f"Quote source unavailable: {e}")
        except Exception as e:
            logger.error(f"Unexpected error from {source.name} for {pair}: {e}")

        self._failures[source.name] = self._failures.get(source.name, 0) + 1
        return None

    async def fetch_all(self, pairs: List[TokenPair]) -> List[PriceQuote]:
        """Collect all successful quotes for the given pairs."""
        start = time.time()
        sources = self.enabled_sources()
        tasks = [self._fetch_one(source, pair) for source in sources for pair in pairs]
        if not tasks:
            return []

        results = await asyncio.gather(*tasks)
        quotes = [q for q in results if q is not None]

        self._last_cycle = {
            'requested': len(tasks),
            'received': len(quotes),
            'duration_ms': int((time.time() - start) * 1000),
            'ts': time.time()
        }
        logger.info(f"Fetched {len(quotes)}/{len(tasks)} quotes from {len(sources)} sources "
                    f"in {self._last_cycle['duration_ms']} ms")
        return quotes

    async def close(self) -> None:
        for source in self.sources:
            try:
                await source.close()
            except Exception as e:
                logger.error(f"Error closing source {source.name}: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get aggregator status."""
        return {
            'sources': {
                s.name: {'enabled': s.enabled, 'last_update': s.get_last_update(),
                         'failures': self._failures.get(s.name, 0)}
                for s in self.sources
            },
            'last_cycle': self._last_cycle
        }
