"""Global price scan loop."""

import asyncio
import statistics
import time
from typing import Dict, List, Any, Optional
from loguru import logger

from .detector import OpportunityDetector
from .events import EventBus
from .gas import GasModel
from .quotes import PriceFeedAggregator
from .store import OpportunityStore
from .types import ArbitrageOpportunity, PriceQuote, TokenPair
from dexarb.config import Config


class PriceScanner:
    """Sweeps, quotes, detects and stores once per scan interval."""

    def __init__(self, config: Config, aggregator: PriceFeedAggregator, detector: OpportunityDetector,
                 store: OpportunityStore, gas_model: GasModel, journal=None, events: Optional[EventBus] = None):
        self.config = config
        self.aggregator = aggregator
        self.detector = detector
        self.store = store
        self.gas_model = gas_model
        self.journal = journal
        self.events = events
        self.pairs = [TokenPair.parse(p) for p in config.pairs]
        self.interval_s = config.aggregator.scan_interval_s
        self.running = False
        self.cycles = 0
        self.last_cycle: Dict[str, Any] = {}

    async def scan_once(self) -> List[ArbitrageOpportunity]:
        """One scan cycle. Errors are logged and never escape."""
        start = time.time()
        stored: List[ArbitrageOpportunity] = []
        try:
            staleness = self.config.store.staleness_window_s
            swept = self.store.sweep_stale(staleness)
            if self.journal is not None:
                await self.journal.sweep_opportunities(staleness, keep=self.store.locked_keys())
            await self.gas_model.refresh()

            quotes = await self.aggregator.fetch_all(self.pairs)
            self._refresh_native_price(quotes)
            drafts = self.detector.detect(quotes)
            stored = self.store.upsert_many(drafts)

            if self.journal is not None:
                await self.journal.journal_opportunities(stored)

            self.cycles += 1
            self.last_cycle = {
                'quotes': len(quotes),
                'opportunities': len(stored),
                'swept': swept,
                'duration_ms': int((time.time() - start) * 1000),
                'ts': time.time()
            }
            await self._publish()
        except Exception as e:
            logger.error(f"Scan cycle failed: {e}")
        return stored

    def _refresh_native_price(self, quotes: List[PriceQuote]) -> None:
        prices = [q.price for q in quotes if q.pair_key == self.config.gas.native_price_pair]
        if prices:
            self.gas_model.set_native_usd(statistics.median(prices))

    async def _publish(self):
        if self.events is None or self.events.subscriber_count == 0:
            return
        active = self.store.query(active_only=True)
        self.events.publish('opportunities', [o.to_dict() for o in active])
        if self.journal is not None:
            self.events.publish('stats', await self.journal.get_stats(active))

    async def run(self):
        """Scan until stopped."""
        self.running = True
        logger.info(f"🚀 Scanning {len(self.pairs)} pairs across "
                    f"{len(self.aggregator.enabled_sources())} sources every {self.interval_s}s")
        while self.running:
            await self.scan_once()
            await asyncio.sleep(self.interval_s)

    def stop(self):
        self.running = False

    def get_status(self) -> Dict[str, Any]:
        """Get scanner status."""
        return {
            'running': self.running,
            'cycles': self.cycles,
            'last_cycle': self.last_cycle,
            'stored_opportunities': len(self.store),
            'gas_price_gwei': self.gas_model.gas_price_gwei,
            'aggregator': self.aggregator.get_status()
        }
