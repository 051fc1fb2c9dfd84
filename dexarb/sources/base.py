"""Base quote source interface."""

from abc import ABC, abstractmethod
from typing import Dict, Any

from dexarb.core.types import PriceQuote, TokenPair


class QuoteSource(ABC):
    """Wraps one external price provider (exchange router or oracle)."""

    def __init__(self, name: str, config: Dict[str, Any]):
        self.name = name
        self.config = config
        self.enabled = config.get('enabled', True)
        self._last_update = 0.0

    @abstractmethod
    async def fetch_price(self, pair: TokenPair) -> PriceQuote:
        """Fetch a normalized quote. Raises SourceUnavailable on failure."""
        pass

    async def close(self) -> None:
        """Release network resources."""
        pass

    def get_fee_bps(self) -> float:
        """Get swap fee in basis points."""
        return self.config.get('fee_bps', 30.0)

    def get_liquidity_usd(self) -> float:
        """Get configured liquidity estimate for this venue."""
        return self.config.get('liquidity_usd', 500_000.0)

    def get_last_update(self) -> float:
        """Get timestamp of last successful quote."""
        return self._last_update
