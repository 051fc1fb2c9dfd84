"""Flashloan amount sizing."""

from typing import Optional
from loguru import logger

from .types import ArbitrageOpportunity, FlashloanStrategy
from dexarb.config import ActorSettings, Config


class FlashloanSizer:
    """Chooses the flashloan amount for a trade.

    fixed      - the actor's configured flashloan size
    percentage - a fraction of the pool liquidity, capped at the strategy max
    dynamic    - flashloan size scaled by net profit over the actor's profit bar, capped

    Every result is clamped to the per-token ceiling of the borrowed token.
    """

    def __init__(self, config: Config):
        self.config = config
        self.flashloan = config.flashloan

    def size(self, opportunity: ArbitrageOpportunity, strategy: FlashloanStrategy,
             settings: Optional[ActorSettings] = None) -> float:
        settings = settings or self.config.auto_trading
        base = settings.flashloan_size

        if strategy == FlashloanStrategy.PERCENTAGE:
            amount = min(opportunity.liquidity_estimate * self.flashloan.liquidity_fraction,
                         self.flashloan.max_amount_usd)
        elif strategy == FlashloanStrategy.DYNAMIC:
            threshold = settings.min_profit_threshold or self.config.detector.min_profit_usd
            multiplier = opportunity.net_profit / threshold if threshold > 0 else 1.0
            amount = min(base * max(multiplier, 0.0), self.flashloan.max_amount_usd)
        else:
            amount = base

        ceiling = self.token_ceiling(opportunity.token1)
        if amount > ceiling:
            logger.debug(f"Flashloan {amount:.2f} clamped to {opportunity.token1} ceiling {ceiling:.2f}")
            amount = ceiling
        return max(amount, 0.0)

    def token_ceiling(self, symbol: str) -> float:
        token = self.config.get_token(symbol)
        if token is None:
            return self.flashloan.max_amount_usd
        return token.max_flashloan_usd
