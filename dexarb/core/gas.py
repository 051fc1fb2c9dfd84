"""Network gas cost model."""

import asyncio
from typing import Optional, Any
from loguru import logger

from dexarb.config import GasConfig


class GasModel:
    """Estimates USD gas cost as gas units x gas price x native/USD rate."""

    def __init__(self, config: GasConfig, w3: Optional[Any] = None, timeout_s: float = 3.0):
        self.config = config
        self.w3 = w3
        self.timeout_s = timeout_s
        self.gas_price_gwei = config.default_gas_price_gwei
        self.native_usd = config.native_usd

    async def refresh(self) -> float:
        """Refresh gas price from the web3 provider, keeping the last value on failure."""
        if self.w3 is None or not self.config.refresh_from_rpc:
            return self.gas_price_gwei
        try:
            wei = await asyncio.wait_for(self.w3.eth.gas_price, timeout=self.timeout_s)
            self.gas_price_gwei = wei / 1e9
            logger.debug(f"Gas price refreshed: {self.gas_price_gwei:.4f} gwei")
        except Exception as e:
            logger.warning(f"Gas price refresh failed, keeping {self.gas_price_gwei} gwei: {e}")
        return self.gas_price_gwei

    def set_native_usd(self, price: float) -> None:
        if price > 0:
            self.native_usd = price

    def raw_cost_usd(self, gas_units: Optional[int] = None) -> float:
        units = gas_units if gas_units is not None else self.config.gas_units
        return units * self.gas_price_gwei * 1e-9 * self.native_usd

    def estimate_usd(self, gas_units: Optional[int] = None) -> float:
        """Gas cost in USD, clamped to the configured band."""
        cost = self.raw_cost_usd(gas_units)
        return min(self.config.max_cost_usd, max(self.config.min_cost_usd, cost))
