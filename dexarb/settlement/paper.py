"""Paper settlement that simulates the contract without touching the chain."""

import asyncio
import os
import random
from typing import Dict, Optional
from loguru import logger

from .base import ArbitrageParams, SettlementService, TxReceipt


class PaperSettlementService(SettlementService):
    """Simulated settlement with confirmation latency and a revert probability."""

    def __init__(self, revert_rate: float = 0.1, confirmation_delay_s: float = 0.2,
                 gas_used: int = 350_000, gas_balance_eth: float = 1.0,
                 rng: Optional[random.Random] = None):
        self.revert_rate = revert_rate
        self.confirmation_delay_s = confirmation_delay_s
        self.gas_used = gas_used
        self.gas_balance_eth = gas_balance_eth
        self.rng = rng or random.Random()
        self._pending: Dict[str, bool] = {}

    async def estimate_profit(self, params: ArbitrageParams) -> float:
        return params.min_profit

    async def execute_arbitrage(self, params: ArbitrageParams, signing_key: str) -> str:
        tx_hash = "0x" + os.urandom(32).hex()
        self._pending[tx_hash] = self.rng.random() >= self.revert_rate
        logger.info(f"Paper arbitrage submitted: {params.amount_in:.2f} {params.token_a} "
                    f"{params.buy_route} -> {params.sell_route} ({tx_hash[:10]})")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        try:
            await asyncio.sleep(self.confirmation_delay_s)
            success = self._pending.get(tx_hash, False)
        finally:
            self._pending.pop(tx_hash, None)
        return TxReceipt(tx_hash=tx_hash, success=success, gas_used=self.gas_used)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def get_gas_balance(self, address: str) -> float:
        return self.gas_balance_eth
