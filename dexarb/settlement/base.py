"""Settlement service interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class ArbitrageParams:
    """Arguments for one on-chain arbitrage call."""
    token_a: str  # borrowed token symbol
    token_b: str
    amount_in: float  # in units of token_a
    buy_route: str  # exchange id to buy token_b on
    sell_route: str
    min_profit: float
    use_flashloan: bool = True


@dataclass
class TxReceipt:
    """Confirmed transaction outcome."""
    tx_hash: str
    success: bool
    gas_used: int = 0
    block_number: Optional[int] = None
    effective_gas_price_wei: int = 0


class SettlementService(ABC):
    """Wraps the settlement contract that performs flashloan arbitrage atomically."""

    @abstractmethod
    async def estimate_profit(self, params: ArbitrageParams) -> float:
        """Ask the contract for the expected profit of params."""
        pass

    @abstractmethod
    async def execute_arbitrage(self, params: ArbitrageParams, signing_key: str) -> str:
        """Submit the arbitrage transaction and return its hash."""
        pass

    @abstractmethod
    async def wait_for_receipt(self, tx_hash: str) -> TxReceipt:
        """Wait until the transaction is mined. Callers bound this with a timeout."""
        pass

    @abstractmethod
    async def get_gas_balance(self, address: str) -> float:
        """Native token balance of address, in ETH."""
        pass

    async def close(self) -> None:
        pass
