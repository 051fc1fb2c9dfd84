#!/usr/bin/env python3
"""
Shared types and data structures for the arbitrage coordinator.
This file breaks circular imports between modules.
"""

import time
from typing import Dict, Optional, Any
from dataclasses import dataclass, field, asdict
from enum import Enum


class ErrorKind(Enum):
    """Failure categories surfaced in trade results."""
    SOURCE_UNAVAILABLE = "SourceUnavailable"
    NO_OPPORTUNITY = "NoOpportunity"
    LOCK_CONTENTION = "LockContention"
    VALIDATION_FAILED = "ValidationFailed"
    INSUFFICIENT_FUNDS = "InsufficientFunds"
    EXECUTION_REVERTED = "ExecutionReverted"
    CONFIRMATION_TIMEOUT = "ConfirmationTimeout"
    RISK_LIMIT_HALTED = "RiskLimitHalted"
    SIGNING_KEY_MISSING = "SigningKeyMissing"
    UNEXPECTED = "Unexpected"


class FlashloanStrategy(Enum):
    """How the flashloan amount is sized."""
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    DYNAMIC = "dynamic"


class TradeStatus(Enum):
    """Execution state of one trade attempt."""
    PENDING = "pending"
    VALIDATING = "validating"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TokenPair:
    """Trading pair such as WETH/USDC."""
    base: str
    quote: str

    @property
    def key(self) -> str:
        return f"{self.base}/{self.quote}"

    @classmethod
    def parse(cls, pair: str) -> "TokenPair":
        base, quote = pair.split("/")
        return cls(base=base.strip(), quote=quote.strip())

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class PriceQuote:
    """Normalized quote from one source. Lives for one scan cycle."""
    pair_key: str
    exchange_id: str
    price: float  # quote tokens per base token
    observed_at: float = field(default_factory=time.time)
    liquidity: Optional[float] = None  # USD depth estimate, when known


@dataclass
class OpportunityDraft:
    """Detector output before it enters the store."""
    token_pair_key: str
    token0: str
    token1: str
    buy_exchange: str
    sell_exchange: str
    buy_price: float
    sell_price: float
    price_diff_pct: float
    gross_profit: float
    gas_cost_estimate: float
    flashloan_fee_estimate: float
    net_profit: float
    liquidity_estimate: float

    @property
    def composite_key(self) -> tuple:
        return (self.token_pair_key, self.buy_exchange, self.sell_exchange)


@dataclass
class ArbitrageOpportunity:
    """Stored arbitrage opportunity."""
    id: int
    token_pair_key: str
    token0: str
    token1: str
    buy_exchange: str
    sell_exchange: str
    buy_price: float
    sell_price: float
    price_diff_pct: float
    gross_profit: float
    gas_cost_estimate: float
    flashloan_fee_estimate: float
    net_profit: float
    liquidity_estimate: float
    is_active: bool = True
    is_locked: bool = False
    last_updated_at: float = field(default_factory=time.time)

    @property
    def composite_key(self) -> tuple:
        return (self.token_pair_key, self.buy_exchange, self.sell_exchange)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TradeRequest:
    """Input to one execution attempt."""
    actor_id: str
    opportunity_id: int
    trade_amount: float
    max_slippage_pct: float = 0.5
    use_flashloan: bool = True
    flashloan_strategy: FlashloanStrategy = FlashloanStrategy.FIXED


@dataclass(frozen=True)
class TradeResult:
    """Output of one execution attempt."""
    success: bool
    tx_hash: Optional[str] = None
    actual_profit: Optional[float] = None
    gas_used: Optional[float] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    opportunity_id: Optional[int] = None
    flashloan_amount: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the HTTP layer."""
        return {
            'success': self.success,
            'txHash': self.tx_hash,
            'actualProfit': self.actual_profit,
            'gasUsed': self.gas_used,
            'errorKind': self.error_kind.value if self.error_kind else None,
            'error': self.error,
            'opportunityId': self.opportunity_id,
            'flashloanAmount': self.flashloan_amount,
        }
