"""Data models for persisted arbitrage records."""

from dataclasses import dataclass
from typing import Optional


@dataclass
class TradeRecord:
    """Append-only audit entry for one execution attempt."""
    id: Optional[int] = None
    actor_id: str = ""
    opportunity_id: Optional[int] = None
    token_pair_key: str = ""
    buy_exchange: str = ""
    sell_exchange: str = ""
    trade_amount: float = 0.0
    use_flashloan: bool = True
    flashloan_strategy: str = "fixed"
    flashloan_amount: float = 0.0
    status: str = ""
    success: bool = False
    tx_hash: Optional[str] = None
    actual_profit: float = 0.0
    gas_used: float = 0.0
    error_kind: Optional[str] = None
    error: Optional[str] = None
    mode: str = "paper"
    started_at: Optional[float] = None
    finished_at: Optional[float] = None


@dataclass
class ActorSettingsRecord:
    """Persisted auto trading settings for one actor."""
    actor_id: str = ""
    settings_json: str = "{}"
    updated_at: Optional[float] = None
