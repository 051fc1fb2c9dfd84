"""Per-actor risk accounting."""

import time
from dataclasses import dataclass
from typing import Dict, Any, Optional
from loguru import logger

from .types import TradeResult


@dataclass
class ActorRiskState:
    """Risk counters for one actor. Owned by that actor's AutoTrader only."""
    actor_id: str
    is_running: bool = False
    is_halted: bool = False
    active_trade_count: int = 0
    total_trades: int = 0
    successful_trades: int = 0
    total_profit: float = 0.0
    daily_profit: float = 0.0
    daily_loss: float = 0.0
    current_streak: int = 0
    last_trade_at: Optional[float] = None
    halt_reason: Optional[str] = None
    stop_reason: Optional[str] = None

    def record_success(self, result: TradeResult, now: Optional[float] = None) -> None:
        profit = result.actual_profit or 0.0
        self.total_trades += 1
        self.successful_trades += 1
        self.total_profit += profit
        self.daily_profit += profit
        self.current_streak += 1
        self.last_trade_at = now or time.time()

    def record_failure(self, estimated_loss: float, now: Optional[float] = None) -> None:
        self.total_trades += 1
        self.daily_loss += estimated_loss
        self.current_streak = 0
        self.last_trade_at = now or time.time()

    def halt(self, reason: str) -> None:
        """Trip the circuit breaker. Only an explicit restart clears it."""
        self.is_halted = True
        self.is_running = False
        self.halt_reason = reason
        logger.warning(f"🛑 Actor {self.actor_id} halted: {reason}")

    def reset_daily(self) -> None:
        """Zero daily counters. Halts are kept."""
        self.daily_profit = 0.0
        self.daily_loss = 0.0

    @property
    def success_rate(self) -> float:
        return self.successful_trades / self.total_trades if self.total_trades else 0.0

    def snapshot(self) -> Dict[str, Any]:
        """Snapshot for the HTTP layer."""
        return {
            'actorId': self.actor_id,
            'isRunning': self.is_running,
            'isHalted': self.is_halted,
            'activeTradeCount': self.active_trade_count,
            'totalTrades': self.total_trades,
            'successfulTrades': self.successful_trades,
            'successRate': self.success_rate,
            'totalProfit': self.total_profit,
            'dailyProfit': self.daily_profit,
            'dailyLoss': self.daily_loss,
            'currentStreak': self.current_streak,
            'lastTradeAt': self.last_trade_at,
            'haltReason': self.halt_reason,
            'stopReason': self.stop_reason,
        }
