"""Trade journaling and reporting."""

import time
from datetime import datetime
from typing import Dict, List, Any, Optional, Iterable
from loguru import logger

from .db import Database
from .models import TradeRecord
from dexarb.core.types import ArbitrageOpportunity, TradeRequest, TradeResult, TradeStatus

DAY_S = 24 * 60 * 60


class TradeJournal:
    """Handles trade journaling and reporting."""

    def __init__(self, database: Database, mode: str = "paper"):
        self.database = database
        self.mode = mode

    async def journal_opportunities(self, opportunities: Iterable[ArbitrageOpportunity]) -> int:
        """Persist the current opportunity set."""
        count = 0
        for opportunity in opportunities:
            try:
                if await self.database.upsert_opportunity(opportunity):
                    count += 1
            except Exception as e:
                logger.error(f"Failed to journal opportunity {opportunity.id}: {e}")
        return count

    async def sweep_opportunities(self, max_age_s: float, keep: Iterable[tuple] = (),
                                  now: Optional[float] = None) -> int:
        """Drop persisted opportunities past the staleness window, keeping locked ones."""
        return await self.database.delete_stale_opportunities(max_age_s, now=now, keep=keep)

    async def journal_trade(self, request: TradeRequest, result: TradeResult,
                            opportunity: Optional[ArbitrageOpportunity] = None,
                            started_at: Optional[float] = None) -> bool:
        """Append the audit record of one execution attempt."""
        try:
            record = TradeRecord(
                actor_id=request.actor_id,
                opportunity_id=result.opportunity_id if result.opportunity_id is not None else request.opportunity_id,
                token_pair_key=opportunity.token_pair_key if opportunity else "",
                buy_exchange=opportunity.buy_exchange if opportunity else "",
                sell_exchange=opportunity.sell_exchange if opportunity else "",
                trade_amount=request.trade_amount,
                use_flashloan=request.use_flashloan,
                flashloan_strategy=request.flashloan_strategy.value,
                flashloan_amount=result.flashloan_amount or 0.0,
                status=(TradeStatus.COMPLETED if result.success else TradeStatus.FAILED).value,
                success=result.success,
                tx_hash=result.tx_hash,
                actual_profit=result.actual_profit or 0.0,
                gas_used=result.gas_used or 0.0,
                error_kind=result.error_kind.value if result.error_kind else None,
                error=result.error,
                mode=self.mode,
                started_at=started_at,
                finished_at=time.time()
            )
            trade_id = await self.database.insert_trade(record)
            logger.info(f"Journaled trade #{trade_id} for {request.actor_id}: "
                        f"{'✅' if result.success else '❌'} {record.error_kind or record.status}")
            return bool(trade_id)
        except Exception as e:
            logger.error(f"Failed to journal trade: {e}")
            return False

    async def get_stats(self, active: List[ArbitrageOpportunity], now: Optional[float] = None) -> Dict[str, Any]:
        """Aggregate statistics for observers."""
        now = now or time.time()
        trades = await self.database.get_trades(since=now - DAY_S, limit=10_000)
        successful = [t for t in trades if t.success]

        return {
            'totalOpportunities': len(active),
            'bestProfit': max((o.net_profit for o in active), default=0.0),
            'avgGasFee': sum(o.gas_cost_estimate for o in active) / len(active) if active else 0.0,
            'successRate': len(successful) / len(trades) * 100 if trades else 0.0,
            'volume24h': sum(t.flashloan_amount or t.trade_amount for t in successful),
        }

    async def generate_report(self, days: int) -> str:
        """Generate trading report for last N days."""
        try:
            performance = await self.database.get_performance_summary(days)
            summary = performance.get('summary', {})
            trades = await self.database.get_trades(since=time.time() - days * DAY_S, limit=10)

            report = f"""
=== ARBITRAGE REPORT (Last {days} days) ===
Performance Summary:
- Total Trades: {summary.get('total_trades', 0)}
- Successful: {summary.get('successful_trades', 0)}
- Success Rate: {summary.get('success_rate', 0):.2%}
- Total Profit: ${summary.get('total_profit', 0):.2f}
- Flashloan Volume: ${summary.get('volume', 0):.2f}
- Average Gas Used: {summary.get('avg_gas_used', 0):.0f}

Recent Trades:
"""

            for trade in trades:
                when = datetime.fromtimestamp(trade.finished_at).strftime('%Y-%m-%d %H:%M:%S') if trade.finished_at else '-'
                outcome = f"${trade.actual_profit:.2f}" if trade.success else (trade.error_kind or 'failed')
                report += (f"- {when} {trade.actor_id} {trade.token_pair_key} "
                           f"{trade.buy_exchange}->{trade.sell_exchange}: {outcome}\n")

            return report

        except Exception as e:
            logger.error(f"Failed to generate report: {e}")
            return f"Error generating report: {e}"

    async def get_performance_summary(self, days: int, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Get performance summary for last N days."""
        return await self.database.get_performance_summary(days, actor_id)
