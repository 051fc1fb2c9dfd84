"""Application service behind the HTTP layer."""

from typing import Dict, List, Any, Optional
from loguru import logger

from dexarb.config import ActorSettings, Config
from dexarb.core.errors import RiskLimitHalted, SigningKeyMissing
from dexarb.core.executor import TradeExecutor
from dexarb.core.scheduler import Scheduler
from dexarb.core.store import OpportunityStore
from dexarb.core.types import FlashloanStrategy, TradeRequest, TradeResult
from dexarb.signing import SecretsService
from dexarb.storage.journal import TradeJournal


class ArbitrageService:
    """Operations exposed to the presentation layer, keyed by actor."""

    def __init__(self, config: Config, store: OpportunityStore, executor: TradeExecutor,
                 scheduler: Scheduler, secrets: SecretsService, journal: Optional[TradeJournal] = None):
        self.config = config
        self.store = store
        self.executor = executor
        self.scheduler = scheduler
        self.secrets = secrets
        self.journal = journal

    def list_opportunities(self, min_profit: Optional[float] = None, active_only: bool = False,
                           limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        """Opportunities sorted by net profit, best first. Never errors on empty."""
        if offset < 0 or (limit is not None and limit < 1):
            raise ValueError(f"limit must be positive and offset non-negative (limit={limit}, offset={offset})")
        return [o.to_dict() for o in self.store.query(min_profit=min_profit, active_only=active_only,
                                                       limit=limit, offset=offset)]

    def _settings(self, actor_id: str) -> ActorSettings:
        trader = self.scheduler.get(actor_id)
        return trader.settings if trader is not None else self.config.auto_trading

    async def execute_trade(self, actor_id: str, opportunity_id: int, use_flashloan: bool = True) -> TradeResult:
        """Manual trade. Raises SigningKeyMissing or NoOpportunity on precondition failure."""
        if not self.secrets.has_key(actor_id):
            raise SigningKeyMissing(f"No signing key configured for actor {actor_id}")

        settings = self._settings(actor_id)
        request = TradeRequest(
            actor_id=actor_id,
            opportunity_id=opportunity_id,
            trade_amount=settings.max_trade_amount,
            max_slippage_pct=settings.max_slippage_pct,
            use_flashloan=use_flashloan,
            flashloan_strategy=FlashloanStrategy(settings.flashloan_strategy)
        )
        logger.info(f"Manual trade requested by {actor_id} for opportunity {opportunity_id}")
        return await self.executor.execute(request, settings=settings)

    async def start_auto_trading(self, actor_id: str, settings: Optional[Dict[str, Any]] = None,
                                 restart: bool = False) -> Dict[str, Any]:
        if not self.secrets.has_key(actor_id):
            raise SigningKeyMissing(f"No signing key configured for actor {actor_id}")

        parsed = ActorSettings(**settings) if settings else None
        if restart:
            return await self.scheduler.restart(actor_id, parsed)

        trader = self.scheduler.get(actor_id)
        if trader is not None and trader.state.is_halted:
            raise RiskLimitHalted(f"Auto trading halted: {trader.state.halt_reason}; restart required")
        return await self.scheduler.start(actor_id, parsed)

    def stop_auto_trading(self, actor_id: str) -> Dict[str, Any]:
        return self.scheduler.stop(actor_id)

    def auto_trading_status(self, actor_id: str) -> Dict[str, Any]:
        return self.scheduler.status(actor_id)

    async def get_stats(self) -> Dict[str, Any]:
        active = self.store.query(active_only=True)
        if self.journal is None:
            return {
                'totalOpportunities': len(active),
                'bestProfit': max((o.net_profit for o in active), default=0.0),
            }
        return await self.journal.get_stats(active)
