"""Owner of all per-actor trading loops."""

import asyncio
from datetime import date, datetime
from typing import Callable, Dict, Any, Optional
from loguru import logger

from .autotrader import AutoTrader
from .risk import ActorRiskState
from .store import OpportunityStore
from dexarb.config import ActorSettings, Config


class Scheduler:
    """Holds ``actor_id -> AutoTrader`` and the daily reset task.

    ``start``, ``restart`` and ``stop`` are the only ways an actor's loop
    changes state.
    """

    def __init__(self, config: Config, store: OpportunityStore, executor, database=None,
                 reset_check_interval_s: float = 60.0, today: Callable[[], date] = None):
        self.config = config
        self.store = store
        self.executor = executor
        self.database = database
        self.reset_check_interval_s = reset_check_interval_s
        self._today = today or (lambda: datetime.now().date())
        self._traders: Dict[str, AutoTrader] = {}
        self._reset_task: Optional[asyncio.Task] = None

    def get(self, actor_id: str) -> Optional[AutoTrader]:
        return self._traders.get(actor_id)

    async def _settings_for(self, actor_id: str, settings: Optional[ActorSettings]) -> ActorSettings:
        if settings is not None:
            if self.database is not None:
                await self.database.save_actor_settings(actor_id, settings.model_dump())
            return settings

        if self.database is not None:
            record = await self.database.load_actor_settings(actor_id)
            if record is not None:
                return ActorSettings.model_validate_json(record.settings_json)
        return self.config.auto_trading.model_copy()

    async def start(self, actor_id: str, settings: Optional[ActorSettings] = None) -> Dict[str, Any]:
        """Start an actor's loop. A halted actor stays halted until restarted."""
        return await self._start(actor_id, settings, clear_halt=False)

    async def restart(self, actor_id: str, settings: Optional[ActorSettings] = None) -> Dict[str, Any]:
        """Start an actor's loop, clearing a risk halt."""
        return await self._start(actor_id, settings, clear_halt=True)

    async def _start(self, actor_id: str, settings: Optional[ActorSettings], clear_halt: bool) -> Dict[str, Any]:
        trader = self._traders.get(actor_id)
        if trader is None:
            trader = AutoTrader(actor_id, await self._settings_for(actor_id, settings), self.store, self.executor)
            self._traders[actor_id] = trader
        elif settings is not None:
            trader.settings = await self._settings_for(actor_id, settings)

        trader.start(clear_halt=clear_halt)
        return trader.state.snapshot()

    def stop(self, actor_id: str) -> Dict[str, Any]:
        trader = self._traders.get(actor_id)
        if trader is None:
            return ActorRiskState(actor_id=actor_id).snapshot()
        trader.stop()
        return trader.state.snapshot()

    def status(self, actor_id: str) -> Dict[str, Any]:
        trader = self._traders.get(actor_id)
        if trader is None:
            return ActorRiskState(actor_id=actor_id).snapshot()
        return trader.state.snapshot()

    def statuses(self) -> Dict[str, Dict[str, Any]]:
        return {actor_id: trader.state.snapshot() for actor_id, trader in self._traders.items()}

    def reset_daily(self) -> None:
        """Zero daily profit and loss for every actor. Halts stay in place."""
        for trader in self._traders.values():
            trader.state.reset_daily()
        logger.info(f"🌅 Daily counters reset for {len(self._traders)} actors")

    def start_daily_reset(self) -> None:
        if self._reset_task is None or self._reset_task.done():
            self._reset_task = asyncio.create_task(self._daily_reset_loop(), name="daily-reset")

    async def _daily_reset_loop(self):
        current_day = self._today()
        try:
            while True:
                await asyncio.sleep(self.reset_check_interval_s)
                today = self._today()
                if today != current_day:
                    current_day = today
                    self.reset_daily()
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        """Stop every actor and wait for in-flight trades."""
        if self._reset_task is not None:
            self._reset_task.cancel()
            self._reset_task = None

        for trader in self._traders.values():
            if trader.is_running:
                trader.stop("shutdown")

        await asyncio.gather(*(t.wait_inflight() for t in self._traders.values()))
        logger.info("Scheduler shut down")
