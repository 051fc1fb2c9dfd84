"""Per-actor automated trading loop."""

import asyncio
from typing import Optional, Set
from loguru import logger

from .risk import ActorRiskState
from .store import OpportunityStore
from .types import ArbitrageOpportunity, ErrorKind, FlashloanStrategy, TradeRequest, TradeResult
from dexarb.config import ActorSettings


class AutoTrader:
    """Runs one actor's trading cycle every ``cooldown_between_trades`` seconds.

    Each cycle does one bounded unit of work without awaiting: breaker checks,
    candidate selection by atomic lock, then a detached dispatch of the trade.
    Dispatched trades outlive a stop; they still finish and release their lock.
    """

    def __init__(self, actor_id: str, settings: ActorSettings, store: OpportunityStore, executor):
        self.actor_id = actor_id
        self.settings = settings
        self.store = store
        self.executor = executor
        self.state = ActorRiskState(actor_id=actor_id)
        self._task: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self.state.is_running

    def start(self, clear_halt: bool = False) -> bool:
        """Start cycling. A halted actor only starts when clear_halt is set."""
        if self.state.is_halted:
            if not clear_halt:
                logger.warning(f"Actor {self.actor_id} is halted ({self.state.halt_reason}); restart required")
                return False
            self.state.is_halted = False
            self.state.halt_reason = None
            logger.info(f"Actor {self.actor_id} halt cleared by restart")

        self.state.is_running = True
        self.state.stop_reason = None
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop(), name=f"autotrader-{self.actor_id}")
        logger.info(f"🤖 Auto trading started for {self.actor_id} "
                    f"(min profit ${self.settings.min_profit_threshold}, every {self.settings.cooldown_between_trades}s)")
        return True

    def stop(self, reason: str = "stopped by operator") -> None:
        """Stop cycling. In-flight trades are left to finish."""
        self.state.is_running = False
        self.state.stop_reason = reason
        if self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()
        self._task = None
        logger.info(f"Auto trading stopped for {self.actor_id}: {reason}")

    async def _loop(self):
        # A loop superseded by stop/start exits at its next check
        me = asyncio.current_task()
        try:
            while self.state.is_running and self._task is me:
                self.run_cycle()
                await asyncio.sleep(self.settings.cooldown_between_trades)
        except asyncio.CancelledError:
            pass

    def run_cycle(self) -> Optional[asyncio.Task]:
        """One trading cycle. Returns the dispatched trade task, if any."""
        state = self.state
        if state.is_halted or not state.is_running:
            return None

        if state.daily_profit >= self.settings.daily_profit_target:
            self.stop(f"daily profit target ${self.settings.daily_profit_target:.2f} reached")
            return None

        if state.daily_loss >= self.settings.daily_loss_limit:
            state.halt(f"daily loss ${state.daily_loss:.2f} reached limit ${self.settings.daily_loss_limit:.2f}")
            self.stop("risk limit halted")
            return None

        if state.active_trade_count >= self.settings.max_concurrent_trades:
            logger.debug(f"{self.actor_id}: {state.active_trade_count} trades in flight, skipping cycle")
            return None

        opportunity = self._select_candidate()
        if opportunity is None:
            logger.debug(f"{self.actor_id}: no lockable opportunity this cycle")
            return None

        state.active_trade_count += 1
        task = asyncio.create_task(self._run_trade(opportunity), name=f"trade-{self.actor_id}-{opportunity.id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _select_candidate(self) -> Optional[ArbitrageOpportunity]:
        """Lock the most profitable eligible opportunity."""
        candidates = self.store.query(
            min_profit=self.settings.min_profit_threshold,
            active_only=True,
            exchanges=self.settings.exchange_allow_list or None
        )
        for candidate in candidates:
            if self.store.acquire_lock(candidate.id):
                return candidate
        return None

    async def _run_trade(self, opportunity: ArbitrageOpportunity) -> TradeResult:
        request = TradeRequest(
            actor_id=self.actor_id,
            opportunity_id=opportunity.id,
            trade_amount=self.settings.max_trade_amount,
            max_slippage_pct=self.settings.max_slippage_pct,
            use_flashloan=self.settings.only_flashloans,
            flashloan_strategy=FlashloanStrategy(self.settings.flashloan_strategy)
        )
        try:
            result = await self.executor.execute(request, lock_held=True, settings=self.settings)
        except Exception as e:
            # The executor has already released the lock on its way out
            logger.error(f"Trade dispatch for {self.actor_id} on {opportunity.id} errored: {e}")
            kind = getattr(e, 'kind', ErrorKind.UNEXPECTED)
            result = TradeResult(success=False, error_kind=kind, error=str(e), opportunity_id=opportunity.id)
        finally:
            self.state.active_trade_count -= 1

        self._record(result)
        return result

    def _record(self, result: TradeResult) -> None:
        state = self.state
        if result.success:
            state.record_success(result)
            logger.info(f"💰 {self.actor_id}: +${result.actual_profit:.2f} "
                        f"(daily ${state.daily_profit:.2f}, streak {state.current_streak})")
            return

        state.record_failure(self.settings.failed_trade_loss_estimate)
        logger.warning(f"{self.actor_id}: trade failed ({result.error_kind.value if result.error_kind else 'unknown'}), "
                       f"daily loss ${state.daily_loss:.2f}/{self.settings.daily_loss_limit:.2f}")
        if state.daily_loss >= self.settings.daily_loss_limit and not state.is_halted:
            state.halt(f"daily loss ${state.daily_loss:.2f} reached limit ${self.settings.daily_loss_limit:.2f}")
            self.stop("risk limit halted")

    async def wait_inflight(self) -> None:
        """Wait for dispatched trades to finish."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
