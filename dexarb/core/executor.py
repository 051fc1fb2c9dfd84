"""Flashloan arbitrage trade execution."""

import asyncio
import time
from typing import Optional, Any, TYPE_CHECKING
from loguru import logger

from .errors import (
    ArbitrageError, ConfirmationTimeout, ExecutionReverted, InsufficientFunds,
    LockContention, NoOpportunity, ValidationFailed
)
from .sizing import FlashloanSizer
from .store import OpportunityStore
from .types import ArbitrageOpportunity, ErrorKind, TradeRequest, TradeResult, TradeStatus
from dexarb.config import ActorSettings, Config

if TYPE_CHECKING:
    from dexarb.settlement.base import SettlementService
    from dexarb.signing import SecretsService
    from dexarb.storage.journal import TradeJournal


class TradeExecutor:
    """Runs one trade attempt: validate, lock, size, settle, confirm, release.

    Preconditions that make the request itself unusable (no signing key, no
    opportunity under the strict policy) raise. Everything after that is
    reported as a ``TradeResult`` and journaled, successful or not.
    """

    def __init__(self, config: Config, store: OpportunityStore, settlement: "SettlementService",
                 secrets: "SecretsService", journal: Optional["TradeJournal"] = None,
                 sizer: Optional[FlashloanSizer] = None):
        self.config = config
        self.store = store
        self.settlement = settlement
        self.secrets = secrets
        self.journal = journal
        self.sizer = sizer or FlashloanSizer(config)
        self.execution = config.execution

    async def execute(self, request: TradeRequest, lock_held: bool = False,
                      settings: Optional[ActorSettings] = None) -> TradeResult:
        """Execute one request.

        With ``lock_held`` the caller has already acquired the lock of
        ``request.opportunity_id`` and hands ownership over; the lock is
        released here exactly once either way.
        """
        started_at = time.time()
        locked_id: Optional[int] = request.opportunity_id if lock_held else None
        settings = settings or self.config.auto_trading

        try:
            signing_key = self.secrets.get_signing_key(request.actor_id)
            opportunity = self._resolve_opportunity(request)
            if opportunity is None:
                result = TradeResult(
                    success=False,
                    error_kind=ErrorKind.NO_OPPORTUNITY,
                    error=f"Opportunity {request.opportunity_id} is not available",
                    opportunity_id=request.opportunity_id
                )
                await self._journal(request, result, None, started_at)
                return result

            status = TradeStatus.PENDING
            flashloan_amount = None
            try:
                status = TradeStatus.VALIDATING
                self._validate(opportunity)
                if locked_id != opportunity.id:
                    if not self.store.acquire_lock(opportunity.id):
                        raise LockContention(f"Opportunity {opportunity.id} is locked by another execution",
                                             opportunity.id)
                    locked_id = opportunity.id

                flashloan_amount = self._amount(request, opportunity, settings)
                await self._check_gas_balance(request.actor_id)

                status = TradeStatus.EXECUTING
                result = await self._settle(request, opportunity, signing_key, flashloan_amount)
                status = TradeStatus.COMPLETED

            except ArbitrageError as e:
                logger.warning(f"Trade {request.actor_id}/{opportunity.id} failed while {status.value}: {e}")
                status = TradeStatus.FAILED
                result = TradeResult(
                    success=False,
                    tx_hash=e.tx_hash,
                    error_kind=e.kind,
                    error=str(e),
                    opportunity_id=opportunity.id,
                    flashloan_amount=flashloan_amount
                )
            except Exception as e:
                logger.exception(f"Unexpected error executing {request.actor_id}/{opportunity.id}: {e}")
                status = TradeStatus.FAILED
                result = TradeResult(
                    success=False,
                    error_kind=ErrorKind.UNEXPECTED,
                    error=str(e),
                    opportunity_id=opportunity.id,
                    flashloan_amount=flashloan_amount
                )

            logger.debug(f"Trade {request.actor_id}/{opportunity.id} finished as {status.value}")
            await self._journal(request, result, opportunity, started_at)
            return result

        finally:
            if locked_id is not None:
                self.store.release_lock(locked_id)

    def _resolve_opportunity(self, request: TradeRequest) -> Optional[ArbitrageOpportunity]:
        """Load the requested opportunity, applying the missing-id policy."""
        opportunity = self.store.get(request.opportunity_id)
        if opportunity is not None:
            return opportunity

        policy = self.execution.missing_opportunity_policy
        if policy == "reject":
            return None

        if policy == "fallback_to_best":
            cutoff = time.time() - self.execution.fallback_max_age_s
            for candidate in self.store.query(active_only=True):
                if candidate.last_updated_at >= cutoff and not candidate.is_locked:
                    logger.warning(f"Opportunity {request.opportunity_id} missing, "
                                   f"substituting best opportunity {candidate.id} for {request.actor_id}")
                    return candidate
            raise NoOpportunity("No opportunity currently available", request.opportunity_id)

        raise NoOpportunity(f"Opportunity {request.opportunity_id} not found", request.opportunity_id)

    def _validate(self, opportunity: ArbitrageOpportunity) -> None:
        if not opportunity.is_active:
            raise ValidationFailed(f"Opportunity {opportunity.id} is no longer active", opportunity.id)
        if opportunity.net_profit <= 0:
            raise ValidationFailed(f"Opportunity {opportunity.id} is no longer profitable", opportunity.id)

    def _amount(self, request: TradeRequest, opportunity: ArbitrageOpportunity,
                settings: ActorSettings) -> float:
        if request.use_flashloan:
            return self.sizer.size(opportunity, request.flashloan_strategy, settings)
        return min(request.trade_amount, self.sizer.token_ceiling(opportunity.token1))

    async def _check_gas_balance(self, actor_id: str) -> None:
        address = self.secrets.get_address(actor_id)
        balance = await asyncio.wait_for(self.settlement.get_gas_balance(address),
                                         timeout=self.execution.submit_timeout_s)
        if balance < self.execution.min_gas_balance_eth:
            raise InsufficientFunds(f"Wallet {address} has {balance:.5f} ETH, "
                                    f"needs {self.execution.min_gas_balance_eth} for gas")

    async def _settle(self, request: TradeRequest, opportunity: ArbitrageOpportunity,
                      signing_key: str, amount: float) -> TradeResult:
        from dexarb.settlement.base import ArbitrageParams

        params = ArbitrageParams(
            token_a=opportunity.token1,
            token_b=opportunity.token0,
            amount_in=amount,
            buy_route=opportunity.buy_exchange,
            sell_route=opportunity.sell_exchange,
            min_profit=max(opportunity.net_profit * (1 - request.max_slippage_pct / 100), 0.0),
            use_flashloan=request.use_flashloan
        )

        expected = await asyncio.wait_for(self.settlement.estimate_profit(params),
                                          timeout=self.execution.submit_timeout_s)
        if expected <= 0:
            raise ValidationFailed(f"Settlement estimates {expected:.2f} profit for opportunity {opportunity.id}",
                                   opportunity.id)

        try:
            tx_hash = await asyncio.wait_for(self.settlement.execute_arbitrage(params, signing_key),
                                             timeout=self.execution.submit_timeout_s)
        except asyncio.TimeoutError:
            raise ConfirmationTimeout(f"Submission not acknowledged within {self.execution.submit_timeout_s}s",
                                      opportunity.id)

        try:
            receipt = await asyncio.wait_for(self.settlement.wait_for_receipt(tx_hash),
                                             timeout=self.execution.confirmation_timeout_s)
        except asyncio.TimeoutError:
            raise ConfirmationTimeout(f"Transaction {tx_hash} not confirmed within "
                                      f"{self.execution.confirmation_timeout_s}s", opportunity.id, tx_hash)

        if not receipt.success:
            raise ExecutionReverted(f"On-chain execution failed: transaction {tx_hash} reverted",
                                    opportunity.id, tx_hash)

        actual_profit = opportunity.net_profit * self.execution.slippage_factor
        self.store.deactivate(opportunity.id)
        logger.success(f"✅ Arbitrage {opportunity.token_pair_key} {opportunity.buy_exchange} -> "
                       f"{opportunity.sell_exchange} confirmed: ~${actual_profit:.2f} ({tx_hash})")

        return TradeResult(
            success=True,
            tx_hash=tx_hash,
            actual_profit=actual_profit,
            gas_used=float(receipt.gas_used),
            opportunity_id=opportunity.id,
            flashloan_amount=amount
        )

    async def _journal(self, request: TradeRequest, result: TradeResult,
                       opportunity: Optional[ArbitrageOpportunity], started_at: float) -> None:
        if self.journal is None:
            return
        await self.journal.journal_trade(request, result, opportunity, started_at)
        if result.success and opportunity is not None:
            consumed = self.store.get(opportunity.id)
            if consumed is not None:
                await self.journal.journal_opportunities([consumed])

    def get_status(self) -> Any:
        """Get executor status."""
        return {
            'confirmation_timeout_s': self.execution.confirmation_timeout_s,
            'missing_opportunity_policy': self.execution.missing_opportunity_policy,
            'slippage_factor': self.execution.slippage_factor
        }
