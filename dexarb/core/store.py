"""Shared ledger of currently known arbitrage opportunities."""

import itertools
import threading
import time
from dataclasses import replace
from typing import Dict, List, Optional, Set, Iterable
from loguru import logger

from .types import ArbitrageOpportunity, OpportunityDraft

_MUTABLE_FIELDS = (
    'buy_price', 'sell_price', 'price_diff_pct', 'gross_profit', 'gas_cost_estimate',
    'flashloan_fee_estimate', 'net_profit', 'liquidity_estimate'
)


class OpportunityStore:
    """In-memory opportunity store with per-record execution locks.

    All public methods are atomic with respect to each other: they take one
    mutex and never suspend while holding it, so they are safe to call from
    concurrent asyncio tasks as well as worker threads. The execution lock of
    a record is kept in a separate set rather than on the record itself, so a
    refresh through ``upsert`` can never overwrite it.
    """

    def __init__(self, min_profit_threshold: float = 0.0):
        self.min_profit_threshold = min_profit_threshold
        self._mutex = threading.Lock()
        self._records: Dict[int, ArbitrageOpportunity] = {}
        self._by_key: Dict[tuple, int] = {}
        self._locked: Set[int] = set()
        self._ids = itertools.count(1)

    def _snapshot(self, record: ArbitrageOpportunity) -> ArbitrageOpportunity:
        return replace(record, is_locked=record.id in self._locked)

    def upsert(self, draft: OpportunityDraft, now: Optional[float] = None) -> ArbitrageOpportunity:
        """Insert a new opportunity or refresh the one with the same composite key."""
        if draft.net_profit < self.min_profit_threshold:
            raise ValueError(f"Net profit {draft.net_profit:.2f} below store threshold {self.min_profit_threshold:.2f}")

        now = time.time() if now is None else now
        with self._mutex:
            existing_id = self._by_key.get(draft.composite_key)
            if existing_id is not None:
                record = self._records[existing_id]
                for name in _MUTABLE_FIELDS:
                    setattr(record, name, getattr(draft, name))
                record.is_active = True
                record.last_updated_at = now
            else:
                record = ArbitrageOpportunity(
                    id=next(self._ids),
                    token_pair_key=draft.token_pair_key,
                    token0=draft.token0,
                    token1=draft.token1,
                    buy_exchange=draft.buy_exchange,
                    sell_exchange=draft.sell_exchange,
                    buy_price=draft.buy_price,
                    sell_price=draft.sell_price,
                    price_diff_pct=draft.price_diff_pct,
                    gross_profit=draft.gross_profit,
                    gas_cost_estimate=draft.gas_cost_estimate,
                    flashloan_fee_estimate=draft.flashloan_fee_estimate,
                    net_profit=draft.net_profit,
                    liquidity_estimate=draft.liquidity_estimate,
                    is_active=True,
                    last_updated_at=now
                )
                self._records[record.id] = record
                self._by_key[draft.composite_key] = record.id
            return self._snapshot(record)

    def upsert_many(self, drafts: Iterable[OpportunityDraft], now: Optional[float] = None) -> List[ArbitrageOpportunity]:
        return [self.upsert(draft, now) for draft in drafts]

    def get(self, opportunity_id: int) -> Optional[ArbitrageOpportunity]:
        with self._mutex:
            record = self._records.get(opportunity_id)
            return self._snapshot(record) if record else None

    def acquire_lock(self, opportunity_id: int) -> bool:
        """Atomically lock an existing, active, unlocked record."""
        with self._mutex:
            record = self._records.get(opportunity_id)
            if record is None or not record.is_active or opportunity_id in self._locked:
                return False
            self._locked.add(opportunity_id)
            return True

    def release_lock(self, opportunity_id: int) -> None:
        """Release a lock. Safe if the record or lock is already gone."""
        with self._mutex:
            self._locked.discard(opportunity_id)

    def is_locked(self, opportunity_id: int) -> bool:
        with self._mutex:
            return opportunity_id in self._locked

    def locked_keys(self) -> Set[tuple]:
        """Composite keys of records currently under an execution lock."""
        with self._mutex:
            return {self._records[rid].composite_key for rid in self._locked if rid in self._records}

    def deactivate(self, opportunity_id: int) -> bool:
        """Mark a consumed opportunity inactive."""
        with self._mutex:
            record = self._records.get(opportunity_id)
            if record is None:
                return False
            record.is_active = False
            return True

    def sweep_stale(self, max_age_s: float, now: Optional[float] = None) -> int:
        """Delete unlocked records not refreshed within max_age_s."""
        now = time.time() if now is None else now
        cutoff = now - max_age_s
        with self._mutex:
            stale = [
                rid for rid, record in self._records.items()
                if record.last_updated_at < cutoff and rid not in self._locked
            ]
            for rid in stale:
                record = self._records.pop(rid)
                self._by_key.pop(record.composite_key, None)

        if stale:
            logger.info(f"Swept {len(stale)} stale opportunities")
        return len(stale)

    def query(self, min_profit: Optional[float] = None, active_only: bool = False,
              limit: Optional[int] = None, offset: int = 0,
              exchanges: Optional[Iterable[str]] = None) -> List[ArbitrageOpportunity]:
        """Read-only listing sorted by net profit, best first."""
        allowed = set(exchanges) if exchanges else None
        with self._mutex:
            records = [self._snapshot(r) for r in self._records.values()]

        if min_profit is not None:
            records = [r for r in records if r.net_profit >= min_profit]
        if active_only:
            records = [r for r in records if r.is_active]
        if allowed is not None:
            records = [r for r in records if r.buy_exchange in allowed and r.sell_exchange in allowed]

        records.sort(key=lambda r: r.net_profit, reverse=True)
        if offset < 0 or (limit is not None and limit < 1):
            raise ValueError(f"Invalid page: limit={limit}, offset={offset}")
        records = records[offset:] if offset else records
        return records[:limit] if limit is not None else records

    def __len__(self) -> int:
        with self._mutex:
            return len(self._records)
