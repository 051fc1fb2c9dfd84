"""Arbitrage opportunity detection across DEX price sources."""

from collections import defaultdict
from itertools import combinations
from typing import Dict, List, Optional
from loguru import logger

from .gas import GasModel
from .types import OpportunityDraft, PriceQuote
from dexarb.config import Config


class OpportunityDetector:
    """Turns aggregated quotes into fee- and gas-adjusted opportunity drafts."""

    def __init__(self, config: Config, gas_model: GasModel):
        self.config = config
        self.gas_model = gas_model
        self.notional = config.detector.notional_usd
        self.min_profit = config.detector.min_profit_usd
        self.flashloan_fee_bps = config.detector.flashloan_fee_bps

    def detect(self, quotes: List[PriceQuote]) -> List[OpportunityDraft]:
        """Detect opportunities for every exchange pair of every token pair."""
        drafts = []
        for pair_key, by_exchange in self._group_quotes(quotes).items():
            if len(by_exchange) < 2:
                continue

            for left, right in combinations(sorted(by_exchange), 2):
                draft = self._evaluate(pair_key, by_exchange[left], by_exchange[right])
                if draft is not None:
                    drafts.append(draft)

        if drafts:
            logger.info(f"🔍 Detected {len(drafts)} opportunities above ${self.min_profit:.2f}")
        else:
            logger.debug("No opportunities above the profit bar this cycle")
        return drafts

    def _group_quotes(self, quotes: List[PriceQuote]) -> Dict[str, Dict[str, PriceQuote]]:
        """Group by pair key, keeping the freshest quote per exchange."""
        grouped: Dict[str, Dict[str, PriceQuote]] = defaultdict(dict)
        for quote in quotes:
            current = grouped[quote.pair_key].get(quote.exchange_id)
            if current is None or quote.observed_at >= current.observed_at:
                grouped[quote.pair_key][quote.exchange_id] = quote
        return grouped

    def _evaluate(self, pair_key: str, a: PriceQuote, b: PriceQuote) -> Optional[OpportunityDraft]:
        """Evaluate one exchange pair; None when unprofitable."""
        if a.exchange_id == b.exchange_id or a.price == b.price:
            return None

        buy, sell = (a, b) if a.price < b.price else (b, a)
        buy_fee = self.config.get_fee_bps(buy.exchange_id) / 10000
        sell_fee = self.config.get_fee_bps(sell.exchange_id) / 10000

        price_diff_pct = (sell.price - buy.price) / buy.price * 100
        gross_profit = self.gross_profit(buy.price, sell.price, buy_fee, sell_fee, self.notional)
        gas_cost = self.gas_model.estimate_usd()
        flashloan_fee = self.notional * self.flashloan_fee_bps / 10000
        net_profit = gross_profit - gas_cost - flashloan_fee

        logger.debug(f"{pair_key} buy {buy.exchange_id}@{buy.price:.6f} sell {sell.exchange_id}@{sell.price:.6f}: "
                     f"diff {price_diff_pct:.3f}% gross ${gross_profit:.2f} net ${net_profit:.2f}")

        if net_profit < self.min_profit:
            return None

        token0, token1 = pair_key.split("/")
        return OpportunityDraft(
            token_pair_key=pair_key,
            token0=token0,
            token1=token1,
            buy_exchange=buy.exchange_id,
            sell_exchange=sell.exchange_id,
            buy_price=buy.price,
            sell_price=sell.price,
            price_diff_pct=price_diff_pct,
            gross_profit=gross_profit,
            gas_cost_estimate=gas_cost,
            flashloan_fee_estimate=flashloan_fee,
            net_profit=net_profit,
            liquidity_estimate=self._liquidity(buy, sell)
        )

    @staticmethod
    def gross_profit(buy_price: float, sell_price: float, buy_fee: float, sell_fee: float, notional: float) -> float:
        """Round trip of a fixed notional: buy net of fee, sell net of fee."""
        tokens_bought = notional * (1 - buy_fee) / buy_price
        proceeds = tokens_bought * sell_price * (1 - sell_fee)
        return proceeds - notional

    def _liquidity(self, buy: PriceQuote, sell: PriceQuote) -> float:
        known = [q.liquidity for q in (buy, sell) if q.liquidity is not None]
        if known:
            return min(known)
        return min(self._configured_liquidity(buy.exchange_id), self._configured_liquidity(sell.exchange_id))

    def _configured_liquidity(self, exchange: str) -> float:
        for ex in self.config.exchanges:
            if ex.name == exchange:
                return ex.liquidity_usd
        return 0.0
