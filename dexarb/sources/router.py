"""Uniswap-V2-style router quote source."""

import time
from typing import Dict, Any

import aiohttp
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import Web3Exception

from .base import QuoteSource
from dexarb.chain import V2_ROUTER_ABI, checksum
from dexarb.core.errors import SourceUnavailable
from dexarb.core.types import PriceQuote, TokenPair


class RouterQuoteSource(QuoteSource):
    """Quotes one base unit through a router's getAmountsOut."""

    def __init__(self, name: str, config: Dict[str, Any], w3: AsyncWeb3, tokens: Dict[str, Any]):
        super().__init__(name, config)
        self.tokens = tokens
        router_address = config.get('router_address')
        if not router_address:
            raise ValueError(f"Router source {name} needs router_address")
        self.router = w3.eth.contract(address=checksum(router_address), abi=V2_ROUTER_ABI)

    def _token(self, symbol: str):
        token = self.tokens.get(symbol)
        if token is None:
            raise SourceUnavailable(f"{self.name}: unknown token {symbol}")
        return token

    async def fetch_price(self, pair: TokenPair) -> PriceQuote:
        base = self._token(pair.base)
        quote = self._token(pair.quote)
        amount_in = 10 ** base.decimals
        path = [checksum(base.address), checksum(quote.address)]

        try:
            amounts = await self.router.functions.getAmountsOut(amount_in, path).call()
        except (Web3Exception, aiohttp.ClientError, ValueError) as e:
            raise SourceUnavailable(f"{self.name} {pair}: {e}") from e

        if len(amounts) < 2 or amounts[-1] == 0:
            raise SourceUnavailable(f"{self.name} {pair}: no liquidity")

        price = amounts[-1] / (10 ** quote.decimals)
        self._last_update = time.time()
        logger.debug(f"{self.name} {pair} = {price:.6f}")

        return PriceQuote(
            pair_key=pair.key,
            exchange_id=self.name,
            price=price,
            observed_at=self._last_update,
            liquidity=self.get_liquidity_usd()
        )
