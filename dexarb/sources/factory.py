"""Factory for building quote sources from configuration."""

from typing import List, Optional
from loguru import logger
from web3 import AsyncWeb3

from .base import QuoteSource
from .oracle import OracleQuoteSource
from .router import RouterQuoteSource
from .simulated import SimulatedQuoteSource
from dexarb.config import Config, ExchangeConfig


class SourceFactory:
    """Creates quote sources based on exchange configuration."""

    @staticmethod
    def create_source(exchange: ExchangeConfig, config: Config, w3: Optional[AsyncWeb3]) -> Optional[QuoteSource]:
        """Create a quote source for one exchange entry."""
        try:
            settings = exchange.model_dump()
            if exchange.kind == "router":
                if w3 is None:
                    logger.error(f"Router source {exchange.name} requires a web3 provider")
                    return None
                return RouterQuoteSource(exchange.name, settings, w3, config.tokens)
            if exchange.kind == "oracle":
                return OracleQuoteSource(exchange.name, settings, config.tokens, config.rpc.request_timeout_s)
            if exchange.kind == "simulated":
                return SimulatedQuoteSource(exchange.name, settings, config.tokens)

            logger.error(f"Unknown source kind: {exchange.kind}")
            return None

        except Exception as e:
            logger.error(f"Failed to create source {exchange.name}: {e}")
            return None

    @staticmethod
    def create_all(config: Config, w3: Optional[AsyncWeb3]) -> List[QuoteSource]:
        """Create all enabled sources."""
        sources = []
        for exchange in config.enabled_exchanges():
            source = SourceFactory.create_source(exchange, config, w3)
            if source:
                sources.append(source)
                logger.info(f"  - {exchange.name} ({exchange.kind}, fee {exchange.fee_bps} bps)")
        logger.info(f"Built {len(sources)} quote sources")
        return sources
