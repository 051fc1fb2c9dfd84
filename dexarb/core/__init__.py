"""Core arbitrage logic: detection, opportunity ledger, execution and risk."""

# types and errors first: source and settlement modules import them back
from .types import (
    ArbitrageOpportunity, ErrorKind, FlashloanStrategy, OpportunityDraft, PriceQuote,
    TokenPair, TradeRequest, TradeResult, TradeStatus
)
from .errors import ArbitrageError
from .gas import GasModel
from .quotes import PriceFeedAggregator
from .detector import OpportunityDetector
from .store import OpportunityStore
from .sizing import FlashloanSizer
from .risk import ActorRiskState
from .executor import TradeExecutor
from .autotrader import AutoTrader
from .scheduler import Scheduler
from .events import EventBus
from .scanner import PriceScanner

__all__ = [
    'ArbitrageOpportunity',
    'ErrorKind',
    'FlashloanStrategy',
    'OpportunityDraft',
    'PriceQuote',
    'TokenPair',
    'TradeRequest',
    'TradeResult',
    'TradeStatus',
    'ArbitrageError',
    'GasModel',
    'PriceFeedAggregator',
    'OpportunityDetector',
    'OpportunityStore',
    'FlashloanSizer',
    'ActorRiskState',
    'TradeExecutor',
    'AutoTrader',
    'Scheduler',
    'EventBus',
    'PriceScanner'
]
