"""Price source integrations."""

from .base import QuoteSource
from .router import RouterQuoteSource
from .oracle import OracleQuoteSource
from .simulated import SimulatedQuoteSource
from .factory import SourceFactory

__all__ = [
    'QuoteSource',
    'RouterQuoteSource',
    'OracleQuoteSource',
    'SimulatedQuoteSource',
    'SourceFactory'
]
