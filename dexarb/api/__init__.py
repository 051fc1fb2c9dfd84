"""HTTP surface of the arbitrage coordinator."""

from .service import ArbitrageService
from .server import ApiServer, create_app

__all__ = [
    'ArbitrageService',
    'ApiServer',
    'create_app'
]
