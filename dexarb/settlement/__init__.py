"""Settlement services for arbitrage execution."""

from .base import ArbitrageParams, SettlementService, TxReceipt
from .contract import ContractSettlementService
from .paper import PaperSettlementService

__all__ = [
    'ArbitrageParams',
    'SettlementService',
    'TxReceipt',
    'ContractSettlementService',
    'PaperSettlementService'
]
