"""Storage and database operations for the arbitrage coordinator."""

from .db import Database
from .models import TradeRecord, ActorSettingsRecord
from .journal import TradeJournal

__all__ = [
    'Database',
    'TradeRecord',
    'ActorSettingsRecord',
    'TradeJournal'
]
