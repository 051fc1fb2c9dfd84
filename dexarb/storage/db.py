"""Database operations for the arbitrage coordinator."""

import json
import sqlite3
import time
from dataclasses import asdict
from typing import Dict, List, Any, Optional, Iterable
from loguru import logger

from .models import TradeRecord, ActorSettingsRecord

TRADE_COLUMNS = [
    'actor_id', 'opportunity_id', 'token_pair_key', 'buy_exchange', 'sell_exchange', 'trade_amount',
    'use_flashloan', 'flashloan_strategy', 'flashloan_amount', 'status', 'success', 'tx_hash',
    'actual_profit', 'gas_used', 'error_kind', 'error', 'mode', 'started_at', 'finished_at'
]


class Database:
    """SQLite database interface."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.connection: Optional[sqlite3.Connection] = None

    async def connect(self):
        """Connect to database."""
        try:
            self.connection = sqlite3.connect(self.db_path)
            self.connection.row_factory = sqlite3.Row
            await self._create_tables()
            logger.info(f"Connected to database: {self.db_path}")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Disconnect from database."""
        if self.connection:
            self.connection.close()
            self.connection = None
            logger.info("Disconnected from database")

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        if not self.connection:
            return

        try:
            cursor = self.connection.cursor()

            # One row per (pair, buy venue, sell venue), refreshed in place
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS opportunities (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    token_pair_key TEXT NOT NULL,
                    buy_exchange TEXT NOT NULL,
                    sell_exchange TEXT NOT NULL,
                    buy_price REAL NOT NULL,
                    sell_price REAL NOT NULL,
                    price_diff_pct REAL NOT NULL,
                    gross_profit REAL NOT NULL,
                    gas_cost_estimate REAL NOT NULL,
                    flashloan_fee_estimate REAL NOT NULL,
                    net_profit REAL NOT NULL,
                    liquidity_estimate REAL NOT NULL,
                    is_active INTEGER NOT NULL DEFAULT 1,
                    last_updated_at REAL NOT NULL,
                    UNIQUE (token_pair_key, buy_exchange, sell_exchange)
                )
            """)

            # Append-only audit log
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    actor_id TEXT NOT NULL,
                    opportunity_id INTEGER,
                    token_pair_key TEXT,
                    buy_exchange TEXT,
                    sell_exchange TEXT,
                    trade_amount REAL NOT NULL,
                    use_flashloan INTEGER NOT NULL,
                    flashloan_strategy TEXT,
                    flashloan_amount REAL,
                    status TEXT NOT NULL,
                    success INTEGER NOT NULL,
                    tx_hash TEXT UNIQUE,
                    actual_profit REAL,
                    gas_used REAL,
                    error_kind TEXT,
                    error TEXT,
                    mode TEXT NOT NULL,
                    started_at REAL,
                    finished_at REAL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS actor_settings (
                    actor_id TEXT PRIMARY KEY,
                    settings TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_trades_finished ON trades (finished_at)")
            self.connection.commit()
            logger.info("Database tables created/verified")

        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise

    async def upsert_opportunity(self, opportunity) -> int:
        """Insert or refresh an opportunity by its composite key."""
        if not self.connection:
            return 0

        try:
            cursor = self.connection.cursor()
            cursor.execute("""
                INSERT INTO opportunities (token_pair_key, buy_exchange, sell_exchange, buy_price, sell_price,
                    price_diff_pct, gross_profit, gas_cost_estimate, flashloan_fee_estimate, net_profit,
                    liquidity_estimate, is_active, last_updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (token_pair_key, buy_exchange, sell_exchange) DO UPDATE SET
                    buy_price = excluded.buy_price,
                    sell_price = excluded.sell_price,
                    price_diff_pct = excluded.price_diff_pct,
                    gross_profit = excluded.gross_profit,
                    gas_cost_estimate = excluded.gas_cost_estimate,
                    flashloan_fee_estimate = excluded.flashloan_fee_estimate,
                    net_profit = excluded.net_profit,
                    liquidity_estimate = excluded.liquidity_estimate,
                    is_active = excluded.is_active,
                    last_updated_at = excluded.last_updated_at
            """, (
                opportunity.token_pair_key,
                opportunity.buy_exchange,
                opportunity.sell_exchange,
                opportunity.buy_price,
                opportunity.sell_price,
                opportunity.price_diff_pct,
                opportunity.gross_profit,
                opportunity.gas_cost_estimate,
                opportunity.flashloan_fee_estimate,
                opportunity.net_profit,
                opportunity.liquidity_estimate,
                int(getattr(opportunity, 'is_active', True)),
                getattr(opportunity, 'last_updated_at', None) or time.time()
            ))

            self.connection.commit()
            return cursor.lastrowid

        except Exception as e:
            logger.error(f"Failed to upsert opportunity: {e}")
            return 0

    async def delete_stale_opportunities(self, max_age_s: float, now: Optional[float] = None,
                                         keep: Iterable[tuple] = ()) -> int:
        """Remove persisted opportunities older than max_age_s, except composite keys in keep."""
        if not self.connection:
            return 0

        try:
            cutoff = (now or time.time()) - max_age_s
            keep = set(keep)
            cursor = self.connection.cursor()
            cursor.execute("""
                SELECT id, token_pair_key, buy_exchange, sell_exchange FROM opportunities
                WHERE last_updated_at < ?
            """, (cutoff,))
            stale = [
                (row['id'],) for row in cursor.fetchall()
                if (row['token_pair_key'], row['buy_exchange'], row['sell_exchange']) not in keep
            ]
            cursor.executemany("DELETE FROM opportunities WHERE id = ?", stale)
            self.connection.commit()
            return len(stale)

        except Exception as e:
            logger.error(f"Failed to delete stale opportunities: {e}")
            return 0

    async def get_recent_opportunities(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Get most recently refreshed opportunities."""
        if not self.connection:
            return []

        try:
            cursor = self.connection.cursor()
            cursor.execute("""
                SELECT * FROM opportunities
                ORDER BY last_updated_at DESC
                LIMIT ?
            """, (limit,))
            return [dict(row) for row in cursor.fetchall()]

        except Exception as e:
            logger.error(f"Failed to get recent opportunities: {e}")
            return []

    async def insert_trade(self, record: TradeRecord) -> int:
        """Append a trade record."""
        if not self.connection:
            return 0

        try:
            data = asdict(record)
            values = [data[c] for c in TRADE_COLUMNS]
            cursor = self.connection.cursor()
            cursor.execute(
                f"INSERT INTO trades ({', '.join(TRADE_COLUMNS)}) VALUES ({', '.join('?' for _ in TRADE_COLUMNS)})",
                values
            )
            self.connection.commit()
            return cursor.lastrowid

        except Exception as e:
            logger.error(f"Failed to insert trade: {e}")
            return 0

    async def get_trades(self, actor_id: Optional[str] = None, since: Optional[float] = None,
                         limit: int = 100) -> List[TradeRecord]:
        """Get trades, newest first."""
        if not self.connection:
            return []

        try:
            clauses, params = [], []
            if actor_id is not None:
                clauses.append("actor_id = ?")
                params.append(actor_id)
            if since is not None:
                clauses.append("finished_at >= ?")
                params.append(since)
            where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

            cursor = self.connection.cursor()
            cursor.execute(f"SELECT * FROM trades {where} ORDER BY finished_at DESC, id DESC LIMIT ?",
                           (*params, limit))

            trades = []
            for row in cursor.fetchall():
                data = dict(row)
                data['use_flashloan'] = bool(data['use_flashloan'])
                data['success'] = bool(data['success'])
                trades.append(TradeRecord(**data))
            return trades

        except Exception as e:
            logger.error(f"Failed to get trades: {e}")
            return []

    async def get_performance_summary(self, days: int, actor_id: Optional[str] = None) -> Dict[str, Any]:
        """Get performance summary for last N days."""
        if not self.connection:
            return {}

        try:
            cutoff_time = time.time() - days * 24 * 60 * 60
            params: List[Any] = [cutoff_time]
            actor_clause = ""
            if actor_id is not None:
                actor_clause = "AND actor_id = ?"
                params.append(actor_id)

            cursor = self.connection.cursor()
            cursor.execute(f"""
                SELECT COUNT(*), SUM(success), SUM(COALESCE(actual_profit, 0)),
                       AVG(gas_used), SUM(CASE WHEN success = 1 THEN flashloan_amount ELSE 0 END)
                FROM trades
                WHERE finished_at > ? {actor_clause}
            """, params)

            total_trades, successful, total_profit, avg_gas, volume = cursor.fetchone()
            total_trades = total_trades or 0
            successful = successful or 0

            return {
                'summary': {
                    'total_trades': total_trades,
                    'successful_trades': successful,
                    'success_rate': successful / total_trades if total_trades else 0.0,
                    'total_profit': total_profit or 0.0,
                    'avg_gas_used': avg_gas or 0.0,
                    'volume': volume or 0.0
                }
            }

        except Exception as e:
            logger.error(f"Failed to get performance summary: {e}")
            return {}

    async def save_actor_settings(self, actor_id: str, settings: Dict[str, Any]) -> bool:
        """Store an actor's auto trading settings."""
        if not self.connection:
            return False

        try:
            cursor = self.connection.cursor()
            cursor.execute("""
                INSERT INTO actor_settings (actor_id, settings, updated_at) VALUES (?, ?, ?)
                ON CONFLICT (actor_id) DO UPDATE SET settings = excluded.settings, updated_at = excluded.updated_at
            """, (actor_id, json.dumps(settings), time.time()))
            self.connection.commit()
            return True

        except Exception as e:
            logger.error(f"Failed to save settings for {actor_id}: {e}")
            return False

    async def load_actor_settings(self, actor_id: str) -> Optional[ActorSettingsRecord]:
        """Load an actor's auto trading settings."""
        if not self.connection:
            return None

        try:
            cursor = self.connection.cursor()
            cursor.execute("SELECT actor_id, settings, updated_at FROM actor_settings WHERE actor_id = ?",
                           (actor_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return ActorSettingsRecord(actor_id=row[0], settings_json=row[1], updated_at=row[2])

        except Exception as e:
            logger.error(f"Failed to load settings for {actor_id}: {e}")
            return None
