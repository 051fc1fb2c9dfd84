"""Main entry point for the DEX arbitrage coordinator."""

import asyncio
import signal
import sys
from typing import Dict, List, Optional
import click
from dotenv import load_dotenv
from eth_account import Account
from loguru import logger

# uvloop is not available on Windows
try:
    import uvloop
    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False

from . import chain
from .config import Config, get_config
from .api.server import ApiServer, create_app
from .api.service import ArbitrageService
from .core.detector import OpportunityDetector
from .core.events import EventBus
from .core.executor import TradeExecutor
from .core.gas import GasModel
from .core.quotes import PriceFeedAggregator
from .core.scanner import PriceScanner
from .core.scheduler import Scheduler
from .core.store import OpportunityStore
from .settlement.base import SettlementService
from .settlement.contract import ContractSettlementService
from .settlement.paper import PaperSettlementService
from .signing import ConfigSecretsService
from .sources.factory import SourceFactory
from .storage.db import Database
from .storage.journal import TradeJournal


class ArbitrageCoordinator:
    """Wires the scan loop, actor loops, storage and HTTP surface together."""

    def __init__(self, config: Config, mode: Optional[str] = None, actors: Optional[List[str]] = None):
        self.config = config
        self.mode = mode or config.mode
        self.actors = actors or []
        self.running = False
        self._stop_event: Optional[asyncio.Event] = None

        needs_chain = self.mode == "live" or any(ex.kind == "router" for ex in config.enabled_exchanges())
        self.w3 = chain.connect(config.rpc.url, config.rpc.request_timeout_s) if needs_chain else None

        self.aggregator = PriceFeedAggregator(
            SourceFactory.create_all(config, self.w3),
            source_timeout_s=config.aggregator.source_timeout_s,
            log_quotes=config.logging.log_quotes
        )
        self.gas_model = GasModel(config.gas, self.w3, timeout_s=config.aggregator.source_timeout_s)
        self.detector = OpportunityDetector(config, self.gas_model)
        self.store = OpportunityStore(min_profit_threshold=config.detector.min_profit_usd)

        self.database = Database(config.storage.db_path)
        self.journal = TradeJournal(self.database, mode=self.mode)
        self.settlement = self._init_settlement()
        self.secrets = ConfigSecretsService(self._signing_keys())

        self.executor = TradeExecutor(config, self.store, self.settlement, self.secrets, self.journal)
        self.scheduler = Scheduler(config, self.store, self.executor, self.database)
        self.events = EventBus()
        self.scanner = PriceScanner(config, self.aggregator, self.detector, self.store, self.gas_model,
                                    self.journal, self.events)
        self.service = ArbitrageService(config, self.store, self.executor, self.scheduler, self.secrets, self.journal)
        self.server = ApiServer(create_app(self.service, self.events), config.server.host, config.server.port) \
            if config.server.enable_http else None

        logger.info("DEX Arbitrage Coordinator initialized")
        logger.info(f"Mode: {self.mode.upper()}")
        logger.info(f"Pairs: {config.pairs}")
        logger.info(f"Notional: ${config.detector.notional_usd:,.2f}, min profit ${config.detector.min_profit_usd:.2f}")
        logger.info(f"Staleness window: {config.store.staleness_window_s}s")

    def _init_settlement(self) -> SettlementService:
        if self.mode == "live":
            return ContractSettlementService(self.config, self.w3)
        return PaperSettlementService(
            revert_rate=self.config.execution.paper_revert_rate,
            confirmation_delay_s=self.config.execution.paper_confirmation_delay_s,
            gas_used=self.config.gas.gas_units
        )

    def _signing_keys(self) -> Dict[str, str]:
        keys = dict(self.config.signing_keys)
        if self.mode == "paper":
            for actor_id in self.actors:
                if not keys.get(actor_id) or keys[actor_id].startswith("${"):
                    keys[actor_id] = "0x" + bytes(Account.create().key).hex()
                    logger.warning(f"Paper mode: generated throwaway signing key for {actor_id}")
        return keys

    async def start(self):
        """Start the coordinator and block until stopped."""
        if self.running:
            return

        self._stop_event = asyncio.Event()
        self.running = True
        try:
            await self.database.connect()
            if self.server is not None:
                await self.server.start()

            self.scheduler.start_daily_reset()
            for actor_id in self.actors:
                snapshot = await self.scheduler.start(actor_id)
                if not snapshot['isRunning']:
                    logger.warning(f"Actor {actor_id} did not start")

            scan_task = asyncio.create_task(self.scanner.run(), name="price-scanner")
            await self._stop_event.wait()
            self.scanner.stop()
            scan_task.cancel()

        except Exception as e:
            logger.error(f"Failed to start coordinator: {e}")
            raise
        finally:
            await self.stop()

    def request_stop(self):
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self):
        """Stop the coordinator."""
        if not self.running:
            return

        logger.info("Stopping DEX Arbitrage Coordinator")
        self.running = False

        try:
            await self.scheduler.shutdown()
            if self.server is not None:
                await self.server.stop()
            await self.aggregator.close()
            await self.settlement.close()
            if self.w3 is not None:
                await chain.disconnect(self.w3)
            await self.database.disconnect()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


def setup_logging(config: Config, quiet: bool = False):
    """Configure loguru sinks."""
    logger.remove()
    if quiet:
        logger.add(sys.stderr, level="WARNING")
        return
    logger.add(sys.stderr, level=config.logging.level,
               format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")
    if config.logging.file:
        logger.add(config.logging.file, level="DEBUG", rotation="10 MB", retention=5,
                   format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}")


@click.group()
def cli():
    """DEX Arbitrage Coordinator CLI."""
    load_dotenv()


@cli.command()
@click.option('--mode', default=None, type=click.Choice(['paper', 'live']),
              help='Settlement mode (default: from config)')
@click.option('--config', type=click.Path(exists=True), default='config.yaml',
              help='Path to config file')
@click.option('--actors', default='', help='Comma-separated actor ids to auto trade')
def run(mode, config, actors):
    """Run the arbitrage coordinator."""
    cfg = get_config(config)
    setup_logging(cfg)

    # Use uvloop on Linux for better performance
    if sys.platform != "win32" and UVLOOP_AVAILABLE:
        uvloop.install()

    actor_list = [a.strip() for a in actors.split(',') if a.strip()]
    coordinator = ArbitrageCoordinator(cfg, mode=mode, actors=actor_list)

    async def main_async():
        loop = asyncio.get_running_loop()
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, coordinator.request_stop)
        await coordinator.start()

    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        logger.info("Coordinator stopped by user")
    except Exception as e:
        logger.error(f"Coordinator failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--days', default=7, type=int, help='Number of days to report (default: 7)')
@click.option('--config', type=click.Path(exists=True), default='config.yaml', help='Path to config file')
def report(days, config):
    """Generate trading report."""
    async def generate_report():
        cfg = get_config(config)
        setup_logging(cfg, quiet=True)
        db = Database(cfg.storage.db_path)
        journal = TradeJournal(db)

        try:
            await db.connect()
            print(await journal.generate_report(days))
        finally:
            await db.disconnect()

    asyncio.run(generate_report())


@cli.command()
@click.option('--config', type=click.Path(exists=True), default='config.yaml', help='Path to config file')
def status(config):
    """Show last 24h performance."""
    async def show_status():
        cfg = get_config(config)
        setup_logging(cfg, quiet=True)
        db = Database(cfg.storage.db_path)
        journal = TradeJournal(db)

        try:
            await db.connect()
            summary = (await journal.get_performance_summary(1)).get('summary', {})
            opportunities = await db.get_recent_opportunities(5)

            print(f"""
=== COORDINATOR STATUS ===
Last 24h Performance:
- Trades: {summary.get('total_trades', 0)}
- Success Rate: {summary.get('success_rate', 0):.2%}
- Profit: ${summary.get('total_profit', 0):.2f}
- Flashloan Volume: ${summary.get('volume', 0):.2f}
""")
            for opp in opportunities:
                print(f"- {opp['token_pair_key']} {opp['buy_exchange']}->{opp['sell_exchange']}: "
                      f"net ${opp['net_profit']:.2f} ({'active' if opp['is_active'] else 'consumed'})")
        finally:
            await db.disconnect()

    asyncio.run(show_status())


@cli.command()
@click.option('--config', type=click.Path(exists=True), default='config.yaml', help='Path to config file')
@click.option('--max-age', default=None, type=float, help='Age in seconds (default: staleness window)')
def sweep(config, max_age):
    """Delete persisted opportunities older than the staleness window."""
    async def do_sweep():
        cfg = get_config(config)
        setup_logging(cfg, quiet=True)
        db = Database(cfg.storage.db_path)
        try:
            await db.connect()
            removed = await db.delete_stale_opportunities(max_age or cfg.store.staleness_window_s)
            print(f"Removed {removed} stale opportunities")
        finally:
            await db.disconnect()

    asyncio.run(do_sweep())


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
