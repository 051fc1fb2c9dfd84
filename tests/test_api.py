"""Tests for the HTTP layer, the event bus and the scan loop."""

import asyncio
import random
import time
import pytest

from aiohttp.test_utils import TestClient, TestServer

from dexarb.api.server import create_app
from dexarb.api.service import ArbitrageService
from dexarb.core.detector import OpportunityDetector
from dexarb.core.events import EventBus
from dexarb.core.executor import TradeExecutor
from dexarb.core.gas import GasModel
from dexarb.core.quotes import PriceFeedAggregator
from dexarb.core.scanner import PriceScanner
from dexarb.core.scheduler import Scheduler
from dexarb.core.store import OpportunityStore
from dexarb.settlement.paper import PaperSettlementService
from dexarb.signing import ConfigSecretsService
from dexarb.sources.base import QuoteSource
from dexarb.core.types import PriceQuote
from dexarb.storage.db import Database
from dexarb.storage.journal import TradeJournal

from sample_data import TEST_SIGNING_KEY, make_config, make_draft

ALICE = {"X-Actor-Id": "alice"}
BOB = {"X-Actor-Id": "bob"}


class FixedSource(QuoteSource):
    def __init__(self, name, price):
        super().__init__(name, {'enabled': True})
        self.price = price

    async def fetch_price(self, pair):
        return PriceQuote(pair_key=pair.key, exchange_id=self.name, price=self.price)


def build_service(config=None):
    config = config or make_config()
    store = OpportunityStore(min_profit_threshold=config.detector.min_profit_usd)
    secrets = ConfigSecretsService({"alice": TEST_SIGNING_KEY})
    executor = TradeExecutor(
        config, store,
        PaperSettlementService(revert_rate=0.0, confirmation_delay_s=0.0, rng=random.Random(2)),
        secrets
    )
    scheduler = Scheduler(config, store, executor)
    return ArbitrageService(config, store, executor, scheduler, secrets)


def run_client(service, scenario, events=None):
    async def go():
        client = TestClient(TestServer(create_app(service, events if events is not None else EventBus())))
        await client.start_server()
        try:
            return await scenario(client)
        finally:
            await service.scheduler.shutdown()
            await client.close()
    return asyncio.run(go())


class TestOpportunityEndpoints:
    """Test listing and manual execution."""

    def setup_method(self):
        self.service = build_service()
        self.best = self.service.store.upsert(make_draft(net_profit=25.0, buy="baseswap"))
        self.other = self.service.store.upsert(make_draft(net_profit=8.0))

    def test_list_sorted_by_profit(self):
        async def scenario(client):
            resp = await client.get("/api/opportunities")
            return resp.status, await resp.json()

        status, body = run_client(self.service, scenario)

        assert status == 200
        assert [o['net_profit'] for o in body] == [25.0, 8.0]

    def test_list_filters(self):
        async def scenario(client):
            resp = await client.get("/api/opportunities", params={'minProfit': '10', 'activeOnly': 'true'})
            return await resp.json()

        body = run_client(self.service, scenario)

        assert [o['id'] for o in body] == [self.best.id]

    def test_list_bad_parameter(self):
        async def scenario(client):
            return (await client.get("/api/opportunities", params={'limit': 'many'})).status

        assert run_client(self.service, scenario) == 400

    def test_list_rejects_zero_limit_and_negative_offset(self):
        async def scenario(client):
            zero = await client.get("/api/opportunities", params={'limit': '0'})
            negative = await client.get("/api/opportunities", params={'offset': '-1'})
            return zero.status, negative.status, (await negative.json())['error']

        zero, negative, error = run_client(self.service, scenario)

        assert (zero, negative) == (400, 400)
        assert error.startswith("Invalid query parameter")

    def test_list_empty_store(self):
        service = build_service()

        async def scenario(client):
            return await (await client.get("/api/opportunities")).json()

        assert run_client(service, scenario) == []

    def test_execute_trade(self):
        async def scenario(client):
            resp = await client.post("/api/trades/execute", json={'opportunityId': self.best.id}, headers=ALICE)
            return resp.status, await resp.json()

        status, body = run_client(self.service, scenario)

        assert status == 200
        assert body['success']
        assert body['opportunityId'] == self.best.id
        assert body['txHash'].startswith("0x")

    def test_execute_requires_actor_header(self):
        async def scenario(client):
            return (await client.post("/api/trades/execute", json={'opportunityId': self.best.id})).status

        assert run_client(self.service, scenario) == 401

    def test_execute_without_signing_key(self):
        async def scenario(client):
            resp = await client.post("/api/trades/execute", json={'opportunityId': self.best.id}, headers=BOB)
            return resp.status, await resp.json()

        status, body = run_client(self.service, scenario)

        assert status == 400
        assert body['error'] == "No signing key configured for this account"
        assert not self.service.store.is_locked(self.best.id)

    def test_execute_unknown_opportunity(self):
        async def scenario(client):
            resp = await client.post("/api/trades/execute", json={'opportunityId': 9999}, headers=ALICE)
            return resp.status, await resp.json()

        status, body = run_client(self.service, scenario)

        assert status == 400
        assert body['error'] == "No opportunity currently available"

    def test_execute_malformed_body(self):
        async def scenario(client):
            return (await client.post("/api/trades/execute", data="not json", headers=ALICE)).status

        assert run_client(self.service, scenario) == 400


class TestAutoTradingEndpoints:
    """Test start, stop and status per actor."""

    def setup_method(self):
        self.service = build_service()

    def test_start_status_stop(self):
        async def scenario(client):
            started = await (await client.post("/api/auto-trading/start",
                                               json={'settings': {'min_profit_threshold': 50.0}},
                                               headers=ALICE)).json()
            status = await (await client.get("/api/auto-trading/status", headers=ALICE)).json()
            stopped = await (await client.post("/api/auto-trading/stop", headers=ALICE)).json()
            return started, status, stopped

        started, status, stopped = run_client(self.service, scenario)

        assert started['isRunning']
        assert status['actorId'] == "alice"
        assert status['isRunning']
        assert not stopped['isRunning']
        assert self.service.scheduler.get("alice").settings.min_profit_threshold == 50.0

    def test_start_without_signing_key(self):
        async def scenario(client):
            resp = await client.post("/api/auto-trading/start", json={}, headers=BOB)
            return resp.status, await resp.json()

        status, body = run_client(self.service, scenario)

        assert status == 400
        assert body['error'] == "No signing key configured for this account"
        assert self.service.scheduler.get("bob") is None

    def test_start_with_invalid_settings(self):
        async def scenario(client):
            return (await client.post("/api/auto-trading/start",
                                      json={'settings': {'flashloan_strategy': "yolo"}},
                                      headers=ALICE)).status

        assert run_client(self.service, scenario) == 400

    def test_halted_actor_needs_restart(self):
        async def scenario(client):
            await client.post("/api/auto-trading/start", json={}, headers=ALICE)
            trader = self.service.scheduler.get("alice")
            trader.state.halt("daily loss $50.00 reached limit $50.00")
            trader.stop("risk limit halted")

            refused = await client.post("/api/auto-trading/start", json={}, headers=ALICE)
            refused_body = await refused.json()
            restarted = await client.post("/api/auto-trading/start", json={'restart': True}, headers=ALICE)
            return refused.status, refused_body, restarted.status, await restarted.json()

        refused, refused_body, restarted, snapshot = run_client(self.service, scenario)

        assert refused == 400
        assert "restart required" in refused_body['error']
        assert restarted == 200
        assert snapshot['isRunning']
        assert not snapshot['isHalted']

    def test_status_of_idle_actor(self):
        async def scenario(client):
            return await (await client.get("/api/auto-trading/status", headers=BOB)).json()

        body = run_client(self.service, scenario)

        assert not body['isRunning']
        assert body['totalTrades'] == 0

    def test_stats_without_journal(self):
        self.service.store.upsert(make_draft(net_profit=12.0))

        async def scenario(client):
            return await (await client.get("/api/stats")).json()

        body = run_client(self.service, scenario)

        assert body['totalOpportunities'] == 1
        assert body['bestProfit'] == 12.0


class TestEventBus:
    """Test fan-out and slow subscriber handling."""

    def test_publish_to_all_subscribers(self):
        async def go():
            bus = EventBus()
            first, second = bus.subscribe(), bus.subscribe()
            delivered = bus.publish('stats', {'bestProfit': 1.0})
            return delivered, await first.get(), await second.get()

        delivered, first, second = asyncio.run(go())

        assert delivered == 2
        assert first == second == {'type': 'stats', 'data': {'bestProfit': 1.0}}

    def test_full_queue_drops_event(self):
        async def go():
            bus = EventBus(queue_size=1)
            queue = bus.subscribe()
            bus.publish('a', 1)
            return bus.publish('b', 2), queue.qsize()

        assert asyncio.run(go()) == (0, 1)

    def test_unsubscribe(self):
        async def go():
            bus = EventBus()
            bus.unsubscribe(bus.subscribe())
            return bus.publish('a', 1), bus.subscriber_count

        assert asyncio.run(go()) == (0, 0)


class TestEventSocket:
    """Test the websocket event stream."""

    def test_stream_and_unsubscribe_on_close(self):
        service = build_service()
        events = EventBus()

        async def scenario(client):
            ws = await client.ws_connect("/ws/events")
            for _ in range(50):
                if events.subscriber_count:
                    break
                await asyncio.sleep(0.01)
            events.publish('stats', {'totalOpportunities': 0})
            received = await ws.receive_json(timeout=1)
            await ws.close()
            for _ in range(50):
                if not events.subscriber_count:
                    break
                await asyncio.sleep(0.01)
            return received, events.subscriber_count

        received, remaining = run_client(service, scenario, events)

        assert received['type'] == 'stats'
        assert remaining == 0


class TestPriceScanner:
    """Test one scan cycle end to end."""

    def setup_method(self):
        self.config = make_config()
        self.store = OpportunityStore(min_profit_threshold=self.config.detector.min_profit_usd)
        self.gas_model = GasModel(self.config.gas)
        self.detector = OpportunityDetector(self.config, self.gas_model)

    def scanner(self, sources, events=None) -> PriceScanner:
        return PriceScanner(self.config, PriceFeedAggregator(sources), self.detector, self.store,
                            self.gas_model, events=events)

    def test_scan_stores_and_publishes(self):
        events = EventBus()
        scanner = self.scanner([FixedSource("uniswap", 3000.0), FixedSource("sushiswap", 3030.0)], events)

        async def go():
            queue = events.subscribe()
            stored = await scanner.scan_once()
            return stored, await queue.get()

        stored, event = asyncio.run(go())

        assert len(stored) == 1
        assert stored[0].buy_exchange == "uniswap"
        assert stored[0].net_profit == pytest.approx(18.69, abs=0.01)
        assert event['type'] == 'opportunities'
        assert scanner.get_status()['cycles'] == 1

    def test_rescan_refreshes_instead_of_duplicating(self):
        scanner = self.scanner([FixedSource("uniswap", 3000.0), FixedSource("sushiswap", 3030.0)])

        async def go():
            first = await scanner.scan_once()
            second = await scanner.scan_once()
            return first, second

        first, second = asyncio.run(go())

        assert first[0].id == second[0].id
        assert len(self.store) == 1

    def test_flat_market_stores_nothing(self):
        scanner = self.scanner([FixedSource("uniswap", 3000.0), FixedSource("sushiswap", 3000.0)])
        assert asyncio.run(scanner.scan_once()) == []
        assert len(self.store) == 0

    def test_scan_refreshes_native_price_from_pair_quotes(self):
        scanner = self.scanner([FixedSource("uniswap", 3000.0), FixedSource("sushiswap", 3030.0)])

        asyncio.run(scanner.scan_once())

        assert self.gas_model.native_usd == pytest.approx(3015.0)

    def test_scan_sweeps_persisted_stale_rows_except_locked(self):
        old = time.time() - 3600
        locked = self.store.upsert(make_draft(buy="baseswap"), now=old)
        idle = self.store.upsert(make_draft(sell="baseswap"), now=old)
        assert self.store.acquire_lock(locked.id)

        async def go():
            db = Database(":memory:")
            await db.connect()
            try:
                journal = TradeJournal(db)
                await journal.journal_opportunities([self.store.get(locked.id), self.store.get(idle.id)])
                scanner = PriceScanner(self.config, PriceFeedAggregator([FixedSource("uniswap", 3000.0)]),
                                       self.detector, self.store, self.gas_model, journal=journal)
                await scanner.scan_once()
                return await db.get_recent_opportunities()
            finally:
                await db.disconnect()

        rows = asyncio.run(go())

        assert [(r['buy_exchange'], r['sell_exchange']) for r in rows] == [("baseswap", "sushiswap")]
        assert self.store.get(idle.id) is None
        assert self.store.is_locked(locked.id)
