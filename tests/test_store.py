"""Tests for the opportunity store."""

import asyncio
import threading
import pytest

from dexarb.core.store import OpportunityStore

from sample_data import make_draft


class TestUpsert:
    """Test composite-key upsert."""

    def setup_method(self):
        self.store = OpportunityStore(min_profit_threshold=5.0)

    def test_same_key_twice_keeps_one_record_with_latest_values(self):
        first = self.store.upsert(make_draft(net_profit=10.0), now=100.0)
        second = self.store.upsert(make_draft(net_profit=12.5), now=110.0)

        assert first.id == second.id
        assert len(self.store) == 1
        stored = self.store.get(first.id)
        assert stored.net_profit == 12.5
        assert stored.last_updated_at == 110.0

    def test_distinct_keys_are_distinct_records(self):
        a = self.store.upsert(make_draft(buy="uniswap", sell="sushiswap"))
        b = self.store.upsert(make_draft(buy="sushiswap", sell="uniswap"))
        c = self.store.upsert(make_draft(pair="WETH/DAI"))

        assert len({a.id, b.id, c.id}) == 3

    def test_below_threshold_rejected(self):
        with pytest.raises(ValueError):
            self.store.upsert(make_draft(net_profit=4.99))
        assert len(self.store) == 0

    def test_upsert_keeps_lock(self):
        opp = self.store.upsert(make_draft())
        assert self.store.acquire_lock(opp.id)

        refreshed = self.store.upsert(make_draft(net_profit=20.0))

        assert refreshed.is_locked
        assert not self.store.acquire_lock(opp.id)

    def test_refresh_reactivates_consumed_record(self):
        opp = self.store.upsert(make_draft())
        self.store.deactivate(opp.id)
        assert not self.store.get(opp.id).is_active

        assert self.store.upsert(make_draft()).is_active

    def test_returned_records_are_copies(self):
        opp = self.store.upsert(make_draft(net_profit=10.0))
        opp.net_profit = 999.0
        assert self.store.get(opp.id).net_profit == 10.0


class TestLocking:
    """Test atomic lock admission."""

    def setup_method(self):
        self.store = OpportunityStore()

    def test_acquire_and_release(self):
        opp = self.store.upsert(make_draft())

        assert self.store.acquire_lock(opp.id)
        assert self.store.get(opp.id).is_locked
        assert not self.store.acquire_lock(opp.id)

        self.store.release_lock(opp.id)
        assert self.store.acquire_lock(opp.id)

    def test_missing_or_inactive_cannot_lock(self):
        assert not self.store.acquire_lock(12345)

        opp = self.store.upsert(make_draft())
        self.store.deactivate(opp.id)
        assert not self.store.acquire_lock(opp.id)

    def test_release_is_idempotent(self):
        opp = self.store.upsert(make_draft())
        self.store.release_lock(opp.id)
        self.store.release_lock(opp.id)
        self.store.release_lock(98765)
        assert self.store.acquire_lock(opp.id)

    def test_concurrent_tasks_exactly_one_wins(self):
        opp = self.store.upsert(make_draft())

        async def contend():
            async def attempt():
                await asyncio.sleep(0)
                return self.store.acquire_lock(opp.id)
            return await asyncio.gather(attempt(), attempt())

        results = asyncio.run(contend())
        assert sorted(results) == [False, True]

    def test_concurrent_threads_exactly_one_wins(self):
        opp = self.store.upsert(make_draft())
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def attempt():
            barrier.wait()
            won = self.store.acquire_lock(opp.id)
            with results_lock:
                results.append(won)

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 7


class TestSweepAndQuery:
    """Test staleness sweep and listing."""

    def setup_method(self):
        self.store = OpportunityStore()

    def test_sweep_removes_only_stale(self):
        old = self.store.upsert(make_draft(buy="uniswap"), now=1000.0)
        fresh = self.store.upsert(make_draft(buy="baseswap"), now=1100.0)

        removed = self.store.sweep_stale(120.0, now=1150.0)

        assert removed == 1
        assert self.store.get(old.id) is None
        assert self.store.get(fresh.id) is not None

    def test_locked_record_survives_until_unlocked(self):
        opp = self.store.upsert(make_draft(), now=1000.0)
        assert self.store.acquire_lock(opp.id)

        assert self.store.sweep_stale(120.0, now=2000.0) == 0
        assert self.store.get(opp.id) is not None

        self.store.release_lock(opp.id)
        assert self.store.sweep_stale(120.0, now=2000.0) == 1
        assert self.store.get(opp.id) is None

    def test_swept_key_can_be_reinserted(self):
        opp = self.store.upsert(make_draft(), now=1000.0)
        self.store.sweep_stale(10.0, now=2000.0)

        again = self.store.upsert(make_draft(), now=2001.0)

        assert again.id != opp.id
        assert len(self.store) == 1

    def test_query_sorted_by_net_profit(self):
        self.store.upsert(make_draft(net_profit=8.0, buy="a"))
        self.store.upsert(make_draft(net_profit=30.0, buy="b"))
        self.store.upsert(make_draft(net_profit=15.0, buy="c"))

        assert [o.net_profit for o in self.store.query()] == [30.0, 15.0, 8.0]

    def test_query_filters(self):
        self.store.upsert(make_draft(net_profit=8.0, buy="a"))
        best = self.store.upsert(make_draft(net_profit=30.0, buy="b"))
        self.store.upsert(make_draft(net_profit=15.0, buy="c"))
        self.store.deactivate(best.id)

        assert [o.net_profit for o in self.store.query(active_only=True)] == [15.0, 8.0]
        assert [o.net_profit for o in self.store.query(min_profit=10.0)] == [30.0, 15.0]
        assert [o.net_profit for o in self.store.query(limit=1, offset=1)] == [15.0]

    def test_query_exchange_allow_list(self):
        self.store.upsert(make_draft(net_profit=30.0, buy="uniswap", sell="baseswap"))
        self.store.upsert(make_draft(net_profit=10.0, buy="uniswap", sell="sushiswap"))

        result = self.store.query(exchanges=["uniswap", "sushiswap"])

        assert [o.net_profit for o in result] == [10.0]

    def test_query_empty(self):
        assert self.store.query(active_only=True, min_profit=1.0) == []

    def test_query_pages(self):
        for net, buy in ((10.0, "uniswap"), (20.0, "baseswap"), (30.0, "aerodrome")):
            self.store.upsert(make_draft(net_profit=net, buy=buy))

        assert [o.net_profit for o in self.store.query(limit=2, offset=1)] == [20.0, 10.0]

    def test_query_rejects_bad_page(self):
        with pytest.raises(ValueError):
            self.store.query(limit=0)
        with pytest.raises(ValueError):
            self.store.query(offset=-1)

    def test_locked_keys(self):
        record = self.store.upsert(make_draft())
        self.store.upsert(make_draft(buy="baseswap"))
        self.store.acquire_lock(record.id)

        assert self.store.locked_keys() == {record.composite_key}
