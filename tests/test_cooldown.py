"""Tests for the alert cooldown ledgers."""

import threading
import time
from datetime import timedelta

from rollertrack.agents.cooldown import MemoryCooldownLedger, StoreCooldownLedger
from rollertrack.core.dates import to_iso

WEEK = timedelta(days=7)


class TestMemoryLedger:
    def test_first_acquire_sends(self, clock):
        ledger = MemoryCooldownLedger()
        assert ledger.try_acquire("r1", "Production End", WEEK, clock())
        assert ledger.last_sent("r1", "Production End") == clock()

    def test_within_window_suppressed(self, clock):
        ledger = MemoryCooldownLedger()
        ledger.try_acquire("r1", "Production End", WEEK, clock())
        assert not ledger.try_acquire("r1", "Production End", WEEK,
                                      clock() + timedelta(days=6, hours=23))

    def test_exactly_seven_days_rearms(self, clock):
        ledger = MemoryCooldownLedger()
        ledger.try_acquire("r1", "Production End", WEEK, clock())
        assert ledger.try_acquire("r1", "Production End", WEEK, clock.advance(days=7))

    def test_suppressed_acquire_keeps_original_stamp(self, clock):
        ledger = MemoryCooldownLedger()
        first = clock()
        ledger.try_acquire("r1", "Roller sent", WEEK, first)
        ledger.try_acquire("r1", "Roller sent", WEEK, clock.advance(days=3))
        assert ledger.last_sent("r1", "Roller sent") == first

    def test_keys_are_independent(self, clock):
        ledger = MemoryCooldownLedger()
        assert ledger.try_acquire("r1", "Production End", WEEK, clock())
        assert ledger.try_acquire("r1", "Roller sent", WEEK, clock())
        assert ledger.try_acquire("r2", "Production End", WEEK, clock())

    def test_concurrent_acquires_grant_once(self, clock):
        ledger = MemoryCooldownLedger()
        wins = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            if ledger.try_acquire("r1", "Production End", WEEK, clock()):
                wins.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(wins) == 1


class TestStoreLedger:
    def test_persists_last_sent(self, store, clock):
        ledger = StoreCooldownLedger(store)
        assert ledger.try_acquire("r1", "Production End", WEEK, clock())
        entry = store.get_cooldown("r1", "Production End")
        assert entry == {"rollerId": "r1", "status": "Production End", "lastSent": to_iso(clock())}

    def test_survives_new_ledger_instance(self, store, clock):
        StoreCooldownLedger(store).try_acquire("r1", "Production End", WEEK, clock())
        assert not StoreCooldownLedger(store).try_acquire(
            "r1", "Production End", WEEK, clock.advance(days=1))
        assert StoreCooldownLedger(store).try_acquire(
            "r1", "Production End", WEEK, clock.advance(days=6))

    def test_read_failure_sends(self, store, clock, monkeypatch):
        def broken(*a):
            raise RuntimeError("store unavailable")
        monkeypatch.setattr(store, "get_cooldown", broken)
        assert StoreCooldownLedger(store).try_acquire("r1", "Production End", WEEK, clock())

    def test_write_failure_still_acquires(self, store, clock, monkeypatch):
        monkeypatch.setattr(store, "set_cooldown", lambda *a: False)
        assert StoreCooldownLedger(store).try_acquire("r1", "Production End", WEEK, clock())

    def test_unreadable_stamp_counts_as_never_sent(self, store, clock):
        store.set_cooldown("r1", "Production End", "not-a-timestamp")
        assert StoreCooldownLedger(store).try_acquire("r1", "Production End", WEEK, clock())

    def test_separate_ledgers_on_one_store_grant_once(self, store, clock, monkeypatch):
        real_get = store.get_cooldown

        def slow_get(roller_id, status):
            entry = real_get(roller_id, status)
            time.sleep(0.05)
            return entry
        monkeypatch.setattr(store, "get_cooldown", slow_get)

        ledgers = [StoreCooldownLedger(store) for _ in range(4)]
        grants = []
        barrier = threading.Barrier(len(ledgers))

        def worker(ledger):
            barrier.wait()
            grants.append(ledger.try_acquire("r1", "Production End", WEEK, clock()))

        threads = [threading.Thread(target=worker, args=(ledger,)) for ledger in ledgers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(grants) == [False, False, False, True]
