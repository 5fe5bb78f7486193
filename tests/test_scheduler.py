"""Tests for the scheduler thread and the store-backed daily run."""

import threading
import time
from datetime import datetime, timedelta, timezone

from rollertrack.agents.alert_scheduler import AlertScheduler, next_run_after, run_daily_alerts
from rollertrack.core import config


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestNextRun:
    def test_later_today(self):
        # 02:00 UTC is 07:30 IST, so 09:00 IST is still ahead today
        assert next_run_after(utc(2025, 11, 28, 2, 0), "09:00", 330) == utc(2025, 11, 28, 3, 30)

    def test_exactly_at_sweep_time_rolls_to_tomorrow(self):
        assert next_run_after(utc(2025, 11, 28, 3, 30), "09:00", 330) == utc(2025, 11, 29, 3, 30)

    def test_local_date_already_tomorrow(self):
        # 20:00 UTC is 01:30 IST on the 29th
        assert next_run_after(utc(2025, 11, 28, 20, 0), "09:00", 330) == utc(2025, 11, 29, 3, 30)

    def test_utc_zone(self):
        assert next_run_after(utc(2025, 12, 31, 23, 0), "00:15", 0) == utc(2026, 1, 1, 0, 15)

    def test_naive_now_is_utc(self):
        assert next_run_after(datetime(2025, 11, 28, 2, 0), "09:00", 330) == utc(2025, 11, 28, 3, 30)


class TestAlertScheduler:
    def test_run_now_records_status(self):
        calls = []
        sched = AlertScheduler(runner=lambda: calls.append(1) or {"checked": 3, "alertsSent": 1})
        result = sched.run_now()
        assert result == {"checked": 3, "alertsSent": 1}
        status = sched.status
        assert status["run_count"] == 1
        assert status["last_result"] == result
        assert status["last_run"] is not None
        assert status["running"] is False

    def test_overlapping_runs_do_not_interleave(self):
        active = []
        overlaps = []
        barrier = threading.Barrier(2)

        def runner():
            active.append(1)
            if len(active) > 1:
                overlaps.append(1)
            time.sleep(0.05)
            active.pop()
            return {"checked": 0, "alertsSent": 0}

        sched = AlertScheduler(runner=runner)

        def trigger():
            barrier.wait()
            sched.run_now()

        threads = [threading.Thread(target=trigger) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert overlaps == []
        assert sched.status["run_count"] == 2

    def test_start_stop(self):
        sched = AlertScheduler(sweep_time="09:00", tz_offset_min=330,
                               runner=lambda: {"checked": 0, "alertsSent": 0})
        sched.start()
        try:
            deadline = time.time() + 2
            while sched.status["next_run"] is None and time.time() < deadline:
                time.sleep(0.01)
            assert sched.status["running"] is True
            assert sched.status["next_run"] is not None
            sched.start()  # second start is a no-op
        finally:
            sched.stop()
        assert sched.status["running"] is False
        assert sched.status["run_count"] == 0


class TestRunDailyAlerts:
    def test_no_settings_means_nothing_to_do(self, store, seed, emailer, clock):
        seed("Production End", [{"activity": "Production End", "status": "Approved",
                                 "date": "01/01/2025"}])
        result = run_daily_alerts(store=store, emailer=emailer, clock=clock)
        assert (result["checked"], result["alertsSent"]) == (0, 0)

    def test_reads_settings_from_store(self, store, seed, emailer, clock, alert_config,
                                       notify_config):
        store.set_setting(config.ALERTS_SETTING, alert_config)
        store.set_setting(config.EMAILJS_SETTING, notify_config)
        old = (clock() - timedelta(days=45)).strftime("%d/%m/%Y")
        seed("Production End", [{"activity": "Production End", "status": "Approved",
                                 "date": old}])

        result = run_daily_alerts(store=store, emailer=emailer, clock=clock)
        assert result["checked"] == 1
        assert result["alertsSent"] == 1
        assert "duration_ms" in result

    def test_settings_load_failure_aborts(self, store, emailer, monkeypatch):
        def broken(key):
            raise RuntimeError("settings unavailable")
        monkeypatch.setattr(store, "get_setting", broken)
        result = run_daily_alerts(store=store, emailer=emailer)
        assert (result["checked"], result["alertsSent"]) == (0, 0)
        assert emailer.sent == []
