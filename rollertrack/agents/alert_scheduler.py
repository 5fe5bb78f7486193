"""
Daily roller delay-alert sweep.

    load AlertConfig ─► load NotificationConfig ─► for each roller:
        approved records whose activity == roller.currentStatus
        newest by date ─► overdue days ─► threshold rules
        ─► cooldown (roller, status) ─► EmailJS send

One roller failing (store read, bad data) is logged and skipped; it never
aborts the sweep. A send failure is logged; the cooldown entry was already
stamped and the attempt still counts toward alertsSent.

Triggers:
  - AlertScheduler thread (ENABLE_ALERT_SCHEDULER=true), once a day at
    ALERT_SWEEP_TIME in the ALERT_TZ_OFFSET_MIN zone (09:00 IST default)
  - scripts/run_alert_sweep.py for an external cron
  - POST /api/alerts/run
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone

from rollertrack.agents.alert_email import build_template_params
from rollertrack.agents.cooldown import StoreCooldownLedger
from rollertrack.agents.emailer import EmailJSClient
from rollertrack.core import config
from rollertrack.core.dates import EPOCH, elapsed_days, parse_record_date, utc_now

log = logging.getLogger("rollertrack.alerts")

APPROVED = "Approved"


def _empty_result() -> dict:
    return {"checked": 0, "alertsSent": 0, "delivered": 0, "suppressed": 0, "errors": 0}


def latest_matching_record(records: list, current_status: str):
    """Newest approved record whose activity is the roller's currentStatus.

    Returns (record, parsed_date). Records without a parseable date sort last;
    if the newest match is undated the result is (record, None).
    """
    matches = [r for r in records or []
               if r.get("status") == APPROVED and r.get("activity") == current_status]
    if not matches:
        return None, None
    dated = [(parse_record_date(r.get("date")), r) for r in matches]
    dated.sort(key=lambda pair: (pair[0] is not None, pair[0] or EPOCH,
                                 str(pair[1].get("id") or "")), reverse=True)
    when, record = dated[0]
    return record, when


def candidate_alerts(alert_config: dict, current_status: str, diff_days: int) -> list:
    """Reasons to alert for a roller in `current_status`, overdue `diff_days`."""
    reasons = []
    for rule, watched in config.ALERT_RULES.items():
        setting = (alert_config or {}).get(rule) or {}
        if not setting.get("enabled"):
            continue
        if current_status != watched["status"]:
            continue
        if diff_days > int(setting.get("days", 0)):
            reasons.append(watched["reason"])
    return reasons


def run_alert_sweep(alert_config: dict | None, notify_config: dict | None, store,
                    emailer=None, clock=None, ledger=None) -> dict:
    """One sweep over every roller. Returns counts; never raises per-roller."""
    result = _empty_result()
    if alert_config is None:
        log.info("Alert sweep skipped: no alert settings saved")
        return result
    missing = config.missing_notification_keys(notify_config)
    if missing:
        log.warning("Alert sweep skipped: EmailJS settings missing %s", ", ".join(missing))
        return result

    clock = clock or utc_now
    emailer = emailer or EmailJSClient()
    ledger = ledger or StoreCooldownLedger(store)
    window = timedelta(days=config.ALERT_COOLDOWN_DAYS)

    rollers = store.list_rollers()
    result["checked"] = len(rollers)
    for roller in rollers:
        roller_id = roller.get("id")
        try:
            _check_roller(roller, alert_config, notify_config, store, emailer,
                          clock, ledger, window, result)
        except Exception as e:
            result["errors"] += 1
            log.error("Alert check failed for roller %s: %s", roller_id, e,
                      extra={"roller_id": roller_id})

    log.info("Alert sweep done: checked=%d sent=%d delivered=%d suppressed=%d errors=%d",
             result["checked"], result["alertsSent"], result["delivered"],
             result["suppressed"], result["errors"],
             extra={"checked": result["checked"], "alerts_sent": result["alertsSent"]})
    return result


def _check_roller(roller, alert_config, notify_config, store, emailer, clock,
                  ledger, window, result):
    roller_id = roller.get("id")
    current = roller.get("currentStatus")
    if not current:
        return
    records = store.list_records(roller_id)
    record, when = latest_matching_record(records, current)
    if record is None or when is None:
        return

    now = clock()
    diff_days = elapsed_days(now, when)
    for reason in candidate_alerts(alert_config, current, diff_days):
        if not ledger.try_acquire(roller_id, current, window, now):
            result["suppressed"] += 1
            log.debug("Alert for %s/%s suppressed by cooldown", roller_id, current,
                      extra={"roller_id": roller_id, "status": current})
            continue
        params = build_template_params(roller, reason, diff_days, when, notify_config)
        try:
            sent = emailer.send(notify_config, params)
        except Exception as e:
            log.error("Delay alert dispatch for roller %s raised: %s", roller_id, e,
                      extra={"roller_id": roller_id, "status": current})
            sent = {"ok": False, "error": str(e)}
        result["alertsSent"] += 1
        if sent.get("ok"):
            result["delivered"] += 1
            log.info("Delay alert sent for roller %s (%s, %d days)",
                     roller.get("rollerNumber") or roller_id, current, diff_days,
                     extra={"roller_id": roller_id, "status": current})
        else:
            log.error("Delay alert for roller %s not delivered: %s", roller_id,
                      sent.get("error"), extra={"roller_id": roller_id, "status": current})


def run_daily_alerts(store=None, emailer=None, clock=None) -> dict:
    """Load both settings documents from the store and run one sweep."""
    from rollertrack.core.db import get_store
    store = store or get_store()
    t0 = time.time()
    try:
        alert_config = config.load_alert_config(store)
        notify_config = config.load_notification_config(store)
    except Exception as e:
        log.error("Alert sweep aborted: could not load settings: %s", e)
        return _empty_result()
    result = run_alert_sweep(alert_config, notify_config, store,
                             emailer=emailer, clock=clock)
    result["duration_ms"] = int((time.time() - t0) * 1000)
    return result


# ─── Background scheduler thread ────────────────────────────────────────────

def next_run_after(now: datetime, sweep_time: str = None, tz_offset_min: int = None) -> datetime:
    """Next UTC instant at which the local clock reads sweep_time."""
    hour, minute = config.parse_sweep_time(sweep_time)
    offset = config.ALERT_TZ_OFFSET_MIN if tz_offset_min is None else tz_offset_min
    local_tz = timezone(timedelta(minutes=offset))
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local_now = now.astimezone(local_tz)
    target = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local_now:
        target += timedelta(days=1)
    return target.astimezone(timezone.utc)


class AlertScheduler:
    """Background thread that runs the alert sweep once a day."""

    def __init__(self, sweep_time: str = None, tz_offset_min: int = None, runner=None):
        self.sweep_time = sweep_time or config.ALERT_SWEEP_TIME
        self.tz_offset_min = config.ALERT_TZ_OFFSET_MIN if tz_offset_min is None else tz_offset_min
        self.runner = runner or run_daily_alerts
        self._thread = None
        self._stop_event = threading.Event()
        self._running = False
        self._next_run = None
        self._last_run = None
        self._last_result = None
        self._run_count = 0
        self._run_lock = threading.Lock()

    def start(self):
        if self._running:
            log.warning("Alert scheduler already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True,
                                        name="alert-scheduler")
        self._running = True
        self._thread.start()
        log.info("Alert scheduler started (daily at %s, UTC%+.1fh)",
                 self.sweep_time, self.tz_offset_min / 60)

    def stop(self):
        if not self._running:
            return
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
        self._running = False
        log.info("Alert scheduler stopped (runs=%d)", self._run_count)

    def run_now(self) -> dict:
        """Run one sweep. Overlapping callers (thread + manual trigger) queue up."""
        with self._run_lock:
            result = self.runner()
            self._run_count += 1
            self._last_run = utc_now().isoformat()
            self._last_result = result
        return result

    def _run_loop(self):
        while not self._stop_event.is_set():
            self._next_run = next_run_after(utc_now(), self.sweep_time, self.tz_offset_min)
            wait = max(0.0, (self._next_run - utc_now()).total_seconds())
            if self._stop_event.wait(wait):
                break
            try:
                self.run_now()
            except Exception as e:
                log.error("Alert scheduler run failed: %s", e)

    @property
    def status(self) -> dict:
        return {
            "running": self._running,
            "sweep_time": self.sweep_time,
            "tz_offset_min": self.tz_offset_min,
            "next_run": self._next_run.isoformat() if self._next_run else None,
            "last_run": self._last_run,
            "last_result": self._last_result,
            "run_count": self._run_count,
        }


# ─── Module-level singleton ─────────────────────────────────────────────────

_scheduler = AlertScheduler()


def start_scheduler(sweep_time: str = None):
    if sweep_time:
        _scheduler.sweep_time = sweep_time
    _scheduler.start()


def stop_scheduler():
    _scheduler.stop()


def get_scheduler_status() -> dict:
    return _scheduler.status


def manual_sweep() -> dict:
    """Run one sweep now through the shared scheduler (keeps status current)."""
    return _scheduler.run_now()
