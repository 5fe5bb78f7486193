"""
Configuration for Roller Tracker.

Two layers:
  1. Process settings: module constants read from the environment once at
     import (cooldown window, sweep time, timeouts, EmailJS endpoint).
  2. Business settings: the AlertConfig and NotificationConfig documents
     stored in the `settings` collection ("alerts" and "emailjs"), edited from
     the Settings page and re-read on every sweep.

Railway env vars:
  ROLLERTRACK_DATA_DIR   — persistent data directory (see core/paths.py)
  ALERT_COOLDOWN_DAYS    — days between repeat alerts per roller+status (7)
  ALERT_SWEEP_TIME       — local time of the daily sweep, HH:MM (09:00)
  ALERT_TZ_OFFSET_MIN    — sweep timezone offset from UTC in minutes (330 = IST)
  ENABLE_ALERT_SCHEDULER — start the in-process daily sweep thread (false)
  EMAILJS_API_URL        — EmailJS REST send endpoint
  EMAIL_TIMEOUT_SEC      — HTTP timeout for one email dispatch (15)
  FETCH_TIMEOUT_SEC      — busy timeout for one store read/write (30)
  ALERT_FALLBACK_EMAIL   — recipient used when settings have no toEmails
  ALERT_REPLY_TO         — reply-to address put in the email template
  APP_BASE_URL           — if set, alert emails link to /roller/<id>
"""

import os
import logging

log = logging.getLogger("rollertrack.config")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    try:
        return int(raw) if raw.strip() else default
    except ValueError:
        log.warning("Ignoring non-integer %s=%r (using %d)", name, raw, default)
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("false", "0", "off", "no", "")


# ── Process settings ──────────────────────────────────────────────────────────
ALERT_COOLDOWN_DAYS = _env_int("ALERT_COOLDOWN_DAYS", 7)
ALERT_SWEEP_TIME = os.environ.get("ALERT_SWEEP_TIME", "09:00")
ALERT_TZ_OFFSET_MIN = _env_int("ALERT_TZ_OFFSET_MIN", 330)
ENABLE_ALERT_SCHEDULER = _env_bool("ENABLE_ALERT_SCHEDULER", False)

EMAILJS_API_URL = os.environ.get("EMAILJS_API_URL", "https://api.emailjs.com/api/v1.0/email/send")
EMAIL_TIMEOUT_SEC = _env_int("EMAIL_TIMEOUT_SEC", 15)
FETCH_TIMEOUT_SEC = _env_int("FETCH_TIMEOUT_SEC", 30)

ALERT_FALLBACK_EMAIL = os.environ.get("ALERT_FALLBACK_EMAIL", "")
ALERT_REPLY_TO = os.environ.get("ALERT_REPLY_TO", "")
ALERT_SENDER_NAME = os.environ.get("ALERT_SENDER_NAME", "Roller Alert System")
APP_BASE_URL = os.environ.get("APP_BASE_URL", "").rstrip("/")

# settings collection document ids
ALERTS_SETTING = "alerts"
EMAILJS_SETTING = "emailjs"

# threshold rule name → roller currentStatus it watches, and the alert reason
ALERT_RULES = {
    "productionEndDelay": {
        "status": "Production End",
        "reason": "Delayed in send roller to vendor",
    },
    "rollerSentDelay": {
        "status": "Roller sent",
        "reason": "Delayed in receive roller from vendor",
    },
}

REQUIRED_EMAILJS_KEYS = ("serviceId", "templateId", "publicKey")


class ConfigError(ValueError):
    """A settings document failed validation."""


def parse_sweep_time(value: str = None) -> tuple[int, int]:
    """'HH:MM' → (hour, minute). Falls back to 09:00 on bad input."""
    value = value or ALERT_SWEEP_TIME
    try:
        hh, mm = value.strip().split(":", 1)
        hour, minute = int(hh), int(mm)
        if 0 <= hour < 24 and 0 <= minute < 60:
            return hour, minute
    except (ValueError, AttributeError):
        pass
    log.warning("Bad ALERT_SWEEP_TIME %r, using 09:00", value)
    return 9, 0


# ══════════════════════════════════════════════════════════════════════════════
# AlertConfig  (settings/alerts)
# ══════════════════════════════════════════════════════════════════════════════

def normalize_alert_config(raw: dict | None) -> dict | None:
    """Coerce a stored alerts document into {rule: {"enabled", "days"}}.

    Lenient: used on the sweep path, where a half-filled document should
    disable the broken rule rather than the whole feature. Returns None when
    there is no document at all.
    """
    if raw is None:
        return None
    out = {}
    for rule in ALERT_RULES:
        entry = raw.get(rule) or {}
        enabled = bool(entry.get("enabled", False))
        try:
            days = int(entry.get("days", 0))
        except (TypeError, ValueError):
            log.warning("Alert rule %s has non-numeric days %r, disabled",
                        rule, entry.get("days"))
            enabled, days = False, 0
        out[rule] = {"enabled": enabled, "days": days}
    return out


def validate_alert_config(raw: dict) -> dict:
    """Strict validation for writes from the Settings API."""
    if not isinstance(raw, dict):
        raise ConfigError("alert settings must be an object")
    unknown = set(raw) - set(ALERT_RULES)
    if unknown:
        raise ConfigError(f"unknown alert rules: {', '.join(sorted(unknown))}")
    out = {}
    for rule in ALERT_RULES:
        entry = raw.get(rule, {"enabled": False, "days": 0})
        if not isinstance(entry, dict):
            raise ConfigError(f"{rule} must be an object")
        days = entry.get("days", 0)
        if isinstance(days, bool) or not isinstance(days, int) or days < 0:
            raise ConfigError(f"{rule}.days must be a non-negative integer")
        out[rule] = {"enabled": bool(entry.get("enabled", False)), "days": days}
    return out


def load_alert_config(store) -> dict | None:
    return normalize_alert_config(store.get_setting(ALERTS_SETTING))


# ══════════════════════════════════════════════════════════════════════════════
# NotificationConfig  (settings/emailjs)
# ══════════════════════════════════════════════════════════════════════════════

def missing_notification_keys(cfg: dict | None) -> list:
    if not isinstance(cfg, dict):
        return list(REQUIRED_EMAILJS_KEYS)
    return [k for k in REQUIRED_EMAILJS_KEYS
            if not isinstance(cfg.get(k), str) or not cfg[k].strip()]


def is_notification_ready(cfg: dict | None) -> bool:
    return not missing_notification_keys(cfg)


def validate_notification_config(raw: dict) -> dict:
    """Strict validation for writes from the Settings API."""
    if not isinstance(raw, dict):
        raise ConfigError("notification settings must be an object")
    out = {}
    for key in ("serviceId", "templateId", "publicKey", "privateKey",
                "toEmails", "ccEmails"):
        val = raw.get(key, "")
        if val is None:
            val = ""
        if not isinstance(val, str):
            raise ConfigError(f"{key} must be a string")
        out[key] = val.strip()
    missing = missing_notification_keys(out)
    if missing:
        raise ConfigError(f"missing required keys: {', '.join(missing)}")
    return out


def load_notification_config(store) -> dict | None:
    return store.get_setting(EMAILJS_SETTING)


def mask(value: str) -> str:
    """Mask a key for display: first 4 chars + ****."""
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "****"
    return value[:4] + "****"


def masked_notification_config(cfg: dict | None) -> dict:
    cfg = dict(cfg or {})
    for key in ("publicKey", "privateKey"):
        if key in cfg:
            cfg[key] = mask(cfg.get(key) or "")
    return cfg
