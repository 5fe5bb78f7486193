"""
rollertrack/core/db.py — Persistent SQLite Document Store

Rollers and their activity records are documents: a handful of fixed
attributes plus an open-ended set of form fields defined per activity type.
Fixed attributes get real columns (so they can be filtered and indexed);
everything else rides along in a JSON column and is merged back into the
document dict on read. Documents use the same camelCase keys the API and
the record forms use (rollerNumber, currentStatus, approvedBy, ...).

COLLECTIONS:
  rollers        — one row per physical roller
  records        — activity records, each owned by exactly one roller
  settings       — singleton config documents ("alerts", "emailjs", ...)
  form_configs   — custom field definitions per activity type
  users          — uid → role
  roller_alerts  — alert cooldown ledger, one row per (rollerId, status)

Record dates are stored exactly as received (JSON-encoded so a
"DD/MM/YYYY" string stays a string and a timestamp stays a number);
interpretation belongs to rollertrack.core.dates.
"""

import os
import json
import sqlite3
import logging
import threading
import uuid
from datetime import datetime, timezone
from contextlib import contextmanager

from rollertrack.core import paths
from rollertrack.core.config import FETCH_TIMEOUT_SEC

log = logging.getLogger("rollertrack.db")

_db_lock = threading.Lock()


# ── Connection factory ────────────────────────────────────────────────────────
@contextmanager
def get_db(db_path: str = None):
    """Thread-safe SQLite connection with WAL mode.

    The busy timeout bounds how long any single read or write can block,
    which in turn bounds a per-roller fetch during the alert sweep.
    """
    path = db_path or paths.db_path()
    with _db_lock:
        conn = sqlite3.connect(path, timeout=FETCH_TIMEOUT_SEC, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ── Schema ────────────────────────────────────────────────────────────────────
SCHEMA = """
CREATE TABLE IF NOT EXISTS rollers (
    id              TEXT PRIMARY KEY,
    roller_number   TEXT,
    make            TEXT,
    design          TEXT,
    position        TEXT,           -- Top|Bottom
    line            TEXT,           -- SG#1|SG#2|SG#3.1|SG#3.2
    status          TEXT DEFAULT 'Pending',
    current_status  TEXT,           -- activity type of the last logged record
    created_by      TEXT,
    created_at      TEXT NOT NULL,
    last_updated    TEXT,
    extra           TEXT            -- JSON object, any other roller fields
);

CREATE INDEX IF NOT EXISTS idx_roller_line ON rollers(line, position);

CREATE TABLE IF NOT EXISTS records (
    id              TEXT PRIMARY KEY,
    roller_id       TEXT NOT NULL,
    activity        TEXT,
    date_value      TEXT,           -- JSON-encoded, original representation kept
    status          TEXT DEFAULT 'Pending',
    created_by      TEXT,
    created_at      TEXT NOT NULL,
    approved_by     TEXT,
    approved_at     TEXT,
    approval_info   TEXT,
    remarks         TEXT,
    fields          TEXT            -- JSON object, dynamic form fields
);

CREATE INDEX IF NOT EXISTS idx_record_roller ON records(roller_id);

CREATE TABLE IF NOT EXISTS settings (
    key             TEXT PRIMARY KEY,
    data            TEXT NOT NULL,  -- JSON object
    updated_at      TEXT
);

CREATE TABLE IF NOT EXISTS form_configs (
    activity        TEXT PRIMARY KEY,
    fields          TEXT NOT NULL,  -- JSON array of field definitions
    updated_at      TEXT
);

CREATE TABLE IF NOT EXISTS users (
    uid             TEXT PRIMARY KEY,
    email           TEXT,
    role            TEXT DEFAULT 'Viewer',
    created_at      TEXT
);

CREATE TABLE IF NOT EXISTS roller_alerts (
    id              TEXT PRIMARY KEY,   -- "{roller_id}_{status}"
    roller_id       TEXT NOT NULL,
    status          TEXT NOT NULL,
    last_sent       TEXT NOT NULL
);
"""

# document key → column, for the fixed attributes
ROLLER_COLUMNS = {
    "id": "id",
    "rollerNumber": "roller_number",
    "make": "make",
    "design": "design",
    "position": "position",
    "line": "line",
    "status": "status",
    "currentStatus": "current_status",
    "createdBy": "created_by",
    "createdAt": "created_at",
    "lastUpdated": "last_updated",
}

RECORD_COLUMNS = {
    "id": "id",
    "rollerId": "roller_id",
    "activity": "activity",
    "status": "status",
    "createdBy": "created_by",
    "createdAt": "created_at",
    "approvedBy": "approved_by",
    "approvedAt": "approved_at",
    "approvalInfo": "approval_info",
    "remarks": "remarks",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _jl(val, default=None):
    """JSON-load a DB column value safely."""
    if val is None:
        return default
    if isinstance(val, (dict, list)):
        return val
    try:
        return json.loads(val)
    except (TypeError, ValueError):
        return default


def _jd(val) -> str:
    """JSON-dump a value for DB storage."""
    return json.dumps(val, default=str)


def _roller_from_row(row) -> dict:
    d = dict(row)
    doc = {key: d.get(col) for key, col in ROLLER_COLUMNS.items()}
    extra = _jl(d.get("extra"), {}) or {}
    for k, v in extra.items():
        doc.setdefault(k, v)
    return doc


def _record_from_row(row) -> dict:
    d = dict(row)
    doc = {key: d.get(col) for key, col in RECORD_COLUMNS.items()}
    doc["date"] = _jl(d.get("date_value"))
    fields = _jl(d.get("fields"), {}) or {}
    for k, v in fields.items():
        doc.setdefault(k, v)
    return doc


def _split(doc: dict, columns: dict, skip=()) -> tuple[dict, dict]:
    """Split a document into (column values, leftover JSON fields)."""
    cols, rest = {}, {}
    for k, v in doc.items():
        if k in skip:
            continue
        if k in columns:
            cols[columns[k]] = v
        else:
            rest[k] = v
    return cols, rest


# ══════════════════════════════════════════════════════════════════════════════
# RollerStore: the document-store contract the rest of the app talks to
# ══════════════════════════════════════════════════════════════════════════════

class RollerStore:
    """Collections over one SQLite file.

    Reads raise on storage errors (callers decide whether a failure is
    fatal); write helpers used by best-effort paths return bool.
    """

    def __init__(self, db_path: str = None):
        self.db_path = db_path or paths.db_path()

    def _conn(self):
        return get_db(self.db_path)

    def init(self) -> bool:
        """Create all tables if they don't exist. Safe to call multiple times."""
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        with self._conn() as conn:
            conn.executescript(SCHEMA)
        log.info("DB initialized at %s", self.db_path)
        return True

    # ── Rollers ──────────────────────────────────────────────────────────────
    def list_rollers(self) -> list:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM rollers ORDER BY created_at, id").fetchall()
        return [_roller_from_row(r) for r in rows]

    def get_roller(self, roller_id: str) -> dict | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM rollers WHERE id=?",
                               (roller_id,)).fetchone()
        return _roller_from_row(row) if row else None

    def upsert_roller(self, roller: dict) -> str:
        """Insert or replace a roller document. Returns its id."""
        doc = dict(roller)
        doc.setdefault("id", new_id("rl"))
        doc.setdefault("createdAt", _now_iso())
        doc.setdefault("status", "Pending")
        cols, extra = _split(doc, ROLLER_COLUMNS)
        cols["extra"] = _jd(extra)
        names = list(cols)
        with self._conn() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO rollers ({','.join(names)}) "
                f"VALUES ({','.join('?' * len(names))})",
                [cols[n] for n in names])
        return doc["id"]

    def update_roller(self, roller_id: str, changes: dict) -> bool:
        """Partial update; unknown keys merge into the JSON extras."""
        current = self.get_roller(roller_id)
        if current is None:
            return False
        current.update(changes)
        current["id"] = roller_id
        self.upsert_roller(current)
        return True

    # ── Activity records ─────────────────────────────────────────────────────
    def list_records(self, roller_id: str) -> list:
        """All records for one roller, in insertion order."""
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT * FROM records WHERE roller_id=? ORDER BY rowid",
                (roller_id,)).fetchall()
        return [_record_from_row(r) for r in rows]

    def list_all_records(self) -> dict:
        """{roller_id: [records]} in one query, for dashboard aggregation."""
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM records ORDER BY rowid").fetchall()
        out = {}
        for r in rows:
            rec = _record_from_row(r)
            out.setdefault(rec["rollerId"], []).append(rec)
        return out

    def get_record(self, roller_id: str, record_id: str) -> dict | None:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM records WHERE id=? AND roller_id=?",
                (record_id, roller_id)).fetchone()
        return _record_from_row(row) if row else None

    def upsert_record(self, roller_id: str, record: dict) -> str:
        doc = dict(record)
        doc["rollerId"] = roller_id
        doc.setdefault("id", new_id("rec"))
        doc.setdefault("createdAt", _now_iso())
        doc.setdefault("status", "Pending")
        cols, fields = _split(doc, RECORD_COLUMNS, skip=("date",))
        cols["date_value"] = _jd(doc.get("date"))
        cols["fields"] = _jd(fields)
        names = list(cols)
        with self._conn() as conn:
            existing = conn.execute("SELECT rowid FROM records WHERE id=?",
                                    (doc["id"],)).fetchone()
            if existing:
                sets = ",".join(f"{n}=?" for n in names if n != "id")
                conn.execute(f"UPDATE records SET {sets} WHERE id=?",
                             [cols[n] for n in names if n != "id"] + [doc["id"]])
            else:
                conn.execute(
                    f"INSERT INTO records ({','.join(names)}) "
                    f"VALUES ({','.join('?' * len(names))})",
                    [cols[n] for n in names])
        return doc["id"]

    def update_record(self, roller_id: str, record_id: str, changes: dict) -> bool:
        current = self.get_record(roller_id, record_id)
        if current is None:
            return False
        current.update(changes)
        current["id"] = record_id
        self.upsert_record(roller_id, current)
        return True

    # ── Settings / form configs ──────────────────────────────────────────────
    def get_setting(self, key: str) -> dict | None:
        with self._conn() as conn:
            row = conn.execute("SELECT data FROM settings WHERE key=?",
                               (key,)).fetchone()
        return _jl(row["data"]) if row else None

    def set_setting(self, key: str, data: dict) -> bool:
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO settings (key, data, updated_at) VALUES (?,?,?)
                ON CONFLICT(key) DO UPDATE SET
                  data=excluded.data, updated_at=excluded.updated_at
            """, (key, _jd(data), _now_iso()))
        return True

    def get_form_configs(self) -> dict:
        """{activity: [field definitions]}"""
        with self._conn() as conn:
            rows = conn.execute("SELECT activity, fields FROM form_configs").fetchall()
        return {r["activity"]: _jl(r["fields"], []) for r in rows}

    def set_form_config(self, activity: str, fields: list) -> bool:
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO form_configs (activity, fields, updated_at) VALUES (?,?,?)
                ON CONFLICT(activity) DO UPDATE SET
                  fields=excluded.fields, updated_at=excluded.updated_at
            """, (activity, _jd(fields), _now_iso()))
        return True

    # ── Users ────────────────────────────────────────────────────────────────
    def get_user(self, uid: str) -> dict | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE uid=?", (uid,)).fetchone()
        return dict(row) if row else None

    def upsert_user(self, uid: str, role: str, email: str = "") -> bool:
        with self._conn() as conn:
            conn.execute("""
                INSERT INTO users (uid, email, role, created_at) VALUES (?,?,?,?)
                ON CONFLICT(uid) DO UPDATE SET
                  email=excluded.email, role=excluded.role
            """, (uid, email, role, _now_iso()))
        return True

    # ── Alert cooldown ledger ────────────────────────────────────────────────
    def get_cooldown(self, roller_id: str, status: str) -> dict | None:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM roller_alerts WHERE id=?",
                               (cooldown_key(roller_id, status),)).fetchone()
        if not row:
            return None
        return {"rollerId": row["roller_id"], "status": row["status"],
                "lastSent": row["last_sent"]}

    def set_cooldown(self, roller_id: str, status: str, last_sent: str) -> bool:
        """Overwrite the cooldown entry. Returns False instead of raising."""
        try:
            with self._conn() as conn:
                conn.execute("""
                    INSERT INTO roller_alerts (id, roller_id, status, last_sent)
                    VALUES (?,?,?,?)
                    ON CONFLICT(id) DO UPDATE SET last_sent=excluded.last_sent
                """, (cooldown_key(roller_id, status), roller_id, status, last_sent))
            return True
        except sqlite3.Error as e:
            log.warning("set_cooldown %s/%s: %s", roller_id, status, e)
            return False

    # ── Stats ────────────────────────────────────────────────────────────────
    def stats(self) -> dict:
        out = {"db_path": self.db_path}
        with self._conn() as conn:
            for table in ("rollers", "records", "roller_alerts", "users"):
                out[table] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return out


def cooldown_key(roller_id: str, status: str) -> str:
    return f"{roller_id}_{status}"


# ── Module-level default store ────────────────────────────────────────────────
_default_store = None


def get_store() -> RollerStore:
    """Process-wide store on DATA_DIR (created lazily)."""
    global _default_store
    if _default_store is None or _default_store.db_path != paths.db_path():
        _default_store = RollerStore()
    return _default_store


def startup() -> dict:
    """Initialize the store. Call once at app start."""
    paths.ensure_dirs()
    store = get_store()
    store.init()
    stats = store.stats()
    log.info("DB ready: %s", {k: v for k, v in stats.items() if k != "db_path"})
    return {"ok": True, "db_path": store.db_path, "stats": stats}
