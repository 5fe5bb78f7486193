"""
Shared pytest fixtures for the Roller Tracker test suite.

Every test gets its own DATA_DIR (and therefore its own SQLite store) under
tmp_path, so nothing leaks between tests or into the real data directory.
"""
import base64
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

_PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

NOW = datetime(2025, 11, 28, 3, 30, tzinfo=timezone.utc)

ADMIN_USER = "admin"
DASH_PASS = "changeme"


# ── Temp data directory (per-test isolation) ──────────────────────────────────

@pytest.fixture(autouse=True)
def temp_data_dir(tmp_path, monkeypatch):
    """Point rollertrack.core.paths at an isolated tmp directory."""
    data = str(tmp_path / "data")
    os.makedirs(data, exist_ok=True)
    from rollertrack.core import paths
    monkeypatch.setattr(paths, "DATA_DIR", data)
    return data


@pytest.fixture
def store(temp_data_dir):
    from rollertrack.core.db import get_store
    s = get_store()
    s.init()
    return s


# ── Clock / emailer doubles ───────────────────────────────────────────────────

class FakeClock:
    """Callable clock that tests move forward by hand."""
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingEmailer:
    """Stands in for EmailJSClient; remembers every send."""
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def send(self, notify_config, params):
        self.sent.append({"config": notify_config, "params": params})
        if self.ok:
            return {"ok": True, "status_code": 200}
        return {"ok": False, "error": "simulated transport failure"}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def emailer():
    return RecordingEmailer()


@pytest.fixture
def notify_config():
    return {
        "serviceId": "service_abc",
        "templateId": "template_xyz",
        "publicKey": "pub_1234567890",
        "privateKey": "",
        "toEmails": "plant@example.com, QA@example.com",
        "ccEmails": "qa@example.com",
    }


@pytest.fixture
def alert_config():
    return {
        "productionEndDelay": {"enabled": True, "days": 30},
        "rollerSentDelay": {"enabled": True, "days": 14},
    }


# ── Seed helpers ──────────────────────────────────────────────────────────────

def seed_roller(store, current_status=None, records=(), **fields):
    """Insert a roller plus its records directly in the store. Returns roller id."""
    roller = {"rollerNumber": fields.pop("rollerNumber", "R-100"),
              "line": "SG#1", "position": "Top", "status": "Approved",
              "currentStatus": current_status}
    roller.update(fields)
    roller_id = store.upsert_roller(roller)
    for rec in records:
        store.upsert_record(roller_id, dict(rec))
    return roller_id


@pytest.fixture
def seed(store):
    def _seed(current_status=None, records=(), **fields):
        return seed_roller(store, current_status, records, **fields)
    return _seed


# ── Flask test client ─────────────────────────────────────────────────────────

def basic_auth_header(user=ADMIN_USER, pw=DASH_PASS):
    creds = base64.b64encode(f"{user}:{pw}".encode()).decode()
    return {"Authorization": f"Basic {creds}"}


class AuthenticatedClient:
    """Wraps Flask test client to add Basic Auth headers to every request."""
    def __init__(self, client, headers):
        self._client = client
        self._headers = headers

    def get(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.get(*args, **kwargs)

    def post(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.post(*args, **kwargs)

    def put(self, *args, **kwargs):
        kwargs.setdefault("headers", {}).update(self._headers)
        return self._client.put(*args, **kwargs)


@pytest.fixture
def app(temp_data_dir, monkeypatch):
    """Flask app on the temp store, scheduler thread off."""
    from rollertrack.api import routes
    monkeypatch.setattr(routes, "DASH_USER", ADMIN_USER)
    monkeypatch.setattr(routes, "DASH_PASS", DASH_PASS)

    from app import create_app
    flask_app = create_app(start_background=False)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    """Admin client (HTTP Basic Auth on every request)."""
    with app.test_client() as c:
        yield AuthenticatedClient(c, basic_auth_header())


@pytest.fixture
def client_as(app, store):
    """Factory: client_as("Editor") → client authenticated as a user with that role."""
    def _make(role, uid=None):
        uid = uid or f"{role.lower()}-user"
        store.upsert_user(uid, role, email=f"{uid}@example.com")
        return AuthenticatedClient(app.test_client(), basic_auth_header(uid))
    return _make


@pytest.fixture
def anon_client(app):
    """Unauthenticated test client."""
    with app.test_client() as c:
        yield c
