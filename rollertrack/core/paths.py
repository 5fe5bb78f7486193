"""
rollertrack/core/paths.py — Centralized Path Configuration

Single source of truth for directory paths. Every module imports DATA_DIR
from here instead of computing its own.

On Railway with a volume mounted, DATA_DIR points to the persistent volume
so the SQLite store and logs survive deploys.
"""

import os
import logging

log = logging.getLogger("rollertrack.paths")

# ── Project Root ──────────────────────────────────────────────────────────────
_THIS_FILE = os.path.abspath(__file__)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(_THIS_FILE)))

_LOCAL_DATA_DIR = os.path.join(PROJECT_ROOT, "data")


# Priority: ROLLERTRACK_DATA_DIR env → Railway volume mount → project data/
def _resolve_data_dir() -> str:
    """Find the best persistent data directory."""
    env_dir = os.environ.get("ROLLERTRACK_DATA_DIR", "")
    if env_dir:
        return env_dir

    vol_mount = os.environ.get("RAILWAY_VOLUME_MOUNT_PATH", "")
    if vol_mount and os.path.isdir(vol_mount):
        return os.path.join(vol_mount, "data") if not vol_mount.endswith("/data") else vol_mount

    return _LOCAL_DATA_DIR


DATA_DIR = _resolve_data_dir()
_USING_VOLUME = (DATA_DIR != _LOCAL_DATA_DIR)

DB_FILENAME = "rollertrack.db"
LOG_DIR_NAME = "logs"


def db_path(data_dir: str = None) -> str:
    """Path of the SQLite document store inside data_dir (default DATA_DIR)."""
    return os.path.join(data_dir or DATA_DIR, DB_FILENAME)


def log_dir(data_dir: str = None) -> str:
    return os.path.join(data_dir or DATA_DIR, LOG_DIR_NAME)


def ensure_dirs(data_dir: str = None) -> str:
    """Create DATA_DIR (and logs/) if missing. Returns the data dir."""
    d = data_dir or DATA_DIR
    os.makedirs(d, exist_ok=True)
    os.makedirs(log_dir(d), exist_ok=True)
    return d


def validate_paths(data_dir: str = None) -> dict:
    """Runtime validation, called at app startup to catch path issues early.

    Returns:
        {"ok": bool, "errors": [str], "warnings": [str], "resolved": {name: path}}
    """
    d = data_dir or DATA_DIR
    result = {"ok": True, "errors": [], "warnings": [], "resolved": {
        "PROJECT_ROOT": PROJECT_ROOT,
        "DATA_DIR": d,
        "DB_PATH": db_path(d),
        "USING_VOLUME": str(_USING_VOLUME),
    }}

    if not os.path.isdir(d):
        result["errors"].append(f"DATA_DIR not found: {d}")
        result["ok"] = False
        return result

    test_file = os.path.join(d, ".write_test")
    try:
        with open(test_file, "w") as f:
            f.write("ok")
        os.remove(test_file)
    except OSError as e:
        result["errors"].append(f"DATA_DIR not writable: {e}")
        result["ok"] = False

    if not _USING_VOLUME and os.environ.get("RAILWAY_ENVIRONMENT"):
        result["warnings"].append(
            "Running on Railway WITHOUT persistent volume! "
            "Roller data and alert cooldowns will be lost on every deploy."
        )
    return result
