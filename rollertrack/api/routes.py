"""
Roller Tracker JSON API.

All routes except /api/health sit behind HTTP Basic auth. The username
identifies the user; the acting role comes from the `users` collection
(DASH_USER is always Admin, unknown users are Viewer). Role rules are
enforced in core/workflow.py, not here.

Every user shares the one DASH_PASS, so the password proves only that the
caller is on the team, not who they are. Anyone holding it can send
username=DASH_USER and act as Admin. The role gates are advisory: they keep
honest users on their own workflow steps and do not stop a determined one.
Deploy behind a network boundary that already limits who gets the password.

  GET  /api/health
  GET  /api/rollers?line=&position=&status=&q=     POST /api/rollers
  GET  /api/rollers/<id>                           PUT  /api/rollers/<id>
  POST /api/rollers/<id>/approve
  POST /api/rollers/<id>/records                   PUT  /api/rollers/<id>/records/<rid>
  POST /api/rollers/<id>/records/<rid>/approval    {"approved": bool, "remarks": str}
  GET  /api/dashboard
  GET|PUT /api/settings/alerts
  GET|PUT /api/settings/notifications
  POST /api/alerts/run
  GET  /api/alerts/status
"""

import functools
import logging
import os
import time

from flask import Blueprint, Response, jsonify, request

from rollertrack.agents import alert_scheduler
from rollertrack.core import config, workflow
from rollertrack.core.config import ConfigError
from rollertrack.core.db import get_store
from rollertrack.core.dates import sort_key
from rollertrack.core.status import derive_status
from rollertrack.core.summary import dashboard_summary, derive_statuses, filter_rollers
from rollertrack.core.workflow import NotFound, PermissionDenied, ValidationError

log = logging.getLogger("rollertrack.api")

bp = Blueprint("rollertrack", __name__)

DASH_USER = os.environ.get("DASH_USER", "admin")
DASH_PASS = os.environ.get("DASH_PASS", "changeme")


# ═══════════════════════════════════════════════════════════════════════
# Request logging / auth / errors
# ═══════════════════════════════════════════════════════════════════════

@bp.before_request
def _log_request_start():
    request._start_time = time.time()


@bp.after_request
def _log_request_end(response):
    if hasattr(request, "_start_time") and request.path != "/api/health":
        duration_ms = round((time.time() - request._start_time) * 1000, 1)
        log.info("%s %s → %d (%.0fms)", request.method, request.path,
                 response.status_code, duration_ms,
                 extra={"route": request.path, "method": request.method,
                        "duration_ms": duration_ms})
    return response


def check_auth(username, password):
    return bool(username) and password == DASH_PASS


def auth_required(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        auth = request.authorization
        if not auth or not check_auth(auth.username, auth.password):
            return Response(
                "Roller Tracker: login required",
                401, {"WWW-Authenticate": 'Basic realm="Roller Tracker"'})
        return f(*args, **kwargs)
    return decorated


def current_actor() -> dict:
    username = request.authorization.username
    if username == DASH_USER:
        return {"uid": username, "role": workflow.ADMIN, "email": username}
    user = get_store().get_user(username) or {}
    role = user.get("role") if user.get("role") in workflow.ROLES else workflow.VIEWER
    return {"uid": username, "role": role, "email": user.get("email") or username}


def _body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def _error(status: int, e: Exception):
    return jsonify({"ok": False, "error": str(e)}), status


@bp.errorhandler(PermissionDenied)
def _forbidden(e):
    return _error(403, e)


@bp.errorhandler(NotFound)
def _not_found(e):
    return _error(404, e)


@bp.errorhandler(ValidationError)
@bp.errorhandler(ConfigError)
def _bad_request(e):
    return _error(400, e)


# ═══════════════════════════════════════════════════════════════════════
# Health
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/health")
def health():
    try:
        stats = get_store().stats()
        db = {"ok": True, **{k: v for k, v in stats.items() if k != "db_path"}}
    except Exception as e:
        log.error("Health check DB error: %s", e)
        db = {"ok": False, "error": str(e)}
    return jsonify({"ok": db["ok"], "db": db,
                    "scheduler": alert_scheduler.get_scheduler_status()})


# ═══════════════════════════════════════════════════════════════════════
# Rollers
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/rollers", methods=["GET"])
@auth_required
def list_rollers():
    store = get_store()
    rollers = store.list_rollers()
    statuses = derive_statuses(rollers, store.list_all_records())
    args = request.args
    rows = filter_rollers(rollers, statuses,
                          search=args.get("q", ""), line=args.get("line", ""),
                          position=args.get("position", ""), status=args.get("status", ""))
    for roller in rows:
        roller["derivedStatus"] = statuses[roller["id"]]
    return jsonify({"ok": True, "count": len(rows), "rollers": rows})


@bp.route("/api/rollers", methods=["POST"])
@auth_required
def create_roller():
    roller = workflow.create_roller(get_store(), current_actor(), _body())
    return jsonify({"ok": True, "roller": roller}), 201


@bp.route("/api/rollers/<roller_id>", methods=["GET"])
@auth_required
def roller_detail(roller_id):
    store = get_store()
    roller = store.get_roller(roller_id)
    if roller is None:
        raise NotFound(f"roller {roller_id} not found")
    records = store.list_records(roller_id)
    records.sort(key=lambda r: sort_key(r.get("date")), reverse=True)
    return jsonify({
        "ok": True,
        "roller": roller,
        "derivedStatus": derive_status(records),
        "records": records,
        "activityStats": workflow.activity_stats(records),
        "customFields": workflow.custom_fields(store.get_form_configs()),
    })


@bp.route("/api/rollers/<roller_id>", methods=["PUT"])
@auth_required
def update_roller(roller_id):
    roller = workflow.update_roller(get_store(), current_actor(), roller_id, _body())
    return jsonify({"ok": True, "roller": roller})


@bp.route("/api/rollers/<roller_id>/approve", methods=["POST"])
@auth_required
def approve_roller(roller_id):
    roller = workflow.approve_roller(get_store(), current_actor(), roller_id)
    return jsonify({"ok": True, "roller": roller})


# ── Activity records ─────────────────────────────────────────────────────────

@bp.route("/api/rollers/<roller_id>/records", methods=["POST"])
@auth_required
def add_record(roller_id):
    record = workflow.add_record(get_store(), current_actor(), roller_id, _body())
    return jsonify({"ok": True, "record": record}), 201


@bp.route("/api/rollers/<roller_id>/records/<record_id>", methods=["PUT"])
@auth_required
def edit_record(roller_id, record_id):
    record = workflow.edit_record(get_store(), current_actor(), roller_id, record_id, _body())
    return jsonify({"ok": True, "record": record})


@bp.route("/api/rollers/<roller_id>/records/<record_id>/approval", methods=["POST"])
@auth_required
def decide_record(roller_id, record_id):
    data = _body()
    if not isinstance(data.get("approved"), bool):
        raise ValidationError("approved must be true or false")
    record = workflow.decide_record(get_store(), current_actor(), roller_id, record_id,
                                    data["approved"], remarks=data.get("remarks"))
    return jsonify({"ok": True, "record": record})


# ═══════════════════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/dashboard")
@auth_required
def dashboard():
    store = get_store()
    rollers = store.list_rollers()
    return jsonify({"ok": True, "total": len(rollers),
                    "summary": dashboard_summary(rollers, store.list_all_records())})


# ═══════════════════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/settings/alerts", methods=["GET"])
@auth_required
def get_alert_settings():
    cfg = config.load_alert_config(get_store())
    return jsonify({"ok": True, "configured": cfg is not None,
                    "alerts": cfg or config.validate_alert_config({})})


@bp.route("/api/settings/alerts", methods=["PUT"])
@auth_required
def put_alert_settings():
    _require_admin()
    cfg = config.validate_alert_config(_body())
    get_store().set_setting(config.ALERTS_SETTING, cfg)
    log.info("Alert settings updated by %s: %s", request.authorization.username, cfg)
    return jsonify({"ok": True, "alerts": cfg})


@bp.route("/api/settings/notifications", methods=["GET"])
@auth_required
def get_notification_settings():
    cfg = config.load_notification_config(get_store())
    return jsonify({"ok": True, "ready": config.is_notification_ready(cfg),
                    "notifications": config.masked_notification_config(cfg)})


@bp.route("/api/settings/notifications", methods=["PUT"])
@auth_required
def put_notification_settings():
    _require_admin()
    cfg = config.validate_notification_config(_body())
    get_store().set_setting(config.EMAILJS_SETTING, cfg)
    log.info("EmailJS settings updated by %s", request.authorization.username)
    return jsonify({"ok": True, "notifications": config.masked_notification_config(cfg)})


def _require_admin():
    if current_actor()["role"] != workflow.ADMIN:
        raise PermissionDenied("only Admin may change settings")


# ═══════════════════════════════════════════════════════════════════════
# Alerts
# ═══════════════════════════════════════════════════════════════════════

@bp.route("/api/alerts/run", methods=["POST"])
@auth_required
def run_alerts():
    _require_admin()
    result = alert_scheduler.manual_sweep()
    return jsonify({"ok": True, **result})


@bp.route("/api/alerts/status")
@auth_required
def alerts_status():
    return jsonify({"ok": True, **alert_scheduler.get_scheduler_status()})
