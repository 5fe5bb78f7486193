"""
Roller and activity-record workflow.

Every write goes through here so the role rules live in one place:

  ┌──────────────────────────┬───────┬────────┬──────────┬────────┐
  │ Action                   │ Admin │ Editor │ Approver │ Viewer │
  ├──────────────────────────┼───────┼────────┼──────────┼────────┤
  │ create roller            │  ✅   │  ✅    │    —     │   —    │
  │ update roller            │  ✅   │ Pending│    —     │   —    │
  │ approve roller           │  ✅   │   —    │   ✅     │   —    │
  │ add record               │  ✅   │  ✅    │    —     │   —    │
  │ edit record              │  ✅   │ Pending│    —     │   —    │
  │ approve / reject record  │  ✅   │   —    │   ✅     │   —    │
  └──────────────────────────┴───────┴────────┴──────────┴────────┘

New rollers and records always start Pending. Logging or editing a record
sets the roller's currentStatus to that record's activity. Editing a record
that was already Approved/Rejected sends it back to Pending and clears the
approval fields.
"""

import logging

from rollertrack.core.dates import format_day, parse_record_date, to_iso, utc_now
from rollertrack.core.summary import LINES, POSITIONS

log = logging.getLogger("rollertrack.workflow")

ADMIN, EDITOR, APPROVER, VIEWER = "Admin", "Editor", "Approver", "Viewer"
ROLES = (ADMIN, EDITOR, APPROVER, VIEWER)

PENDING, APPROVED, REJECTED, INACTIVE = "Pending", "Approved", "Rejected", "Inactive"
ROLLER_STATUSES = (PENDING, APPROVED, REJECTED, INACTIVE)

DEFAULT_ACTIVITY_TYPES = ("Production Start", "Production End", "Roller sent", "Roller Received")

# fixed record-form fields; everything else on a record is a custom field
SYSTEM_FIELDS = ("rollerDiameter", "runningLine", "rollerRa", "rollerRz",
                 "glassRa", "glassRz", "date", "activity")

# keys a client may never set directly on a record
_RECORD_PROTECTED = {"id", "rollerId", "status", "createdBy", "createdAt",
                     "approvedBy", "approvedAt", "approvalInfo"}
_ROLLER_PROTECTED = {"id", "status", "createdBy", "createdAt", "currentStatus", "lastUpdated"}


class WorkflowError(Exception):
    """Base for workflow rule violations."""


class PermissionDenied(WorkflowError):
    pass


class NotFound(WorkflowError):
    pass


class ValidationError(WorkflowError):
    pass


def _require_role(actor: dict, *allowed):
    role = (actor or {}).get("role")
    if role not in allowed:
        raise PermissionDenied(f"role {role or '(none)'} may not do this")


def _uid(actor: dict) -> str:
    return (actor or {}).get("uid") or "system"


def _get_roller(store, roller_id: str) -> dict:
    roller = store.get_roller(roller_id)
    if roller is None:
        raise NotFound(f"roller {roller_id} not found")
    return roller


def _required_text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{key} is required")
    return value


def _validate_roller_fields(data: dict):
    if "rollerNumber" in data:
        _required_text(data, "rollerNumber")
    if "position" in data and data["position"] not in POSITIONS:
        raise ValidationError(f"position must be one of {', '.join(POSITIONS)}")
    if "line" in data and data["line"] not in LINES:
        raise ValidationError(f"line must be one of {', '.join(LINES)}")


def _validate_record_fields(data: dict, require: bool):
    if require or "activity" in data:
        _required_text(data, "activity")
    if require or "date" in data:
        if parse_record_date(data.get("date")) is None:
            raise ValidationError("date must be DD/MM/YYYY or an ISO timestamp")


# ── Rollers ───────────────────────────────────────────────────────────────────

def create_roller(store, actor: dict, data: dict, clock=utc_now) -> dict:
    _require_role(actor, ADMIN, EDITOR)
    _required_text(data, "rollerNumber")
    _validate_roller_fields(data)
    doc = {k: v for k, v in data.items() if k not in _ROLLER_PROTECTED}
    doc.update({
        "status": PENDING,
        "currentStatus": None,
        "createdBy": _uid(actor),
        "createdAt": to_iso(clock()),
    })
    doc["id"] = store.upsert_roller(doc)
    log.info("Roller %s created by %s", doc["rollerNumber"], _uid(actor),
             extra={"roller_id": doc["id"]})
    return doc


def update_roller(store, actor: dict, roller_id: str, data: dict, clock=utc_now) -> dict:
    roller = _get_roller(store, roller_id)
    role = (actor or {}).get("role")
    if not (role == ADMIN or (role == EDITOR and roller.get("status") == PENDING)):
        raise PermissionDenied("only Admin, or Editor while the roller is Pending")
    _validate_roller_fields(data)
    changes = {k: v for k, v in data.items() if k not in _ROLLER_PROTECTED}
    if role == ADMIN and data.get("status") in ROLLER_STATUSES:
        changes["status"] = data["status"]
    changes["lastUpdated"] = to_iso(clock())
    store.update_roller(roller_id, changes)
    return store.get_roller(roller_id)


def approve_roller(store, actor: dict, roller_id: str, clock=utc_now) -> dict:
    _require_role(actor, ADMIN, APPROVER)
    _get_roller(store, roller_id)
    store.update_roller(roller_id, {"status": APPROVED, "lastUpdated": to_iso(clock())})
    log.info("Roller %s approved by %s", roller_id, _uid(actor),
             extra={"roller_id": roller_id})
    return store.get_roller(roller_id)


# ── Activity records ──────────────────────────────────────────────────────────

def add_record(store, actor: dict, roller_id: str, data: dict, clock=utc_now) -> dict:
    _require_role(actor, ADMIN, EDITOR)
    _get_roller(store, roller_id)
    _validate_record_fields(data, require=True)
    now = to_iso(clock())
    doc = {k: v for k, v in data.items() if k not in _RECORD_PROTECTED}
    doc.update({"status": PENDING, "createdBy": _uid(actor), "createdAt": now})
    doc["id"] = store.upsert_record(roller_id, doc)
    doc["rollerId"] = roller_id
    # assumes the new record is the latest one logged
    store.update_roller(roller_id, {"currentStatus": doc["activity"], "lastUpdated": now})
    log.info("Record %s (%s) added to roller %s", doc["id"], doc["activity"], roller_id,
             extra={"roller_id": roller_id})
    return doc


def edit_record(store, actor: dict, roller_id: str, record_id: str, data: dict,
                clock=utc_now) -> dict:
    _get_roller(store, roller_id)
    record = store.get_record(roller_id, record_id)
    if record is None:
        raise NotFound(f"record {record_id} not found")
    role = (actor or {}).get("role")
    if not (role == ADMIN or (role == EDITOR and record.get("status") == PENDING)):
        raise PermissionDenied("only Admin, or Editor while the record is Pending")
    _validate_record_fields(data, require=False)

    changes = {k: v for k, v in data.items() if k not in _RECORD_PROTECTED}
    if record.get("status") in (APPROVED, REJECTED):
        changes.update({"status": PENDING, "approvedBy": None,
                        "approvedAt": None, "approvalInfo": None})
    store.update_record(roller_id, record_id, changes)
    updated = store.get_record(roller_id, record_id)
    store.update_roller(roller_id, {"currentStatus": updated.get("activity"),
                                    "lastUpdated": to_iso(clock())})
    return updated


def decide_record(store, actor: dict, roller_id: str, record_id: str,
                  approved: bool, remarks: str = None, clock=utc_now) -> dict:
    """Approve or reject a record (Admin/Approver)."""
    _require_role(actor, ADMIN, APPROVER)
    if store.get_record(roller_id, record_id) is None:
        raise NotFound(f"record {record_id} not found")
    now = clock()
    status = APPROVED if approved else REJECTED
    who = (actor or {}).get("email") or _uid(actor)
    store.update_record(roller_id, record_id, {
        "status": status,
        "approvedBy": _uid(actor),
        "approvedAt": to_iso(now),
        "approvalInfo": f"{status} by {who} on {format_day(now)}",
        "remarks": remarks or ("Approved via System" if approved else "Rejected"),
    })
    log.info("Record %s %s by %s", record_id, status.lower(), _uid(actor),
             extra={"roller_id": roller_id, "status": status})
    return store.get_record(roller_id, record_id)


def activity_stats(records: list) -> dict:
    """{activity: {"total": n, "approved": n}}"""
    stats = {}
    for r in records or []:
        activity = r.get("activity")
        if not activity:
            continue
        entry = stats.setdefault(activity, {"total": 0, "approved": 0})
        entry["total"] += 1
        if r.get("status") == APPROVED:
            entry["approved"] += 1
    return stats


def custom_fields(form_configs: dict, system_fields=None) -> list:
    """Distinct non-system field definitions across all activity forms."""
    system = set(system_fields or SYSTEM_FIELDS)
    seen = {}
    for fields in form_configs.values():
        for field in fields or []:
            fid = field.get("id")
            if fid and fid not in system and fid not in seen:
                seen[fid] = field
    return list(seen.values())
