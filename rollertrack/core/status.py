"""
Lifecycle status derivation.

A roller's lifecycle label ("Running", "Ready to Use", ...) comes from its
most recent *approved* activity record. This module is the only place that
mapping lives: the dashboard tiles, the roller list filter and the roller
detail page all call derive_status().

Not to be confused with roller["currentStatus"], which is simply the activity
type of the last record logged (approved or not) and is what the delay
alerts key on.
"""

from rollertrack.core.dates import EPOCH, parse_record_date

APPROVED = "Approved"

NO_ACTIVITY = "No Activity"
RUNNING = "Running"
UNDER_MAINTENANCE = "Under maintenance"
TO_BE_SENT = "To be sent"
READY_TO_USE = "Ready to Use"

LIFECYCLE_LABELS = (RUNNING, UNDER_MAINTENANCE, TO_BE_SENT, READY_TO_USE, NO_ACTIVITY)

STATUS_COLORS = {
    "blue": "#42A5F5",
    "yellow": "#FDD835",
    "orange": "#FF9800",
    "green": "#66BB6A",
    "grey": "#9E9E9E",
}

# Records of this activity carry a "ready to use" form field whose id is
# generated by the form editor, e.g. "ready_to_use_1732791234". It is found
# by case-insensitive prefix match on the field id.
ROLLER_RECEIVED = "Roller Received"
READY_TO_USE_PREFIX = "ready_to_use"

_ACTIVITY_STATUS = {
    "Production Start": (RUNNING, "blue"),
    "Production End": (TO_BE_SENT, "orange"),
    "Roller sent": (UNDER_MAINTENANCE, "yellow"),
    "Roller Sent": (UNDER_MAINTENANCE, "yellow"),
}


def ready_to_use_value(record: dict):
    """Value of the first field whose id starts with 'ready_to_use', or None."""
    for key in record:
        if isinstance(key, str) and key.lower().startswith(READY_TO_USE_PREFIX):
            return record[key]
    return None


def _latest_key(record: dict):
    return (parse_record_date(record.get("date")) or EPOCH, str(record.get("id") or ""))


def latest_approved_record(records: list) -> dict | None:
    """Approved record with the greatest parsed date.

    Undated records sort as the epoch. Equal dates are broken by record id
    (greatest wins) so the result never depends on store ordering.
    """
    approved = [r for r in records or [] if r.get("status") == APPROVED]
    if not approved:
        return None
    return max(approved, key=_latest_key)


def status_for_record(record: dict | None) -> dict:
    if record is None:
        return _status(NO_ACTIVITY, "grey")
    activity = record.get("activity")
    if activity == ROLLER_RECEIVED:
        if ready_to_use_value(record) == "Yes":
            return _status(READY_TO_USE, "green")
        return _status(UNDER_MAINTENANCE, "yellow")
    if activity in _ACTIVITY_STATUS:
        return _status(*_ACTIVITY_STATUS[activity])
    return _status(activity or NO_ACTIVITY, "grey")


def derive_status(records: list) -> dict:
    """records (any order) → {"label", "color", "hex"}"""
    return status_for_record(latest_approved_record(records))


def _status(label: str, color: str) -> dict:
    return {"label": label, "color": color, "hex": STATUS_COLORS[color]}
