"""
Dashboard and roller-list views over derived statuses.

Both consume rollertrack.core.status.derive_status; neither computes a label
on its own.
"""

from rollertrack.core.status import LIFECYCLE_LABELS, NO_ACTIVITY, derive_status

LINES = ("SG#1", "SG#2", "SG#3.1", "SG#3.2")
POSITIONS = ("Top", "Bottom")

# dashboard groups SG#3.1 and SG#3.2 under one tile
DASHBOARD_LINES = ("SG#1", "SG#2", "SG#3")
LINE_GROUPS = {"SG#3": ("SG#3.1", "SG#3.2")}


def line_matches(roller_line: str, line_filter: str) -> bool:
    if not line_filter:
        return True
    return roller_line in LINE_GROUPS.get(line_filter, (line_filter,))


def derive_statuses(rollers: list, records_by_roller: dict) -> dict:
    """{roller_id: status dict} for every roller."""
    return {r["id"]: derive_status(records_by_roller.get(r["id"], [])) for r in rollers}


def filter_rollers(rollers: list, statuses: dict, search: str = "",
                   line: str = "", position: str = "", status: str = "") -> list:
    """Roller list filters: free-text search, line (with SG#3 grouping),
    position, and derived lifecycle label."""
    term = (search or "").strip().lower()
    out = []
    for roller in rollers:
        if term:
            haystack = " ".join(str(roller.get(k) or "") for k in
                                ("rollerNumber", "make", "design")).lower()
            if term not in haystack:
                continue
        if not line_matches(roller.get("line"), line):
            continue
        if position and roller.get("position") != position:
            continue
        if status:
            label = (statuses.get(roller["id"]) or {}).get("label", NO_ACTIVITY)
            if label != status:
                continue
        out.append(roller)
    return out


def dashboard_summary(rollers: list, records_by_roller: dict) -> dict:
    """Per position, per dashboard line: total rollers and count per label.

    Returns {"Top": {"SG#1": {"total": n, "counts": {label: n}}, ...}, "Bottom": {...}}
    """
    statuses = derive_statuses(rollers, records_by_roller)
    summary = {}
    for position in POSITIONS:
        summary[position] = {}
        for line in DASHBOARD_LINES:
            group = [r for r in rollers
                     if r.get("position") == position and line_matches(r.get("line"), line)]
            counts = {label: 0 for label in LIFECYCLE_LABELS}
            for roller in group:
                label = statuses[roller["id"]]["label"]
                if label in counts:
                    counts[label] += 1
            summary[position][line] = {"total": len(group), "counts": counts}
    return summary
