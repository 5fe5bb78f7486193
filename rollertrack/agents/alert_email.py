"""
Delay-alert email content.

Builds the EmailJS template params for one overdue roller:

    title    "{reason} - Roller {rollerNumber}"
    message  HTML body (banner, overdue days, details table)
    name     sender display name
    email    reply-to address
    to_email recipients joined with "; "
"""

import html

from rollertrack.core import config
from rollertrack.core.dates import format_day


def parse_recipients(*fields) -> list:
    """Comma-separated address fields → trimmed, de-duplicated list.

    Order is preserved; duplicates are dropped case-insensitively.
    """
    seen = set()
    out = []
    for field in fields:
        for addr in (field or "").split(","):
            addr = addr.strip()
            if not addr or addr.lower() in seen:
                continue
            seen.add(addr.lower())
            out.append(addr)
    return out


def build_recipients(notify_config: dict) -> str:
    to = (notify_config or {}).get("toEmails") or ""
    cc = (notify_config or {}).get("ccEmails") or ""
    if not to.strip() and config.ALERT_FALLBACK_EMAIL:
        to = config.ALERT_FALLBACK_EMAIL
    return "; ".join(parse_recipients(to, cc))


def roller_label(roller: dict) -> str:
    return str(roller.get("rollerNumber") or roller.get("id") or "")


def build_subject(roller: dict, reason: str) -> str:
    return f"{reason} - Roller {roller_label(roller)}"


def _row(label: str, value) -> str:
    return (f'<tr><td style="padding:6px 10px;color:#555;border-bottom:1px solid #eee">{label}</td>'
            f'<td style="padding:6px 10px;font-weight:600;border-bottom:1px solid #eee">'
            f'{html.escape(str(value or "N/A"))}</td></tr>')


def generate_email_html(roller: dict, reason: str, days: int, record_date=None) -> str:
    number = html.escape(roller_label(roller))
    rows = "".join([
        _row("Current Status", roller.get("currentStatus")),
        _row("Production Line", roller.get("line")),
        _row("Position", roller.get("position")),
        _row("Record Date", format_day(record_date)),
    ])
    link = ""
    if config.APP_BASE_URL and roller.get("id"):
        url = html.escape(f"{config.APP_BASE_URL}/roller/{roller['id']}", quote=True)
        link = (f'<a href="{url}" style="display:inline-block;background:#1976D2;color:#fff;'
                f'padding:10px 20px;border-radius:6px;text-decoration:none;font-weight:600">'
                f'View roller details</a>')

    return f"""<!DOCTYPE html>
<html><body style="font-family:Arial,sans-serif;background:#f4f5f7;color:#222;padding:24px">
<div style="max-width:560px;margin:0 auto;background:#fff;border-radius:10px;overflow:hidden;border:1px solid #ddd">
  <div style="background:#D32F2F;color:#fff;padding:16px 24px">
    <h2 style="margin:0 0 4px">Delay alert for roller</h2>
    <p style="margin:0;font-size:14px">{html.escape(reason)}</p>
  </div>
  <div style="padding:24px">
    <p style="margin:0 0 6px;font-size:18px">Roller <b>{number}</b></p>
    <p style="margin:0 0 20px;color:#D32F2F;font-weight:600">Overdue by {int(days)} days</p>
    <table style="width:100%;border-collapse:collapse;font-size:13px;margin-bottom:20px">{rows}</table>
    {link}
    <p style="color:#888;font-size:11px;margin:20px 0 0">{html.escape(config.ALERT_SENDER_NAME)}: automated alert</p>
  </div>
</div></body></html>"""


def build_template_params(roller: dict, reason: str, days: int, record_date,
                          notify_config: dict) -> dict:
    return {
        "title": build_subject(roller, reason),
        "message": generate_email_html(roller, reason, days, record_date),
        "name": config.ALERT_SENDER_NAME,
        "email": config.ALERT_REPLY_TO,
        "to_email": build_recipients(notify_config),
    }
