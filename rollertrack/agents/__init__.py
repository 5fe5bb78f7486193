"""Background jobs and outbound integrations.

Modules:
    cooldown          — per (roller, status) alert cooldown ledger
    alert_email       — delay alert subject, HTML body, recipients
    emailer           — EmailJS REST transport
    alert_scheduler   — daily delay sweep + background thread
"""
