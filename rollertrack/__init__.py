"""
Roller Tracker — roller inventory, activity approvals, and delay alerts

Packages:
    core/       Paths, document store, dates, config, status derivation, workflow
    agents/     Cooldown ledger, alert email payloads, EmailJS transport, daily sweep
    api/        Flask routes for rollers, records, dashboard, settings and alerts
"""
