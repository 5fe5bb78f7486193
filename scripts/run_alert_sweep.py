#!/usr/bin/env python3
"""Run one roller delay-alert sweep and exit. For an external cron.

Usage: python scripts/run_alert_sweep.py [--json]

Railway cron example (09:00 IST):  0 3 * * *  python scripts/run_alert_sweep.py
"""
import argparse
import json
import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, REPO_ROOT)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the roller delay-alert sweep once.")
    parser.add_argument("--json", action="store_true", help="print the result as JSON")
    args = parser.parse_args(argv)

    from logging_config import setup_logging
    from rollertrack.agents.alert_scheduler import run_daily_alerts
    from rollertrack.core.db import startup

    setup_logging()
    startup()
    result = run_daily_alerts()
    if args.json:
        print(json.dumps(result))
    else:
        print(f"checked={result['checked']} alertsSent={result['alertsSent']} "
              f"delivered={result['delivered']} suppressed={result['suppressed']} "
              f"errors={result['errors']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
