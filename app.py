#!/usr/bin/env python3
"""
Roller Tracker — Application Entry Point
Creates the Flask app, opens the store and registers the API Blueprint.
"""

import os
import logging
from flask import Flask

log = logging.getLogger("rollertrack")


def create_app(start_background: bool = None):
    """Application factory."""
    from logging_config import setup_logging
    from rollertrack.core import config, paths

    setup_logging()
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY", "rollertrack-dev")

    check = paths.validate_paths(paths.ensure_dirs())
    for warning in check["warnings"]:
        log.warning("PATHS: %s", warning)
    for error in check["errors"]:
        log.error("PATHS: %s", error)

    from rollertrack.core.db import startup as db_startup
    result = db_startup()
    log.info("DB: %s | rollers=%d records=%d",
             result["db_path"], result["stats"].get("rollers", 0),
             result["stats"].get("records", 0))

    from rollertrack.api.routes import bp
    app.register_blueprint(bp)

    if start_background is None:
        start_background = config.ENABLE_ALERT_SCHEDULER
    if start_background:
        from rollertrack.agents.alert_scheduler import start_scheduler
        start_scheduler()

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=False)
