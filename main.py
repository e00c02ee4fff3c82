"""
ZipRoute – main application entry point

* Flask app exposing the route planner blueprint under `/planner`.
* One planning session (geocode caches + current route) per browser
  session, kept in process memory.
"""

import os
import logging

from flask import Flask
from flask_cors import CORS
from dotenv import load_dotenv

# --------------------------------------------------------------------------- #
# Environment & logging
# --------------------------------------------------------------------------- #
load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from ziproute.api.config import get_port, validate_planner_config  # noqa: E402
from ziproute.routes.planner import create_planner_blueprint  # noqa: E402


def create_app(**blueprint_options) -> Flask:
    """Build the Flask application.

    Keyword arguments are passed through to create_planner_blueprint so
    collaborators (identity, persistence, session manager) can be injected.
    """
    app = Flask(__name__)

    flask_secret_key = os.getenv("FLASK_SECRET_KEY") or os.urandom(32).hex()
    if "FLASK_SECRET_KEY" not in os.environ:
        logger.warning("No FLASK_SECRET_KEY found. Generated a temporary key.")
    app.secret_key = flask_secret_key

    app.config.update(
        SESSION_COOKIE_SECURE=False,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=86400,
    )

    # CORS for local dev / cross‑origin front‑end requests
    CORS(app, origins="*", supports_credentials=True)

    app.register_blueprint(create_planner_blueprint(**blueprint_options))

    @app.route("/debug")
    def debug():
        """Simple JSON health endpoint."""
        return {
            "status": "ok",
            "endpoints": {
                "optimize": "/planner/api/optimize",
                "export": "/planner/api/export",
                "extract": "/planner/api/extract",
            },
        }

    return app


# --------------------------------------------------------------------------- #
# Local development runner ( `python main.py` )
# --------------------------------------------------------------------------- #
if __name__ == "__main__":
    validate_planner_config()
    port = get_port()
    logger.info("Starting route planner on http://localhost:%d", port)
    create_app().run(host="0.0.0.0", port=port, debug=False)
