"""Flask application factory."""

import json
import os
from flask import Flask
from flask_cors import CORS

from services.identity import IdentityClient
from services.store import TrackerStore

CONFIG_PATH = os.path.join(
    os.path.dirname(__file__), "..", "config", "tracker-config.json"
)

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def load_tracker_config(app):
    """Load tracker settings from the config file, then apply env overrides."""
    config = {}

    if os.path.exists(CONFIG_PATH):
        try:
            with open(CONFIG_PATH, "r") as f:
                config = json.load(f)
                app.logger.info(f"Loaded tracker config from {CONFIG_PATH}")
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load tracker config: {e}")
            config = {}
    else:
        app.logger.info("No tracker-config.json found, using defaults")

    app.config["CORS_ORIGINS"] = config.get("corsOrigins", DEFAULT_CORS_ORIGINS)
    app.config["SEED_FILE"] = os.environ.get("TRACKER_SEED_FILE", config.get("seedFile"))
    app.config["IDENTITY_API_URL"] = os.environ.get(
        "IDENTITY_API_URL", config.get("identityApiUrl", "https://api.clerk.com")
    )
    app.config["IDENTITY_SECRET_KEY"] = os.environ.get("IDENTITY_SECRET_KEY", "")


def _build_store(app):
    seed_file = app.config.get("SEED_FILE")
    if seed_file:
        # Relative paths are resolved against the backend directory
        if not os.path.isabs(seed_file):
            seed_file = os.path.join(os.path.dirname(__file__), "..", seed_file)
        try:
            return TrackerStore.from_seed_file(seed_file)
        except (json.JSONDecodeError, IOError) as e:
            app.logger.warning(f"Failed to load seed file {seed_file}: {e}")
    return TrackerStore()


def create_app(store=None, identity_client=None):
    """Create and configure the Flask application.

    Args:
        store: Data store to serve from; built from the seed file when omitted
        identity_client: Identity provider client; built from config when omitted
    """
    app = Flask(__name__)

    load_tracker_config(app)

    # Enable CORS for frontend
    CORS(app, resources={
        r"/api/*": {
            "origins": app.config["CORS_ORIGINS"],
            "methods": ["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": [
                "Content-Type",
                "X-Session-Id", "X-Organization-Id"
            ]
        }
    })

    app.extensions["tracker_store"] = store if store is not None else _build_store(app)
    app.extensions["identity_client"] = identity_client or IdentityClient(
        app.config["IDENTITY_API_URL"], app.config["IDENTITY_SECRET_KEY"]
    )

    # Register blueprints
    from app.api import auth, analytics, issues, forms
    app.register_blueprint(auth.bp)
    app.register_blueprint(analytics.bp)
    app.register_blueprint(issues.bp)
    app.register_blueprint(forms.bp)

    # Health check endpoint
    @app.route("/health")
    def health():
        return {"status": "ok"}

    return app
