"""
API gateway: combines the auth and events blueprints.
This is the local entrypoint for development.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from ticketing import config
from ticketing.auth_service.revocation import RevocationPruner
from ticketing.auth_service.routes import auth_bp
from ticketing.database.db_connection import init_db
from ticketing.errors import TicketingError
from ticketing.events_service.routes import events_bp

# Basic console logging during API requests
logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")


def register_error_handlers(app: Flask) -> None:
    """
    Map service errors to JSON responses. Internal details never reach the client.
    """

    @app.errorhandler(TicketingError)
    def handle_ticketing_error(error: TicketingError) -> Tuple[Response, int]:
        if error.status_code >= 500:
            logging.error(f"[Gateway] {error.kind}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException) -> Tuple[Response, int]:
        return jsonify({"error": error.description, "kind": "http"}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> Tuple[Response, int]:
        logging.exception(f"[Gateway] Unhandled error: {error}")
        return jsonify({"error": "Internal server error", "kind": "internal"}), 500


def create_app(overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        overrides (dict, optional): Flask config values, e.g. TESTING or
            REVOCATION_PRUNER_ENABLED.

    Returns:
        Flask: The configured Flask application.
    """
    app = Flask(__name__)
    app.config["REVOCATION_PRUNER_ENABLED"] = True
    app.config.update(overrides or {})

    CORS(app, resources={
        r"/*": {
            "origins": config.CORS_ORIGINS,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "expose_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True
        }
    })

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(events_bp, url_prefix="/events")
    register_error_handlers(app)
    logging.info("All blueprints registered successfully.")

    # Create tables if they don't exist yet
    init_db()

    if app.config["REVOCATION_PRUNER_ENABLED"] and not app.config.get("TESTING"):
        pruner = RevocationPruner()
        pruner.start()
        app.extensions["revocation_pruner"] = pruner

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "gateway_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    return app


def main() -> None:
    app = create_app()
    app.run(host="0.0.0.0", port=config.GATEWAY_PORT)


if __name__ == "__main__":
    main()
