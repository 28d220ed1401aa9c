"""
Flask API server for the MinuteMaster recording wizard.

The application factory wires the JSON API blueprint, session
authentication, CORS and the shared ServerState. Storage is Firebase when
a service account is configured and local directories otherwise.
"""

import logging
import secrets
import warnings
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from ..config import ConfigManager
from .auth import bcrypt
from .routes import api
from .state import GLOBAL_OWNER, ServerState

logger = logging.getLogger(__name__)

# Suppress noisy third-party warnings for cleaner logs
warnings.filterwarnings("ignore", category=UserWarning, module="google.cloud.firestore_v1")


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging and reduce werkzeug request logs to the same level."""
    log_level = (level or ConfigManager.get("LOG_LEVEL")).upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.setLevel(max(numeric_level, logging.WARNING))


def default_config() -> Dict[str, Any]:
    return {
        "SECRET_KEY": ConfigManager.get("SECRET_KEY"),
        "REQUIRE_AUTH": ConfigManager.get_bool("REQUIRE_AUTH"),
        "MAX_CONTENT_LENGTH": ConfigManager.get_int("MAX_UPLOAD_MB") * 1024 * 1024,
        "DATA_DIR": ConfigManager.get("DATA_DIR"),
        "CONFIG_FILE": ConfigManager.get("CONFIG_FILE"),
        "RECORDINGS_DIR": ConfigManager.get("RECORDINGS_DIR"),
        "FIREBASE_CREDENTIALS": ConfigManager.get("FIREBASE_CREDENTIALS"),
        "FIREBASE_STORAGE_BUCKET": ConfigManager.get("FIREBASE_STORAGE_BUCKET"),
        "LLM_MODEL": ConfigManager.get("LLM_MODEL"),
        "TRANSCRIPTION_MODEL": ConfigManager.get("TRANSCRIPTION_MODEL"),
        "LLM_API_BASE_URL": ConfigManager.get("LLM_API_BASE_URL"),
        "OPENAI_API_KEY": ConfigManager.get("OPENAI_API_KEY"),
    }


def create_app(config_overrides: Optional[Dict[str, Any]] = None, state: Optional[ServerState] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        config_overrides: Values replacing the ConfigManager-derived settings
        state: Prebuilt ServerState (tests); built from the config otherwise

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)
    app.config.update(default_config())
    if config_overrides:
        app.config.update(config_overrides)

    if not app.config.get("SECRET_KEY"):
        # Sessions signed with this key do not survive a restart
        app.config["SECRET_KEY"] = secrets.token_hex(32)
        logger.warning("SECRET_KEY is not set; using a random key for this process")

    CORS(app, supports_credentials=True)
    bcrypt.init_app(app)

    if state is None:
        state = ServerState.from_config(app.config)
    app.extensions["minutemaster"] = state

    if not app.config["REQUIRE_AUTH"] and app.config.get("OPENAI_API_KEY"):
        state.init_services(GLOBAL_OWNER, app.config["OPENAI_API_KEY"])

    app.register_blueprint(api)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        # Routing errors (404, 405) never reach the blueprint handlers
        if request.path.startswith("/api/"):
            return jsonify({"success": False, "error": e.description or e.name}), e.code or 500
        return e

    logger.info(
        f"Server configured (auth {'enabled' if app.config['REQUIRE_AUTH'] else 'disabled'}, "
        f"storage: {'firebase' if state.firebase_configured else 'local'})"
    )
    return app


def main() -> None:
    configure_logging()

    app = create_app()
    host = ConfigManager.get("HOST")
    port = ConfigManager.get_int("PORT")

    logger.info(f"Starting MinuteMaster server on {host}:{port}")
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
