"""
LeadCapture API - Flask Application Entry Point.

Captures photos of business cards, signs and banners, extracts contact
details with Gemini and keeps them as a local list of leads.
"""

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify
from flask_cors import CORS

from config import Config, get_config
from api.routes import api_bp

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=Config.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def create_app(config_name: str = None, overrides: Optional[Dict[str, Any]] = None) -> Flask:
    """Application factory for creating Flask app.

    Args:
        config_name: Configuration name (development, production, testing)
        overrides: Config values applied on top of the configuration class

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)

    # Load configuration
    config_class = get_config(config_name)
    config_class.init_app(app, overrides)

    # Enable CORS
    CORS(app, resources={
        r"/api/*": {
            "origins": "*",
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }
    })

    # Register blueprints
    app.register_blueprint(api_bp)

    # API info endpoint
    @app.route("/")
    @app.route("/api/info")
    def api_info():
        """API information endpoint."""
        return jsonify({
            "name": "LeadCapture API",
            "version": "1.0.0",
            "description": "Capture business cards and keep them as leads",
            "endpoints": {
                "health": "/api/health",
                "status": "/api/status",
                "capture": "POST /api/capture",
                "review": "GET /api/review",
                "confirm_review": "POST /api/review/confirm",
                "discard_review": "POST /api/review/discard",
                "records": "GET|DELETE /api/records",
                "record": "GET|PUT|DELETE /api/records/<id>",
                "share": "GET /api/records/<id>/share",
                "export": "GET /api/records/export?format=xlsx|csv",
                "stats": "GET /api/stats",
                "settings": "GET /api/settings",
                "auto_save": "POST /api/settings/auto-save"
            }
        })

    # Favicon handler (prevents 404 errors from browsers)
    @app.route("/favicon.ico")
    def favicon():
        """Return empty response for favicon requests."""
        return "", 204

    # Global error handlers
    @app.errorhandler(404)
    def not_found(error):
        """Handle 404 errors."""
        return jsonify({
            "success": False,
            "error": "Not found"
        }), 404

    @app.errorhandler(413)
    def request_entity_too_large(error):
        """Handle file too large errors."""
        return jsonify({
            "success": False,
            "error": f"File too large. Maximum size: {Config.MAX_CONTENT_LENGTH // (1024*1024)}MB"
        }), 413

    @app.errorhandler(500)
    def internal_error(error):
        """Handle 500 errors."""
        logger.error(f"Internal error: {str(error)}")
        return jsonify({
            "success": False,
            "error": "Internal server error"
        }), 500

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Handle uncaught exceptions."""
        # HTTP errors keep their own status code
        if hasattr(error, "code") and isinstance(error.code, int):
            return jsonify({
                "success": False,
                "error": getattr(error, "description", str(error))
            }), error.code
        logger.error(f"Uncaught exception: {str(error)}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "An unexpected error occurred"
        }), 500

    logger.info(f"Application created with config: {config_class.__name__}")

    return app


if __name__ == "__main__":
    # Get port from environment or default to 5000
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("LEADCAPTURE_DEBUG", "True").lower() == "true"

    logger.info(f"Starting server on port {port}, debug={debug}")

    create_app().run(
        host="0.0.0.0",
        port=port,
        debug=debug
    )
