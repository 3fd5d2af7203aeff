"""
Configuration management for the LeadCapture API.

Handles environment variables, API keys, storage locations and logging.
"""

import os
import logging
from typing import Any, Mapping, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


class Config:
    """Application configuration class.

    Attributes:
        DEBUG: Enable debug mode
        TESTING: Enable testing mode
        SECRET_KEY: Flask secret key
        MAX_CONTENT_LENGTH: Maximum upload file size (16MB default)
        DATA_FOLDER: Directory holding the record and settings documents
        OUTPUT_FOLDER: Directory for generated spreadsheet exports
        ALLOWED_EXTENSIONS: Allowed image file extensions
    """

    # Flask Settings
    DEBUG: bool = os.getenv("LEADCAPTURE_DEBUG", "False").lower() == "true"
    TESTING: bool = os.getenv("LEADCAPTURE_TESTING", "False").lower() == "true"
    SECRET_KEY: str = os.getenv("LEADCAPTURE_SECRET_KEY", "dev-secret-key-change-in-production")

    # File Upload Settings
    MAX_CONTENT_LENGTH: int = 16 * 1024 * 1024  # 16MB max file size
    ALLOWED_EXTENSIONS: set = {"png", "jpg", "jpeg", "gif", "bmp", "webp"}

    # Storage
    DATA_FOLDER: str = os.getenv("LEADCAPTURE_DATA_FOLDER", "data")
    OUTPUT_FOLDER: str = os.getenv("LEADCAPTURE_OUTPUT_FOLDER", "outputs")
    CONTACTS_FILE: str = "contacts.json"
    SETTINGS_FILE: str = "settings.json"

    # Gemini
    GOOGLE_API_KEY: Optional[str] = os.getenv("GOOGLE_API_KEY") or os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.getenv("LEADCAPTURE_GEMINI_MODEL", "gemini-2.5-flash")

    # Logging
    LOG_LEVEL: str = os.getenv("LEADCAPTURE_LOG_LEVEL", "INFO")
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def init_app(cls, app, overrides: Optional[dict] = None) -> None:
        """Initialize Flask app with configuration.

        Args:
            app: Flask application instance
            overrides: Values applied on top of the class attributes
        """
        app.config.from_object(cls)
        if overrides:
            app.config.update(overrides)

        # Create required directories
        os.makedirs(app.config["DATA_FOLDER"], exist_ok=True)
        os.makedirs(app.config["OUTPUT_FOLDER"], exist_ok=True)

        # Configure logging
        logging.basicConfig(
            level=getattr(logging, cls.LOG_LEVEL.upper()),
            format=cls.LOG_FORMAT
        )

        logger.info("Configuration initialized successfully")

    @classmethod
    def is_allowed_file(cls, filename: str) -> bool:
        """Check if file extension is allowed.

        Args:
            filename: Name of the file to check

        Returns:
            True if file extension is allowed, False otherwise
        """
        return "." in filename and \
            filename.rsplit(".", 1)[1].lower() in cls.ALLOWED_EXTENSIONS

    @classmethod
    def get_api_status(cls, app_config: Optional[Mapping[str, Any]] = None) -> dict:
        """Get status of configured API keys.

        Args:
            app_config: Application config to read keys from (falls back to
                the class attributes)

        Returns:
            Dictionary with API availability status
        """
        source = app_config if app_config is not None else {}
        api_key = source.get("GOOGLE_API_KEY", cls.GOOGLE_API_KEY)
        return {
            "gemini_api": bool(api_key)
        }


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = "DEBUG"


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    LOG_LEVEL = "INFO"


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    DEBUG = True
    LOG_LEVEL = "DEBUG"


# Configuration mapping
config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> Config:
    """Get configuration class by name.

    Args:
        config_name: Configuration name (development, production, testing)

    Returns:
        Configuration class
    """
    if config_name is None:
        config_name = os.getenv("LEADCAPTURE_ENV", "development")
    return config_by_name.get(config_name, DevelopmentConfig)
