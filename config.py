"""
Configuration for the Catfecito payments backend.

Values come from the environment (optionally a .env file). The app
fails fast at startup if the database cannot be reached.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    TESTING = False

    # Database
    DATABASE_URL = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'catfecito.db'}"
    )
    DATABASE_ECHO = os.environ.get("DATABASE_ECHO", "0") == "1"

    # ==========================================================================
    # MercadoPago
    # ==========================================================================
    # MERCADOPAGO_ACCESS_TOKEN: private access token of the seller account
    #   (TEST-... tokens for sandbox)
    # CURRENCY_ID: currency of every preference item; must match the
    #   account's country (ARS for Argentina)
    # BACKEND_URL: public URL of this backend, used to build the
    #   notification_url MercadoPago calls
    # FRONTEND_URL: storefront URL for back_urls; leave empty in local
    #   development (MercadoPago rejects localhost back_urls with auto_return)
    # ==========================================================================
    MERCADOPAGO_ACCESS_TOKEN = os.environ.get("MERCADOPAGO_ACCESS_TOKEN", "")
    CURRENCY_ID = os.environ.get("CURRENCY_ID", "ARS")
    BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:3000")
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "")
    STATEMENT_DESCRIPTOR = os.environ.get("STATEMENT_DESCRIPTOR", "CATFECITO")

    # Authentication (tokens issued by the storefront login)
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET", "dev-jwt-secret")
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_MINUTES = int(os.environ.get("JWT_EXPIRES_MINUTES", "1440"))


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "production"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False
    ENVIRONMENT = "development"


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ENVIRONMENT = "testing"
    DATABASE_URL = "sqlite://"
    DATABASE_ECHO = False
    MERCADOPAGO_ACCESS_TOKEN = "TEST-access-token"
    CURRENCY_ID = "ARS"
    BACKEND_URL = "https://api.catfecito.test"
    FRONTEND_URL = ""
    JWT_SECRET_KEY = "test-jwt-secret"
    JWT_EXPIRES_MINUTES = 60


CONFIGS = {
    "production": ProductionConfig,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
}


def config_for_environment(environment=None):
    """
    Select the config class for an environment name.

    Args:
        environment: production, development or testing
            (defaults to FLASK_ENV, then development)

    Raises:
        ValueError: If the environment name is unknown
    """
    environment = environment or os.environ.get("FLASK_ENV", "development")
    try:
        return CONFIGS[environment]
    except KeyError:
        raise ValueError(
            f"Unknown FLASK_ENV '{environment}' - expected one of: {', '.join(CONFIGS)}"
        ) from None
