"""
Catfecito payments backend - Flask Application Entry Point.

This is a slim app factory that:
1. Initializes the database (fail-fast)
2. Creates the MercadoPago gateway (fail-fast without an access token)
3. Creates the payment service
4. Registers route blueprints
5. Sets up request ids and JSON error handlers

ARCHITECTURE:
    Flask request (one thread per request)
    ├── login_required -> g.user_id from bearer token
    ├── PaymentService -> own SQLAlchemy session per call
    └── MercadoPagoGateway -> MercadoPago REST API

    Database engine created at startup, disposed on shutdown.
"""

from __future__ import annotations

import atexit
import logging
import os
import uuid
from typing import Optional, Union

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from config import config_for_environment
from logging_config import setup_logging, get_logger
from core.database import DatabaseManager
from core.exceptions import CatfecitoError, DatabaseUnavailableError
from core.payment_gateway import MercadoPagoGateway
from services.payment_service import PaymentService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def create_app(
    config_object: Union[str, type, None] = None,
    payment_gateway: Optional[MercadoPagoGateway] = None,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    FAIL-FAST: If the database cannot be reached or no MercadoPago
    access token is configured, the app will not start.

    Args:
        config_object: Config class or its import path
            (defaults to the class selected by FLASK_ENV)
        payment_gateway: Gateway to use instead of building one from config
            (tests pass a mock here)

    Returns:
        Configured Flask application

    Raises:
        DatabaseUnavailableError: If the database cannot be reached
        ValueError: If MERCADOPAGO_ACCESS_TOKEN is not set or FLASK_ENV is unknown
    """
    load_dotenv(override=True)

    if config_object is None:
        config_object = config_for_environment()

    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(
        log_level=log_level,
        enable_file_logging=enable_file_logging
    )

    # Set Flask's logger to use our configured logger
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting Catfecito payments in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE INITIALIZATION (FAIL-FAST)
    # =========================================================================

    db_manager = DatabaseManager(
        app.config["DATABASE_URL"],
        echo=app.config.get("DATABASE_ECHO", False),
        logger=get_logger("core.database"),
    )

    try:
        db_manager.initialize()
    except DatabaseUnavailableError as e:
        logger.error(f"FATAL: Cannot start application - {e}")
        raise

    app.config["DB_MANAGER"] = db_manager

    if payment_gateway is None:
        try:
            payment_gateway = MercadoPagoGateway(
                app.config.get("MERCADOPAGO_ACCESS_TOKEN", ""),
                logger=get_logger("core.payment_gateway"),
            )
        except ValueError as e:
            logger.error(f"FATAL: Cannot start application - {e}")
            db_manager.cleanup()
            raise

    app.config["PAYMENT_GATEWAY"] = payment_gateway

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    payment_service = PaymentService.from_config(db_manager, payment_gateway, app.config)
    app.config["PAYMENT_SERVICE"] = payment_service
    logger.info("Payment service initialized")

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        db_manager.cleanup()
        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # REQUEST CONTEXT
    # =========================================================================

    @app.before_request
    def assign_request_id():
        """Tag the request so every log line can be correlated."""
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]

    @app.after_request
    def add_request_id_header(response):
        response.headers["X-Request-ID"] = g.get("request_id", "")
        return response

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(CatfecitoError)
    def handle_app_error(e: CatfecitoError):
        if e.status_code >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}")
        else:
            logger.warning(f"{request.method} {request.path} rejected ({e.status_code}): {e}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"message": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        logger.error(f"500 error on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({"message": "Internal server error"}), 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", "3000"))
    app.run(debug=app.config.get("DEBUG", False), port=port)
