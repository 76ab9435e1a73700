"""
Flask route blueprints for the Catfecito payments backend.

This module contains all route handlers organized by functionality:
- payments: preference creation, MercadoPago webhook, payment status
- api: operational endpoints (health check)

Each blueprint is registered with the Flask app in create_app().
"""

from .payments import payments_bp
from .api import api_bp

__all__ = [
    "payments_bp",
    "api_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(payments_bp)
    app.register_blueprint(api_bp)
