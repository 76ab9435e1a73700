"""
API routes (operational endpoints).

Handles:
- /health - Health check endpoint
"""

from flask import Blueprint, current_app

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

api_bp = Blueprint("api", __name__)


@api_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    # Check database
    db_manager = current_app.config.get("DB_MANAGER")
    if db_manager and db_manager.ping():
        health_status["checks"]["database"] = "ok"
    else:
        health_status["checks"]["database"] = "unavailable"
        health_status["status"] = "degraded"

    # Check payment gateway configuration
    if current_app.config.get("PAYMENT_GATEWAY") is not None:
        health_status["checks"]["payment_gateway"] = "configured"
    else:
        health_status["checks"]["payment_gateway"] = "not_configured"
        health_status["status"] = "degraded"

    # Check payment service
    if current_app.config.get("PAYMENT_SERVICE") is not None:
        health_status["checks"]["payment_service"] = "ok"
    else:
        health_status["checks"]["payment_service"] = "not_available"
        health_status["status"] = "degraded"

    if health_status["status"] != "ok":
        logger.warning(f"Health check degraded: {health_status['checks']}")

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
