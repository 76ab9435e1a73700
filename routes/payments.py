"""
Payment routes.

Handles:
- POST /api/payments/create-preference - Create a MercadoPago preference (auth)
- POST /api/payments/webhook           - MercadoPago notifications (no auth)
- GET  /api/payments/status/<order_id> - Stored payment status of an order (auth)

Business errors (CatfecitoError) propagate to the JSON error handler
registered in create_app(). The webhook never fails from MercadoPago's
point of view: it always answers 200 so the provider does not retry.
"""

from flask import (
    Blueprint,
    current_app,
    g,
    jsonify,
    request,
)

from core.auth import login_required
from core.exceptions import ValidationError
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _payment_service():
    return current_app.config["PAYMENT_SERVICE"]


@payments_bp.route("/create-preference", methods=["POST"])
@login_required
def create_preference():
    """
    Create a payment preference for one of the user's orders.

    Body: {"order_id": <int>}
    Returns the preference id and the checkout URL (init_point).
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    order_id = payload.get("order_id")

    logger.info(f"User {g.user_id} requested preference for order {order_id}")

    result = _payment_service().create_preference(g.user_id, order_id)
    return jsonify(result), 200


@payments_bp.route("/webhook", methods=["POST"])
def webhook():
    """
    Receive a MercadoPago notification.

    Always answers 200 {"success": true}; the outcome is only logged.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        body = {}

    try:
        _payment_service().process_webhook(body, request.args)
    except Exception as e:
        logger.error(f"Webhook handler error: {e}", exc_info=True)

    return jsonify({"success": True}), 200


@payments_bp.route("/status/<order_id>", methods=["GET"])
@login_required
def payment_status(order_id: str):
    """Return the stored payment fields of one of the user's orders."""
    order = _payment_service().get_payment_status(g.user_id, order_id)
    return jsonify({"success": True, "order": order}), 200
