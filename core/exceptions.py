"""
Custom exceptions for the Catfecito payments backend.

Exception Hierarchy:
    CatfecitoError (base)
    ├── DatabaseUnavailableError - Database cannot be reached (startup failure)
    ├── ValidationError          - Request is missing required data (400)
    ├── AuthenticationError      - Missing or invalid bearer token (401)
    ├── OrderNotFoundError       - Order missing or owned by another user (404)
    ├── InvalidOrderStateError   - Order cannot be paid in its state (400)
    │   ├── OrderAlreadyPaidError - Order already settled
    │   └── EmptyOrderError       - Order has no items
    └── PaymentGatewayError      - MercadoPago call failed (502)

Usage:
    Startup errors (DatabaseUnavailableError) cause the app to fail fast.
    Runtime errors carry an HTTP status_code and are rendered as JSON
    by the error handler registered in create_app().
"""

from typing import Optional, Dict, Any


class CatfecitoError(Exception):
    """
    Base exception for all Catfecito errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable response body."""
        body: Dict[str, Any] = {"message": self.message}
        if self.details:
            body["error"] = self.details
        return body


# =============================================================================
# STARTUP ERRORS - Application will not start if these occur
# =============================================================================

class DatabaseUnavailableError(CatfecitoError):
    """
    The relational store could not be reached or initialized.

    This is a FATAL error at startup. Typical causes:
    - Wrong DATABASE_URL in .env
    - Database server not running
    """

    status_code = 503

    def __init__(self, database_url: str, reason: str = ""):
        message = f"Database unavailable: {reason}" if reason else "Database unavailable"
        details = {
            "database_url": database_url,
            "resolution": "Check DATABASE_URL in .env and that the database is running",
        }
        super().__init__(message, details)
        self.database_url = database_url


# =============================================================================
# RUNTIME ERRORS - Request fails, application continues
# =============================================================================

class ValidationError(CatfecitoError):
    """A request is missing a required field or carries an invalid value."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else None
        super().__init__(message, details)
        self.field = field


class AuthenticationError(CatfecitoError):
    """Bearer token missing, malformed or expired."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class OrderNotFoundError(CatfecitoError):
    """
    Order does not exist or does not belong to the requesting user.

    Both cases produce the same error so that a caller cannot test
    for the existence of other users' orders.
    """

    status_code = 404

    def __init__(self, order_id: Any):
        super().__init__("Order not found", {"order_id": order_id})
        self.order_id = order_id


class InvalidOrderStateError(CatfecitoError):
    """
    Base class for orders that cannot be sent to payment.

    Subclasses name the specific reason.
    """

    status_code = 400

    def __init__(self, message: str, order_id: Any, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["order_id"] = order_id
        super().__init__(message, error_details)
        self.order_id = order_id


class OrderAlreadyPaidError(InvalidOrderStateError):
    """The order's payment was already approved."""

    def __init__(self, order_id: Any, status: str = "", payment_status: str = ""):
        details = {"status": status, "payment_status": payment_status}
        super().__init__("This order has already been paid", order_id, details)


class EmptyOrderError(InvalidOrderStateError):
    """The order has no line items to charge for."""

    def __init__(self, order_id: Any):
        super().__init__("The order has no items", order_id)


class PaymentGatewayError(CatfecitoError):
    """
    MercadoPago returned an error or an unusable response.

    The provider response (when available) is kept in details so it
    reaches the server log and the client's error body.
    """

    status_code = 502

    def __init__(
        self,
        operation: str,
        message: str,
        provider_status: Optional[int] = None,
        provider_response: Optional[Any] = None,
    ):
        details: Dict[str, Any] = {"operation": operation}
        if provider_status is not None:
            details["provider_status"] = provider_status
        if provider_response is not None:
            details["provider_response"] = provider_response
        super().__init__(message, details)
        self.operation = operation
        self.provider_status = provider_status
        self.provider_response = provider_response
