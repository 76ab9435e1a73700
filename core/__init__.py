"""
Core module for the Catfecito payments backend.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- database: SQLAlchemy engine and session lifecycle management
- payment_gateway: MercadoPago SDK wrapper
- auth: Bearer-token authentication for the payment endpoints
"""

from .exceptions import (
    CatfecitoError,
    DatabaseUnavailableError,
    ValidationError,
    AuthenticationError,
    OrderNotFoundError,
    InvalidOrderStateError,
    OrderAlreadyPaidError,
    EmptyOrderError,
    PaymentGatewayError,
)
from .database import DatabaseManager
from .payment_gateway import MercadoPagoGateway

__all__ = [
    "CatfecitoError",
    "DatabaseUnavailableError",
    "ValidationError",
    "AuthenticationError",
    "OrderNotFoundError",
    "InvalidOrderStateError",
    "OrderAlreadyPaidError",
    "EmptyOrderError",
    "PaymentGatewayError",
    "DatabaseManager",
    "MercadoPagoGateway",
]
