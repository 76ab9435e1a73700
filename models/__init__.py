"""
Data models for the Catfecito payments backend.

This module contains:
- ORM tables (SQLAlchemy): User, Product, Order, OrderItem, CartItem
- Payment value objects (dataclasses): PreferenceResult, PaymentInfo,
  WebhookOutcome and the PaymentStatus / WebhookAction enums

The payment value objects are frozen so they can be passed around and
logged without being modified.
"""

from .base import Base
from .user import User
from .product import Product
from .order import Order, OrderItem, OrderStatus
from .cart import CartItem
from .payment import PaymentInfo, PaymentStatus, PreferenceResult, WebhookAction, WebhookOutcome

__all__ = [
    # ORM
    "Base",
    "User",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "CartItem",
    # Payment models
    "PaymentInfo",
    "PaymentStatus",
    "PreferenceResult",
    "WebhookAction",
    "WebhookOutcome",
]
