"""
Services layer for the Catfecito payments backend.

This module contains the business logic services:
- PaymentService: checkout preferences, MercadoPago webhooks and
  payment status reads

Services open their own database sessions per call and hold no
per-request state, so one instance is shared by all requests.
"""

from .payment_service import PaymentService, parse_notification, parse_order_id

__all__ = [
    "PaymentService",
    "parse_notification",
    "parse_order_id",
]
