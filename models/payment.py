"""
Payment data models.

These models carry MercadoPago results between the payment gateway and
the payment service. They are plain dataclasses, not database rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional


class PaymentStatus(Enum):
    """
    Payment outcome reported by MercadoPago.

    Only APPROVED, REJECTED and PENDING change an order. Any other
    provider status (in_process, refunded, ...) maps to UNKNOWN and is
    ignored.
    """

    APPROVED = "approved"
    """Payment accepted; order becomes paid."""

    REJECTED = "rejected"
    """Payment declined."""

    PENDING = "pending"
    """Payment awaiting settlement (e.g. cash voucher)."""

    UNKNOWN = "unknown"
    """Any status this service does not act on."""

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "PaymentStatus":
        """Map a provider status string, falling back to UNKNOWN."""
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class PreferenceResult:
    """A preference created in MercadoPago."""

    preference_id: str
    """Provider identifier; persisted as orders.payment_id."""

    init_point: Optional[str] = None
    """Checkout URL the client is redirected to."""

    sandbox_init_point: Optional[str] = None
    """Checkout URL for test accounts."""

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "PreferenceResult":
        """Create from the SDK's response body."""
        return cls(
            preference_id=str(response.get("id", "")),
            init_point=response.get("init_point"),
            sandbox_init_point=response.get("sandbox_init_point"),
        )


@dataclass(frozen=True)
class PaymentInfo:
    """Payment details fetched from MercadoPago by payment id."""

    payment_id: str
    status: PaymentStatus
    external_reference: Optional[str] = None
    """Order id we sent when creating the preference."""

    status_detail: str = ""

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "PaymentInfo":
        """Create from the SDK's response body."""
        external_reference = response.get("external_reference")
        return cls(
            payment_id=str(response.get("id", "")),
            status=PaymentStatus.from_provider(response.get("status")),
            external_reference=str(external_reference) if external_reference else None,
            status_detail=response.get("status_detail") or "",
        )


class WebhookAction(Enum):
    """What the webhook handler did with a notification."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"
    ORDER_NOT_FOUND = "order_not_found"
    ERROR = "error"


@dataclass(frozen=True)
class WebhookOutcome:
    """Result of processing one webhook delivery (logged, never returned to the provider)."""

    action: WebhookAction
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "action": self.action.value,
            "order_id": self.order_id,
            "payment_id": self.payment_id,
            "notes": self.notes,
        }
