"""
Order data models.

An order is created by the checkout flow (outside this service) and then
moves through payment:

    created (status=pending, payment_status=NULL)
      -> preference created (payment_id set)
      -> webhook: approved  (status=paid, payment_status=approved)
               | rejected  (payment_status=rejected)
               | pending   (payment_status=pending)

Only the approved transition touches stock and cart.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin
from .product import Product
from .user import User


class OrderStatus:
    """Fulfillment status values stored in orders.status."""

    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    SETTLED = (PAID, SHIPPED, DELIVERED)
    """Statuses of an order whose payment was already taken."""


class Order(TimestampMixin, Base):
    """A customer's order and its payment state."""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PENDING)
    payment_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship()
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'shipped', 'delivered', 'cancelled')",
            name="valid_order_status",
        ),
        CheckConstraint(
            "payment_status IS NULL OR payment_status IN ('pending', 'approved', 'rejected')",
            name="valid_payment_status",
        ),
    )

    @property
    def is_paid(self) -> bool:
        """True once the payment was approved or the order marked paid."""
        return self.payment_status == "approved" or self.status in OrderStatus.SETTLED

    def payment_summary(self) -> Dict[str, Any]:
        """Fields exposed by the payment status endpoint."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total": str(self.total),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_id": self.payment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, user_id={self.user_id}, status={self.status}, "
            f"payment_status={self.payment_status})>"
        )


class OrderItem(Base):
    """A line of an order. Read-only in the payment flow."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    """Unit price at the time of purchase."""
    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(id={self.id}, order_id={self.order_id}, "
            f"product_id={self.product_id}, quantity={self.quantity})>"
        )
