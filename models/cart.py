"""Per-user shopping cart rows."""

from sqlalchemy import ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class CartItem(Base):
    """
    A pending product selection in a user's cart.

    All of a user's cart items are deleted when one of their orders
    is paid.
    """

    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<CartItem(id={self.id}, user_id={self.user_id}, "
            f"product_id={self.product_id}, quantity={self.quantity})>"
        )
