"""
Payment service: checkout preferences, webhooks and payment status.

This service holds the business logic behind the three payment endpoints.
It reads and writes orders through SQLAlchemy sessions and talks to
MercadoPago only through MercadoPagoGateway.

Flow:
    1. Client calls create_preference(user_id, order_id)
       - order must belong to the user, be unpaid and have items
       - a preference is created in MercadoPago
       - the preference id is stored in orders.payment_id
       - the checkout URL is returned to the client
    2. MercadoPago later calls the webhook -> process_webhook(notification)
       - payment details are fetched by payment id
       - the order referenced by external_reference is updated:
           approved -> stock decremented, cart cleared, order paid
           rejected -> payment_status only
           pending  -> payment_status only
    3. Client polls get_payment_status(user_id, order_id)

Replay Safety:
    Every transition is a conditional UPDATE that only matches orders
    whose payment is still open (not approved, not paid/shipped/delivered).
    The approved transition claims the order this way before touching
    stock, so a redelivered or concurrent notification never decrements
    stock twice. Once paid, later rejected/pending notifications are
    ignored. The order row is also locked (SELECT ... FOR UPDATE) on
    backends that support it.

Usage:
    payment_service = PaymentService(db_manager, gateway, currency_id="ARS")

    result = payment_service.create_preference(user_id, order_id)
    outcome = payment_service.process_webhook(request.get_json(), request.args)
    status = payment_service.get_payment_status(user_id, order_id)
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.orm import Session, joinedload, selectinload

from core.database import DatabaseManager
from core.exceptions import (
    EmptyOrderError,
    OrderAlreadyPaidError,
    OrderNotFoundError,
    ValidationError,
)
from core.payment_gateway import MercadoPagoGateway
from models import CartItem, Order, OrderItem, OrderStatus, Product
from models.payment import PaymentStatus, WebhookAction, WebhookOutcome
from logging_config import get_logger, get_order_logger


# Module logger
logger = get_logger(__name__)

DEFAULT_ITEM_DESCRIPTION = "Producto de Catfecito"
WEBHOOK_PATH = "/api/payments/webhook"

# orders.id is a 32-bit INTEGER column
MAX_ORDER_ID = 2**31 - 1


def parse_order_id(value: Any) -> int:
    """
    Validate an order id coming from a request.

    Raises:
        ValidationError: If the value is missing or not a positive integer
    """
    if value is None or value == "":
        raise ValidationError("order_id is required", field="order_id")
    if isinstance(value, int) and not isinstance(value, bool):
        order_id = value
    elif isinstance(value, str) and value.isascii() and value.isdigit():
        order_id = int(value)
    else:
        raise ValidationError("order_id must be an integer", field="order_id")
    if order_id <= 0:
        raise ValidationError("order_id must be positive", field="order_id")
    if order_id > MAX_ORDER_ID:
        raise ValidationError("order_id is out of range", field="order_id")
    return order_id


def parse_notification(
    body: Optional[Mapping[str, Any]],
    query: Optional[Mapping[str, Any]] = None,
) -> Tuple[Optional[str], Optional[str]]:
    """
    Extract (topic, payment_id) from a MercadoPago notification.

    Supports the webhook JSON body ({"type": "payment", "data": {"id": ...}})
    and the query-string forms (?type=payment&data.id=... and
    ?topic=payment&id=...).
    """
    body = body or {}
    query = query or {}

    topic = body.get("type") or body.get("topic") or query.get("type") or query.get("topic")

    data = body.get("data")
    payment_id = data.get("id") if isinstance(data, Mapping) else None
    if payment_id is None:
        payment_id = query.get("data.id") or query.get("id")

    return (
        str(topic) if topic else None,
        str(payment_id) if payment_id not in (None, "") else None,
    )


def _unsettled_order(order_id: int):
    """WHERE criteria matching the order only while its payment is still open."""
    return (
        Order.id == order_id,
        or_(Order.payment_status.is_(None), Order.payment_status != PaymentStatus.APPROVED.value),
        Order.status.notin_(OrderStatus.SETTLED),
    )


class PaymentService:
    """
    Business logic for paying orders through MercadoPago.

    Each public method opens its own database session, so the service
    holds no per-request state and one instance serves the whole app.

    Attributes:
        currency_id: Currency sent with every preference item
        notification_url: Webhook URL given to MercadoPago
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        gateway: MercadoPagoGateway,
        currency_id: str = "ARS",
        backend_url: str = "http://localhost:3000",
        frontend_url: Optional[str] = None,
        statement_descriptor: str = "CATFECITO",
    ):
        """
        Initialize payment service.

        Args:
            db_manager: Initialized DatabaseManager
            gateway: MercadoPago gateway (or a test double with the same methods)
            currency_id: ISO currency for preference items
            backend_url: Public URL of this backend (for the notification URL)
            frontend_url: Storefront URL for back_urls (omitted when empty)
            statement_descriptor: Text shown on the payer's card statement

        Raises:
            ValueError: If db_manager is not initialized
        """
        if not db_manager.is_initialized:
            raise ValueError("DatabaseManager must be initialized before creating PaymentService")

        self._db = db_manager
        self._gateway = gateway
        self.currency_id = currency_id
        self.notification_url = f"{backend_url.rstrip('/')}{WEBHOOK_PATH}"
        self._frontend_url = frontend_url.rstrip("/") if frontend_url else None
        self._statement_descriptor = statement_descriptor

        logger.info(f"PaymentService initialized (currency={currency_id})")

    @classmethod
    def from_config(
        cls,
        db_manager: DatabaseManager,
        gateway: MercadoPagoGateway,
        config: Mapping[str, Any],
    ) -> "PaymentService":
        """Build the service from a Flask config mapping."""
        return cls(
            db_manager,
            gateway,
            currency_id=config.get("CURRENCY_ID", "ARS"),
            backend_url=config.get("BACKEND_URL", "http://localhost:3000"),
            frontend_url=config.get("FRONTEND_URL") or None,
            statement_descriptor=config.get("STATEMENT_DESCRIPTOR", "CATFECITO"),
        )

    # =========================================================================
    # CREATE PREFERENCE
    # =========================================================================

    def create_preference(self, user_id: int, order_id: Any) -> Dict[str, Any]:
        """
        Create a MercadoPago preference for one of the user's orders.

        Args:
            user_id: Authenticated user
            order_id: Order to pay (validated here)

        Returns:
            Response body with preference id and checkout URLs

        Raises:
            ValidationError: order_id missing or malformed
            OrderNotFoundError: No such order for this user
            OrderAlreadyPaidError: Order already paid
            EmptyOrderError: Order has no items
            PaymentGatewayError: MercadoPago call failed
        """
        order_id = parse_order_id(order_id)
        order_logger = get_order_logger(order_id)

        with self._db.session_scope() as session:
            order = session.execute(
                select(Order)
                .options(joinedload(Order.user), selectinload(Order.items).joinedload(OrderItem.product))
                .where(Order.id == order_id, Order.user_id == user_id)
            ).scalar_one_or_none()

            if order is None:
                logger.warning(f"Order {order_id} not found for user {user_id}")
                raise OrderNotFoundError(order_id)

            if order.is_paid:
                raise OrderAlreadyPaidError(order_id, order.status, order.payment_status or "")

            if not order.items:
                raise EmptyOrderError(order_id)

            body = self.build_preference_body(order, user_id)
            total = str(order.total)

        # No transaction is held open during the provider call
        preference = self._gateway.create_preference(body)

        with self._db.session_scope() as session:
            session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(payment_id=preference.preference_id)
                .execution_options(synchronize_session=False)
            )

        order_logger.info(f"Preference {preference.preference_id} stored on order {order_id}")

        return {
            "success": True,
            "message": "Payment preference created",
            "preference_id": preference.preference_id,
            "init_point": preference.init_point,
            "sandbox_init_point": preference.sandbox_init_point,
            "order_id": order_id,
            "total": total,
        }

    def build_preference_body(self, order: Order, user_id: int) -> Dict[str, Any]:
        """
        Build the MercadoPago preference payload for an order.

        Args:
            order: Order with items, products and user loaded
            user_id: Owner of the order (echoed in metadata)

        Returns:
            Preference body ready for MercadoPagoGateway.create_preference()
        """
        items: List[Dict[str, Any]] = [
            {
                "id": str(item.id),
                "title": item.product.name,
                "description": item.product.description or DEFAULT_ITEM_DESCRIPTION,
                "quantity": item.quantity,
                "unit_price": float(item.price),
                "currency_id": self.currency_id,
            }
            for item in order.items
        ]

        body: Dict[str, Any] = {
            "items": items,
            "payer": {
                "name": order.user.name,
                "email": order.user.email,
            },
            "external_reference": str(order.id),
            "notification_url": self.notification_url,
            "statement_descriptor": self._statement_descriptor,
            "metadata": {
                "order_id": order.id,
                "user_id": user_id,
            },
        }

        if self._frontend_url:
            body["back_urls"] = {
                "success": f"{self._frontend_url}/checkout/success",
                "failure": f"{self._frontend_url}/checkout/failure",
                "pending": f"{self._frontend_url}/checkout/pending",
            }
            body["auto_return"] = "approved"

        return body

    # =========================================================================
    # WEBHOOK
    # =========================================================================

    def process_webhook(
        self,
        body: Optional[Mapping[str, Any]],
        query: Optional[Mapping[str, Any]] = None,
    ) -> WebhookOutcome:
        """
        Apply a MercadoPago notification to the referenced order.

        Never raises: every failure is logged and reported as
        WebhookAction.ERROR so the route can always answer 200.

        Args:
            body: Parsed JSON body (may be empty)
            query: Query-string arguments

        Returns:
            WebhookOutcome describing what was done
        """
        try:
            outcome = self._handle_notification(body, query)
        except Exception as e:
            logger.error(f"Webhook processing failed: {e}", exc_info=True)
            outcome = WebhookOutcome(WebhookAction.ERROR, notes=str(e))

        logger.info(f"Webhook outcome: {outcome.to_dict()}")
        return outcome

    def _handle_notification(
        self,
        body: Optional[Mapping[str, Any]],
        query: Optional[Mapping[str, Any]],
    ) -> WebhookOutcome:
        topic, payment_id = parse_notification(body, query)
        logger.info(f"Webhook received: type={topic}, payment_id={payment_id}")

        if topic != "payment" or not payment_id:
            return WebhookOutcome(WebhookAction.IGNORED, payment_id=payment_id,
                                  notes=f"Unhandled notification type: {topic}")

        info = self._gateway.get_payment(payment_id)

        if not info.external_reference:
            return WebhookOutcome(WebhookAction.IGNORED, payment_id=payment_id,
                                  notes="Payment has no external_reference")

        try:
            order_id = int(info.external_reference)
        except ValueError:
            return WebhookOutcome(WebhookAction.IGNORED, order_id=info.external_reference,
                                  payment_id=payment_id, notes="external_reference is not an order id")

        if info.status is PaymentStatus.APPROVED:
            return self._apply_approved(order_id, payment_id)

        if info.status in (PaymentStatus.REJECTED, PaymentStatus.PENDING):
            return self._apply_payment_status(order_id, payment_id, info.status)

        return WebhookOutcome(WebhookAction.IGNORED, order_id=str(order_id), payment_id=payment_id,
                              notes=f"Unhandled payment status: {info.status_detail or info.status.value}")

    def _apply_approved(self, order_id: int, payment_id: str) -> WebhookOutcome:
        """
        Mark the order paid, decrement stock and clear the owner's cart.

        All statements run in one transaction. The order is claimed with a
        conditional UPDATE before stock is touched, so of two concurrent
        deliveries only one matches the row; the other sees it settled.
        """
        order_logger = get_order_logger(order_id)

        with self._db.session_scope() as session:
            order = self._lock_order(session, order_id)

            if order is None:
                order_logger.error(f"Order {order_id} not found for approved payment {payment_id}")
                return WebhookOutcome(WebhookAction.ORDER_NOT_FOUND, order_id=str(order_id),
                                      payment_id=payment_id)

            claimed = session.execute(
                update(Order)
                .where(*_unsettled_order(order_id))
                .values(status=OrderStatus.PAID, payment_status=PaymentStatus.APPROVED.value)
                .execution_options(synchronize_session=False)
            ).rowcount

            if claimed != 1:
                order_logger.warning(f"Order {order_id} already paid, skipping payment {payment_id}")
                return WebhookOutcome(WebhookAction.DUPLICATE, order_id=str(order_id),
                                      payment_id=payment_id)

            lines = session.execute(
                select(OrderItem.product_id, OrderItem.quantity).where(OrderItem.order_id == order_id)
            ).all()

            for product_id, quantity in lines:
                session.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(stock=Product.stock - quantity, updated_at=func.now())
                    .execution_options(synchronize_session=False)
                )

            cleared = session.execute(
                delete(CartItem).where(CartItem.user_id == order.user_id)
            ).rowcount

        order_logger.info(
            f"Order {order_id} paid: {len(lines)} products decremented, "
            f"{cleared} cart items cleared"
        )
        return WebhookOutcome(WebhookAction.APPROVED, order_id=str(order_id), payment_id=payment_id)

    def _apply_payment_status(
        self,
        order_id: int,
        payment_id: str,
        status: PaymentStatus,
    ) -> WebhookOutcome:
        """Record a rejected or pending payment; stock and cart are untouched."""
        order_logger = get_order_logger(order_id)

        with self._db.session_scope() as session:
            order = self._lock_order(session, order_id)

            if order is None:
                order_logger.error(f"Order {order_id} not found for {status.value} payment {payment_id}")
                return WebhookOutcome(WebhookAction.ORDER_NOT_FOUND, order_id=str(order_id),
                                      payment_id=payment_id)

            updated = session.execute(
                update(Order)
                .where(*_unsettled_order(order_id))
                .values(payment_status=status.value)
                .execution_options(synchronize_session=False)
            ).rowcount

            if updated != 1:
                order_logger.warning(
                    f"Order {order_id} already paid, ignoring {status.value} payment {payment_id}"
                )
                return WebhookOutcome(WebhookAction.IGNORED, order_id=str(order_id),
                                      payment_id=payment_id, notes="Order already paid")

        order_logger.info(f"Order {order_id} payment {status.value}")
        return WebhookOutcome(WebhookAction(status.value), order_id=str(order_id), payment_id=payment_id)

    @staticmethod
    def _lock_order(session: Session, order_id: int) -> Optional[Order]:
        return session.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        ).scalar_one_or_none()

    # =========================================================================
    # PAYMENT STATUS
    # =========================================================================

    def get_payment_status(self, user_id: int, order_id: Any) -> Dict[str, Any]:
        """
        Read the stored payment fields of one of the user's orders.

        Raises:
            ValidationError: order_id malformed
            OrderNotFoundError: No such order for this user
        """
        order_id = parse_order_id(order_id)

        with self._db.session_scope() as session:
            order = session.execute(
                select(Order).where(Order.id == order_id, Order.user_id == user_id)
            ).scalar_one_or_none()

            if order is None:
                raise OrderNotFoundError(order_id)

            return order.payment_summary()
