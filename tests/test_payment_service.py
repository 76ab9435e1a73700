"""
Unit tests for the Payment Service.

Covers preference creation, webhook transitions and payment status
reads against a seeded in-memory database (see conftest.py). Concurrent
deliveries run against a file database so each thread has its own
connection.
"""

import threading
from contextlib import contextmanager

import pytest
from sqlalchemy import func, select, update

from core.exceptions import (
    EmptyOrderError,
    OrderAlreadyPaidError,
    OrderNotFoundError,
    PaymentGatewayError,
    ValidationError,
)
from models import CartItem, Order, Product
from models.payment import PaymentInfo, PaymentStatus, WebhookAction
from services.payment_service import MAX_ORDER_ID, parse_notification, parse_order_id


ANA_ID = 1
BRUNO_ID = 2

PAYMENT_NOTIFICATION = {"action": "payment.updated", "type": "payment", "data": {"id": "987654321"}}


# Helpers

def _stock(db_manager, product_id):
    with db_manager.session_scope() as session:
        return session.get(Product, product_id).stock


def _cart_count(db_manager, user_id):
    with db_manager.session_scope() as session:
        return session.execute(
            select(func.count()).select_from(CartItem).where(CartItem.user_id == user_id)
        ).scalar_one()


def _order_state(db_manager, order_id):
    with db_manager.session_scope() as session:
        order = session.get(Order, order_id)
        return order.status, order.payment_status, order.payment_id


def _payment(status, order_id="1", payment_id="987654321"):
    return PaymentInfo(payment_id=payment_id, status=status, external_reference=order_id)


def _set_order_state(db_manager, order_id, status, payment_status):
    with db_manager.session_scope() as session:
        session.execute(
            update(Order).where(Order.id == order_id)
            .values(status=status, payment_status=payment_status)
        )


# Tests for request parsing

class TestParseOrderId:
    """Test order id validation."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_order_id(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_order_id(value)
        assert "required" in str(exc_info.value)

    @pytest.mark.parametrize("value", [
        "abc", True, 0, -3, 1.5j, 1.9, 1.0, "1.5", " 7", "-3", "\u00b2", [1], {"id": 1},
    ])
    def test_invalid_order_id(self, value):
        with pytest.raises(ValidationError):
            parse_order_id(value)

    def test_string_order_id_is_converted(self):
        assert parse_order_id("42") == 42

    @pytest.mark.parametrize("value", [MAX_ORDER_ID + 1, "99999999999999999999"])
    def test_out_of_range_order_id(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_order_id(value)
        assert "out of range" in str(exc_info.value)

    def test_largest_order_id_accepted(self):
        assert parse_order_id(str(MAX_ORDER_ID)) == MAX_ORDER_ID


class TestParseNotification:
    """Test MercadoPago notification formats."""

    def test_webhook_json_body(self):
        assert parse_notification(PAYMENT_NOTIFICATION) == ("payment", "987654321")

    def test_numeric_data_id(self):
        assert parse_notification({"type": "payment", "data": {"id": 555}}) == ("payment", "555")

    def test_query_string_webhook(self):
        assert parse_notification({}, {"type": "payment", "data.id": "111"}) == ("payment", "111")

    def test_query_string_ipn(self):
        assert parse_notification(None, {"topic": "payment", "id": "222"}) == ("payment", "222")

    def test_merchant_order_topic(self):
        topic, _ = parse_notification({"topic": "merchant_order", "resource": "https://..."})
        assert topic == "merchant_order"

    def test_empty_notification(self):
        assert parse_notification({}, {}) == (None, None)


# Tests for create_preference

class TestCreatePreference:
    """Test preference creation for an order."""

    def test_creates_preference_and_stores_id(self, payment_service, db_manager, gateway):
        result = payment_service.create_preference(ANA_ID, 1)

        assert result["success"] is True
        assert result["preference_id"] == "123456789-abcd-ef01"
        assert result["init_point"].endswith("pref_id=123456789-abcd-ef01")
        assert result["sandbox_init_point"].startswith("https://sandbox.")
        assert result["order_id"] == 1
        assert result["total"] == "12000.00"

        gateway.create_preference.assert_called_once()
        assert _order_state(db_manager, 1) == ("pending", None, "123456789-abcd-ef01")

    def test_preference_body(self, payment_service, gateway):
        payment_service.create_preference(ANA_ID, "1")
        body = gateway.create_preference.call_args[0][0]

        assert body["external_reference"] == "1"
        assert body["notification_url"] == "https://api.catfecito.test/api/payments/webhook"
        assert body["statement_descriptor"] == "CATFECITO"
        assert body["payer"] == {"name": "Ana", "email": "ana@example.com"}
        assert body["metadata"] == {"order_id": 1, "user_id": ANA_ID}
        assert "back_urls" not in body

        items = sorted(body["items"], key=lambda item: item["title"])
        assert items[0]["title"] == "Ceramic mug"
        assert items[0]["description"] == "Producto de Catfecito"
        assert items[0]["quantity"] == 1
        assert items[0]["unit_price"] == 3000.0
        assert items[1]["title"] == "Colombian beans"
        assert items[1]["description"] == "Medium roast, 500g"
        assert items[1]["quantity"] == 2
        assert all(item["currency_id"] == "ARS" for item in items)
        assert all(isinstance(item["id"], str) for item in items)

    def test_back_urls_when_frontend_configured(self, payment_service, gateway, monkeypatch):
        monkeypatch.setattr(payment_service, "_frontend_url", "https://catfecito.test")
        payment_service.create_preference(ANA_ID, 1)
        body = gateway.create_preference.call_args[0][0]

        assert body["back_urls"]["success"] == "https://catfecito.test/checkout/success"
        assert body["auto_return"] == "approved"

    def test_other_users_order_not_found(self, payment_service, gateway, db_manager):
        with pytest.raises(OrderNotFoundError):
            payment_service.create_preference(ANA_ID, 2)

        gateway.create_preference.assert_not_called()
        assert _order_state(db_manager, 2) == ("pending", None, None)

    def test_missing_order_not_found(self, payment_service):
        with pytest.raises(OrderNotFoundError):
            payment_service.create_preference(ANA_ID, 999)

    def test_already_paid_rejected(self, payment_service, gateway, db_manager):
        with pytest.raises(OrderAlreadyPaidError) as exc_info:
            payment_service.create_preference(ANA_ID, 3)

        assert exc_info.value.status_code == 400
        gateway.create_preference.assert_not_called()
        assert _order_state(db_manager, 3) == ("paid", "approved", "old-pref")

    def test_empty_order_rejected(self, payment_service, gateway):
        with pytest.raises(EmptyOrderError):
            payment_service.create_preference(ANA_ID, 4)

        gateway.create_preference.assert_not_called()

    def test_gateway_failure_leaves_order_untouched(self, payment_service, gateway, db_manager):
        gateway.create_preference.side_effect = PaymentGatewayError(
            operation="preference.create", message="boom", provider_status=400
        )

        with pytest.raises(PaymentGatewayError):
            payment_service.create_preference(ANA_ID, 1)

        assert _order_state(db_manager, 1) == ("pending", None, None)

    def test_provider_call_runs_outside_transaction(
        self, payment_service, gateway, db_manager, monkeypatch
    ):
        open_scopes = []
        session_scope = db_manager.session_scope

        @contextmanager
        def tracking_scope():
            open_scopes.append(True)
            try:
                with session_scope() as session:
                    yield session
            finally:
                open_scopes.pop()

        preference = gateway.create_preference.return_value

        def create_preference(body):
            assert open_scopes == []
            return preference

        monkeypatch.setattr(db_manager, "session_scope", tracking_scope)
        gateway.create_preference.side_effect = create_preference

        payment_service.create_preference(ANA_ID, 1)

        assert _order_state(db_manager, 1) == ("pending", None, "123456789-abcd-ef01")

    def test_shipped_order_counts_as_paid(self, payment_service, gateway, db_manager):
        _set_order_state(db_manager, 1, "shipped", None)

        with pytest.raises(OrderAlreadyPaidError):
            payment_service.create_preference(ANA_ID, 1)

        gateway.create_preference.assert_not_called()


# Tests for process_webhook

class TestWebhookApproved:
    """Test the approved payment transition."""

    def test_approved_marks_paid_decrements_stock_clears_cart(
        self, payment_service, db_manager, gateway
    ):
        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.APPROVED
        assert outcome.order_id == "1"
        gateway.get_payment.assert_called_once_with("987654321")

        assert _order_state(db_manager, 1)[:2] == ("paid", "approved")
        assert _stock(db_manager, 1) == 8
        assert _stock(db_manager, 2) == 4
        assert _cart_count(db_manager, ANA_ID) == 0
        assert _cart_count(db_manager, BRUNO_ID) == 1

    def test_replayed_delivery_decrements_once(self, payment_service, db_manager):
        payment_service.process_webhook(PAYMENT_NOTIFICATION)
        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.DUPLICATE
        assert _stock(db_manager, 1) == 8
        assert _stock(db_manager, 2) == 4

    @pytest.mark.parametrize("status", ["paid", "shipped", "delivered"])
    def test_settled_order_without_payment_status_not_decremented(
        self, payment_service, gateway, db_manager, status
    ):
        _set_order_state(db_manager, 2, status, None)
        gateway.get_payment.return_value = _payment(PaymentStatus.APPROVED, order_id="2")

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.DUPLICATE
        assert _order_state(db_manager, 2)[:2] == (status, None)
        assert _stock(db_manager, 1) == 10
        assert _cart_count(db_manager, BRUNO_ID) == 1

    def test_order_not_found(self, payment_service, gateway, db_manager):
        gateway.get_payment.return_value = _payment(PaymentStatus.APPROVED, order_id="999")

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.ORDER_NOT_FOUND
        assert _stock(db_manager, 1) == 10

    def test_query_string_notification(self, payment_service, db_manager):
        outcome = payment_service.process_webhook({}, {"topic": "payment", "id": "987654321"})

        assert outcome.action == WebhookAction.APPROVED
        assert _order_state(db_manager, 1)[:2] == ("paid", "approved")


class TestWebhookNonApproved:
    """Test rejected/pending transitions and ignored notifications."""

    @pytest.mark.parametrize("status", [PaymentStatus.REJECTED, PaymentStatus.PENDING])
    def test_only_payment_status_changes(self, payment_service, gateway, db_manager, status):
        gateway.get_payment.return_value = _payment(status)

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action.value == status.value
        assert _order_state(db_manager, 1) == ("pending", status.value, None)
        assert _stock(db_manager, 1) == 10
        assert _stock(db_manager, 2) == 5
        assert _cart_count(db_manager, ANA_ID) == 2

    def test_rejected_after_approved_is_ignored(self, payment_service, gateway, db_manager):
        gateway.get_payment.return_value = _payment(PaymentStatus.REJECTED, order_id="3")

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.IGNORED
        assert _order_state(db_manager, 3)[:2] == ("paid", "approved")

    def test_rejected_on_paid_order_is_ignored(self, payment_service, gateway, db_manager):
        _set_order_state(db_manager, 2, "paid", None)
        gateway.get_payment.return_value = _payment(PaymentStatus.REJECTED, order_id="2")

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.IGNORED
        assert _order_state(db_manager, 2)[:2] == ("paid", None)

    @pytest.mark.parametrize("status", [PaymentStatus.REJECTED, PaymentStatus.PENDING])
    def test_non_approved_order_not_found(self, payment_service, gateway, status):
        gateway.get_payment.return_value = _payment(status, order_id="999")

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.ORDER_NOT_FOUND

    def test_unknown_status_ignored(self, payment_service, gateway, db_manager):
        gateway.get_payment.return_value = _payment(PaymentStatus.UNKNOWN)

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.IGNORED
        assert _order_state(db_manager, 1) == ("pending", None, None)

    def test_non_payment_type_ignored(self, payment_service, gateway):
        outcome = payment_service.process_webhook({"type": "merchant_order", "data": {"id": "1"}})

        assert outcome.action == WebhookAction.IGNORED
        gateway.get_payment.assert_not_called()

    def test_missing_external_reference_ignored(self, payment_service, gateway, db_manager):
        gateway.get_payment.return_value = PaymentInfo(
            payment_id="987654321", status=PaymentStatus.APPROVED, external_reference=None
        )

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.IGNORED
        assert _stock(db_manager, 1) == 10

    def test_gateway_error_is_suppressed(self, payment_service, gateway):
        gateway.get_payment.side_effect = PaymentGatewayError(
            operation="payment.get", message="MercadoPago payment.get returned status 404",
            provider_status=404,
        )

        outcome = payment_service.process_webhook(PAYMENT_NOTIFICATION)

        assert outcome.action == WebhookAction.ERROR
        assert "404" in outcome.notes


class TestConcurrentDelivery:
    """Test simultaneous deliveries against a file database (one connection per thread)."""

    def _deliver_together(self, service, notifications):
        """Run process_webhook in parallel, all threads released after loading the order."""
        barrier = threading.Barrier(len(notifications), timeout=10)
        lock_order = service._lock_order

        def lock_then_wait(session, order_id):
            order = lock_order(session, order_id)
            barrier.wait()
            return order

        service._lock_order = lock_then_wait

        outcomes = []

        def deliver(notification):
            outcomes.append(service.process_webhook(notification))

        threads = [threading.Thread(target=deliver, args=(n,)) for n in notifications]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        return outcomes

    def test_concurrent_approvals_decrement_once(self, file_payment_service, file_db_manager):
        outcomes = self._deliver_together(
            file_payment_service, [PAYMENT_NOTIFICATION, PAYMENT_NOTIFICATION]
        )

        assert sorted(outcome.action.value for outcome in outcomes) == ["approved", "duplicate"]
        assert _order_state(file_db_manager, 1)[:2] == ("paid", "approved")
        assert _stock(file_db_manager, 1) == 8
        assert _stock(file_db_manager, 2) == 4
        assert _cart_count(file_db_manager, ANA_ID) == 0

    def test_concurrent_approval_and_rejection_end_paid(
        self, file_payment_service, file_db_manager, gateway
    ):
        payments = {
            "1001": _payment(PaymentStatus.APPROVED, payment_id="1001"),
            "1002": _payment(PaymentStatus.REJECTED, payment_id="1002"),
        }
        gateway.get_payment.side_effect = lambda payment_id: payments[payment_id]

        outcomes = self._deliver_together(file_payment_service, [
            {"type": "payment", "data": {"id": "1001"}},
            {"type": "payment", "data": {"id": "1002"}},
        ])

        assert len(outcomes) == 2
        assert WebhookAction.APPROVED in [outcome.action for outcome in outcomes]
        assert _order_state(file_db_manager, 1)[:2] == ("paid", "approved")
        assert _stock(file_db_manager, 1) == 8


# Tests for get_payment_status

class TestGetPaymentStatus:
    """Test payment status reads."""

    def test_returns_payment_fields(self, payment_service):
        order = payment_service.get_payment_status(ANA_ID, 3)

        assert order["id"] == 3
        assert order["user_id"] == ANA_ID
        assert order["status"] == "paid"
        assert order["payment_status"] == "approved"
        assert order["payment_id"] == "old-pref"
        assert order["total"] == "4500.00"
        assert order["created_at"] is not None
        assert set(order) == {
            "id", "user_id", "total", "status", "payment_status",
            "payment_id", "created_at", "updated_at",
        }

    def test_other_users_order_not_exposed(self, payment_service):
        with pytest.raises(OrderNotFoundError):
            payment_service.get_payment_status(BRUNO_ID, 1)

    def test_reflects_webhook_update(self, payment_service):
        payment_service.process_webhook(PAYMENT_NOTIFICATION)

        order = payment_service.get_payment_status(ANA_ID, 1)
        assert order["status"] == "paid"
        assert order["payment_status"] == "approved"
