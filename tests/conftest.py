"""
Shared fixtures for the payment tests.

Every test gets a fresh app with an in-memory SQLite database and a
mocked MercadoPago gateway, seeded with:

    users:     1 Ana (ana@example.com), 2 Bruno (bruno@example.com)
    products:  1 Colombian beans (stock 10), 2 Ceramic mug (stock 5)
    orders:    1 Ana, unpaid, 2x product 1 + 1x product 2
               2 Bruno, unpaid, 1x product 1
               3 Ana, already paid
               4 Ana, unpaid, no items
    cart:      Ana has 2 rows, Bruno has 1 row
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from app import create_app
from core.auth import create_access_token
from core.database import DatabaseManager
from models import CartItem, Order, OrderItem, Product, User
from models.payment import PaymentInfo, PaymentStatus, PreferenceResult
from services.payment_service import PaymentService


ANA_ID = 1
BRUNO_ID = 2


@pytest.fixture
def gateway():
    """Create a mock MercadoPago gateway."""
    mock_gateway = MagicMock()
    mock_gateway.create_preference.return_value = PreferenceResult(
        preference_id="123456789-abcd-ef01",
        init_point="https://www.mercadopago.com.ar/checkout/v1/redirect?pref_id=123456789-abcd-ef01",
        sandbox_init_point="https://sandbox.mercadopago.com.ar/checkout/v1/redirect?pref_id=123456789-abcd-ef01",
    )
    mock_gateway.get_payment.return_value = PaymentInfo(
        payment_id="987654321",
        status=PaymentStatus.APPROVED,
        external_reference="1",
        status_detail="accredited",
    )
    return mock_gateway


@pytest.fixture
def app(gateway):
    """Create a test app with seeded data."""
    flask_app = create_app("config.TestingConfig", payment_gateway=gateway)
    _seed(flask_app.config["DB_MANAGER"])
    yield flask_app
    flask_app.config["DB_MANAGER"].cleanup()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def db_manager(app):
    return app.config["DB_MANAGER"]


@pytest.fixture
def payment_service(app):
    return app.config["PAYMENT_SERVICE"]


@pytest.fixture
def auth_headers(app):
    """Build Authorization headers for a user id."""

    def _headers(user_id: int):
        with app.app_context():
            token = create_access_token(user_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def file_db_manager(tmp_path):
    """Seeded database in a file, so each thread gets its own connection."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'catfecito.db'}")
    manager.initialize()
    _seed(manager)
    yield manager
    manager.cleanup()


@pytest.fixture
def file_payment_service(file_db_manager, gateway):
    return PaymentService(file_db_manager, gateway, backend_url="https://api.catfecito.test")


def _seed(db_manager):
    with db_manager.session_scope() as session:
        session.add_all([
            User(id=ANA_ID, name="Ana", email="ana@example.com"),
            User(id=BRUNO_ID, name="Bruno", email="bruno@example.com"),
            Product(id=1, name="Colombian beans", description="Medium roast, 500g",
                    price=Decimal("4500.00"), stock=10),
            Product(id=2, name="Ceramic mug", description=None,
                    price=Decimal("3000.00"), stock=5),
        ])
        session.flush()

        session.add_all([
            Order(id=1, user_id=ANA_ID, total=Decimal("12000.00"), status="pending"),
            Order(id=2, user_id=BRUNO_ID, total=Decimal("4500.00"), status="pending"),
            Order(id=3, user_id=ANA_ID, total=Decimal("4500.00"), status="paid",
                  payment_status="approved", payment_id="old-pref"),
            Order(id=4, user_id=ANA_ID, total=Decimal("0.00"), status="pending"),
        ])
        session.flush()

        session.add_all([
            OrderItem(order_id=1, product_id=1, quantity=2,
                      price=Decimal("4500.00"), subtotal=Decimal("9000.00")),
            OrderItem(order_id=1, product_id=2, quantity=1,
                      price=Decimal("3000.00"), subtotal=Decimal("3000.00")),
            OrderItem(order_id=2, product_id=1, quantity=1,
                      price=Decimal("4500.00"), subtotal=Decimal("4500.00")),
            OrderItem(order_id=3, product_id=1, quantity=1,
                      price=Decimal("4500.00"), subtotal=Decimal("4500.00")),
            CartItem(user_id=ANA_ID, product_id=1, quantity=2),
            CartItem(user_id=ANA_ID, product_id=2, quantity=1),
            CartItem(user_id=BRUNO_ID, product_id=1, quantity=1),
        ])
