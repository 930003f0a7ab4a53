import asyncio
import os

# Configure before any storefront module reads its settings
os.environ["OTEL_ENABLED"] = "false"
os.environ["PYROSCOPE_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_CATALOG"] = "false"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront.database import create_db_engine
from storefront.dependencies import build_services
from storefront.models import Base, Product
from storefront.services.cart_service import CartLine
from storefront.services.order_service import CustomerInfo

SHIPPING_FEES = {"inside_dhaka": 60.0, "outside_dhaka": 120.0, "pickup": 0.0}

USER_HEADERS = {"Authorization": "Bearer user-token-123"}
OTHER_USER_HEADERS = {"Authorization": "Bearer test-token-789"}
ADMIN_HEADERS = {"Authorization": "Bearer admin-token-456"}


@pytest.fixture()
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def services():
    return build_services(
        cart_backend="database",
        webhook_url="",
        shipping_fees=SHIPPING_FEES,
        low_stock_threshold=3
    )


@pytest.fixture()
def make_product(db):
    counter = {"n": 0}

    def _make(name=None, price=10.0, cost=6.0, stock=5, **fields):
        counter["n"] += 1
        name = name or f"Product {counter['n']}"
        product = Product(
            name=name,
            slug=fields.pop("slug", f"product-{counter['n']}"),
            price=price,
            cost=cost,
            stock=stock,
            **fields
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture()
def customer():
    return CustomerInfo(
        name="Rahim Uddin",
        email="rahim@example.com",
        address="12 Lake Road",
        phone="01700000000",
        city="Dhaka",
        postal_code="1207",
        country="Bangladesh",
        payment_method="cod"
    )


@pytest.fixture()
def place(db, services, customer):
    """Check out a snapshot of (product_id, quantity) pairs synchronously."""

    def _place(lines, shipping_cost=3.0, user_id="user_123", owner_id=None):
        snapshot = [CartLine(product_id, quantity) for product_id, quantity in lines]
        return asyncio.run(services.orders.place_order_from_snapshot(
            db,
            snapshot,
            customer,
            shipping_cost,
            shipping_method="inside_dhaka",
            owner_id=owner_id,
            user_id=user_id
        ))

    return _place


@pytest.fixture()
def client(session_factory, services):
    from storefront.database import get_db
    from storefront.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.services = services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def seed_product(session_factory):
    """Insert a product from API tests without holding a session open."""

    def _seed(name="Mechanical Keyboard", slug=None, price=10.0, cost=6.0, stock=5):
        with session_factory() as session:
            product = Product(
                name=name,
                slug=slug or name.lower().replace(" ", "-"),
                price=price,
                cost=cost,
                stock=stock
            )
            session.add(product)
            session.commit()
            return product.id

    return _seed
