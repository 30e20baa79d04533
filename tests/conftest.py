import os

# Must be set before storefront reads its settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from storefront.auth import CurrentUser, get_current_user
from storefront.config import get_settings
from storefront.database import Base, get_db
from storefront.main import app as fastapi_app
from storefront.models import Cart, CartItem, Product, ShippingAddress, User


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def catalog(db):
    """Two users, an address each, two active products, one inactive, and a filled cart."""
    alice = User(id="user-1", email="alice@example.com")
    bob = User(id="user-2", email="bob@example.com")
    db.add_all([alice, bob])
    db.add_all([
        ShippingAddress(id="addr-1", user_id="user-1", full_name="Alice", city="Lyon", country="FR"),
        ShippingAddress(id="addr-2", user_id="user-2", full_name="Bob", city="Metz", country="FR"),
        Product(
            id="prod-1",
            name="Keyboard",
            description="Mechanical keyboard",
            price=Decimal("80.00"),
            images=[{"url": "https://img.example.com/kb-1.png"}, {"url": "https://img.example.com/kb-2.png"}],
        ),
        Product(id="prod-2", name="Mouse", description="", price=Decimal("20.00"), images=[]),
        Product(id="prod-3", name="Old Monitor", price=Decimal("150.00"), is_active=False),
    ])
    cart = Cart(id="cart-1", user_id="user-1")
    cart.items = [
        CartItem(product_id="prod-1", quantity=2, price=Decimal("80.00")),
        CartItem(product_id="prod-2", quantity=1, price=Decimal("20.00")),
    ]
    db.add(cart)
    db.commit()
    return db


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    fastapi_app.dependency_overrides[get_db] = override_get_db
    fastapi_app.dependency_overrides[get_current_user] = lambda: CurrentUser(
        id="user-1", email="alice@example.com"
    )
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def make_session(mocker):
    """Build a fake Stripe Checkout Session."""

    def _make(session_id="cs_test_123", payment_intent=None):
        session = mocker.Mock()
        session.id = session_id
        session.url = f"https://checkout.stripe.com/c/pay/{session_id}"
        session.payment_intent = payment_intent
        return session

    return _make
