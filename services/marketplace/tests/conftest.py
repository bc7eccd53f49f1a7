"""Pytest fixtures for the marketplace service tests."""

import os

# Must be set before marketplace.infrastructure.db builds its engine
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PAYMENT_GATEWAY_KEY_SECRET", "test-secret")

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from marketplace.core_settings import Settings
from marketplace.domain.models import (
    Base, Vendor, Product, ProductVariant, Coupon, Cart, CartItem, utcnow,
)
from marketplace.errors import PaymentGatewayError

GATEWAY_SECRET = "test-secret"


class FakeGateway:
    """Stands in for the payment gateway client."""

    def __init__(self):
        self.orders = []
        self.refunds = []
        self.fail = False

    def create_order(self, amount_minor, receipt):
        if self.fail:
            raise PaymentGatewayError("Payment gateway unavailable")
        gateway_order = {"id": f"order_{len(self.orders) + 1:04d}", "amount": amount_minor, "currency": "INR", "receipt": receipt}
        self.orders.append(gateway_order)
        return gateway_order

    def refund(self, payment_id, amount_minor):
        self.refunds.append((payment_id, amount_minor))
        return {"id": f"rfnd_{len(self.refunds)}", "payment_id": payment_id, "amount": amount_minor}


@pytest.fixture
def settings():
    return Settings(PAYMENT_GATEWAY_KEY_SECRET=GATEWAY_SECRET, ORDER_ID_PREFIX="MKT")


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'marketplace.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # Take the write lock up front so concurrent test transactions queue
    # instead of failing with "database is locked"
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(session_factory, gateway):
    from marketplace.main import app
    from marketplace.infrastructure.db import get_db
    from marketplace.infrastructure.gateway import get_gateway

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_vendor(db, commission="10", name="Stride Footwear"):
    vendor = Vendor(business_name=name, commission=Decimal(commission))
    db.add(vendor)
    db.commit()
    return vendor


def make_product(db, vendor, name="Runner", selling_price="500", mrp="800",
                 vendor_discount="0", website_discount="0", variants=(("9", "black", 5),)):
    product = Product(
        vendor_id=vendor.id,
        name=name,
        images=[f"https://cdn.example.com/{name.lower()}-1.jpg"],
        mrp=Decimal(mrp),
        selling_price=Decimal(selling_price),
        vendor_discount=Decimal(vendor_discount),
        website_discount=Decimal(website_discount),
    )
    for size, color, stock in variants:
        product.variants.append(ProductVariant(size=size, color=color, stock=stock, sku=f"{name[:3].upper()}-{size}-{color}"))
    db.add(product)
    db.commit()
    return product


def make_coupon(db, code="SAVE10", discount_type="percentage", discount_value="10", min_order_value="0",
                max_discount=None, usage_limit=None, used_count=0, is_active=True, valid_days=30):
    now = utcnow()
    coupon = Coupon(
        code=code,
        description=f"{code} offer",
        discount_type=discount_type,
        discount_value=Decimal(discount_value),
        min_order_value=Decimal(min_order_value),
        max_discount=Decimal(max_discount) if max_discount is not None else None,
        valid_from=now - timedelta(days=1),
        valid_until=now + timedelta(days=valid_days),
        usage_limit=usage_limit,
        used_count=used_count,
        is_active=is_active,
    )
    db.add(coupon)
    db.commit()
    return coupon


def make_cart(db, customer_id, product, size="9", color="black", quantity=1):
    cart = Cart(customer_id=customer_id)
    cart.items.append(CartItem(product_id=product.id, size=size, color=color, quantity=quantity))
    db.add(cart)
    db.commit()
    return cart


def address():
    return {
        "name": "Asha Rao",
        "phone": "9800000000",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "KA",
        "pincode": "560001",
    }
