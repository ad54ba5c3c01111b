"""Pytest fixtures for opalstore tests."""

import random
import tempfile
from decimal import Decimal
from pathlib import Path

import pytest

from opalstore.cart_store import CartStore, InMemoryKeyValueStore
from opalstore.catalog_store import CategoryStore, ProductStore
from opalstore.document_store import DocumentStore
from opalstore.models import Contact, Product, ShippingAddress, StoreSettings
from opalstore.order_store import OrderStore
from opalstore.orders import OrderMaterializer
from opalstore.settings_store import SettingsStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def document_store(temp_dir):
    """DocumentStore backed by a fresh data directory."""
    return DocumentStore(temp_dir / "data")


@pytest.fixture
def unconfigured_store():
    """DocumentStore with no data directory."""
    return DocumentStore(None)


@pytest.fixture
def product_store(document_store):
    return ProductStore(document_store)


@pytest.fixture
def category_store(document_store):
    return CategoryStore(document_store)


@pytest.fixture
def order_store(document_store):
    return OrderStore(document_store)


@pytest.fixture
def settings_store(document_store):
    return SettingsStore(document_store)


@pytest.fixture
def cart():
    """Cart over an in-memory key-value store."""
    return CartStore(InMemoryKeyValueStore())


@pytest.fixture
def materializer(order_store):
    """OrderMaterializer with a fixed clock and seeded jitter."""
    return OrderMaterializer(
        order_store,
        prefix="OPAL",
        clock=lambda: 1_700_000_000_000,
        rng=random.Random(42),
    )


@pytest.fixture
def contact():
    return Contact(email="Buyer@Example.com", phone="01700000000")


@pytest.fixture
def shipping():
    return ShippingAddress(address="12 Lake Road", city="Dhaka", postal_code="1207")


@pytest.fixture
def settings():
    """Flat shipping of 60, free from 1000."""
    return StoreSettings(
        shipping_cost=Decimal("60"),
        free_shipping_threshold=Decimal("1000"),
        currency="৳",
    )


@pytest.fixture
def catalog():
    """Three products covering base, discount and size-override pricing."""
    plain = Product.create(title="Phone Case", price="100")
    plain.id = "p-case"
    discounted = Product.create(title="Charger", price="500", discount_price=Decimal("450"))
    discounted.id = "p-charger"
    sized = Product.create(
        title="T-Shirt",
        price="300",
        sizes={"S": 5, "M": 5, "L": 0},
        size_prices={"L": Decimal("350")},
        thumb_src="https://example.com/shirt.jpg",
    )
    sized.id = "p-shirt"
    return {p.id: p for p in (plain, discounted, sized)}
