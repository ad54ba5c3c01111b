"""Tests for backup export and restore."""

from decimal import Decimal

import pytest

from opalstore.backup import export_backup, restore_backup
from opalstore.document_store import CATEGORIES, PRODUCTS, DocumentStore
from opalstore.errors import BackendNotConfiguredError, InvalidSchemaVersionError, ValidationError
from opalstore.models import Category, Contact, Order, PaymentMethod, Product, ShippingAddress


def make_order(number: str) -> Order:
    return Order(
        id=f"id-{number}",
        order_number=number,
        items=[],
        contact=Contact(email="a@example.com", phone="017"),
        shipping=ShippingAddress(address="12 Lake Road"),
        payment_method=PaymentMethod.CASH_ON_DELIVERY,
        subtotal=Decimal("10"),
        shipping_cost=Decimal("0"),
        total=Decimal("10"),
        currency="৳",
        created_at="2025-01-01T00:00:00Z",
    )


@pytest.fixture
def populated(product_store, category_store, order_store, settings_store):
    product_store.create_product(Product.create(title="Case", price="100"))
    category_store.create_category(Category.create(title="Phones"))
    order_store.create_order(make_order("OPAL-1"))
    settings_store.update_settings(shipping_cost=Decimal("60"))


class TestExport:
    def test_snapshot_contents(self, document_store, populated):
        backup = export_backup(document_store)

        assert backup.version == 1
        assert backup.exported_at
        assert [p.title for p in backup.products] == ["Case"]
        assert [c.title for c in backup.categories] == ["Phones"]
        assert [o.order_number for o in backup.orders] == ["OPAL-1"]
        assert backup.store_settings.shipping_cost == Decimal("60")

    def test_money_serialized_as_strings(self, document_store, populated):
        data = export_backup(document_store).to_dict()

        assert data["products"][0]["price"] == "100"
        assert data["orders"][0]["total"] == "10"

    def test_export_when_unconfigured_is_empty(self, unconfigured_store):
        backup = export_backup(unconfigured_store)

        assert backup.products == []
        assert backup.orders == []


class TestRestore:
    def test_restore_then_export_round_trip(self, document_store, populated, temp_dir):
        original = export_backup(document_store).to_dict()

        target = DocumentStore(temp_dir / "other")
        report = restore_backup(target, original)
        restored = export_backup(target).to_dict()

        assert report.products == 1
        assert report.categories == 1
        assert report.orders == 1
        assert report.settings_restored is True
        assert report.errors == []
        for name in ("products", "categories", "orders"):
            assert restored[name] == original[name]

    def test_restore_replaces_existing_data(self, document_store, populated, product_store):
        backup = export_backup(document_store).to_dict()
        product_store.create_product(Product.create(title="Extra", price="5"))

        restore_backup(document_store, backup)

        assert [p.title for p in product_store.list_products()] == ["Case"]

    def test_malformed_records_are_skipped(self, document_store):
        backup = {
            "version": 1,
            "products": [
                {"id": "good", "title": "Case", "price": "100"},
                {"id": "bad-price", "title": "Broken", "price": "abc"},
                {"title": "No id", "price": "1"},
                "not an object",
            ],
            "categories": [],
            "orders": [],
        }

        report = restore_backup(document_store, backup)

        assert report.products == 1
        assert len(report.errors) == 3
        assert [d["id"] for d in document_store.list_documents(PRODUCTS)] == ["good"]

    def test_missing_collections_rejected(self, document_store):
        with pytest.raises(ValidationError, match="missing version"):
            restore_backup(document_store, {"version": 1, "products": []})

    def test_wrong_version_rejected(self, document_store):
        backup = {"version": 2, "products": [], "categories": [], "orders": []}

        with pytest.raises(InvalidSchemaVersionError):
            restore_backup(document_store, backup)

    def test_settings_kept_when_absent(self, document_store, settings_store):
        settings_store.update_settings(shipping_cost=Decimal("60"))

        report = restore_backup(
            document_store, {"version": 1, "products": [], "categories": [], "orders": []}
        )

        assert report.settings_restored is False
        assert settings_store.get_settings().shipping_cost == Decimal("60")

    def test_failed_write_rolls_back(self, document_store, populated):
        backup = {
            "version": 1,
            "products": [{"id": "new", "title": "New", "price": "1"}],
            "categories": [],
            "orders": [],
        }

        class FailingStore(DocumentStore):
            def replace_all(self, collection, documents):
                if collection == CATEGORIES and not documents:
                    raise OSError("disk full")
                super().replace_all(collection, documents)

        failing = FailingStore(document_store.data_dir)

        with pytest.raises(OSError):
            restore_backup(failing, backup)

        titles = [d["title"] for d in document_store.list_documents(PRODUCTS)]
        assert titles == ["Case"]

    def test_unconfigured_backend(self, unconfigured_store):
        backup = {"version": 1, "products": [], "categories": [], "orders": []}

        with pytest.raises(BackendNotConfiguredError):
            restore_backup(unconfigured_store, backup)
