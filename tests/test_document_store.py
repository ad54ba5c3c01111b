"""Tests for DocumentStore and the collection stores built on it."""

import json
from decimal import Decimal

import pytest

from opalstore.document_store import ORDERS, PRODUCTS, DocumentNotFoundError
from opalstore.errors import (
    BackendNotConfiguredError,
    CategoryNotFoundError,
    InvalidSchemaVersionError,
    ProductNotFoundError,
    ValidationError,
)
from opalstore.models import MAX_PRICE, Category, Product
from opalstore.settings_store import SettingsStore


class TestDocumentStore:
    def test_empty_collection_lists_nothing(self, document_store):
        assert document_store.list_documents(PRODUCTS) == []

    def test_insert_keeps_given_id(self, document_store):
        doc_id = document_store.insert(PRODUCTS, {"id": "abc", "title": "A"})

        assert doc_id == "abc"
        assert document_store.get(PRODUCTS, "abc")["title"] == "A"

    def test_insert_generates_id(self, document_store):
        doc_id = document_store.insert(PRODUCTS, {"title": "A"})

        assert doc_id
        assert document_store.get(PRODUCTS, doc_id)["id"] == doc_id

    def test_file_format(self, document_store):
        document_store.insert(PRODUCTS, {"id": "abc", "title": "A"})

        data = json.loads((document_store.data_dir / "products.json").read_text())
        assert data["schema_version"] == 1
        assert data["documents"] == [{"id": "abc", "title": "A"}]

    def test_returned_documents_are_copies(self, document_store):
        document_store.insert(PRODUCTS, {"id": "abc", "tags": ["x"]})

        doc = document_store.get(PRODUCTS, "abc")
        doc["tags"].append("y")

        assert document_store.get(PRODUCTS, "abc")["tags"] == ["x"]

    def test_insert_unique_rejects_duplicate_value(self, document_store):
        first = document_store.insert_unique(ORDERS, {"order_number": "OPAL-1"}, "order_number")
        second = document_store.insert_unique(ORDERS, {"order_number": "OPAL-1"}, "order_number")

        assert first is not None
        assert second is None
        assert len(document_store.list_documents(ORDERS)) == 1

    def test_update_merges_fields(self, document_store):
        document_store.insert(PRODUCTS, {"id": "abc", "title": "A", "price": "1"})

        updated = document_store.update(PRODUCTS, "abc", {"price": "2"})

        assert updated == {"id": "abc", "title": "A", "price": "2"}

    def test_update_missing_raises(self, document_store):
        with pytest.raises(DocumentNotFoundError):
            document_store.update(PRODUCTS, "missing", {"price": "2"})

    def test_delete(self, document_store):
        document_store.insert(PRODUCTS, {"id": "abc"})

        assert document_store.delete(PRODUCTS, "abc") is True
        assert document_store.delete(PRODUCTS, "abc") is False
        assert document_store.get(PRODUCTS, "abc") is None

    def test_find_by_field(self, document_store):
        document_store.insert(ORDERS, {"id": "1", "status": "pending"})
        document_store.insert(ORDERS, {"id": "2", "status": "shipped"})

        found = document_store.find(ORDERS, "status", "shipped")

        assert [d["id"] for d in found] == ["2"]

    def test_unsupported_schema_version(self, document_store):
        document_store.data_dir.mkdir(parents=True)
        (document_store.data_dir / "products.json").write_text(
            json.dumps({"schema_version": 99, "documents": []})
        )

        with pytest.raises(InvalidSchemaVersionError):
            document_store.list_documents(PRODUCTS)

    def test_no_temp_files_left_behind(self, document_store):
        document_store.insert(PRODUCTS, {"id": "abc"})

        leftovers = list(document_store.data_dir.glob("*.tmp"))
        assert leftovers == []


class TestUnconfiguredStore:
    def test_reads_are_empty(self, unconfigured_store):
        assert unconfigured_store.configured is False
        assert unconfigured_store.list_documents(PRODUCTS) == []
        assert unconfigured_store.get(PRODUCTS, "abc") is None

    def test_writes_raise(self, unconfigured_store):
        with pytest.raises(BackendNotConfiguredError):
            unconfigured_store.insert(PRODUCTS, {"title": "A"})
        with pytest.raises(BackendNotConfiguredError):
            unconfigured_store.delete(PRODUCTS, "abc")
        with pytest.raises(BackendNotConfiguredError):
            unconfigured_store.replace_all(PRODUCTS, [])

    def test_settings_default_when_unconfigured(self, unconfigured_store):
        settings = SettingsStore(unconfigured_store).get_settings()

        assert settings.shipping_cost == Decimal("0")
        assert settings.free_shipping_threshold == Decimal("0")


class TestProductStore:
    def test_create_and_get(self, product_store):
        product = Product.create(title="Case", price="100", colors=["red", "blue"])
        product_id = product_store.create_product(product)

        loaded = product_store.get_product(product_id)
        assert loaded.title == "Case"
        assert loaded.price == Decimal("100")
        assert loaded.colors == ["red", "blue"]

    def test_get_missing_returns_none(self, product_store):
        assert product_store.get_product("missing") is None

    def test_list_sorted_by_title(self, product_store):
        product_store.create_product(Product.create(title="Zeta", price="1"))
        product_store.create_product(Product.create(title="Alpha", price="1"))

        assert [p.title for p in product_store.list_products()] == ["Alpha", "Zeta"]

    def test_create_rejects_discount_not_below_price(self, product_store):
        product = Product.create(title="Case", price="100", discount_price=Decimal("100"))

        with pytest.raises(ValidationError):
            product_store.create_product(product)
        assert product_store.list_products() == []

    def test_create_rejects_price_above_maximum(self, product_store):
        product = Product.create(title="Yacht", price=MAX_PRICE + 1)

        with pytest.raises(ValidationError, match="must not exceed"):
            product_store.create_product(product)
        assert product_store.list_products() == []

    def test_create_rejects_size_price_above_maximum(self, product_store):
        product = Product.create(
            title="Shirt", price="100", size_prices={"XL": Decimal("1E+27")}
        )

        with pytest.raises(ValidationError, match="XL"):
            product_store.create_product(product)

    def test_price_at_maximum_accepted(self, product_store):
        product_id = product_store.create_product(Product.create(title="Car", price=MAX_PRICE))

        assert product_store.get_product(product_id).price == MAX_PRICE

    def test_update(self, product_store):
        product_id = product_store.create_product(Product.create(title="Case", price="100"))

        updated = product_store.update_product(product_id, {"price": "120", "stock": False})

        assert updated.price == Decimal("120")
        assert updated.stock is False
        assert product_store.get_product(product_id).price == Decimal("120")

    def test_update_can_clear_discount(self, product_store):
        product = Product.create(title="Case", price="100", discount_price=Decimal("80"))
        product_id = product_store.create_product(product)

        updated = product_store.update_product(product_id, {"discount_price": None})

        assert updated.discount_price is None

    def test_update_missing_raises(self, product_store):
        with pytest.raises(ProductNotFoundError):
            product_store.update_product("missing", {"price": "1"})

    def test_catalog_snapshot(self, product_store):
        product_id = product_store.create_product(Product.create(title="Case", price="100"))

        catalog = product_store.get_catalog()
        assert list(catalog) == [product_id]


class TestCategoryStore:
    def test_tree(self, category_store):
        parent = Category.create(title="Phones")
        category_store.create_category(parent)
        child = Category.create(title="Cases", parent_id=parent.id)
        category_store.create_category(child)

        assert [c.title for c in category_store.list_top_level()] == ["Phones"]
        assert [c.title for c in category_store.list_children(parent.id)] == ["Cases"]

    def test_update_missing_raises(self, category_store):
        with pytest.raises(CategoryNotFoundError):
            category_store.update_category("missing", {"title": "X"})

    def test_update_and_delete(self, category_store):
        category = Category.create(title="Phones")
        category_store.create_category(category)

        updated = category_store.update_category(category.id, {"title": "Mobiles"})
        assert updated.title == "Mobiles"

        assert category_store.delete_category(category.id) is True
        assert category_store.get_category(category.id) is None


class TestSettingsStore:
    def test_update_partial(self, settings_store):
        settings_store.update_settings(shipping_cost=Decimal("60"))
        settings = settings_store.update_settings(free_shipping_threshold=Decimal("1000"))

        assert settings.shipping_cost == Decimal("60")
        assert settings.free_shipping_threshold == Decimal("1000")
        assert settings_store.get_settings().shipping_cost == Decimal("60")

    def test_negative_rejected(self, settings_store):
        with pytest.raises(ValidationError):
            settings_store.update_settings(shipping_cost=Decimal("-1"))
