"""Product and category storage for opalstore."""

import logging
from typing import Any

from .document_store import CATEGORIES, PRODUCTS, DocumentNotFoundError, DocumentStore
from .errors import CategoryNotFoundError, ProductNotFoundError
from .models import Category, Product, _utc_now

logger = logging.getLogger(__name__)


class ProductStore:
    """Manages catalog products."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def list_products(self) -> list[Product]:
        """List all products ordered by title."""
        products = [Product.from_dict(d) for d in self.documents.list_documents(PRODUCTS)]
        products.sort(key=lambda p: p.title)
        return products

    def get_catalog(self) -> dict[str, Product]:
        """Return a product_id -> Product snapshot for pricing."""
        return {p.id: p for p in self.list_products()}

    def get_product(self, product_id: str) -> Product | None:
        data = self.documents.get(PRODUCTS, product_id)
        if data is None:
            return None
        return Product.from_dict(data)

    def create_product(self, product: Product) -> str:
        """
        Validate and store a new product.

        Raises:
            ValidationError: If the product breaks a price invariant.
        """
        product.validate()
        now = _utc_now()
        product.created_at = product.created_at or now
        product.updated_at = now
        product_id = self.documents.insert(PRODUCTS, product.to_dict())
        logger.info("Created product %s (%s)", product_id, product.title)
        return product_id

    def update_product(self, product_id: str, changes: dict[str, Any]) -> Product:
        """
        Apply a partial update to a product.

        Args:
            product_id: Product ID.
            changes: Field values in stored (to_dict) form.

        Raises:
            ProductNotFoundError: If product doesn't exist.
            ValidationError: If the merged product breaks a price invariant.
        """
        existing = self.documents.get(PRODUCTS, product_id)
        if existing is None:
            raise ProductNotFoundError(product_id)

        merged = {**existing, **changes, "id": product_id, "updated_at": _utc_now()}
        product = Product.from_dict(merged)
        product.validate()
        self.documents.put(PRODUCTS, product_id, product.to_dict())
        return product

    def delete_product(self, product_id: str) -> bool:
        deleted = self.documents.delete(PRODUCTS, product_id)
        if deleted:
            logger.info("Deleted product %s", product_id)
        return deleted


class CategoryStore:
    """Manages the two-level category tree."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def list_categories(self) -> list[Category]:
        """List all categories ordered by title."""
        categories = [Category.from_dict(d) for d in self.documents.list_documents(CATEGORIES)]
        categories.sort(key=lambda c: c.title)
        return categories

    def list_top_level(self) -> list[Category]:
        return [c for c in self.list_categories() if c.is_top_level]

    def list_children(self, parent_id: str) -> list[Category]:
        return [c for c in self.list_categories() if c.parent_id == parent_id]

    def get_category(self, category_id: str) -> Category | None:
        data = self.documents.get(CATEGORIES, category_id)
        if data is None:
            return None
        return Category.from_dict(data)

    def create_category(self, category: Category) -> str:
        now = _utc_now()
        category.created_at = category.created_at or now
        category.updated_at = now
        return self.documents.insert(CATEGORIES, category.to_dict())

    def update_category(self, category_id: str, changes: dict[str, Any]) -> Category:
        """
        Apply a partial update to a category.

        Raises:
            CategoryNotFoundError: If category doesn't exist.
        """
        try:
            data = self.documents.update(
                CATEGORIES, category_id, {**changes, "updated_at": _utc_now()}
            )
        except DocumentNotFoundError:
            raise CategoryNotFoundError(category_id) from None
        return Category.from_dict(data)

    def delete_category(self, category_id: str) -> bool:
        return self.documents.delete(CATEGORIES, category_id)
