"""Custom exceptions for opalstore."""


class OpalStoreError(Exception):
    """Base exception for all opalstore errors."""

    pass


class ValidationError(OpalStoreError):
    """Raised when caller input is missing or malformed. Nothing is written."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidStatusTransitionError(ValidationError):
    """Raised when an order status change is not allowed by the transition table."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change order status from '{current}' to '{requested}'",
            field="status",
        )


class ProductNotFoundError(OpalStoreError):
    """Raised when updating a product that doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class CategoryNotFoundError(OpalStoreError):
    """Raised when updating a category that doesn't exist."""

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class OrderNotFoundError(OpalStoreError):
    """Raised when changing the status of an order that doesn't exist."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class BackendNotConfiguredError(OpalStoreError):
    """Raised on any write when the document store has no data directory."""

    def __init__(self, operation: str | None = None):
        self.operation = operation
        msg = "Document store not configured. Set OPALSTORE_DATA_DIR."
        if operation:
            msg = f"Cannot {operation}: document store not configured. Set OPALSTORE_DATA_DIR."
        super().__init__(msg)


class OrderNumberCollisionError(OpalStoreError):
    """Raised when no unique order number could be generated. Safe to retry."""

    retryable = True

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(
            f"Could not generate a unique order number after {attempts} attempts. Try again."
        )


class InvalidSchemaVersionError(OpalStoreError):
    """Raised when a collection file or backup has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )
