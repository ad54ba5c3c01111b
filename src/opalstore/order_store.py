"""Order storage for opalstore."""

from .document_store import ORDERS, DocumentNotFoundError, DocumentStore
from .errors import OrderNotFoundError
from .models import Order, OrderStatus, _utc_now


class OrderStore:
    """Persists orders. Status is the only field changed after creation."""

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    def create_order(self, order: Order) -> str | None:
        """
        Persist a new order.

        Returns:
            The order ID, or None if another order already uses its number.
        """
        return self.documents.insert_unique(ORDERS, order.to_dict(), "order_number")

    def get_order(self, order_id: str) -> Order | None:
        data = self.documents.get(ORDERS, order_id)
        if data is None:
            return None
        return Order.from_dict(data)

    def get_order_by_number(self, order_number: str) -> Order | None:
        """Find an order by its number, matched upper-cased."""
        matches = self.documents.find(ORDERS, "order_number", order_number.strip().upper())
        if not matches:
            return None
        return Order.from_dict(matches[0])

    def get_order_by_number_and_email(self, order_number: str, email: str) -> Order | None:
        """
        Find an order for tracking.

        The order number is matched upper-cased and the email case-insensitively.
        """
        number = order_number.strip().upper()
        wanted = email.strip().lower()
        for data in self.documents.find(ORDERS, "order_number", number):
            order_email = ((data.get("contact") or {}).get("email") or "").strip().lower()
            if order_email == wanted:
                return Order.from_dict(data)
        return None

    def list_orders(self) -> list[Order]:
        """List all orders, newest first."""
        orders = [Order.from_dict(d) for d in self.documents.list_documents(ORDERS)]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def set_status(self, order_id: str, status: OrderStatus) -> Order:
        """
        Write a new status without checking the transition.

        Use OrderLifecycle.update_status for validated changes.

        Raises:
            OrderNotFoundError: If order doesn't exist.
        """
        try:
            data = self.documents.update(
                ORDERS, order_id, {"status": status.value, "updated_at": _utc_now()}
            )
        except DocumentNotFoundError:
            raise OrderNotFoundError(order_id) from None
        return Order.from_dict(data)

    def delete_order(self, order_id: str) -> bool:
        return self.documents.delete(ORDERS, order_id)
