"""Tests for OrderStore lookups."""

from decimal import Decimal

from opalstore.models import Contact, Order, PaymentMethod, ShippingAddress


def make_order(number: str, email: str, created_at: str) -> Order:
    return Order(
        id=f"id-{number}",
        order_number=number,
        items=[],
        contact=Contact(email=email, phone="017"),
        shipping=ShippingAddress(address="12 Lake Road"),
        payment_method=PaymentMethod.CARD,
        subtotal=Decimal("10"),
        shipping_cost=Decimal("0"),
        total=Decimal("10"),
        currency="৳",
        created_at=created_at,
    )


class TestOrderLookup:
    def test_track_by_number_and_email(self, order_store):
        order_store.create_order(make_order("OPAL-ABC123", "user@example.com", "2025-01-01T00:00:00Z"))

        found = order_store.get_order_by_number_and_email("opal-abc123", "USER@Example.com")

        assert found is not None
        assert found.order_number == "OPAL-ABC123"

    def test_number_is_trimmed(self, order_store):
        order_store.create_order(make_order("OPAL-ABC123", "user@example.com", "2025-01-01T00:00:00Z"))

        assert order_store.get_order_by_number_and_email(" OPAL-ABC123 ", "user@example.com")

    def test_wrong_email_finds_nothing(self, order_store):
        order_store.create_order(make_order("OPAL-ABC123", "user@example.com", "2025-01-01T00:00:00Z"))

        assert order_store.get_order_by_number_and_email("OPAL-ABC123", "other@example.com") is None

    def test_unknown_number_finds_nothing(self, order_store):
        assert order_store.get_order_by_number_and_email("OPAL-NOPE", "user@example.com") is None

    def test_list_newest_first(self, order_store):
        order_store.create_order(make_order("OPAL-1", "a@example.com", "2025-01-01T00:00:00Z"))
        order_store.create_order(make_order("OPAL-2", "a@example.com", "2025-03-01T00:00:00Z"))
        order_store.create_order(make_order("OPAL-3", "a@example.com", "2025-02-01T00:00:00Z"))

        assert [o.order_number for o in order_store.list_orders()] == ["OPAL-2", "OPAL-3", "OPAL-1"]

    def test_get_by_number(self, order_store):
        order_store.create_order(make_order("OPAL-1", "a@example.com", "2025-01-01T00:00:00Z"))

        found = order_store.get_order_by_number(" opal-1 ")

        assert found is not None
        assert found.id == "id-OPAL-1"
        assert order_store.get_order_by_number("OPAL-2") is None

    def test_duplicate_number_not_stored(self, order_store):
        first = order_store.create_order(make_order("OPAL-1", "a@example.com", "2025-01-01T00:00:00Z"))
        duplicate = make_order("OPAL-1", "b@example.com", "2025-01-02T00:00:00Z")
        duplicate.id = "another-id"

        assert first == "id-OPAL-1"
        assert order_store.create_order(duplicate) is None
        assert len(order_store.list_orders()) == 1
