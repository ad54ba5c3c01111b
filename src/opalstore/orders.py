"""Order materialization and checkout for opalstore."""

import logging
import random
import time
from decimal import Decimal
from typing import Callable, Iterable, Mapping, NamedTuple

from .cart_store import CartStore
from .config import DEFAULT_MAX_QUANTITY, DEFAULT_ORDER_PREFIX
from .errors import OrderNumberCollisionError, ValidationError
from .models import (
    Contact,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PricedLine,
    Product,
    ShippingAddress,
    StoreSettings,
    _generate_id,
    _utc_now,
)
from .order_store import OrderStore
from .pricing import CartQuote, quote_cart

logger = logging.getLogger(__name__)

MAX_ORDER_NUMBER_ATTEMPTS = 5
ORDER_NUMBER_LENGTH = 8

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class CreatedOrder(NamedTuple):
    order_id: str
    order_number: str


class PlacedOrder(NamedTuple):
    order_id: str
    order_number: str
    quote: CartQuote


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def generate_order_number(prefix: str = DEFAULT_ORDER_PREFIX, timestamp_ms: int | None = None) -> str:
    """
    Build a human-readable order number such as ``OPAL-M3K9ZQ1B``.

    The suffix is the last 8 characters of the base-36 creation time in
    milliseconds, upper-cased.
    """
    if timestamp_ms is None:
        timestamp_ms = _now_ms()
    return f"{prefix}-{_to_base36(timestamp_ms).upper()[-ORDER_NUMBER_LENGTH:]}"


def _require(value: str, message: str, field: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(message, field=field)
    return value


class OrderMaterializer:
    """Turns priced lines plus buyer input into a stored, immutable order."""

    def __init__(
        self,
        orders: OrderStore,
        prefix: str = DEFAULT_ORDER_PREFIX,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
        max_attempts: int = MAX_ORDER_NUMBER_ATTEMPTS,
    ):
        """
        Initialize OrderMaterializer.

        Args:
            orders: Where orders are persisted.
            prefix: Store tag in front of every order number.
            clock: Returns the current time in milliseconds (for testing).
            rng: Source of the jitter added when an order number is retried.
            max_attempts: Order-number attempts before giving up.
        """
        self.orders = orders
        self.prefix = prefix
        self.clock = clock or _now_ms
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts

    def create_order(
        self,
        items: Iterable[OrderItem | PricedLine],
        contact: Contact,
        shipping: ShippingAddress,
        payment_method: PaymentMethod | str,
        subtotal: Decimal,
        shipping_cost: Decimal,
        currency: str,
        allow_empty: bool = False,
    ) -> CreatedOrder:
        """
        Validate input and persist a new pending order.

        The total is always subtotal + shipping_cost. Clearing the cart is
        left to the caller, after this returns.

        Raises:
            ValidationError: If contact, address, payment method, money or
                items are invalid. Nothing is written.
            OrderNumberCollisionError: If every generated order number was
                already taken.
            BackendNotConfiguredError: If the document store is unconfigured.
        """
        email = _require(contact.email, "Email is required", "contact.email").lower()
        phone = _require(contact.phone, "Phone is required", "contact.phone")
        address = _require(shipping.address, "Address is required", "shipping.address")

        try:
            method = PaymentMethod(payment_method)
        except ValueError:
            raise ValidationError(
                f"Unknown payment method: {payment_method}", field="payment_method"
            ) from None

        order_items = [
            item.to_order_item() if isinstance(item, PricedLine) else item for item in items
        ]
        if not order_items and not allow_empty:
            raise ValidationError("Order has no items", field="items")
        if subtotal < 0:
            raise ValidationError("Subtotal must not be negative", field="subtotal")
        if shipping_cost < 0:
            raise ValidationError("Shipping cost must not be negative", field="shipping_cost")

        base = Order(
            id=_generate_id(),
            order_number="",
            items=order_items,
            contact=Contact(email=email, phone=phone),
            shipping=ShippingAddress(
                address=address,
                city=(shipping.city or "").strip(),
                state=(shipping.state or "").strip(),
                postal_code=(shipping.postal_code or "").strip(),
            ),
            payment_method=method,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=subtotal + shipping_cost,
            currency=currency,
            status=OrderStatus.PENDING,
            created_at=_utc_now(),
        )

        for attempt in range(self.max_attempts):
            timestamp = self.clock()
            if attempt:
                timestamp += self.rng.randrange(1, 36 ** 4)
            base.order_number = generate_order_number(self.prefix, timestamp)

            order_id = self.orders.create_order(base)
            if order_id is not None:
                logger.info(
                    "Created order %s (%s) total %s %s",
                    base.order_number, order_id, base.total, currency,
                )
                return CreatedOrder(order_id=order_id, order_number=base.order_number)

            logger.warning(
                "Order number %s already taken (attempt %d/%d)",
                base.order_number, attempt + 1, self.max_attempts,
            )

        raise OrderNumberCollisionError(self.max_attempts)


def place_order(
    cart: CartStore,
    catalog: Mapping[str, Product],
    settings: StoreSettings,
    materializer: OrderMaterializer,
    contact: Contact,
    shipping: ShippingAddress,
    payment_method: PaymentMethod | str,
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> PlacedOrder:
    """
    Check out a cart.

    Prices the cart against the catalog, materializes the order, and clears
    the cart only once the order has been written.

    Raises:
        ValidationError: If the cart prices to no lines or buyer input is invalid.
    """
    quote = quote_cart(catalog, cart.list(), settings, max_quantity=max_quantity)
    if not quote.lines:
        raise ValidationError("Your cart is empty", field="items")

    created = materializer.create_order(
        items=quote.lines,
        contact=contact,
        shipping=shipping,
        payment_method=payment_method,
        subtotal=quote.subtotal,
        shipping_cost=quote.shipping_cost,
        currency=quote.currency,
    )
    cart.clear()
    return PlacedOrder(order_id=created.order_id, order_number=created.order_number, quote=quote)
