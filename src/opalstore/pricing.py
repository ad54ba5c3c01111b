"""Cart pricing for opalstore.

Pure functions over an already-fetched catalog snapshot, cart entries and
store settings. Nothing here performs I/O.
"""

import logging
from decimal import ROUND_HALF_EVEN, Decimal, localcontext
from typing import Iterable, Mapping, NamedTuple

from .config import DEFAULT_MAX_QUANTITY
from .models import CartEntry, PricedLine, Product, StoreSettings

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PricedCart(NamedTuple):
    """Priced lines plus their aggregate subtotal."""

    lines: list[PricedLine]
    subtotal: Decimal


class CartQuote(NamedTuple):
    """Everything checkout needs to display and materialize an order."""

    lines: list[PricedLine]
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round to specified decimal places using banker's rounding."""
    quantize_str = "0." + "0" * places
    with localcontext() as ctx:
        # quantize needs every integer digit plus the requested places
        ctx.prec = max(ctx.prec, amount.adjusted() + places + 1)
        return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_EVEN)


def resolve_unit_price(product: Product, size: str | None = None) -> Decimal:
    """
    Resolve the unit price for one cart line.

    A size-price override for the selected size replaces both the base and
    the discount price. Otherwise the discount price applies when it is
    lower than the base price.
    """
    if size and size in product.size_prices:
        return product.size_prices[size]
    if product.discount_price is not None and product.discount_price < product.price:
        return product.discount_price
    return product.price


def clamp_quantity(qty: int, max_quantity: int = DEFAULT_MAX_QUANTITY) -> int:
    return max(1, min(int(qty), max_quantity))


def price_cart(
    catalog: Mapping[str, Product],
    entries: Iterable[CartEntry],
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> PricedCart:
    """
    Join cart entries against the catalog.

    Entries whose product is no longer in the catalog are dropped.

    Args:
        catalog: product_id -> Product snapshot.
        entries: Cart entries in display order.
        max_quantity: Upper bound applied to each line's quantity.

    Returns:
        PricedCart with one line per surviving entry.
    """
    lines: list[PricedLine] = []
    for entry in entries:
        product = catalog.get(entry.product_id)
        if product is None:
            logger.debug("Dropping cart line for missing product %s", entry.product_id)
            continue

        quantity = clamp_quantity(entry.quantity, max_quantity)
        unit_price = resolve_unit_price(product, entry.size)
        lines.append(
            PricedLine(
                product_id=product.id,
                title=product.title,
                unit_price=unit_price,
                quantity=quantity,
                subtotal=round_money(unit_price * quantity),
                currency=product.currency,
                thumb_src=product.thumbnail,
                color=entry.color,
                size=entry.size,
            )
        )

    subtotal = sum((line.subtotal for line in lines), ZERO)
    return PricedCart(lines=lines, subtotal=round_money(subtotal))


def compute_shipping(
    subtotal: Decimal,
    shipping_cost: Decimal,
    free_shipping_threshold: Decimal,
) -> Decimal:
    """
    Shipping charged for a subtotal.

    A threshold of 0 means shipping is always free. A positive threshold
    waives shipping once the subtotal reaches it; below it the flat cost
    applies.
    """
    if free_shipping_threshold == 0:
        return ZERO
    if free_shipping_threshold > 0 and subtotal >= free_shipping_threshold:
        return ZERO
    return shipping_cost


def quote_cart(
    catalog: Mapping[str, Product],
    entries: Iterable[CartEntry],
    settings: StoreSettings,
    max_quantity: int = DEFAULT_MAX_QUANTITY,
) -> CartQuote:
    """Price a cart and add shipping from the store settings."""
    priced = price_cart(catalog, entries, max_quantity=max_quantity)
    shipping = compute_shipping(
        priced.subtotal, settings.shipping_cost, settings.free_shipping_threshold
    )
    return CartQuote(
        lines=priced.lines,
        subtotal=priced.subtotal,
        shipping_cost=shipping,
        total=priced.subtotal + shipping,
        currency=settings.currency,
    )
