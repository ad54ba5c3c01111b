"""Utility functions for opalstore."""

from decimal import Decimal

from .models import Order, Product
from .pricing import resolve_unit_price, round_money


def format_money(amount: Decimal, currency: str = "") -> str:
    """
    Format an amount with thousands separators and no trailing zeros.

    format_money(Decimal("1234.50"), "৳") -> "৳1,234.5"
    """
    text = f"{round_money(amount):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{currency}{text}"


def truncate_id(doc_id: str) -> str:
    """Truncate a document ID for display."""
    return doc_id[:8]


def format_product(product: Product, verbose: bool = False) -> str:
    """Format a product for display."""
    currency = product.currency or ""
    price = format_money(resolve_unit_price(product), currency)
    if resolve_unit_price(product) != product.price:
        price += f" (was {format_money(product.price, currency)})"
    stock = "in stock" if product.stock else "out of stock"
    result = f"{truncate_id(product.id)}  {product.title}  {price} ({stock})"

    if verbose:
        if product.category_id:
            result += f"\n         Category: {product.category_id}"
        if product.colors:
            result += f"\n         Colors: {', '.join(product.colors)}"
        if product.sizes:
            sizes = ", ".join(f"{s}:{q}" for s, q in product.sizes.items())
            result += f"\n         Sizes: {sizes}"
        for size, override in product.size_prices.items():
            result += f"\n         Price ({size}): {format_money(override, currency)}"
    return result


def format_order(order: Order, verbose: bool = False) -> str:
    """Format an order for display."""
    total = format_money(order.total, order.currency)
    result = (
        f"{order.order_number}  {order.status.value:<9}  {total:>12}  "
        f"{order.contact.email}  {order.created_at[:10]}"
    )

    if verbose:
        for item in order.items:
            options = ", ".join(o for o in (item.color, item.size) if o)
            suffix = f" [{options}]" if options else ""
            result += (
                f"\n         {item.quantity} x {item.title}{suffix} @ "
                f"{format_money(item.price, order.currency)} = "
                f"{format_money(item.subtotal, order.currency)}"
            )
        result += f"\n         Shipping: {format_money(order.shipping_cost, order.currency)}"
        result += f"\n         Ship to: {order.shipping.address}"
        if order.shipping.city:
            result += f", {order.shipping.city}"
    return result
