"""Command-line interface for opalstore."""

import argparse
import json
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path

from . import __version__
from .backup import export_backup, restore_backup
from .cart_store import CART_KEY, CartStore, FileKeyValueStore, InMemoryKeyValueStore
from .catalog_import import generate_sample_csv, parse
from .catalog_store import CategoryStore, ProductStore
from .config import AppConfig
from .document_store import DocumentStore
from .errors import OpalStoreError, ValidationError
from .lifecycle import OrderLifecycle, TransitionPolicy, status_summary
from .logging_config import configure_logging
from .models import Contact, Order, ShippingAddress
from .order_store import OrderStore
from .orders import OrderMaterializer, place_order
from .pricing import quote_cart
from .settings_store import SettingsStore
from .utils import format_money, format_order, format_product, truncate_id

CARTS_FILE = "carts.json"


def get_config() -> AppConfig:
    return AppConfig.from_env()


def get_documents(config: AppConfig | None = None) -> DocumentStore:
    """Get the DocumentStore for the configured data directory."""
    return DocumentStore((config or get_config()).data_dir)


def get_cart(args: argparse.Namespace, config: AppConfig | None = None) -> CartStore:
    """Get the cart of the client named by --client."""
    config = config or get_config()
    if config.data_dir is None:
        backend = InMemoryKeyValueStore()
    else:
        backend = FileKeyValueStore(config.data_dir / CARTS_FILE)
    return CartStore(backend, key=f"{CART_KEY}:{args.client}")


def _decimal(value: str) -> Decimal:
    """argparse type for money arguments."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value}") from None


def _resolve_order(store: OrderStore, ref: str) -> Order | None:
    """Find an order by ID or by order number."""
    return store.get_order(ref) or store.get_order_by_number(ref)


# --- products ---


def cmd_products_list(args: argparse.Namespace) -> int:
    """List catalog products."""
    try:
        products = ProductStore(get_documents()).list_products()
        if args.category:
            products = [p for p in products if p.category_id == args.category]

        if not products:
            print("No products found.")
            return 0

        if args.json:
            print(json.dumps([p.to_dict() for p in products], indent=2, ensure_ascii=False))
        else:
            print(f"Products ({len(products)}):")
            print()
            for product in products:
                print(format_product(product, verbose=args.verbose))

        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_import(args: argparse.Namespace) -> int:
    """Import products from a CSV, Excel or JSON file."""
    try:
        path = Path(args.file)
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1

        result = parse(path.read_bytes())

        for warning in result.warnings:
            print(f"Warning: {warning}", file=sys.stderr)
        for error in result.errors:
            print(f"Skipped: {error}", file=sys.stderr)

        if args.dry_run:
            print(f"Would import {len(result.products)} product(s):")
            for product in result.products:
                print(f"  {product.title}  {format_money(product.price, product.currency or '')}")
            return 0

        store = ProductStore(get_documents())
        created = 0
        for product in result.products:
            try:
                store.create_product(product)
                created += 1
            except ValidationError as e:
                print(f"Skipped: {product.title}: {e}", file=sys.stderr)

        print(f"Imported {created} product(s)")
        if result.errors:
            print(f"  {len(result.errors)} row(s) skipped")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_products_template(args: argparse.Namespace) -> int:
    """Write the CSV import template."""
    template = generate_sample_csv()
    if args.output:
        Path(args.output).write_text(template, encoding="utf-8")
        print(f"Wrote template to {args.output}")
    else:
        sys.stdout.write(template)
    return 0


# --- categories ---


def cmd_categories_list(args: argparse.Namespace) -> int:
    """List categories as a two-level tree."""
    try:
        store = CategoryStore(get_documents())
        categories = store.list_categories()

        if not categories:
            print("No categories found.")
            return 0

        if args.json:
            print(json.dumps([c.to_dict() for c in categories], indent=2, ensure_ascii=False))
            return 0

        known = {c.id for c in categories}
        for parent in categories:
            # Children whose parent was deleted are shown as top-level.
            if parent.parent_id and parent.parent_id in known:
                continue
            print(f"{truncate_id(parent.id)}  {parent.title}")
            for child in store.list_children(parent.id):
                print(f"  {truncate_id(child.id)}  {child.title}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- settings ---


def _print_settings(settings) -> None:
    print(f"Currency: {settings.currency}")
    print(f"Shipping cost: {format_money(settings.shipping_cost, settings.currency)}")
    if settings.free_shipping_threshold == 0:
        print("Free shipping threshold: 0 (shipping always free)")
    else:
        print(
            "Free shipping threshold: "
            f"{format_money(settings.free_shipping_threshold, settings.currency)}"
        )


def cmd_settings_show(args: argparse.Namespace) -> int:
    try:
        _print_settings(SettingsStore(get_documents()).get_settings())
        return 0
    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_settings_set(args: argparse.Namespace) -> int:
    """Update store settings."""
    try:
        settings = SettingsStore(get_documents()).update_settings(
            shipping_cost=args.shipping_cost,
            free_shipping_threshold=args.free_shipping_threshold,
            currency=args.currency,
        )
        print("Updated settings")
        _print_settings(settings)
        return 0
    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- cart ---


def _print_cart(cart: CartStore) -> None:
    entries = cart.list()
    if not entries:
        print("Cart is empty.")
        return
    print(f"Cart ({sum(e.quantity for e in entries)} item(s)):")
    for entry in entries:
        options = ", ".join(o for o in (entry.color, entry.size) if o)
        suffix = f" [{options}]" if options else ""
        print(f"  {entry.quantity} x {entry.product_id}{suffix}")


def cmd_cart_add(args: argparse.Namespace) -> int:
    if args.qty < 1:
        print("Error: Quantity must be at least 1", file=sys.stderr)
        return 1
    cart = get_cart(args)
    cart.add(args.product_id, args.qty, color=args.color, size=args.size)
    _print_cart(cart)
    return 0


def cmd_cart_remove(args: argparse.Namespace) -> int:
    cart = get_cart(args)
    cart.remove(args.product_id, color=args.color, size=args.size)
    _print_cart(cart)
    return 0


def cmd_cart_set(args: argparse.Namespace) -> int:
    cart = get_cart(args)
    cart.set_quantity(args.product_id, args.qty, color=args.color, size=args.size)
    _print_cart(cart)
    return 0


def cmd_cart_list(args: argparse.Namespace) -> int:
    cart = get_cart(args)
    if args.json:
        print(json.dumps([e.to_dict() for e in cart.list()], indent=2))
    else:
        _print_cart(cart)
    return 0


def cmd_cart_clear(args: argparse.Namespace) -> int:
    get_cart(args).clear()
    print("Cart cleared.")
    return 0


def cmd_cart_quote(args: argparse.Namespace) -> int:
    """Price the cart against the catalog and shipping settings."""
    try:
        config = get_config()
        documents = get_documents(config)
        quote = quote_cart(
            ProductStore(documents).get_catalog(),
            get_cart(args, config).list(),
            SettingsStore(documents).get_settings(),
            max_quantity=config.max_quantity,
        )

        if args.json:
            data = {
                "lines": [line.to_dict() for line in quote.lines],
                "subtotal": str(quote.subtotal),
                "shipping_cost": str(quote.shipping_cost),
                "total": str(quote.total),
                "currency": quote.currency,
            }
            print(json.dumps(data, indent=2, ensure_ascii=False))
            return 0

        if not quote.lines:
            print("Cart is empty.")
            return 0

        for line in quote.lines:
            print(
                f"  {line.quantity} x {line.title} @ "
                f"{format_money(line.unit_price, quote.currency)} = "
                f"{format_money(line.subtotal, quote.currency)}"
            )
        print(f"Subtotal: {format_money(quote.subtotal, quote.currency)}")
        print(f"Shipping: {format_money(quote.shipping_cost, quote.currency)}")
        print(f"Total:    {format_money(quote.total, quote.currency)}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- checkout ---


def cmd_checkout(args: argparse.Namespace) -> int:
    """Place an order for the cart."""
    try:
        config = get_config()
        documents = get_documents(config)
        placed = place_order(
            cart=get_cart(args, config),
            catalog=ProductStore(documents).get_catalog(),
            settings=SettingsStore(documents).get_settings(),
            materializer=OrderMaterializer(OrderStore(documents), prefix=config.order_prefix),
            contact=Contact(email=args.email, phone=args.phone),
            shipping=ShippingAddress(
                address=args.address,
                city=args.city or "",
                state=args.state or "",
                postal_code=args.postal_code or "",
            ),
            payment_method=args.payment,
            max_quantity=config.max_quantity,
        )

        print(f"Order placed: {placed.order_number}")
        print(f"  Total: {format_money(placed.quote.total, placed.quote.currency)}")
        print(f"  Track with: opalstore orders track {placed.order_number} {args.email}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- orders ---


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List orders, newest first."""
    try:
        orders = OrderStore(get_documents()).list_orders()
        if args.status:
            orders = [o for o in orders if o.status.value == args.status]

        if not orders:
            print("No orders found.")
            return 0

        if args.json:
            print(json.dumps([o.to_dict() for o in orders], indent=2, ensure_ascii=False))
        else:
            print(f"Orders ({len(orders)}):")
            print()
            for order in orders:
                print(format_order(order, verbose=args.verbose))

        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_track(args: argparse.Namespace) -> int:
    """Look up an order by number and email."""
    try:
        order = OrderStore(get_documents()).get_order_by_number_and_email(
            args.order_number, args.email
        )
        if order is None:
            print("No order found with that order number and email.", file=sys.stderr)
            return 1

        if args.json:
            print(json.dumps(order.to_dict(), indent=2, ensure_ascii=False))
        else:
            print(format_order(order, verbose=True))
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_status(args: argparse.Namespace) -> int:
    """Change an order's status."""
    try:
        config = get_config()
        store = OrderStore(get_documents(config))
        order = _resolve_order(store, args.order)
        if order is None:
            print(f"Error: Order not found: {args.order}", file=sys.stderr)
            return 1

        lifecycle = OrderLifecycle(
            store, TransitionPolicy(allow_corrections=config.allow_status_corrections)
        )
        previous = order.status
        updated = lifecycle.update_status(order.id, args.status)
        print(f"{updated.order_number}: {previous.value} -> {updated.status.value}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_delete(args: argparse.Namespace) -> int:
    """Permanently delete an order."""
    if not args.yes:
        print("Error: Deleting an order is permanent. Re-run with --yes.", file=sys.stderr)
        return 1
    try:
        store = OrderStore(get_documents())
        order = _resolve_order(store, args.order)
        if order is None:
            print(f"Order not found: {args.order} (nothing deleted)")
            return 0

        OrderLifecycle(store).delete_order(order.id)
        print(f"Deleted order: {order.order_number}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_summary(args: argparse.Namespace) -> int:
    """Show per-status counts and revenue."""
    try:
        orders = OrderStore(get_documents()).list_orders()
        summary = status_summary(orders)
        currency = orders[0].currency if orders else ""

        if args.json:
            data = {
                "counts": summary.counts,
                "order_count": summary.order_count,
                "revenue": str(summary.revenue),
            }
            print(json.dumps(data, indent=2))
            return 0

        print(f"Orders: {summary.order_count}")
        for status, count in summary.counts.items():
            print(f"  {status:<10} {count}")
        print(f"Revenue (ex. cancelled): {format_money(summary.revenue, currency)}")
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- backup ---


def cmd_backup_export(args: argparse.Namespace) -> int:
    """Export all data as a backup document."""
    try:
        backup = export_backup(get_documents())
        text = json.dumps(backup.to_dict(), indent=2, ensure_ascii=False)
        if args.output:
            Path(args.output).write_text(text + "\n", encoding="utf-8")
            print(
                f"Exported {len(backup.products)} product(s), "
                f"{len(backup.categories)} category(ies), "
                f"{len(backup.orders)} order(s) to {args.output}"
            )
        else:
            print(text)
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_backup_restore(args: argparse.Namespace) -> int:
    """Replace all data with a backup document."""
    if not args.yes:
        print("Error: Restore replaces all existing data. Re-run with --yes.", file=sys.stderr)
        return 1
    try:
        path = Path(args.file)
        if not path.exists():
            print(f"Error: File not found: {path}", file=sys.stderr)
            return 1
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except ValueError:
            print("Error: Invalid JSON file.", file=sys.stderr)
            return 1

        report = restore_backup(get_documents(), data)
        for error in report.errors:
            print(f"Skipped: {error}", file=sys.stderr)
        print(
            f"Restored {report.products} product(s), {report.categories} category(ies), "
            f"{report.orders} order(s)"
        )
        return 0

    except OpalStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- serve ---


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        config = get_config()
        if config.data_dir is None:
            print("Warning: OPALSTORE_DATA_DIR is empty; writes will fail.", file=sys.stderr)
            print("Starting server anyway...", file=sys.stderr)

        print("Starting opalstore API server...")
        print(f"Data directory: {config.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string
        app_target = "opalstore.api:app" if args.reload else None
        if app_target is None:
            from .api import app
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Single worker; the document store locks a shared file
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _add_cart_line_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("product_id", help="Product ID")
    parser.add_argument("--color", help="Selected color")
    parser.add_argument("--size", help="Selected size")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="opalstore",
        description="Storefront catalog, carts, checkout and order management.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # products
    products_parser = subparsers.add_parser("products", help="Manage catalog products")
    products_subparsers = products_parser.add_subparsers(dest="products_command")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--category", "-c", help="Only products in this category")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    products_list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show colors, sizes and size prices"
    )

    products_import_parser = products_subparsers.add_parser(
        "import", help="Import products from CSV, Excel (.xlsx) or JSON"
    )
    products_import_parser.add_argument("file", help="File to import")
    products_import_parser.add_argument(
        "--dry-run", action="store_true", help="Parse and report without storing"
    )

    products_template_parser = products_subparsers.add_parser(
        "template", help="Print the CSV import template"
    )
    products_template_parser.add_argument("--output", "-o", help="Write to this path")

    # categories
    categories_parser = subparsers.add_parser("categories", help="Browse categories")
    categories_subparsers = categories_parser.add_subparsers(dest="categories_command")
    categories_list_parser = categories_subparsers.add_parser("list", help="List categories")
    categories_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # settings
    settings_parser = subparsers.add_parser("settings", help="Store settings")
    settings_subparsers = settings_parser.add_subparsers(dest="settings_command")
    settings_subparsers.add_parser("show", help="Show store settings")
    settings_set_parser = settings_subparsers.add_parser("set", help="Update store settings")
    settings_set_parser.add_argument("--shipping-cost", type=_decimal, help="Flat shipping cost")
    settings_set_parser.add_argument(
        "--free-shipping-threshold", type=_decimal,
        help="Subtotal at which shipping becomes free (0 = always free)",
    )
    settings_set_parser.add_argument("--currency", help="Currency symbol")

    # cart
    cart_parser = subparsers.add_parser("cart", help="Manage a cart")
    cart_parser.add_argument(
        "--client", default="cli", help="Cart owner identifier (default: cli)"
    )
    cart_subparsers = cart_parser.add_subparsers(dest="cart_command")

    cart_add_parser = cart_subparsers.add_parser("add", help="Add a product to the cart")
    _add_cart_line_args(cart_add_parser)
    cart_add_parser.add_argument("--qty", "-q", type=int, default=1, help="Quantity (default: 1)")

    cart_remove_parser = cart_subparsers.add_parser("remove", help="Remove a cart line")
    _add_cart_line_args(cart_remove_parser)

    cart_set_parser = cart_subparsers.add_parser("set", help="Set a line's quantity")
    _add_cart_line_args(cart_set_parser)
    cart_set_parser.add_argument("qty", type=int, help="New quantity (0 removes the line)")

    cart_list_parser = cart_subparsers.add_parser("list", help="Show cart lines")
    cart_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cart_subparsers.add_parser("clear", help="Empty the cart")

    cart_quote_parser = cart_subparsers.add_parser("quote", help="Price the cart")
    cart_quote_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # checkout
    checkout_parser = subparsers.add_parser("checkout", help="Place an order for the cart")
    checkout_parser.add_argument(
        "--client", default="cli", help="Cart owner identifier (default: cli)"
    )
    checkout_parser.add_argument("--email", required=True, help="Contact email")
    checkout_parser.add_argument("--phone", required=True, help="Contact phone")
    checkout_parser.add_argument("--address", required=True, help="Street address")
    checkout_parser.add_argument("--city", help="City")
    checkout_parser.add_argument("--state", help="State or region")
    checkout_parser.add_argument("--postal-code", help="Postal code")
    checkout_parser.add_argument(
        "--payment", choices=["cod", "card"], default="cod",
        help="Payment method (default: cod)",
    )

    # orders
    orders_parser = subparsers.add_parser("orders", help="Manage orders")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List orders")
    orders_list_parser.add_argument("--status", "-s", help="Only orders with this status")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    orders_list_parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show items and shipping"
    )

    orders_track_parser = orders_subparsers.add_parser(
        "track", help="Find an order by number and email"
    )
    orders_track_parser.add_argument("order_number", help="Order number, e.g. OPAL-M3K9ZQ1B")
    orders_track_parser.add_argument("email", help="Email used at checkout")
    orders_track_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_status_parser = orders_subparsers.add_parser("status", help="Change an order's status")
    orders_status_parser.add_argument("order", help="Order ID or order number")
    orders_status_parser.add_argument(
        "status", choices=["pending", "confirmed", "shipped", "delivered", "cancelled"]
    )

    orders_delete_parser = orders_subparsers.add_parser("delete", help="Permanently delete an order")
    orders_delete_parser.add_argument("order", help="Order ID or order number")
    orders_delete_parser.add_argument(
        "--yes", "-y", action="store_true", help="Confirm permanent deletion"
    )

    orders_summary_parser = orders_subparsers.add_parser(
        "summary", help="Order counts per status and revenue"
    )
    orders_summary_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # backup
    backup_parser = subparsers.add_parser("backup", help="Export or restore all data")
    backup_subparsers = backup_parser.add_subparsers(dest="backup_command")

    backup_export_parser = backup_subparsers.add_parser("export", help="Export a backup")
    backup_export_parser.add_argument("--output", "-o", help="Write to this path (default: stdout)")

    backup_restore_parser = backup_subparsers.add_parser(
        "restore", help="Replace all data with a backup"
    )
    backup_restore_parser.add_argument("file", help="Backup JSON file")
    backup_restore_parser.add_argument(
        "--yes", "-y", action="store_true", help="Confirm replacing existing data"
    )

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


# (group, subcommand) -> handler
SUBCOMMANDS = {
    ("products", "list"): cmd_products_list,
    ("products", "import"): cmd_products_import,
    ("products", "template"): cmd_products_template,
    ("categories", "list"): cmd_categories_list,
    ("settings", "show"): cmd_settings_show,
    ("settings", "set"): cmd_settings_set,
    ("cart", "add"): cmd_cart_add,
    ("cart", "remove"): cmd_cart_remove,
    ("cart", "set"): cmd_cart_set,
    ("cart", "list"): cmd_cart_list,
    ("cart", "clear"): cmd_cart_clear,
    ("cart", "quote"): cmd_cart_quote,
    ("orders", "list"): cmd_orders_list,
    ("orders", "track"): cmd_orders_track,
    ("orders", "status"): cmd_orders_status,
    ("orders", "delete"): cmd_orders_delete,
    ("orders", "summary"): cmd_orders_summary,
    ("backup", "export"): cmd_backup_export,
    ("backup", "restore"): cmd_backup_restore,
}


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    try:
        configure_logging(get_config().log_level)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if not args.command:
        parser.print_help()
        return 0

    # Handle grouped subcommands
    group_command = getattr(args, f"{args.command}_command", None)
    if hasattr(args, f"{args.command}_command"):
        if not group_command:
            parser.parse_args([args.command, "--help"])
            return 0
        return SUBCOMMANDS[(args.command, group_command)](args)

    commands = {
        "checkout": cmd_checkout,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
