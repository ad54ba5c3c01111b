"""opalstore - storefront core: catalog, carts, pricing, orders and catalog import."""

__version__ = "0.1.0"
