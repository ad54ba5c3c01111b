"""FastAPI REST API for the opalstore storefront."""

import base64
import binascii
import logging
from decimal import Decimal
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .backup import export_backup, restore_backup
from .cart_store import CART_KEY, CartStore, FileKeyValueStore, InMemoryKeyValueStore
from .catalog_import import ImportResult, generate_sample_csv, parse
from .catalog_store import CategoryStore, ProductStore
from .config import AppConfig
from .document_store import DocumentStore
from .errors import (
    BackendNotConfiguredError,
    CategoryNotFoundError,
    InvalidSchemaVersionError,
    InvalidStatusTransitionError,
    OpalStoreError,
    OrderNotFoundError,
    OrderNumberCollisionError,
    ProductNotFoundError,
    ValidationError,
)
from .lifecycle import OrderLifecycle, TransitionPolicy, status_summary
from .models import Category, Contact, Product, ProductImage, ShippingAddress
from .order_store import OrderStore
from .orders import OrderMaterializer, place_order
from .pricing import CartQuote, quote_cart
from .settings_store import SettingsStore

logger = logging.getLogger(__name__)

CARTS_FILE = "carts.json"
SERVICE_UNAVAILABLE = "Service temporarily unavailable. Please try again."


# --- Pydantic Schemas ---


class ProductImageSchema(BaseModel):
    src: str
    alt: Optional[str] = None


class ProductFieldsSchema(BaseModel):
    """Optional product fields shared by create and update."""

    discount_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = None
    stock: Optional[bool] = None
    colors: Optional[list[str]] = None
    color: Optional[str] = None
    sizes: Optional[dict[str, int]] = None
    size_prices: Optional[dict[str, Decimal]] = None
    size: Optional[str] = None
    category_id: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    long_description: Optional[dict[str, Any]] = None
    details: Optional[str] = None
    brand: Optional[str] = None
    brand_origin: Optional[str] = None
    model: Optional[str] = None
    slug: Optional[str] = None
    star: Optional[bool] = None
    thumb_src: Optional[str] = None
    thumb_alt: Optional[str] = None
    images: Optional[list[ProductImageSchema]] = None
    video_url: Optional[str] = None
    video_poster: Optional[str] = None
    highlights: Optional[list[str]] = None
    features: Optional[list[Any]] = None
    specifications: Optional[dict[str, Any]] = None
    delivery: Optional[dict[str, Any]] = None
    rating: Optional[float] = None
    reviews: Optional[int] = None
    status: Optional[str] = None
    resource: Optional[str] = None


class ProductCreateRequest(ProductFieldsSchema):
    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)


class ProductUpdateRequest(ProductFieldsSchema):
    title: Optional[str] = Field(None, min_length=1)
    price: Optional[Decimal] = Field(None, ge=0)


class ProductListResponse(BaseModel):
    products: list[dict[str, Any]]
    count: int


class ImportRequest(BaseModel):
    """Exactly one of content, content_base64 or document should be set."""

    content: Optional[str] = Field(None, description="CSV or JSON text")
    content_base64: Optional[str] = Field(None, description="Base64-encoded file (e.g. .xlsx)")
    document: Optional[Any] = Field(None, description="Already-parsed JSON document")
    commit: bool = Field(default=True, description="Store parsed products (false = preview)")


class ImportResponse(BaseModel):
    products: list[dict[str, Any]]
    created: int
    errors: list[str]
    warnings: list[str]


class CategoryCreateRequest(BaseModel):
    title: str = Field(..., min_length=1)
    collection: str = ""
    thumb_src: str = ""
    parent_id: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    collection: Optional[str] = None
    thumb_src: Optional[str] = None
    parent_id: Optional[str] = None


class CategoryListResponse(BaseModel):
    categories: list[dict[str, Any]]
    count: int


class SettingsUpdateRequest(BaseModel):
    shipping_cost: Optional[Decimal] = Field(None, ge=0)
    free_shipping_threshold: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = None


class CartItemRequest(BaseModel):
    product_id: str
    quantity: int = 1
    color: Optional[str] = None
    size: Optional[str] = None


class CartResponse(BaseModel):
    items: list[dict[str, Any]]
    count: int


class QuoteResponse(BaseModel):
    lines: list[dict[str, Any]]
    subtotal: str
    shipping_cost: str
    total: str
    currency: str


class ContactSchema(BaseModel):
    email: str = ""
    phone: str = ""


class ShippingSchema(BaseModel):
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""


class CheckoutRequest(BaseModel):
    contact: ContactSchema
    shipping: ShippingSchema
    payment_method: str = Field(default="cod", description="'cod' or 'card'")


class CheckoutResponse(BaseModel):
    order_id: str
    order_number: str
    quote: QuoteResponse


class OrderListResponse(BaseModel):
    orders: list[dict[str, Any]]
    count: int


class StatusUpdateRequest(BaseModel):
    status: str


class SummaryResponse(BaseModel):
    counts: dict[str, int]
    order_count: int
    revenue: str


class ErrorResponse(BaseModel):
    detail: str
    error_type: str


# --- Helper Functions ---


# Carts fall back to process memory when no data directory is configured.
_memory_carts = InMemoryKeyValueStore()


def get_config() -> AppConfig:
    """Read configuration from the environment on every request."""
    return AppConfig.from_env()


def get_documents() -> DocumentStore:
    return DocumentStore(get_config().data_dir)


def get_cart(client_id: str) -> CartStore:
    """Cart for one client, keyed by the client's identifier."""
    data_dir = get_config().data_dir
    backend = FileKeyValueStore(data_dir / CARTS_FILE) if data_dir else _memory_carts
    return CartStore(backend, key=f"{CART_KEY}:{client_id}")


def get_lifecycle() -> OrderLifecycle:
    config = get_config()
    orders = OrderStore(DocumentStore(config.data_dir))
    return OrderLifecycle(
        orders, TransitionPolicy(allow_corrections=config.allow_status_corrections)
    )


def require_admin(x_admin_key: Optional[str] = Header(default=None)) -> None:
    """Guard for admin endpoints: the X-Admin-Key header must match the configured key."""
    if x_admin_key != get_config().admin_key:
        raise HTTPException(status_code=401, detail="Admin key required")


def quote_to_schema(quote: CartQuote) -> QuoteResponse:
    return QuoteResponse(
        lines=[line.to_dict() for line in quote.lines],
        subtotal=str(quote.subtotal),
        shipping_cost=str(quote.shipping_cost),
        total=str(quote.total),
        currency=quote.currency,
    )


def cart_to_schema(cart: CartStore) -> CartResponse:
    entries = cart.list()
    return CartResponse(
        items=[e.to_dict() for e in entries],
        count=sum(e.quantity or 1 for e in entries),
    )


def _product_fields(request: BaseModel) -> dict[str, Any]:
    fields = request.model_dump(exclude_unset=True)
    if fields.get("images") is not None:
        fields["images"] = [ProductImage(**img) for img in fields["images"]]
    return fields


def _decode_import(request: ImportRequest) -> Any:
    if request.content_base64 is not None:
        try:
            return base64.b64decode(request.content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Invalid base64 content: {e}", field="content_base64") from e
    if request.content is not None:
        return request.content
    if request.document is not None:
        return request.document
    raise ValidationError("Nothing to import: send content, content_base64 or document")


# --- FastAPI App ---


app = FastAPI(
    title="opalstore API",
    description="REST API for the opalstore storefront",
    version=__version__,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    InvalidStatusTransitionError: 409,
    ProductNotFoundError: 404,
    CategoryNotFoundError: 404,
    OrderNotFoundError: 404,
    BackendNotConfiguredError: 503,
    OrderNumberCollisionError: 503,
    InvalidSchemaVersionError: 400,
}


@app.exception_handler(OpalStoreError)
async def opalstore_error_handler(request: Request, exc: OpalStoreError) -> JSONResponse:
    """Map OpalStoreError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    detail = str(exc)
    if isinstance(exc, BackendNotConfiguredError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        detail = SERVICE_UNAVAILABLE
    return JSONResponse(
        status_code=status_code,
        content={"detail": detail, "error_type": type(exc).__name__},
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check():
    """Service status and whether the document store is configured."""
    config = get_config()
    return {
        "status": "ok",
        "version": __version__,
        "configured": config.data_dir is not None,
    }


# --- Product Endpoints ---


@app.get("/api/products", response_model=ProductListResponse)
def list_products(category_id: Optional[str] = Query(default=None)):
    """List catalog products, optionally within one category."""
    products = ProductStore(get_documents()).list_products()
    if category_id:
        products = [p for p in products if p.category_id == category_id]
    return ProductListResponse(products=[p.to_dict() for p in products], count=len(products))


@app.get("/api/products/import/template", response_class=PlainTextResponse)
def product_import_template():
    """CSV template for bulk product import."""
    return PlainTextResponse(
        generate_sample_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="products-template.csv"'},
    )


@app.post(
    "/api/products/import",
    response_model=ImportResponse,
    dependencies=[Depends(require_admin)],
)
def import_products(request: ImportRequest):
    """
    Bulk-import products from CSV, Excel or JSON.

    Rows with errors are skipped and reported; the rest are stored unless
    commit is false.
    """
    result: ImportResult = parse(_decode_import(request))
    created = 0
    if request.commit and result.products:
        store = ProductStore(get_documents())
        for product in result.products:
            try:
                store.create_product(product)
            except ValidationError as e:
                result.errors.append(f"{product.title}: {e}")
            else:
                created += 1
    return ImportResponse(
        products=[p.to_dict() for p in result.products],
        created=created,
        errors=result.errors,
        warnings=result.warnings,
    )


@app.get("/api/products/{product_id}")
def get_product(product_id: str):
    product = ProductStore(get_documents()).get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return product.to_dict()


@app.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(request: ProductCreateRequest):
    fields = {k: v for k, v in _product_fields(request).items() if v is not None}
    product = Product.create(title=fields.pop("title"), price=fields.pop("price"), **fields)
    ProductStore(get_documents()).create_product(product)
    return product.to_dict()


@app.patch("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, request: ProductUpdateRequest):
    """Partial update. Send a field as null to clear it."""
    changes = request.model_dump(exclude_unset=True)
    for name in ("title", "price", "stock", "star"):
        if changes.get(name, "") is None:
            del changes[name]
    product = ProductStore(get_documents()).update_product(product_id, changes)
    return product.to_dict()


@app.delete("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str):
    deleted = ProductStore(get_documents()).delete_product(product_id)
    return {"deleted": deleted}


# --- Category Endpoints ---


@app.get("/api/categories", response_model=CategoryListResponse)
def list_categories(
    top_level: bool = Query(default=False),
    parent_id: Optional[str] = Query(default=None),
):
    """List categories; filter to top-level ones or to children of a parent."""
    store = CategoryStore(get_documents())
    if parent_id:
        categories = store.list_children(parent_id)
    elif top_level:
        categories = store.list_top_level()
    else:
        categories = store.list_categories()
    return CategoryListResponse(
        categories=[c.to_dict() for c in categories], count=len(categories)
    )


@app.get("/api/categories/{category_id}")
def get_category(category_id: str):
    category = CategoryStore(get_documents()).get_category(category_id)
    if category is None:
        raise HTTPException(status_code=404, detail=f"Category not found: {category_id}")
    return category.to_dict()


@app.post("/api/categories", status_code=201, dependencies=[Depends(require_admin)])
def create_category(request: CategoryCreateRequest):
    category = Category.create(
        title=request.title,
        collection=request.collection,
        thumb_src=request.thumb_src,
        parent_id=request.parent_id or None,
    )
    CategoryStore(get_documents()).create_category(category)
    return category.to_dict()


@app.patch("/api/categories/{category_id}", dependencies=[Depends(require_admin)])
def update_category(category_id: str, request: CategoryUpdateRequest):
    changes = request.model_dump(exclude_unset=True)
    category = CategoryStore(get_documents()).update_category(category_id, changes)
    return category.to_dict()


@app.delete("/api/categories/{category_id}", dependencies=[Depends(require_admin)])
def delete_category(category_id: str):
    deleted = CategoryStore(get_documents()).delete_category(category_id)
    return {"deleted": deleted}


# --- Settings Endpoints ---


@app.get("/api/settings")
def get_settings():
    return SettingsStore(get_documents()).get_settings().to_dict()


@app.put("/api/settings", dependencies=[Depends(require_admin)])
def update_settings(request: SettingsUpdateRequest):
    settings = SettingsStore(get_documents()).update_settings(
        shipping_cost=request.shipping_cost,
        free_shipping_threshold=request.free_shipping_threshold,
        currency=request.currency,
    )
    return settings.to_dict()


# --- Cart Endpoints ---


@app.get("/api/carts/{client_id}", response_model=CartResponse)
def get_cart_items(client_id: str):
    return cart_to_schema(get_cart(client_id))


@app.post("/api/carts/{client_id}/items", response_model=CartResponse)
def add_cart_item(client_id: str, request: CartItemRequest):
    """Add to the line matching (product, color, size), or start a new line."""
    if request.quantity < 1:
        raise ValidationError("Quantity must be at least 1", field="quantity")
    cart = get_cart(client_id)
    cart.add(request.product_id, request.quantity, color=request.color, size=request.size)
    return cart_to_schema(cart)


@app.put("/api/carts/{client_id}/items", response_model=CartResponse)
def set_cart_item_quantity(client_id: str, request: CartItemRequest):
    """Set a line's quantity; below 1 removes the line."""
    cart = get_cart(client_id)
    cart.set_quantity(request.product_id, request.quantity, color=request.color, size=request.size)
    return cart_to_schema(cart)


@app.delete("/api/carts/{client_id}/items", response_model=CartResponse)
def remove_cart_item(
    client_id: str,
    product_id: str = Query(...),
    color: Optional[str] = Query(default=None),
    size: Optional[str] = Query(default=None),
):
    cart = get_cart(client_id)
    cart.remove(product_id, color=color, size=size)
    return cart_to_schema(cart)


@app.delete("/api/carts/{client_id}", response_model=CartResponse)
def clear_cart(client_id: str):
    cart = get_cart(client_id)
    cart.clear()
    return cart_to_schema(cart)


@app.get("/api/carts/{client_id}/quote", response_model=QuoteResponse)
def get_cart_quote(client_id: str):
    """Price the cart against the current catalog and shipping settings."""
    config = get_config()
    documents = DocumentStore(config.data_dir)
    quote = quote_cart(
        ProductStore(documents).get_catalog(),
        get_cart(client_id).list(),
        SettingsStore(documents).get_settings(),
        max_quantity=config.max_quantity,
    )
    return quote_to_schema(quote)


@app.post(
    "/api/carts/{client_id}/checkout", response_model=CheckoutResponse, status_code=201
)
def checkout(client_id: str, request: CheckoutRequest):
    """Place an order for the cart. The cart is cleared only after the order is stored."""
    config = get_config()
    documents = DocumentStore(config.data_dir)
    placed = place_order(
        cart=get_cart(client_id),
        catalog=ProductStore(documents).get_catalog(),
        settings=SettingsStore(documents).get_settings(),
        materializer=OrderMaterializer(OrderStore(documents), prefix=config.order_prefix),
        contact=Contact(email=request.contact.email, phone=request.contact.phone),
        shipping=ShippingAddress(**request.shipping.model_dump()),
        payment_method=request.payment_method,
        max_quantity=config.max_quantity,
    )
    return CheckoutResponse(
        order_id=placed.order_id,
        order_number=placed.order_number,
        quote=quote_to_schema(placed.quote),
    )


# --- Order Endpoints ---


@app.get("/api/orders/track")
def track_order(order_number: str = Query(...), email: str = Query(...)):
    """Look up an order by its number and the email it was placed with."""
    order = OrderStore(get_documents()).get_order_by_number_and_email(order_number, email)
    if order is None:
        raise HTTPException(
            status_code=404, detail="No order found with that order number and email"
        )
    return order.to_dict()


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    dependencies=[Depends(require_admin)],
)
def list_orders(status: Optional[str] = Query(default=None)):
    """List orders, newest first."""
    orders = OrderStore(get_documents()).list_orders()
    if status:
        orders = [o for o in orders if o.status.value == status]
    return OrderListResponse(orders=[o.to_dict() for o in orders], count=len(orders))


@app.get(
    "/api/orders/summary",
    response_model=SummaryResponse,
    dependencies=[Depends(require_admin)],
)
def order_summary():
    """Per-status counts and revenue (cancelled orders excluded)."""
    summary = status_summary(OrderStore(get_documents()).list_orders())
    return SummaryResponse(
        counts=summary.counts,
        order_count=summary.order_count,
        revenue=str(summary.revenue),
    )


@app.get("/api/orders/{order_id}", dependencies=[Depends(require_admin)])
def get_order(order_id: str):
    order = OrderStore(get_documents()).get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order.to_dict()


@app.patch("/api/orders/{order_id}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_id: str, request: StatusUpdateRequest):
    order = get_lifecycle().update_status(order_id, request.status)
    return order.to_dict()


@app.delete("/api/orders/{order_id}", dependencies=[Depends(require_admin)])
def delete_order(order_id: str, confirm: bool = Query(default=False)):
    """
    Permanently delete an order.

    Requires confirm=true. Deleting an order that doesn't exist is not an error.
    """
    if not confirm:
        raise HTTPException(status_code=400, detail="Deleting an order requires confirm=true")
    deleted = get_lifecycle().delete_order(order_id)
    return {"deleted": deleted}


# --- Backup Endpoints ---


@app.get("/api/backup", dependencies=[Depends(require_admin)])
def download_backup():
    """Export every collection as one backup document."""
    return export_backup(get_documents()).to_dict()


@app.post("/api/backup/restore", dependencies=[Depends(require_admin)])
def upload_backup(backup: dict[str, Any]):
    """Replace all data with a backup document."""
    report = restore_backup(get_documents(), backup)
    return report.to_dict()
