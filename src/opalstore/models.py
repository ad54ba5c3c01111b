"""Data models for opalstore."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
import uuid

from .errors import ValidationError

DEFAULT_CURRENCY = "৳"
BACKUP_VERSION = 1

# Largest price a product may carry.
MAX_PRICE = Decimal("1000000000")


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _generate_id() -> str:
    """Generate a new document ID."""
    return str(uuid.uuid4())


def to_decimal(value: Any) -> Decimal:
    """
    Convert a JSON number or numeric string to Decimal.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"Not a number: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"Not a number: {value!r}")
    return result


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return to_decimal(value)


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH_ON_DELIVERY = "cod"
    CARD = "card"


@dataclass
class ProductImage:
    src: str
    alt: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({"src": self.src, "alt": self.alt})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductImage":
        return cls(src=data.get("src", ""), alt=data.get("alt"))


@dataclass
class Product:
    """A catalog entry."""

    id: str
    title: str
    price: Decimal
    discount_price: Decimal | None = None
    currency: str | None = None
    stock: bool = True  # availability flag
    colors: list[str] = field(default_factory=list)
    color: str | None = None
    sizes: dict[str, int] = field(default_factory=dict)  # size -> quantity available
    size_prices: dict[str, Decimal] = field(default_factory=dict)  # size -> price override
    size: str | None = None
    category_id: str | None = None
    description: str | None = None
    short_description: str | None = None
    full_description: str | None = None
    long_description: dict[str, Any] | None = None
    details: str | None = None
    brand: str | None = None
    brand_origin: str | None = None
    model: str | None = None
    slug: str | None = None
    star: bool = False
    thumb_src: str = ""
    thumb_alt: str | None = None
    images: list[ProductImage] = field(default_factory=list)
    video_url: str | None = None
    video_poster: str | None = None
    highlights: list[str] = field(default_factory=list)
    features: list[Any] = field(default_factory=list)
    specifications: dict[str, Any] = field(default_factory=dict)
    delivery: dict[str, Any] | None = None
    rating: float | None = None
    reviews: int | None = None
    status: str | None = None
    resource: str | None = None  # admin-only note
    sales_count: int | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def thumbnail(self) -> str:
        """Cover image, falling back to the first gallery image."""
        if self.thumb_src:
            return self.thumb_src
        if self.images:
            return self.images[0].src
        return ""

    def validate(self) -> None:
        """
        Check price invariants.

        Raises:
            ValidationError: If the title is blank or a price is out of range.
        """
        if not self.title.strip():
            raise ValidationError("Product title is required", field="title")
        if self.price < 0:
            raise ValidationError("Price must not be negative", field="price")
        if self.price > MAX_PRICE:
            raise ValidationError(f"Price must not exceed {MAX_PRICE}", field="price")
        if self.discount_price is not None:
            if self.discount_price < 0:
                raise ValidationError("Discount price must not be negative", field="discount_price")
            if self.discount_price >= self.price:
                raise ValidationError(
                    "Discount price must be lower than price", field="discount_price"
                )
        for size, override in self.size_prices.items():
            if override < 0:
                raise ValidationError(
                    f"Price for size '{size}' must not be negative", field="size_prices"
                )
            if override > MAX_PRICE:
                raise ValidationError(
                    f"Price for size '{size}' must not exceed {MAX_PRICE}", field="size_prices"
                )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "price": str(self.price),
            "stock": self.stock,
            "star": self.star,
            "thumb_src": self.thumb_src,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.discount_price is not None:
            result["discount_price"] = str(self.discount_price)
        if self.colors:
            result["colors"] = list(self.colors)
        if self.sizes:
            result["sizes"] = dict(self.sizes)
        if self.size_prices:
            result["size_prices"] = {k: str(v) for k, v in self.size_prices.items()}
        if self.images:
            result["images"] = [img.to_dict() for img in self.images]
        if self.highlights:
            result["highlights"] = list(self.highlights)
        if self.features:
            result["features"] = list(self.features)
        if self.specifications:
            result["specifications"] = dict(self.specifications)
        for name in (
            "currency", "color", "size", "category_id", "description",
            "short_description", "full_description", "long_description",
            "details", "brand", "brand_origin", "model", "slug", "thumb_alt",
            "video_url", "video_poster", "delivery", "rating", "reviews",
            "status", "resource", "sales_count",
        ):
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            price=to_decimal(data.get("price", 0)),
            discount_price=_optional_decimal(data.get("discount_price")),
            currency=data.get("currency"),
            stock=data.get("stock", True),
            colors=list(data.get("colors", [])),
            color=data.get("color"),
            sizes={str(k): int(v) for k, v in data.get("sizes", {}).items()},
            size_prices={str(k): to_decimal(v) for k, v in data.get("size_prices", {}).items()},
            size=data.get("size"),
            category_id=data.get("category_id"),
            description=data.get("description"),
            short_description=data.get("short_description"),
            full_description=data.get("full_description"),
            long_description=data.get("long_description"),
            details=data.get("details"),
            brand=data.get("brand"),
            brand_origin=data.get("brand_origin"),
            model=data.get("model"),
            slug=data.get("slug"),
            star=data.get("star", False),
            thumb_src=data.get("thumb_src", ""),
            thumb_alt=data.get("thumb_alt"),
            images=[ProductImage.from_dict(i) for i in data.get("images", [])],
            video_url=data.get("video_url"),
            video_poster=data.get("video_poster"),
            highlights=list(data.get("highlights", [])),
            features=list(data.get("features", [])),
            specifications=dict(data.get("specifications", {})),
            delivery=data.get("delivery"),
            rating=data.get("rating"),
            reviews=data.get("reviews"),
            status=data.get("status"),
            resource=data.get("resource"),
            sales_count=data.get("sales_count"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(cls, title: str, price: Decimal | int | str, **fields: Any) -> "Product":
        """Create a new product with generated ID and timestamps."""
        now = _utc_now()
        return cls(
            id=_generate_id(),
            title=title,
            price=to_decimal(price),
            created_at=now,
            updated_at=now,
            **fields,
        )


@dataclass
class Category:
    """A catalog category. Categories without a parent are top-level."""

    id: str
    title: str
    collection: str = ""
    thumb_src: str = ""
    parent_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_top_level(self) -> bool:
        return not self.parent_id

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "collection": self.collection,
            "thumb_src": self.thumb_src,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
        if self.parent_id:
            result["parent_id"] = self.parent_id
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            collection=data.get("collection", ""),
            thumb_src=data.get("thumb_src", ""),
            parent_id=data.get("parent_id") or None,
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )

    @classmethod
    def create(cls, title: str, **fields: Any) -> "Category":
        now = _utc_now()
        return cls(id=_generate_id(), title=title, created_at=now, updated_at=now, **fields)


@dataclass
class StoreSettings:
    """Store-wide configuration singleton."""

    shipping_cost: Decimal = Decimal("0")
    free_shipping_threshold: Decimal = Decimal("0")  # 0 means shipping is always free
    currency: str = DEFAULT_CURRENCY
    updated_at: str = ""

    def validate(self) -> None:
        if self.shipping_cost < 0:
            raise ValidationError("Shipping cost must not be negative", field="shipping_cost")
        if self.free_shipping_threshold < 0:
            raise ValidationError(
                "Free shipping threshold must not be negative", field="free_shipping_threshold"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "shipping_cost": str(self.shipping_cost),
            "free_shipping_threshold": str(self.free_shipping_threshold),
            "currency": self.currency,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoreSettings":
        return cls(
            shipping_cost=to_decimal(data.get("shipping_cost") or 0),
            free_shipping_threshold=to_decimal(data.get("free_shipping_threshold") or 0),
            currency=data.get("currency") or DEFAULT_CURRENCY,
            updated_at=data.get("updated_at", ""),
        )


def _norm_option(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass
class CartEntry:
    """One client-local cart selection. Unique per (product_id, color, size)."""

    product_id: str
    quantity: int = 1
    color: str | None = None
    size: str | None = None

    def __post_init__(self) -> None:
        self.color = _norm_option(self.color)
        self.size = _norm_option(self.size)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.product_id, self.color or "", self.size or "")

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"product_id": self.product_id, "quantity": self.quantity}
        if self.color:
            result["color"] = self.color
        if self.size:
            result["size"] = self.size
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartEntry":
        return cls(
            product_id=str(data["product_id"]),
            quantity=int(data.get("quantity") or 1),
            color=data.get("color"),
            size=data.get("size"),
        )


@dataclass(frozen=True)
class OrderItem:
    """An immutable copy of a priced line, stored inside an order."""

    product_id: str
    title: str
    price: Decimal
    quantity: int
    subtotal: Decimal
    thumb_src: str | None = None
    color: str | None = None
    size: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "product_id": self.product_id,
            "title": self.title,
            "price": str(self.price),
            "quantity": self.quantity,
            "subtotal": str(self.subtotal),
            "thumb_src": self.thumb_src,
            "color": self.color,
            "size": self.size,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=data["product_id"],
            title=data.get("title", ""),
            price=to_decimal(data.get("price", 0)),
            quantity=int(data.get("quantity", 1)),
            subtotal=to_decimal(data.get("subtotal", 0)),
            thumb_src=data.get("thumb_src"),
            color=data.get("color"),
            size=data.get("size"),
        )


@dataclass(frozen=True)
class PricedLine:
    """A cart entry joined against the catalog. Derived, never persisted."""

    product_id: str
    title: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal
    currency: str | None = None
    thumb_src: str = ""
    color: str | None = None
    size: str | None = None

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product_id,
            title=self.title,
            price=self.unit_price,
            quantity=self.quantity,
            subtotal=self.subtotal,
            thumb_src=self.thumb_src or None,
            color=self.color,
            size=self.size,
        )

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "product_id": self.product_id,
            "title": self.title,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "subtotal": str(self.subtotal),
            "currency": self.currency,
            "thumb_src": self.thumb_src,
            "color": self.color,
            "size": self.size,
        })


@dataclass(frozen=True)
class Contact:
    email: str
    phone: str

    def to_dict(self) -> dict[str, Any]:
        return {"email": self.email, "phone": self.phone}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Contact":
        return cls(email=data.get("email", ""), phone=data.get("phone", ""))


@dataclass(frozen=True)
class ShippingAddress:
    address: str
    city: str = ""
    state: str = ""
    postal_code: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingAddress":
        return cls(
            address=data.get("address", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            postal_code=data.get("postal_code", ""),
        )


@dataclass
class Order:
    """A placed order. Only status and updated_at change after creation."""

    id: str
    order_number: str
    items: list[OrderItem]
    contact: Contact
    shipping: ShippingAddress
    payment_method: PaymentMethod
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal
    currency: str
    status: OrderStatus = OrderStatus.PENDING
    created_at: str = field(default_factory=_utc_now)
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "order_number": self.order_number,
            "items": [i.to_dict() for i in self.items],
            "contact": self.contact.to_dict(),
            "shipping": self.shipping.to_dict(),
            "payment_method": self.payment_method.value,
            "subtotal": str(self.subtotal),
            "shipping_cost": str(self.shipping_cost),
            "total": str(self.total),
            "currency": self.currency,
            "status": self.status.value,
            "created_at": self.created_at,
        }
        if self.updated_at is not None:
            result["updated_at"] = self.updated_at
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            order_number=data.get("order_number", ""),
            items=[OrderItem.from_dict(i) for i in data.get("items", [])],
            contact=Contact.from_dict(data.get("contact") or {}),
            shipping=ShippingAddress.from_dict(data.get("shipping") or {}),
            payment_method=PaymentMethod(data.get("payment_method") or "cod"),
            subtotal=to_decimal(data.get("subtotal", 0)),
            shipping_cost=to_decimal(data.get("shipping_cost", 0)),
            total=to_decimal(data.get("total", 0)),
            currency=data.get("currency") or DEFAULT_CURRENCY,
            status=OrderStatus(data.get("status") or "pending"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at"),
        )


@dataclass
class BackupData:
    """Full database snapshot used by export and restore."""

    version: int
    exported_at: str
    products: list[Product]
    categories: list[Category]
    orders: list[Order]
    store_settings: StoreSettings

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "exported_at": self.exported_at,
            "products": [p.to_dict() for p in self.products],
            "categories": [c.to_dict() for c in self.categories],
            "orders": [o.to_dict() for o in self.orders],
            "store_settings": self.store_settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BackupData":
        return cls(
            version=data["version"],
            exported_at=data.get("exported_at", ""),
            products=[Product.from_dict(p) for p in data.get("products", [])],
            categories=[Category.from_dict(c) for c in data.get("categories", [])],
            orders=[Order.from_dict(o) for o in data.get("orders", [])],
            store_settings=StoreSettings.from_dict(data.get("store_settings") or {}),
        )
