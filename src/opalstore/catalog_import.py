"""Catalog import for opalstore.

Turns JSON documents, CSV text and Excel workbooks into Product records.
Column names are matched case-insensitively through COLUMN_MAPPINGS, and each
canonical field has one coercion in FIELD_COERCIONS, so a new synonym is a
new table entry.

Bad rows never abort an import: they are reported in ImportResult.errors and
skipped. Unknown columns are reported in ImportResult.warnings and dropped.
"""

import csv
import io
import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping

from .errors import ValidationError
from .models import MAX_PRICE, Product, ProductImage, to_decimal

logger = logging.getLogger(__name__)

# Tabular rows are numbered as a spreadsheet shows them: 1-based, after the header.
HEADER_ROW_OFFSET = 2

# Normalized source header -> canonical Product field.
COLUMN_MAPPINGS: dict[str, str] = {
    # Title
    "title": "title",
    "name": "title",
    "product name": "title",
    "productname": "title",
    # Category
    "category": "category_id",
    "categoryid": "category_id",
    "category id": "category_id",
    # Brand
    "brand": "brand",
    "manufacturer": "brand",
    "brand origin": "brand_origin",
    "brandorigin": "brand_origin",
    "origin": "brand_origin",
    "country of origin": "brand_origin",
    # Star / featured
    "star": "star",
    "featured": "star",
    "starred": "star",
    # Model
    "model": "model",
    "model number": "model",
    # Slug
    "slug": "slug",
    "url": "slug",
    "permalink": "slug",
    # Descriptions
    "description": "description",
    "short description": "description",
    "shortdescription": "description",
    "brief": "description",
    "summary": "description",
    "full description": "full_description",
    "fulldescription": "full_description",
    "long description": "long_description",
    "longdescription": "long_description",
    "details": "details",
    # Pricing
    "price": "price",
    "regular price": "price",
    "discount price": "discount_price",
    "discountprice": "discount_price",
    "sale price": "discount_price",
    "saleprice": "discount_price",
    "currency": "currency",
    # Images
    "image": "thumb_src",
    "thumb": "thumb_src",
    "thumbnail": "thumb_src",
    "thumb src": "thumb_src",
    "cover": "thumb_src",
    "main image": "thumb_src",
    "thumb alt": "thumb_alt",
    "image alt": "thumb_alt",
    "gallery": "images",
    "images": "images",
    "additional images": "images",
    "video": "video_url",
    "video url": "video_url",
    "videourl": "video_url",
    "video poster": "video_poster",
    "videoposter": "video_poster",
    # Stock
    "stock": "stock",
    "in stock": "stock",
    "instock": "stock",
    "available": "stock",
    "availability": "stock",
    "status": "status",
    # Colors
    "color": "color",
    "colour": "color",
    "colors": "colors",
    "colours": "colors",
    "available colors": "colors",
    # Sizes
    "size": "size",
    "sizes": "sizes",
    "available sizes": "sizes",
    "size prices": "size_prices",
    "sizeprices": "size_prices",
    # Rating / reviews
    "rating": "rating",
    "reviews": "reviews",
    "review count": "reviews",
    # Features & specs
    "features": "features",
    "highlights": "highlights",
    "specifications": "specifications",
    "specs": "specifications",
    # Delivery
    "delivery": "delivery",
    "delivery time": "delivery",
    # Admin
    "resource": "resource",
}

# Keys of the nested JSON shape that carry no product data.
_IGNORED_JSON_KEYS = frozenset({"id", "createdat", "updatedat", "created at", "updated at"})

# Nested JSON keys folded into specifications.
_SPEC_JSON_KEYS = ("capacityMah", "wirelessCharging", "magnetic")

_STOCK_TRUE_VALUES = {"true", "yes", "1", "in stock", "available"}


@dataclass
class ImportResult:
    products: list[Product] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class RowError(ValueError):
    """A problem that excludes one row from the import."""


def normalize_header(key: Any) -> str:
    """Lower-case a header and treat underscores, dashes and runs of spaces alike."""
    text = re.sub(r"[_\-]+", " ", str(key).strip().lower())
    return re.sub(r"\s+", " ", text).strip()


# --- Typed coercions ---


def _as_text(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_text(value: Any) -> str:
    return _as_text(value)


def parse_money(value: Any) -> Decimal | None:
    """Parse a price, returning None when it isn't a number."""
    try:
        return to_decimal(_as_text(value))
    except ValueError:
        return None


def parse_int(value: Any) -> int | None:
    try:
        return int(to_decimal(_as_text(value)))
    except ValueError:
        return None


def parse_float(value: Any) -> float | None:
    try:
        return float(to_decimal(_as_text(value)))
    except ValueError:
        return None


def parse_boolean(value: Any) -> bool:
    """Availability vocabulary: true, yes, 1, in stock, available."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    return _as_text(value).lower() in _STOCK_TRUE_VALUES


def _load_json(text: str, expected: type) -> Any:
    try:
        parsed = json.loads(text)
    except ValueError:
        return None
    return parsed if isinstance(parsed, expected) else None


def parse_string_list(value: Any) -> list[str]:
    """Split on commas and newlines; a JSON array takes precedence."""
    if isinstance(value, (list, tuple)):
        items: Iterable[Any] = value
    else:
        text = _as_text(value)
        parsed = _load_json(text, list) if text.startswith("[") else None
        items = parsed if parsed is not None else re.split(r"[,\n]", text)
    return [s for s in (_as_text(i) for i in items) if s]


def _split_pairs(value: Any) -> list[str]:
    return [p.strip() for p in re.split(r"[,\n]", _as_text(value)) if p.strip()]


def parse_size_map(value: Any) -> dict[str, int]:
    """
    Parse sizes with available quantities.

    "S:10, M:20" -> {"S": 10, "M": 20}; a bare size such as "L" gets 0.
    """
    if isinstance(value, Mapping):
        return {_as_text(k): parse_int(v) or 0 for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return {s: 0 for s in parse_string_list(value)}

    text = _as_text(value)
    if text.startswith("{"):
        parsed = _load_json(text, dict)
        if parsed is not None:
            return parse_size_map(parsed)

    sizes: dict[str, int] = {}
    for part in _split_pairs(text):
        size, sep, qty = part.partition(":")
        if sep and size.strip():
            sizes[size.strip()] = parse_int(qty) or 0
        else:
            sizes[part] = 0
    return sizes


def parse_size_price_map(value: Any) -> dict[str, Decimal]:
    """Parse per-size prices, "S:100, M:110". Entries without a valid price are skipped."""
    if isinstance(value, Mapping):
        pairs = [(_as_text(k), parse_money(v)) for k, v in value.items()]
    else:
        text = _as_text(value)
        parsed = _load_json(text, dict) if text.startswith("{") else None
        if parsed is not None:
            return parse_size_price_map(parsed)
        pairs = []
        for part in _split_pairs(text):
            size, sep, price = part.partition(":")
            if sep and size.strip():
                pairs.append((size.strip(), parse_money(price)))
    return {size: price for size, price in pairs if price is not None}


def parse_json_object(value: Any) -> dict[str, Any] | None:
    if isinstance(value, Mapping):
        return dict(value)
    text = _as_text(value)
    if text.startswith("{"):
        return _load_json(text, dict)
    return None


def parse_long_description(value: Any) -> dict[str, Any] | None:
    """A JSON object ({intro, usage, compatibility}) or plain intro text."""
    parsed = parse_json_object(value)
    if parsed is not None:
        return parsed
    text = _as_text(value)
    return {"intro": text} if text else None


def parse_features(value: Any) -> list[Any]:
    """A JSON array (strings or {title, description}) or comma-separated text."""
    if isinstance(value, (list, tuple)):
        return list(value)
    text = _as_text(value)
    if text.startswith("["):
        parsed = _load_json(text, list)
        if parsed is not None:
            return parsed
    return [s.strip() for s in text.split(",") if s.strip()]


def parse_delivery(value: Any) -> dict[str, Any] | None:
    """A JSON object or a plain delivery-time string."""
    parsed = parse_json_object(value)
    if parsed is None:
        text = _as_text(value)
        return {"delivery_time": text} if text else None
    renames = {"deliveryTime": "delivery_time", "deliveryAreas": "delivery_areas"}
    return {renames.get(k, k): v for k, v in parsed.items()}


def parse_images(value: Any) -> list[ProductImage]:
    if isinstance(value, (list, tuple)) and all(isinstance(i, Mapping) for i in value):
        return [ProductImage.from_dict(i) for i in value if i.get("src")]
    return [ProductImage(src=src, alt="") for src in parse_string_list(value)]


FIELD_COERCIONS: dict[str, Callable[[Any], Any]] = {
    "title": parse_text,
    "category_id": parse_text,
    "brand": parse_text,
    "brand_origin": parse_text,
    "star": parse_boolean,
    "model": parse_text,
    "slug": parse_text,
    "description": parse_text,
    "full_description": parse_text,
    "long_description": parse_long_description,
    "details": parse_text,
    "price": parse_money,
    "discount_price": parse_money,
    "currency": parse_text,
    "thumb_src": parse_text,
    "thumb_alt": parse_text,
    "images": parse_images,
    "video_url": parse_text,
    "video_poster": parse_text,
    "stock": parse_boolean,
    "status": parse_text,
    "color": parse_text,
    "colors": parse_string_list,
    "size": parse_text,
    "sizes": parse_size_map,
    "size_prices": parse_size_price_map,
    "rating": parse_float,
    "reviews": parse_int,
    "features": parse_features,
    "highlights": parse_string_list,
    "specifications": parse_json_object,
    "delivery": parse_delivery,
    "resource": parse_text,
}


# --- Row normalization ---


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _build_product(fields: dict[str, Any], warnings: list[str], label: str) -> Product:
    """
    Validate normalized fields and create the Product.

    Raises:
        RowError: If a mandatory field is missing or the price is negative.
    """
    if not fields.get("title"):
        raise RowError("Missing required field: title")
    price = fields.pop("price", None)
    if price is None:
        raise RowError("Missing required field: price")
    if price < 0:
        raise RowError("Price must not be negative")
    if price > MAX_PRICE:
        raise RowError(f"Price must not exceed {MAX_PRICE}")

    discount = fields.get("discount_price")
    if discount is not None and (discount < 0 or discount >= price):
        warnings.append(f"{label}: discount price {discount} ignored (must be below price {price})")
        fields.pop("discount_price")

    if "description" in fields:
        fields.setdefault("short_description", fields["description"])

    title = fields.pop("title")
    return Product.create(title=title, price=price, **fields)


def _normalize_record(
    record: Mapping[str, Any],
    header_mapping: Mapping[str, str],
) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, target in header_mapping.items():
        value = record.get(key)
        if _is_blank(value):
            continue
        coerced = FIELD_COERCIONS[target](value)
        if coerced is None or coerced == "" or coerced == [] or coerced == {}:
            continue
        if target == "specifications" and "specifications" in fields:
            fields["specifications"] = {**fields["specifications"], **coerced}
        else:
            fields[target] = coerced
    return fields


def _map_headers(
    keys: Iterable[Any],
    warnings: list[str],
    seen: set[str],
    ignored: frozenset[str] = frozenset(),
) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for key in keys:
        if key is None:
            continue
        normalized = normalize_header(key)
        target = COLUMN_MAPPINGS.get(normalized)
        if target:
            mapping[key] = target
        elif normalized and normalized not in ignored and key not in seen:
            seen.add(key)
            warnings.append(f'Unknown column "{key}" will be ignored')
    return mapping


def parse_rows(
    rows: Iterable[Mapping[str, Any]],
    label: str = "Row",
    start: int = HEADER_ROW_OFFSET,
    prepare: Callable[[Mapping[str, Any]], Mapping[str, Any]] | None = None,
    ignored_keys: frozenset[str] = frozenset(),
) -> ImportResult:
    """
    Normalize tabular or flat records into products.

    Each record's keys are matched through COLUMN_MAPPINGS. Rows are labelled
    f"{label} {n}" in errors, with n counting from start.

    Args:
        prepare: Rewrites a record before its keys are mapped. Failures are
            reported against that record only.
        ignored_keys: Normalized keys dropped without an unknown-column warning.
    """
    result = ImportResult()
    seen_unknown: set[str] = set()
    mapping_cache: dict[tuple[Any, ...], dict[str, str]] = {}

    for index, row in enumerate(rows):
        row_label = f"{label} {index + start}"
        if not isinstance(row, Mapping):
            result.errors.append(f"{row_label}: expected an object")
            continue

        try:
            if prepare is not None:
                row = prepare(row)
            keys = tuple(row.keys())
            if keys not in mapping_cache:
                mapping_cache[keys] = _map_headers(
                    keys, result.warnings, seen_unknown, ignored_keys
                )
            fields = _normalize_record(row, mapping_cache[keys])
            result.products.append(_build_product(fields, result.warnings, row_label))
        except (ValueError, TypeError) as e:
            result.errors.append(f"{row_label}: {e}")

    logger.info(
        "Import parsed %d product(s), %d error(s), %d warning(s)",
        len(result.products), len(result.errors), len(result.warnings),
    )
    return result


def _flatten_nested(record: Mapping[str, Any]) -> dict[str, Any]:
    """
    Rewrite the nested JSON shape into flat keys.

    pricing{price, currency, discountPrice, inStock, sizePrices} and
    images{cover, gallery} become ordinary columns; capacityMah,
    wirelessCharging and magnetic join the specifications.
    """
    flat = dict(record)
    pricing = flat.pop("pricing", None) or {}
    if not isinstance(pricing, Mapping):
        raise RowError("pricing must be an object")
    for src, dst in (
        ("price", "price"),
        ("currency", "currency"),
        ("discountPrice", "discount price"),
        ("inStock", "in stock"),
        ("sizePrices", "size prices"),
    ):
        if pricing.get(src) is not None:
            flat[dst] = pricing[src]

    images = flat.get("images")
    if isinstance(images, Mapping):
        flat.pop("images")
        if images.get("cover"):
            flat["image"] = images["cover"]
        if images.get("gallery"):
            flat["gallery"] = images["gallery"]

    extra_specs = {k: flat.pop(k) for k in _SPEC_JSON_KEYS if flat.get(k) is not None}
    if extra_specs:
        specs = parse_json_object(flat.get("specifications") or {}) or {}
        flat["specifications"] = {**specs, **extra_specs}

    for key in _SPEC_JSON_KEYS:
        flat.pop(key, None)
    return flat


def _is_nested(record: Mapping[str, Any]) -> bool:
    return "pricing" in record or isinstance(record.get("images"), Mapping)


def _prepare_json_record(record: Mapping[str, Any]) -> Mapping[str, Any]:
    return _flatten_nested(record) if _is_nested(record) else record


def parse_json(document: Any) -> ImportResult:
    """
    Normalize a JSON document: one product object, a list of them, or
    {"products": [...]}. Nested and flat product shapes may be mixed.
    """
    if isinstance(document, Mapping) and isinstance(document.get("products"), list):
        records = document["products"]
    elif isinstance(document, Mapping):
        records = [document]
    elif isinstance(document, list):
        records = document
    else:
        raise ValidationError("JSON import must be an object or an array of objects")

    if not records:
        return ImportResult(errors=["No products found in the JSON document"])

    return parse_rows(
        records,
        label="Product",
        start=1,
        prepare=_prepare_json_record,
        ignored_keys=_IGNORED_JSON_KEYS,
    )


def parse_csv(text: str) -> ImportResult:
    """Normalize CSV text with a header row."""
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    rows = [
        {k: v for k, v in row.items() if k is not None}
        for row in reader
        if any(not _is_blank(v) for k, v in row.items() if k is not None)
    ]
    if not rows:
        return ImportResult(errors=["No data rows found in the file"])
    return parse_rows(rows)


def parse_spreadsheet(data: bytes) -> ImportResult:
    """
    Normalize the first sheet of an Excel workbook.

    Raises:
        ValidationError: If the workbook can't be read.
    """
    import openpyxl

    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise ValidationError(f"Failed to parse file: {e}") from e

    try:
        if not workbook.worksheets:
            return ImportResult(errors=["No sheets found in the file"])
        values = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(values, None)
        if header is None:
            return ImportResult(errors=["No data rows found in the file"])

        columns = [(i, str(h).strip()) for i, h in enumerate(header) if not _is_blank(h)]
        rows = []
        for raw in values:
            row = {
                name: ("" if i >= len(raw) or raw[i] is None else raw[i])
                for i, name in columns
            }
            if any(not _is_blank(v) for v in row.values()):
                rows.append(row)
    finally:
        workbook.close()

    if not rows:
        return ImportResult(errors=["No data rows found in the file"])
    return parse_rows(rows)


def parse(raw: Any) -> ImportResult:
    """
    Normalize any supported import input.

    Accepts workbook bytes, JSON text, CSV text, or an already-decoded JSON
    value (dict or list).

    Raises:
        ValidationError: If the input as a whole is malformed, e.g. invalid JSON.
    """
    if isinstance(raw, (bytes, bytearray)):
        if bytes(raw[:2]) == b"PK":
            return parse_spreadsheet(bytes(raw))
        try:
            raw = bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValidationError(f"Failed to parse file: {e}") from e

    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith(("{", "[")):
            try:
                document = json.loads(stripped)
            except ValueError as e:
                raise ValidationError(f"Invalid JSON: {e}") from e
            return parse_json(document)
        return parse_csv(raw)

    if isinstance(raw, (Mapping, list)):
        return parse_json(raw)

    raise ValidationError(f"Unsupported import input: {type(raw).__name__}")


SAMPLE_HEADERS = [
    "title", "category", "description", "brand", "brand_origin", "star",
    "model", "slug", "price", "discount_price", "currency", "image",
    "thumb_alt", "video_url", "video_poster", "gallery", "stock", "color",
    "colors", "sizes", "size_prices", "highlights", "features",
    "specifications", "resource",
]

SAMPLE_ROW = [
    "Sample Product",
    "YOUR_CATEGORY_ID",
    "Short description for the product. Use commas; they are safe inside quoted fields.",
    "Brand Name",
    "China",
    "yes",
    "Model ABC",
    "sample-product",
    "100",
    "80",
    "BDT",
    "https://example.com/image.jpg",
    "Sample product image",
    "",
    "",
    "https://example.com/img1.jpg, https://example.com/img2.jpg",
    "yes",
    "Blue",
    "red, blue, green",
    "S:10, M:20, L:15",
    "S:100, M:110, L:120",
    "Highlight one, Highlight two",
    "Feature 1, Feature 2, Feature 3",
    '{"material":"Cotton","weight":"200g"}',
    "admin notes (optional)",
]


def generate_sample_csv() -> str:
    """CSV import template: required columns are title and price."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(SAMPLE_HEADERS)
    writer.writerow(SAMPLE_ROW)
    return buffer.getvalue()
