"""Tests for catalog import from CSV, Excel and JSON."""

import io
import json
from decimal import Decimal

import openpyxl
import pytest

from opalstore.catalog_import import (
    COLUMN_MAPPINGS,
    generate_sample_csv,
    normalize_header,
    parse,
    parse_boolean,
    parse_csv,
    parse_json,
    parse_size_map,
    parse_size_price_map,
    parse_string_list,
)
from opalstore.errors import ValidationError

CSV_TEXT = (
    "title,price,discount_price,colors,sizes,size_prices,stock,specifications,mystery\n"
    'Case,100,80,"red, blue","S:10, M, L:x","S:100, M:bad",yes,"{""material"":""TPU""}",x\n'
    ",50,,,,,,,\n"
    "Charger,,,,,,,,\n"
    "Cable,30,40,,,,no,,\n"
)


class TestCoercions:
    def test_header_normalization(self):
        assert normalize_header("  Product_Name ") == "product name"
        assert normalize_header("discount-price") == "discount price"
        assert normalize_header("discountPrice") == "discountprice"

    def test_synonyms_share_a_target(self):
        for header in ("title", "name", "product name"):
            assert COLUMN_MAPPINGS[header] == "title"
        for header in ("stock", "in stock", "available", "availability"):
            assert COLUMN_MAPPINGS[header] == "stock"

    @pytest.mark.parametrize("value", ["true", "Yes", "1", "In Stock", "available", True, 1])
    def test_boolean_true_vocabulary(self, value):
        assert parse_boolean(value) is True

    @pytest.mark.parametrize("value", ["no", "false", "0", "sold out", "", False])
    def test_boolean_anything_else_is_false(self, value):
        assert parse_boolean(value) is False

    def test_string_list_splits_commas_and_newlines(self):
        assert parse_string_list("red, blue\ngreen,,") == ["red", "blue", "green"]

    def test_string_list_prefers_json_array(self):
        assert parse_string_list('["a, b", "c"]') == ["a, b", "c"]

    def test_size_map_bare_token_is_zero(self):
        assert parse_size_map("S:10, M:20, L") == {"S": 10, "M": 20, "L": 0}

    def test_size_map_from_json(self):
        assert parse_size_map('{"S": 3}') == {"S": 3}

    def test_size_price_map_skips_bad_prices(self):
        assert parse_size_price_map("S:100, M:abc, L") == {"S": Decimal("100")}


class TestParseCsv:
    def test_valid_rows_become_products(self):
        result = parse_csv(CSV_TEXT)

        titles = [p.title for p in result.products]
        assert titles == ["Case", "Cable"]

        case = result.products[0]
        assert case.price == Decimal("100")
        assert case.discount_price == Decimal("80")
        assert case.colors == ["red", "blue"]
        assert case.sizes == {"S": 10, "M": 0, "L": 0}
        assert case.size_prices == {"S": Decimal("100")}
        assert case.stock is True
        assert case.specifications == {"material": "TPU"}

    def test_bad_rows_are_reported_with_row_numbers(self):
        result = parse_csv(CSV_TEXT)

        assert result.errors == [
            "Row 3: Missing required field: title",
            "Row 4: Missing required field: price",
        ]

    def test_unknown_column_warned_once(self):
        result = parse_csv(CSV_TEXT)

        assert result.warnings.count('Unknown column "mystery" will be ignored') == 1

    def test_discount_not_below_price_is_dropped(self):
        result = parse_csv(CSV_TEXT)

        cable = result.products[1]
        assert cable.discount_price is None
        assert cable.stock is False
        assert any(w.startswith("Row 5: discount price") for w in result.warnings)

    def test_negative_price_is_an_error(self):
        result = parse_csv("title,price\nBroken,-5\n")

        assert result.products == []
        assert result.errors == ["Row 2: Price must not be negative"]

    def test_price_above_maximum_is_an_error(self):
        result = parse_csv("title,price\nYacht,1E+27\nLamp,10\n")

        assert [p.title for p in result.products] == ["Lamp"]
        assert result.errors == ["Row 2: Price must not exceed 1000000000"]

    def test_record_keys_are_columns_in_tabular_input(self):
        result = parse_csv("id,title,price,created_at\nold-1,Lamp,10,2024-01-01\n")

        assert result.warnings == [
            'Unknown column "id" will be ignored',
            'Unknown column "created_at" will be ignored',
        ]
        assert result.products[0].id != "old-1"

    def test_header_synonyms(self):
        result = parse_csv("Product Name,Regular Price,Sale Price,Availability\nLamp,250,200,available\n")

        lamp = result.products[0]
        assert lamp.title == "Lamp"
        assert lamp.price == Decimal("250")
        assert lamp.discount_price == Decimal("200")
        assert lamp.stock is True

    def test_missing_stock_defaults_to_available(self):
        result = parse_csv("title,price\nLamp,250\n")

        assert result.products[0].stock is True

    def test_no_rows(self):
        result = parse_csv("title,price\n")

        assert result.products == []
        assert result.errors == ["No data rows found in the file"]

    def test_products_get_fresh_ids(self):
        result = parse_csv("title,price\nA,1\nB,2\n")

        ids = {p.id for p in result.products}
        assert len(ids) == 2


class TestParseJson:
    def test_nested_shape(self):
        document = {
            "products": [
                {
                    "title": "Power Bank",
                    "pricing": {
                        "price": 1500,
                        "discountPrice": 1200,
                        "currency": "৳",
                        "inStock": True,
                        "sizePrices": {"20000mAh": 1900},
                    },
                    "images": {"cover": "cover.jpg", "gallery": ["g1.jpg", "g2.jpg"]},
                    "shortDescription": "Fast charging",
                    "longDescription": "Charges two phones at once.",
                    "capacityMah": 10000,
                    "magnetic": True,
                    "specifications": {"weight": "200g"},
                    "features": ["USB-C"],
                    "delivery": {"deliveryTime": "2-3 days"},
                    "createdAt": "2024-01-01",
                }
            ]
        }

        result = parse_json(document)

        assert result.errors == []
        assert result.warnings == []
        product = result.products[0]
        assert product.price == Decimal("1500")
        assert product.discount_price == Decimal("1200")
        assert product.currency == "৳"
        assert product.size_prices == {"20000mAh": Decimal("1900")}
        assert product.thumb_src == "cover.jpg"
        assert [img.src for img in product.images] == ["g1.jpg", "g2.jpg"]
        assert product.short_description == "Fast charging"
        assert product.long_description == {"intro": "Charges two phones at once."}
        assert product.specifications == {"weight": "200g", "capacityMah": 10000, "magnetic": True}
        assert product.features == ["USB-C"]
        assert product.delivery == {"delivery_time": "2-3 days"}

    def test_flat_records_use_column_mapping(self):
        result = parse_json([{"name": "Cable", "price": "30", "colors": ["black"], "id": "old"}])

        cable = result.products[0]
        assert cable.title == "Cable"
        assert cable.colors == ["black"]
        assert cable.id != "old"
        assert result.warnings == []

    def test_single_object(self):
        result = parse_json({"title": "Lamp", "price": 10})

        assert [p.title for p in result.products] == ["Lamp"]

    def test_records_are_labelled_from_one(self):
        result = parse_json([{"title": "Lamp", "price": 10}, {"title": "No price"}])

        assert result.errors == ["Product 2: Missing required field: price"]

    def test_malformed_pricing_only_skips_that_record(self):
        records = [
            {"title": "Good", "price": 10},
            {"title": "Odd", "pricing": "100", "images": {"cover": "x.jpg"}},
            {"title": "Also good", "price": 20},
        ]

        result = parse_json(records)

        assert [p.title for p in result.products] == ["Good", "Also good"]
        assert result.errors == ["Product 2: pricing must be an object"]

    def test_pricing_list_is_an_error(self):
        result = parse_json({"title": "Odd", "pricing": [100]})

        assert result.products == []
        assert result.errors == ["Product 1: pricing must be an object"]

    def test_non_object_record(self):
        result = parse_json([{"title": "Lamp", "price": 10}, 5])

        assert result.errors == ["Product 2: expected an object"]
        assert len(result.products) == 1


class TestParse:
    def test_malformed_json_raises(self):
        with pytest.raises(ValidationError, match="Invalid JSON"):
            parse('{"title": "Lamp",')

    def test_json_text(self):
        result = parse(json.dumps([{"title": "Lamp", "price": 10}]))

        assert result.products[0].price == Decimal("10")

    def test_csv_bytes_with_bom(self):
        result = parse("\ufefftitle,price\nLamp,10\n".encode("utf-8"))

        assert result.products[0].title == "Lamp"
        assert result.warnings == []

    def test_spreadsheet(self):
        workbook = openpyxl.Workbook()
        sheet = workbook.active
        sheet.append(["Product Name", "Regular Price", "In Stock", "Colors"])
        sheet.append(["Lamp", 250, "available", "white, black"])
        sheet.append(["Bulb", None, "no", None])
        buffer = io.BytesIO()
        workbook.save(buffer)

        result = parse(buffer.getvalue())

        assert [p.title for p in result.products] == ["Lamp"]
        lamp = result.products[0]
        assert lamp.price == Decimal("250")
        assert lamp.colors == ["white", "black"]
        assert result.errors == ["Row 3: Missing required field: price"]

    def test_corrupt_spreadsheet(self):
        with pytest.raises(ValidationError):
            parse(b"PK\x03\x04not really a workbook")

    def test_unsupported_input(self):
        with pytest.raises(ValidationError):
            parse(42)


class TestSampleCsv:
    def test_template_imports_cleanly(self):
        template = generate_sample_csv()

        result = parse(template)

        assert result.errors == []
        assert result.warnings == []
        product = result.products[0]
        assert product.title == "Sample Product"
        assert product.price == Decimal("100")
        assert product.discount_price == Decimal("80")
        assert product.sizes == {"S": 10, "M": 20, "L": 15}
        assert product.specifications == {"material": "Cotton", "weight": "200g"}

    def test_template_header(self):
        header = generate_sample_csv().splitlines()[0]

        assert header.startswith("title,category,description")
