"""
Unit tests for column mapping suggestion and pair discovery.

Run: pytest tests/unit/test_column_mapping_service.py -v
"""

from models.imports import ColumnInfo, ManualOverrides
from services.column_mapping_service import (
    PricePairMapping,
    suggest_mapping,
    resolve_price_pairs,
    pair_key,
    parse_pair_key,
)


def columns(*headers: str) -> list[ColumnInfo]:
    return [ColumnInfo(index=i, header=header) for i, header in enumerate(headers)]


class TestSuggestMapping:
    """Tests for suggest_mapping()"""

    def test_simple_english_headers(self):
        result = suggest_mapping(columns("Product Name", "Category", "Supplier", "Price"))

        assert result["product_name"] == 0
        assert result["category"] == 1
        assert result["supplier"] == 2
        assert result["price"] == 3

    def test_pair_detection_reuses_aliased_columns(self):
        result = suggest_mapping(columns("Product Name", "Category", "Supplier", "Price"))

        assert result["supplier_1"] == 2
        assert result["price_1"] == 3

    def test_hebrew_headers(self):
        result = suggest_mapping(columns("שם מוצר", 'מק"ט', "ספק", "מחיר", "הנחה"))

        assert result["product_name"] == 0
        assert result["sku"] == 1
        assert result["supplier"] == 2
        assert result["price"] == 3
        assert result["discount_percent"] == 4

    def test_repeated_pairs_numbered_left_to_right(self):
        result = suggest_mapping(columns("Item", "Supplier A", "Price A", "Supplier B", "Price B", "Discount"))

        assert result["product_name"] == 0
        assert result["supplier_1"] == 1
        assert result["price_1"] == 2
        assert result["supplier_2"] == 3
        assert result["price_2"] == 4
        assert result["discount_percent_1"] == 5

    def test_price_claims_header_before_vat(self):
        result = suggest_mapping(columns("Product", "Price incl VAT", "VAT"))

        assert result["price"] == 1
        assert result["vat"] == 2

    def test_column_used_by_one_alias_field_only(self):
        result = suggest_mapping(columns("Product", "Supplier price"))

        assert result["supplier"] == 1
        assert "price" not in result

    def test_unknown_headers_suggest_nothing(self):
        result = suggest_mapping(columns("Foo", "Bar"))

        assert result == {}


class TestPairKeys:
    """Tests for pair_key() and parse_pair_key()"""

    def test_round_trip(self):
        assert parse_pair_key(pair_key("supplier", 3)) == ("supplier", 3)

    def test_rejects_non_pair_keys(self):
        assert parse_pair_key("price") is None
        assert parse_pair_key("price_0") is None
        assert parse_pair_key("sku_1") is None


class TestResolvePricePairs:
    """Tests for resolve_price_pairs()"""

    def test_plain_columns_are_pair_one(self):
        result = resolve_price_pairs({"product_name": 0, "supplier": 2, "price": 3})

        assert result == [PricePairMapping(index=1, supplier_source=2, price_source=3)]

    def test_suffixed_pairs_and_shared_discount_fallback(self):
        mapping = {
            "product_name": 0,
            "supplier_1": 1, "price_1": 2,
            "supplier_2": 3, "price_2": 4,
            "discount_percent": 5,
        }

        result = resolve_price_pairs(mapping)

        assert [pair.index for pair in result] == [1, 2]
        assert result[0].discount_source == 5
        assert result[1].supplier_source == 3
        assert result[1].price_source == 4
        assert result[1].discount_source is None

    def test_pairs_from_manual_overrides(self):
        overrides = ManualOverrides(
            global_values={"supplier_3": "Acme"},
            row_values={1: {"price_3": "9.90"}},
        )

        result = resolve_price_pairs({"product_name": 0}, overrides)

        assert [pair.index for pair in result] == [3]
        assert result[0].price_source is None

    def test_unmapped_columns_ignored(self):
        result = resolve_price_pairs({"product_name": 0, "price_2": None})

        assert result == []
