import pytest

from audit_api.exceptions import ValidationError
from audit_api.services.csv_import import (
    CATALOG,
    catalog_rows_from_csv,
    closing_stock_rows_from_csv,
    normalize_header,
    parse_csv,
    validate_columns,
)


class TestHeaders:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("SKU", "sku"),
            ("Item Code", "sku"),
            ("item-code", "sku"),
            ("Product Name", "name"),
            ("Qty", "system_quantity"),
            ("Closing Stock", "system_quantity"),
            ("\ufeffLocation", "location"),
            ("Store", "location"),
            ("Shelf", "shelf"),
        ],
    )
    def test_aliases(self, header, expected):
        assert normalize_header(header) == expected

    def test_missing_required_column(self):
        with pytest.raises(ValidationError, match="category"):
            validate_columns(CATALOG, {"sku", "location", "name"})


class TestParse:
    def test_empty_body_is_rejected(self):
        with pytest.raises(ValidationError, match="empty"):
            parse_csv("   \n")

    def test_header_only_is_rejected(self):
        with pytest.raises(ValidationError, match="no data rows"):
            parse_csv("sku,name\n")

    def test_semicolon_files_and_blank_lines(self):
        rows, columns = parse_csv("Item Code;Qty;Store\nA1;4;Store A\n\n;;\nA2;n/a;Store B\n")
        assert columns == {"sku", "system_quantity", "location"}
        assert rows == [
            {"sku": "A1", "system_quantity": "4", "location": "Store A"},
            {"sku": "A2", "system_quantity": None, "location": "Store B"},
        ]


class TestCatalogRows:
    def test_rows_are_typed(self):
        rows = catalog_rows_from_csv(
            "SKU,Item Name,Category,Location,Qty\nA1,Hammer,Tools,Store A,99\n"
        )
        assert len(rows) == 1
        assert rows[0].sku == "A1"
        assert rows[0].name == "Hammer"

    def test_blank_required_value_names_the_row(self):
        with pytest.raises(ValidationError, match="row 2"):
            catalog_rows_from_csv(
                "SKU,Item Name,Category,Location\nA1,Hammer,Tools,Store A\nA2,,Tools,Store A\n"
            )


class TestClosingStockRows:
    def test_quantities_are_parsed(self):
        rows = closing_stock_rows_from_csv("SKU,Location,Closing Stock\nA1,Store A,\"1,200\"\nA2,Store A,3.0\n")
        assert [row.system_quantity for row in rows] == [1200, 3]

    @pytest.mark.parametrize("quantity", ["-1", "2.5", "lots", ""])
    def test_bad_quantities_are_rejected(self, quantity):
        with pytest.raises(ValidationError, match="row 1"):
            closing_stock_rows_from_csv(f"SKU,Location,Qty\nA1,Store A,{quantity}\n")

    def test_location_override_makes_the_column_optional(self):
        rows = closing_stock_rows_from_csv("SKU,Qty\nA1,5\n", location_override="Store B")
        assert rows[0].location == "Store B"

    def test_location_column_required_without_override(self):
        with pytest.raises(ValidationError, match="location"):
            closing_stock_rows_from_csv("SKU,Qty\nA1,5\n")
