import csv
import io
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Set, Tuple

from pydantic import ValidationError as PydanticValidationError

from audit_api.exceptions import ValidationError
from audit_api.logging_config import get_child_logger
from audit_api.models.item import CatalogRow, ClosingStockRow

logger = get_child_logger("services.csv_import")

CATALOG = "catalog"
CLOSING_STOCK = "closing_stock"

_ALIAS_SPECS = (
    (("sku",), "sku"),
    (("item", "code"), "sku"),
    (("product", "code"), "sku"),
    (("barcode",), "sku"),
    (("item", "name"), "name"),
    (("product", "name"), "name"),
    (("article", "name"), "name"),
    (("description",), "name"),
    (("category", "name"), "category"),
    (("department",), "category"),
    (("location", "name"), "location"),
    (("store",), "location"),
    (("warehouse",), "location"),
    (("qty",), "system_quantity"),
    (("quantity",), "system_quantity"),
    (("system", "quantity"), "system_quantity"),
    (("system", "qty"), "system_quantity"),
    (("closing", "stock"), "system_quantity"),
    (("closing", "qty"), "system_quantity"),
    (("stock", "qty"), "system_quantity"),
    (("company", "id"), "company_id"),
    (("note",), "notes"),
    (("remarks",), "notes"),
)

HEADER_ALIASES = {"".join(parts): target for parts, target in _ALIAS_SPECS}

REQUIRED_COLUMNS = {
    CATALOG: {"sku", "location", "name", "category"},
    CLOSING_STOCK: {"sku", "location", "system_quantity"},
}

_PLACEHOLDER_VALUES = {"none", "[none]", "null", "[null]", "na", "n/a", "nan", "-", "--"}
_DELIMITERS = ",;\t|"

# Data rows are numbered from 1, header excluded
_FIRST_ROW = 1


def _is_blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def clean_text(value) -> Optional[str]:
    if _is_blank(value):
        return None
    text = str(value).strip()
    if text.lower() in _PLACEHOLDER_VALUES:
        return None
    return text


def normalize_header(value) -> str:
    if value is None:
        return ""
    value_text = str(value).strip().lstrip("\ufeff").lower()
    if not value_text:
        return ""
    for char in (" ", "-", ".", "/"):
        value_text = value_text.replace(char, "_")
    value_text = "_".join(part for part in value_text.split("_") if part)
    alias = HEADER_ALIASES.get(value_text)
    if alias:
        return alias
    alias = HEADER_ALIASES.get(value_text.replace("_", ""))
    if alias:
        return alias
    return value_text


def parse_csv(text: str) -> Tuple[List[Dict[str, Optional[str]]], Set[str]]:
    """
    Parse delimited text into rows keyed by normalized header.

    Returns:
        (rows, columns) where blank lines are dropped

    Raises:
        ValidationError: If the text is empty or has no data rows
    """
    if text is None or not text.strip():
        raise ValidationError("Import file is empty.")

    sample = text[:4096]
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=_DELIMITERS)
    except csv.Error:
        dialect = csv.excel

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), dialect)
    try:
        header = next(reader)
    except StopIteration:
        raise ValidationError("Import file is empty.")
    except csv.Error as e:
        raise ValidationError(f"Import file could not be parsed: {e}") from e

    columns = [normalize_header(value) for value in header]
    rows = []
    try:
        for values in reader:
            if all(_is_blank(value) for value in values):
                continue
            row = {}
            for column, value in zip(columns, values):
                if column and column not in row:
                    row[column] = clean_text(value)
            rows.append(row)
    except csv.Error as e:
        raise ValidationError(f"Import file could not be parsed: {e}") from e

    if not rows:
        raise ValidationError("Import file has a header but no data rows.")
    logger.info(f"Parsed {len(rows)} rows", extra={"count": len(rows), "columns": sorted(set(columns))})
    return rows, {column for column in columns if column}


def validate_columns(kind: str, columns: Set[str], location_pinned: bool = False):
    required = set(REQUIRED_COLUMNS[kind])
    if location_pinned:
        required.discard("location")
    missing = sorted(required - columns)
    if missing:
        missing_text = ", ".join(missing)
        raise ValidationError(f"{kind} file missing columns: {missing_text}")


def to_quantity(value, line: int) -> int:
    if _is_blank(value):
        raise ValidationError(f"row {line}: quantity is missing")
    text = str(value).strip().replace(",", "")
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"row {line}: quantity '{value}' is not a number")
    if number != number.to_integral_value():
        raise ValidationError(f"row {line}: quantity '{value}' is not a whole number")
    if number < 0:
        raise ValidationError(f"row {line}: quantity '{value}' is negative")
    return int(number)


def _describe(e: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
    )


def catalog_rows_from_csv(text: str) -> List[CatalogRow]:
    """
    Raises:
        ValidationError: For empty input, missing columns or invalid rows
    """
    rows, columns = parse_csv(text)
    validate_columns(CATALOG, columns)

    parsed, problems = [], []
    for line, row in enumerate(rows, start=_FIRST_ROW):
        try:
            parsed.append(CatalogRow.model_validate(row))
        except PydanticValidationError as e:
            problems.append(f"row {line}: {_describe(e)}")
    if problems:
        raise ValidationError("Catalog rejected: " + " | ".join(problems))
    return parsed


def closing_stock_rows_from_csv(text: str, location_override: Optional[str] = None) -> List[ClosingStockRow]:
    """
    Args:
        location_override: When set, every row is pinned to this location and
            the file does not need a location column

    Raises:
        ValidationError: For empty input, missing columns or invalid rows
    """
    rows, columns = parse_csv(text)
    validate_columns(CLOSING_STOCK, columns, location_pinned=location_override is not None)

    parsed, problems = [], []
    for line, row in enumerate(rows, start=_FIRST_ROW):
        data = dict(row)
        if location_override is not None:
            data["location"] = location_override
        try:
            data["system_quantity"] = to_quantity(row.get("system_quantity"), line)
            parsed.append(ClosingStockRow.model_validate(data))
        except ValidationError as e:
            problems.append(str(e))
        except PydanticValidationError as e:
            problems.append(f"row {line}: {_describe(e)}")
    if problems:
        raise ValidationError("Closing stock rejected: " + " | ".join(problems))
    return parsed
