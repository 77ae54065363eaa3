"""
Row normalization and deduplication for price imports.

Turns a raw grid plus a column mapping and manual overrides into a flat
list of ImportRow intents, one per usable (row, pair). Problems with a
single row or pair are collected as RowError and never abort the batch;
only mapping-level problems (field_errors) stop the import.

Value precedence is encoded as ordered resolver lists (see
pair_value_resolvers / row_value_resolvers): the first non-empty value wins.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional
import structlog

from config import settings
from models.imports import ManualOverrides, ValidationStats
from parsers.spreadsheet_parser import RawGrid, data_rows
from services.column_mapping_service import (
    ColumnMapping,
    PricePairMapping,
    resolve_price_pairs,
    pair_key,
    PRODUCT_NAME,
    SKU,
    BARCODE,
    CATEGORY,
    PACKAGE_QUANTITY,
    SUPPLIER,
    PRICE,
    DISCOUNT_PERCENT,
    VAT,
    CURRENCY,
    SHARED_PAIR_FIELDS,
)
from utils.number_utils import parse_number_smart
from utils.text_utils import cell_to_text, clean_display_name, normalize_name

logger = structlog.get_logger(__name__)


@dataclass
class ImportRow:
    """One (product, supplier, price) intent from one row and pair."""
    product_name: str
    supplier: str
    price: float
    category: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    package_quantity: Optional[float] = None
    discount_percent: Optional[float] = None
    vat: Optional[float] = None
    currency: Optional[str] = None
    source_row: int = 0
    pair_index: int = 1

    def to_dict(self) -> dict:
        return {
            "row": self.source_row,
            "pair_index": self.pair_index,
            "product_name": self.product_name,
            "supplier": self.supplier,
            "price": self.price,
            "category": self.category,
            "sku": self.sku,
            "barcode": self.barcode,
            "package_quantity": self.package_quantity,
            "discount_percent": self.discount_percent,
            "vat": self.vat,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class RowError:
    """Problem with one spreadsheet row (1-based, header row included)."""
    row: int
    message: str


@dataclass
class NormalizationResult:
    """Output of normalize_rows_with_mapping()."""
    rows: list[ImportRow] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)
    field_errors: list[str] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0

    @property
    def success(self) -> bool:
        """True if the mapping was usable (row errors may still exist)."""
        return not self.field_errors


# ===================
# VALUE RESOLUTION
# ===================

ValueResolver = Callable[[], str]


def first_present(resolvers: Iterable[tuple[str, ValueResolver]]) -> tuple[Optional[str], str]:
    """
    Evaluate resolvers in order and return the first non-empty value.

    Returns:
        (value, source name), or (None, "") if every resolver came up empty
    """
    for source, resolver in resolvers:
        value = resolver()
        if value:
            return value, source
    return None, ""


class RowContext:
    """Cell and override lookups for one grid row."""

    def __init__(
        self,
        row_index: int,
        cells: list[Any],
        mapping: ColumnMapping,
        overrides: ManualOverrides
    ):
        self.row_index = row_index
        self.cells = cells
        self.mapping = mapping
        self.row_overrides = overrides.row(row_index)
        self.global_overrides = overrides.global_values

    @property
    def row_number(self) -> int:
        return self.row_index + 1

    def cell(self, column: Optional[int]) -> str:
        if column is None or column < 0 or column >= len(self.cells):
            return ""
        return cell_to_text(self.cells[column])

    def manual(self, key: str) -> str:
        return (self.row_overrides.get(key) or "").strip()

    def global_manual(self, key: str) -> str:
        return (self.global_overrides.get(key) or "").strip()

    def is_blank(self) -> bool:
        return not self.row_overrides and all(not cell_to_text(cell) for cell in self.cells)


def row_value_resolvers(ctx: RowContext, field_name: str) -> list[tuple[str, ValueResolver]]:
    """
    Precedence for fields shared by every pair of a row.

    row manual → global manual → mapped column. The product name has no
    global override.
    """
    resolvers = [("row_manual", lambda: ctx.manual(field_name))]
    if field_name != PRODUCT_NAME:
        resolvers.append(("global_manual", lambda: ctx.global_manual(field_name)))
    resolvers.append(("column", lambda: ctx.cell(ctx.mapping.get(field_name))))
    return resolvers


def pair_value_resolvers(
    ctx: RowContext,
    pair: PricePairMapping,
    field_name: str
) -> list[tuple[str, ValueResolver]]:
    """
    Precedence for a pair field (supplier, price, discount, vat, currency).

    row manual field_N → (pair 1) row manual field → pair column → shared
    column (discount/vat/currency) → global manual field_N → (pair 1, or
    any pair for supplier) global manual field.

    A mapped supplier column therefore always beats a global manual
    supplier.
    """
    suffixed = pair_key(field_name, pair.index)
    resolvers = [("row_manual_pair", lambda: ctx.manual(suffixed))]
    if pair.index == 1:
        resolvers.append(("row_manual", lambda: ctx.manual(field_name)))
    resolvers.append(("column", lambda: ctx.cell(pair.source(field_name))))
    if field_name in SHARED_PAIR_FIELDS:
        resolvers.append(("shared_column", lambda: ctx.cell(ctx.mapping.get(field_name))))
    resolvers.append(("global_manual_pair", lambda: ctx.global_manual(suffixed)))
    if pair.index == 1 or field_name == SUPPLIER:
        resolvers.append(("global_manual", lambda: ctx.global_manual(field_name)))
    return resolvers


def resolve_row_value(ctx: RowContext, field_name: str) -> Optional[str]:
    value, _ = first_present(row_value_resolvers(ctx, field_name))
    return value


def resolve_pair_value(ctx: RowContext, pair: PricePairMapping, field_name: str) -> Optional[str]:
    value, _ = first_present(pair_value_resolvers(ctx, pair, field_name))
    return value


# ===================
# FIELD-LEVEL CHECKS
# ===================

def _override_has(overrides: ManualOverrides, keys: set[str]) -> bool:
    if any((overrides.global_values.get(k) or "").strip() for k in keys):
        return True
    return any(
        (values.get(k) or "").strip()
        for values in overrides.row_values.values()
        for k in keys
    )


def pair_has_price_source(pair: PricePairMapping, overrides: ManualOverrides) -> bool:
    if pair.price_source is not None:
        return True
    keys = {pair_key(PRICE, pair.index)}
    if pair.index == 1:
        keys.add(PRICE)
    return _override_has(overrides, keys)


def pair_has_supplier_source(pair: PricePairMapping, overrides: ManualOverrides) -> bool:
    if pair.supplier_source is not None:
        return True
    if (overrides.global_values.get(SUPPLIER) or "").strip():
        return True
    keys = {pair_key(SUPPLIER, pair.index)}
    if pair.index == 1:
        keys.add(SUPPLIER)
    return _override_has(overrides, keys)


def validate_mapping(
    mapping: ColumnMapping,
    pairs: list[PricePairMapping],
    overrides: ManualOverrides
) -> list[str]:
    """Mapping-level errors; any of these aborts the whole import."""
    errors = []
    if mapping.get(PRODUCT_NAME) is None:
        errors.append("No column is mapped to product_name")

    usable = [
        pair for pair in pairs
        if pair_has_price_source(pair, overrides) and pair_has_supplier_source(pair, overrides)
    ]
    if not usable:
        errors.append(
            "No usable supplier/price pair: map a price column together with "
            "a supplier column or a manual supplier"
        )
    return errors


# ===================
# NORMALIZATION
# ===================

def normalize_rows_with_mapping(
    grid: RawGrid,
    has_header: bool,
    mapping: ColumnMapping,
    overrides: Optional[ManualOverrides] = None,
    ignored_rows: Iterable[int] = ()
) -> NormalizationResult:
    """
    Normalize a raw grid into import rows.

    Args:
        grid: Raw sheet cells
        has_header: Skip grid row 0
        mapping: Field → column index
        overrides: Manual per-row and global values
        ignored_rows: 0-based grid indices to leave out (not renumbered)

    Returns:
        NormalizationResult. If field_errors is non-empty, rows and
        row_errors are empty.
    """
    overrides = overrides or ManualOverrides()
    mapping = {key: value for key, value in (mapping or {}).items() if value is not None}
    pairs = resolve_price_pairs(mapping, overrides)

    field_errors = validate_mapping(mapping, pairs, overrides)
    if field_errors:
        logger.info("import_mapping_rejected", field_errors=field_errors)
        return NormalizationResult(field_errors=field_errors)

    ignored = set(ignored_rows or ())
    result = NormalizationResult()

    for row_index, cells in data_rows(grid, has_header):
        if row_index in ignored:
            continue
        ctx = RowContext(row_index, cells, mapping, overrides)
        if ctx.is_blank():
            continue

        result.total_rows += 1
        produced = _normalize_row(ctx, pairs, result)
        if not produced:
            result.skipped_rows += 1

    logger.info(
        "import_rows_normalized",
        total_rows=result.total_rows,
        import_rows=len(result.rows),
        skipped_rows=result.skipped_rows,
        row_errors=len(result.row_errors),
        pairs=[pair.index for pair in pairs]
    )
    return result


def _normalize_row(ctx: RowContext, pairs: list[PricePairMapping], result: NormalizationResult) -> int:
    """Append this row's ImportRows and errors to `result`; return rows added."""
    product_name = clean_display_name(resolve_row_value(ctx, PRODUCT_NAME))
    if not product_name:
        result.row_errors.append(RowError(ctx.row_number, "Missing product name"))
        return 0

    package_text = resolve_row_value(ctx, PACKAGE_QUANTITY)
    package_quantity = None
    if package_text:
        package_quantity = parse_number_smart(package_text)
        if package_quantity is None or package_quantity < 0:
            result.row_errors.append(
                RowError(ctx.row_number, f"Invalid package quantity '{package_text}'")
            )
            return 0

    shared = {
        "product_name": product_name,
        "category": clean_display_name(resolve_row_value(ctx, CATEGORY)),
        "sku": resolve_row_value(ctx, SKU),
        "barcode": resolve_row_value(ctx, BARCODE),
        "package_quantity": package_quantity,
    }

    produced = 0
    had_error = False
    for pair in pairs:
        price_text = resolve_pair_value(ctx, pair, PRICE)
        if not price_text:
            continue

        row = _normalize_pair(ctx, pair, price_text, shared, result)
        if row is None:
            had_error = True
            continue
        result.rows.append(row)
        produced += 1

    if not produced and not had_error:
        result.row_errors.append(RowError(ctx.row_number, "No price found"))
    return produced


def _normalize_pair(
    ctx: RowContext,
    pair: PricePairMapping,
    price_text: str,
    shared: dict,
    result: NormalizationResult
) -> Optional[ImportRow]:
    label = f"Pair {pair.index}"

    price = parse_number_smart(price_text)
    if price is None or price <= 0:
        result.row_errors.append(RowError(ctx.row_number, f"{label}: invalid price '{price_text}'"))
        return None

    supplier = clean_display_name(resolve_pair_value(ctx, pair, SUPPLIER))
    if not supplier:
        result.row_errors.append(RowError(ctx.row_number, f"{label}: price without supplier"))
        return None

    discount = _parse_percent(ctx, pair, DISCOUNT_PERCENT, "discount", result)
    if discount is False:
        return None
    vat = _parse_percent(ctx, pair, VAT, "VAT", result)
    if vat is False:
        return None

    currency = resolve_pair_value(ctx, pair, CURRENCY)

    return ImportRow(
        supplier=supplier,
        price=price,
        discount_percent=discount,
        vat=vat,
        currency=currency.upper() if currency else None,
        source_row=ctx.row_number,
        pair_index=pair.index,
        **shared,
    )


def _parse_percent(ctx: RowContext, pair: PricePairMapping, field_name: str, label: str, result: NormalizationResult):
    """Parsed 0-100 percentage, None if absent, False (with a row error) if invalid."""
    text = resolve_pair_value(ctx, pair, field_name)
    if not text:
        return None
    value = parse_number_smart(text)
    if value is None or value < 0 or value > 100:
        result.row_errors.append(
            RowError(ctx.row_number, f"Pair {pair.index}: invalid {label} '{text}'")
        )
        return False
    return value


# ===================
# DEDUPLICATION
# ===================

def dedupe_key(row: ImportRow, default_category: Optional[str] = None) -> str:
    """normalized product | normalized supplier | normalized category (or default)."""
    category = row.category or default_category or settings.default_category_name
    return "|".join((
        normalize_name(row.product_name),
        normalize_name(row.supplier),
        normalize_name(category),
    ))


def dedupe_last_row_wins(rows: list[ImportRow], default_category: Optional[str] = None) -> list[ImportRow]:
    """
    Collapse rows with the same product/supplier/category key.

    The row appearing last replaces earlier ones entirely (no field merge);
    the surviving row keeps the position of the key's first appearance.
    """
    seen: dict[str, ImportRow] = {}
    for row in rows:
        seen[dedupe_key(row, default_category)] = row

    if len(seen) != len(rows):
        logger.info("import_rows_deduplicated", before=len(rows), after=len(seen))
    return list(seen.values())


def summarize_rows(
    result: NormalizationResult,
    deduped: list[ImportRow],
    default_category: Optional[str] = None
) -> ValidationStats:
    """Aggregate counts for the validate-mapping report."""
    default_category = default_category or settings.default_category_name
    suppliers = {normalize_name(row.supplier) for row in deduped}
    categories = {normalize_name(row.category or default_category) for row in deduped}
    products = {
        (normalize_name(row.product_name), normalize_name(row.category or default_category))
        for row in deduped
    }
    return ValidationStats(
        total_rows=result.total_rows,
        mapped_rows=len(result.rows),
        skipped_rows=result.skipped_rows,
        duplicate_rows=len(result.rows) - len(deduped),
        unique_suppliers=len(suppliers),
        unique_categories=len(categories),
        unique_products=len(products),
    )
