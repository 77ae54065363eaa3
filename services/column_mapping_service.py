"""
Column mapping suggestion and pair discovery.

suggest_mapping() is a best-effort guess from header text (English and
Hebrew). Nothing it returns is trusted until the row normalizer has
validated it; the user can override any assignment in the wizard.

Repeated supplier/price column groups ("pairs") are encoded in a mapping as
suffixed keys (supplier_1, price_1, supplier_2, ...). resolve_price_pairs()
turns those keys into typed PricePairMapping records once, so the
normalizer never pattern-matches strings per row.
"""

from dataclasses import dataclass
from typing import Iterable, Optional
import re
import structlog

from models.imports import ColumnInfo, ManualOverrides
from utils.text_utils import clean_header

logger = structlog.get_logger(__name__)

ColumnMapping = dict[str, Optional[int]]

# ===================
# FIELDS
# ===================

PRODUCT_NAME = "product_name"
SKU = "sku"
BARCODE = "barcode"
CATEGORY = "category"
PACKAGE_QUANTITY = "package_quantity"
SUPPLIER = "supplier"
PRICE = "price"
DISCOUNT_PERCENT = "discount_percent"
VAT = "vat"
CURRENCY = "currency"

PAIR_FIELDS = (SUPPLIER, PRICE, DISCOUNT_PERCENT, VAT, CURRENCY)
SHARED_PAIR_FIELDS = (DISCOUNT_PERCENT, VAT, CURRENCY)

_PAIR_KEY_RE = re.compile(r"^(supplier|price|discount_percent|vat|currency)_(\d+)$")

# Alias order matters: more specific phrases first, and fields whose
# aliases are substrings of other headers ("name", "price") last.
FIELD_ALIASES: list[tuple[str, tuple[str, ...]]] = [
    (SKU, ("sku", "catalog number", "catalog", "item code", "part number", "מקט", "מק ט", "קוד פריט", "קטלוגי")),
    (BARCODE, ("barcode", "ean", "upc", "gtin", "ברקוד")),
    (CATEGORY, ("category", "department", "group", "קטגוריה", "מחלקה", "קבוצה")),
    (PACKAGE_QUANTITY, (
        "package quantity", "pack quantity", "units per package", "pack size",
        "qty per", "כמות באריזה", "יחידות באריזה", "כמות בקרטון", "כמות",
    )),
    (SUPPLIER, ("supplier", "vendor", "ספק")),
    (PRICE, ("cost price", "unit price", "price", "cost", "מחיר", "עלות")),
    (DISCOUNT_PERCENT, ("discount", "הנחה")),
    (VAT, ("vat", "tax", "מעמ", "מע מ")),
    (CURRENCY, ("currency", "מטבע")),
    (PRODUCT_NAME, ("product name", "item name", "product", "item", "description", "שם מוצר", "מוצר", "פריט", "תיאור", "name", "שם")),
]

# Generic substrings used to spot repeated pair columns.
PAIR_GROUP_TOKENS: list[tuple[str, tuple[str, ...]]] = [
    (SUPPLIER, ("supplier", "vendor", "ספק")),
    (PRICE, ("price", "cost", "מחיר", "עלות")),
    (DISCOUNT_PERCENT, ("discount", "הנחה")),
]


@dataclass(frozen=True)
class PricePairMapping:
    """
    Column sources of one supplier/price group.

    Sources are column indices; None means "no column" (a manual override
    may still supply the value).
    """
    index: int
    supplier_source: Optional[int] = None
    price_source: Optional[int] = None
    discount_source: Optional[int] = None
    vat_source: Optional[int] = None
    currency_source: Optional[int] = None

    def source(self, field: str) -> Optional[int]:
        return {
            SUPPLIER: self.supplier_source,
            PRICE: self.price_source,
            DISCOUNT_PERCENT: self.discount_source,
            VAT: self.vat_source,
            CURRENCY: self.currency_source,
        }[field]


def pair_key(field: str, index: int) -> str:
    """pair_key("price", 2) → "price_2"."""
    return f"{field}_{index}"


def parse_pair_key(key: str) -> Optional[tuple[str, int]]:
    """"supplier_3" → ("supplier", 3); anything else → None."""
    match = _PAIR_KEY_RE.match(key)
    if not match:
        return None
    index = int(match.group(2))
    if index < 1:
        return None
    return match.group(1), index


# ===================
# SUGGESTION
# ===================

def suggest_mapping(columns: Iterable[ColumnInfo]) -> ColumnMapping:
    """
    Suggest a field → column mapping from header text.

    Alias pass: for each field, in FIELD_ALIASES order, the first unused
    column whose cleaned header contains an alias wins. A column is used by
    at most one alias field.

    Pair pass: columns whose header contains a generic supplier/price/
    discount token are numbered left to right as supplier_1, supplier_2, ...
    This pass does not consult the alias pass's used columns, so price and
    price_1 may point at the same column; the normalizer treats them as the
    same pair 1 source.

    Args:
        columns: Source columns with header text

    Returns:
        Mapping of suggested fields only (unmatched fields are absent)
    """
    cleaned = [(column.index, clean_header(column.header)) for column in columns]
    mapping: ColumnMapping = {}
    used: set[int] = set()

    for field, aliases in FIELD_ALIASES:
        match = _first_alias_match(cleaned, aliases, used)
        if match is not None:
            mapping[field] = match
            used.add(match)

    for field, tokens in PAIR_GROUP_TOKENS:
        group = [
            index for index, header in cleaned
            if header and any(token in header for token in tokens)
        ]
        for position, index in enumerate(group, start=1):
            mapping[pair_key(field, position)] = index

    logger.debug(
        "mapping_suggested",
        columns=len(cleaned),
        fields=sorted(mapping.keys())
    )
    return mapping


def _first_alias_match(
    cleaned: list[tuple[int, str]],
    aliases: tuple[str, ...],
    used: set[int]
) -> Optional[int]:
    for alias in aliases:
        for index, header in cleaned:
            if index in used or not header:
                continue
            if alias in header:
                return index
    return None


# ===================
# PAIR DISCOVERY
# ===================

def resolve_price_pairs(
    mapping: ColumnMapping,
    overrides: Optional[ManualOverrides] = None
) -> list[PricePairMapping]:
    """
    Discover the supplier/price groups a mapping (plus overrides) describes.

    Pair indices come from mapped suffixed keys and from suffixed manual
    override keys. Pair 1 also exists whenever the plain supplier/price
    columns are mapped, and uses them as fallbacks for its own sources.

    Returns:
        Pairs ordered by index
    """
    overrides = overrides or ManualOverrides()
    indices: set[int] = set()

    for key, column in mapping.items():
        parsed = parse_pair_key(key)
        if parsed and column is not None:
            indices.add(parsed[1])

    override_keys = set(overrides.global_values.keys())
    for values in overrides.row_values.values():
        override_keys.update(values.keys())
    for key in override_keys:
        parsed = parse_pair_key(key)
        if parsed:
            indices.add(parsed[1])

    if mapping.get(PRICE) is not None or mapping.get(SUPPLIER) is not None:
        indices.add(1)
    if override_keys & {PRICE, SUPPLIER}:
        indices.add(1)

    pairs = []
    for index in sorted(indices):
        sources = {}
        for field in PAIR_FIELDS:
            column = mapping.get(pair_key(field, index))
            if column is None and index == 1:
                column = mapping.get(field)
            sources[field] = column
        pairs.append(PricePairMapping(
            index=index,
            supplier_source=sources[SUPPLIER],
            price_source=sources[PRICE],
            discount_source=sources[DISCOUNT_PERCENT],
            vat_source=sources[VAT],
            currency_source=sources[CURRENCY],
        ))
    return pairs
