"""
Import wizard schemas: options sent by the client and the reports returned
by preview, validate-mapping and apply.
"""

from pydantic import Field, field_validator, model_validator
from typing import Any, Optional
from enum import Enum

from models.base import BaseSchema, TimestampMixin


class ImportMode(str, Enum):
    """How apply treats existing tenant data."""
    MERGE = "merge"
    OVERWRITE = "overwrite"


class BatchFailurePolicy(str, Enum):
    """What a bulk write does when one batch fails."""
    SKIP = "skip"
    ABORT = "abort"
    RETRY_ONCE = "retry-once"

    @classmethod
    def default_for(cls, mode: ImportMode) -> "BatchFailurePolicy":
        """Merge keeps going; overwrite stops at the first failed batch."""
        return cls.ABORT if mode == ImportMode.OVERWRITE else cls.SKIP


class SourceType(str, Enum):
    """Origin of a saved mapping preset."""
    EXCEL = "excel"
    PDF = "pdf"


# ===================
# REQUEST
# ===================

class ManualOverrides(BaseSchema):
    """
    Values typed in the wizard instead of (or on top of) mapped columns.

    row_values is keyed by 0-based grid row index.
    """

    row_values: dict[int, dict[str, str]] = Field(default_factory=dict)
    global_values: dict[str, str] = Field(default_factory=dict)

    def row(self, row_index: int) -> dict[str, str]:
        return self.row_values.get(row_index) or {}


class ImportOptions(BaseSchema):
    """
    Options for validate-mapping and apply.

    Sent as a JSON form field next to the uploaded file.
    """

    sheet_index: int = Field(0, ge=-1, description="Sheet to read; -1 merges all sheets")
    has_header: bool = Field(True, description="First row holds column headers")
    mapping: dict[str, Optional[int]] = Field(
        default_factory=dict,
        description="Logical field → column index (None = ignored)"
    )
    ignored_rows: list[int] = Field(
        default_factory=list,
        description="0-based grid row indices to leave out"
    )
    manual_global_values: dict[str, str] = Field(default_factory=dict)
    manual_row_values: dict[int, dict[str, str]] = Field(default_factory=dict)
    manual_supplier_name: Optional[str] = Field(
        None,
        description="Supplier for every pair without a supplier column"
    )

    @field_validator("mapping")
    @classmethod
    def non_negative_columns(cls, v: dict[str, Optional[int]]) -> dict[str, Optional[int]]:
        """Negative indices mean "unmapped" in older clients."""
        return {
            field: (index if index is not None and index >= 0 else None)
            for field, index in v.items()
        }

    @model_validator(mode="after")
    def fold_manual_supplier(self) -> "ImportOptions":
        if self.manual_supplier_name and not self.manual_global_values.get("supplier"):
            self.manual_global_values = {
                **self.manual_global_values,
                "supplier": self.manual_supplier_name,
            }
        return self

    def overrides(self) -> ManualOverrides:
        return ManualOverrides(
            row_values=self.manual_row_values,
            global_values=self.manual_global_values,
        )


# ===================
# PREVIEW
# ===================

class ColumnInfo(BaseSchema):
    """A source column as shown in the mapping UI."""
    index: int
    header: str


class PreviewResponse(BaseSchema):
    """Raw look at the file plus a suggested mapping."""
    sheet_names: list[str]
    sheet_index: int
    has_header: bool
    columns: list[ColumnInfo]
    sample_rows: list[list[Any]]
    total_rows: int
    suggested_mapping: dict[str, Optional[int]]


# ===================
# VALIDATE
# ===================

class RowErrorResponse(BaseSchema):
    row: int
    message: str


class ImportRowPreview(BaseSchema):
    """Normalized row as it would be imported."""
    row: int
    pair_index: int
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


class ValidationStats(BaseSchema):
    total_rows: int = 0
    mapped_rows: int = 0
    skipped_rows: int = 0
    duplicate_rows: int = 0
    unique_suppliers: int = 0
    unique_categories: int = 0
    unique_products: int = 0


class ValidationReport(BaseSchema):
    """Result of validate-mapping. Non-empty field_errors means nothing usable."""
    field_errors: list[str] = Field(default_factory=list)
    row_errors: list[RowErrorResponse] = Field(default_factory=list)
    row_error_count: int = 0
    preview_rows: list[ImportRowPreview] = Field(default_factory=list)
    stats: ValidationStats = Field(default_factory=ValidationStats)


# ===================
# APPLY
# ===================

class CategoryTotals(BaseSchema):
    total: int = 0


class ImportStats(BaseSchema):
    suppliers_created: int = 0
    categories_created: int = 0
    products_created: int = 0
    prices_inserted: int = 0
    prices_skipped: int = 0
    by_category: dict[str, CategoryTotals] = Field(default_factory=dict)


class ApplyResponse(BaseSchema):
    success: bool = True
    mode: ImportMode
    stats: ImportStats
    row_errors: list[RowErrorResponse] = Field(default_factory=list)
    row_error_count: int = 0


# ===================
# MAPPING PRESETS
# ===================

class MappingPresetSave(BaseSchema):
    """Body of PUT /mappings/{name}."""
    mapping: dict[str, Optional[int]]
    source_type: SourceType = SourceType.EXCEL


class MappingPresetResponse(BaseSchema, TimestampMixin):
    id: str
    name: str
    mapping: dict[str, Optional[int]]
    source_type: SourceType = SourceType.EXCEL
