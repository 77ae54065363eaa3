"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
)
from models.settings import (
    TenantPricingConfig,
    SellPriceRequest,
    SellPriceResponse,
)
from models.tenant import (
    TenantRole,
    TenantContext,
)
from models.imports import (
    ImportMode,
    BatchFailurePolicy,
    SourceType,
    ManualOverrides,
    ImportOptions,
    ColumnInfo,
    PreviewResponse,
    RowErrorResponse,
    ImportRowPreview,
    ValidationStats,
    ValidationReport,
    CategoryTotals,
    ImportStats,
    ApplyResponse,
    MappingPresetSave,
    MappingPresetResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",

    # Settings
    "TenantPricingConfig",
    "SellPriceRequest",
    "SellPriceResponse",

    # Tenant
    "TenantRole",
    "TenantContext",

    # Import
    "ImportMode",
    "BatchFailurePolicy",
    "SourceType",
    "ManualOverrides",
    "ImportOptions",
    "ColumnInfo",
    "PreviewResponse",
    "RowErrorResponse",
    "ImportRowPreview",
    "ValidationStats",
    "ValidationReport",
    "CategoryTotals",
    "ImportStats",
    "ApplyResponse",
    "MappingPresetSave",
    "MappingPresetResponse",
]
