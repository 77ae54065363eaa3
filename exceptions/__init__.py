"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ForbiddenError,
    DatabaseError,

    # Tenant
    MissingTenantError,

    # Spreadsheet
    SpreadsheetParseError,
    EmptyUploadError,
    FileTooLargeError,

    # Import
    ImportMappingError,
    OverwriteConfirmationError,
    OverwriteForbiddenError,
    ImportBatchError,
    DefaultCategoryError,
    MappingPresetNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ForbiddenError",
    "DatabaseError",

    # Tenant
    "MissingTenantError",

    # Spreadsheet
    "SpreadsheetParseError",
    "EmptyUploadError",
    "FileTooLargeError",

    # Import
    "ImportMappingError",
    "OverwriteConfirmationError",
    "OverwriteForbiddenError",
    "ImportBatchError",
    "DefaultCategoryError",
    "MappingPresetNotFoundError",
]
