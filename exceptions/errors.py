"""
Custom exception classes for the application.

Every error carries a stable code, an HTTP status and a details dict so
routes can render it with AppError.to_dict().
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_MAPPING_INVALID")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None,
        status_code: int = 422
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details
        )


class ForbiddenError(AppError):
    """Caller lacks the required role (403)."""

    def __init__(
        self,
        message: str,
        code: str = "FORBIDDEN",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=403,
            details=details
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# TENANT ERRORS
# ===================

class MissingTenantError(AppError):
    """Request arrived without tenant context (401)."""

    def __init__(self):
        super().__init__(
            code="TENANT_REQUIRED",
            message="Tenant context is required",
            status_code=401
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class SpreadsheetParseError(ValidationError):
    """Uploaded file could not be read as a spreadsheet."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=message,
            details=details
        )


class EmptyUploadError(ValidationError):
    """No file, or a file without any data rows."""

    def __init__(self, message: str = "Uploaded file is empty"):
        super().__init__(
            code="EMPTY_UPLOAD",
            message=message,
            status_code=400
        )


class FileTooLargeError(ValidationError):
    """Upload exceeds the configured size limit."""

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            code="FILE_TOO_LARGE",
            message="Uploaded file exceeds the size limit",
            details={"size_bytes": size_bytes, "limit_bytes": limit_bytes},
            status_code=413
        )


# ===================
# IMPORT ERRORS
# ===================

class ImportMappingError(ValidationError):
    """Column mapping cannot produce any rows; nothing was written."""

    def __init__(self, field_errors: list[str]):
        super().__init__(
            code="IMPORT_MAPPING_INVALID",
            message="; ".join(field_errors) or "Invalid column mapping",
            details={"field_errors": field_errors},
            status_code=400
        )


class OverwriteConfirmationError(ValidationError):
    """Overwrite mode requested without the typed confirmation."""

    def __init__(self, expected: str):
        super().__init__(
            code="OVERWRITE_CONFIRMATION_REQUIRED",
            message=f"Type {expected} to confirm overwrite",
            details={"expected": expected},
            status_code=400
        )


class OverwriteForbiddenError(ForbiddenError):
    """Only tenant owners may overwrite."""

    def __init__(self, role: Optional[str]):
        super().__init__(
            code="OVERWRITE_OWNER_ONLY",
            message="Overwrite import is available to owners only",
            details={"role": role}
        )


class ImportBatchError(AppError):
    """A bulk write batch failed under the abort policy (500)."""

    def __init__(
        self,
        table: str,
        batch_number: int,
        message: str,
        stats: Optional[dict] = None
    ):
        super().__init__(
            code="IMPORT_BATCH_FAILED",
            message=f"Bulk insert into {table} failed at batch {batch_number}: {message}",
            status_code=500,
            details={"table": table, "batch": batch_number, "stats": stats or {}}
        )


class DefaultCategoryError(DatabaseError):
    """The default category could neither be found nor created."""

    def __init__(self, name: str, message: str):
        super().__init__(
            operation="insert",
            message=message,
            details={"category": name}
        )


class MappingPresetNotFoundError(NotFoundError):
    """Saved mapping preset not found."""

    def __init__(self, name: str):
        super().__init__(
            resource="Mapping preset",
            identifier=name,
            code="MAPPING_PRESET_NOT_FOUND"
        )
