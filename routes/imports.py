"""
Import wizard API routes.

preview → validate-mapping → apply, plus saved mapping presets.
Uploads are multipart: a `file` part and form fields. Mapping options travel
as a JSON string in the `options` field.
"""

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from typing import Optional
import structlog

from models.imports import (
    ImportMode,
    BatchFailurePolicy,
    ImportOptions,
    PreviewResponse,
    ValidationReport,
    ApplyResponse,
    MappingPresetSave,
    MappingPresetResponse,
)
from models.tenant import TenantContext
from routes.tenant import get_tenant_context, require_tenant
from services.import_service import get_import_service
from services.mapping_preset_service import get_mapping_preset_service
from exceptions import AppError, ValidationError, EmptyUploadError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# HELPERS
# ===================

async def read_upload(file: Optional[UploadFile]) -> bytes:
    """Upload bytes; raises EmptyUploadError for a missing or empty file."""
    if file is None or not file.filename:
        raise EmptyUploadError("No file uploaded")
    content = await file.read()
    if not content:
        raise EmptyUploadError()
    return content


def parse_options(raw: Optional[str]) -> ImportOptions:
    """Parse the JSON `options` form field."""
    try:
        return ImportOptions.model_validate_json(raw or "{}")
    except PydanticValidationError as e:
        raise ValidationError(
            message="Invalid import options",
            code="INVALID_IMPORT_OPTIONS",
            details={"errors": e.errors(include_url=False, include_context=False)}
        )


def parse_enum(enum_type, raw: Optional[str], field: str):
    if raw is None or raw == "":
        return None
    try:
        return enum_type(raw.strip().lower())
    except ValueError:
        raise ValidationError(
            message=f"Invalid {field}: {raw}",
            code="INVALID_IMPORT_OPTIONS",
            details={field: raw, "allowed": [member.value for member in enum_type]}
        )


# ===================
# WIZARD
# ===================

@router.post("/preview", response_model=PreviewResponse)
async def preview_import(
    file: Optional[UploadFile] = File(None),
    sheet_index: int = Form(0, description="Sheet to read; -1 merges all sheets"),
    has_header: bool = Form(True),
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """
    Read an uploaded spreadsheet and suggest a column mapping.

    Nothing is stored. Out-of-range sheet indices fall back to the first sheet.
    """
    try:
        require_tenant(tenant)
        content = await read_upload(file)
        return get_import_service().preview(content, file.filename, sheet_index, has_header)

    except Exception as e:
        return handle_error(e)


@router.post("/validate-mapping", response_model=ValidationReport)
async def validate_mapping(
    file: Optional[UploadFile] = File(None),
    options: Optional[str] = Form(None, description="ImportOptions as JSON"),
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """
    Dry-run the mapping against the file.

    Returns row errors, normalized preview rows and stats. Responds 400 with
    the same report when the mapping has field errors.
    """
    try:
        require_tenant(tenant)
        content = await read_upload(file)
        report = get_import_service().validate(content, file.filename, parse_options(options))

        if report.field_errors:
            return JSONResponse(status_code=400, content=report.model_dump(mode="json"))
        return report

    except Exception as e:
        return handle_error(e)


@router.post("/apply", response_model=ApplyResponse)
async def apply_import(
    file: Optional[UploadFile] = File(None),
    options: Optional[str] = Form(None, description="ImportOptions as JSON"),
    mode: str = Form(ImportMode.MERGE.value, description="merge or overwrite"),
    confirmation: Optional[str] = Form(None, description="Required for overwrite"),
    on_batch_failure: Optional[str] = Form(None, description="skip, abort or retry-once"),
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """
    Import the file into the tenant's suppliers, categories, products and prices.

    Overwrite mode deletes the tenant's existing data first and is limited to
    owners who send the confirmation text.
    """
    try:
        context = require_tenant(tenant)
        import_mode = parse_enum(ImportMode, mode, "mode") or ImportMode.MERGE
        policy = parse_enum(BatchFailurePolicy, on_batch_failure, "on_batch_failure")
        parsed_options = parse_options(options)
        content = await read_upload(file)

        return get_import_service().apply(
            content,
            file.filename,
            parsed_options,
            context,
            mode=import_mode,
            confirmation=confirmation,
            on_batch_failure=policy,
        )

    except Exception as e:
        return handle_error(e)


# ===================
# MAPPING PRESETS
# ===================

@router.get("/mappings", response_model=list[MappingPresetResponse])
async def list_mapping_presets(tenant: Optional[TenantContext] = Depends(get_tenant_context)):
    """Saved mappings of the tenant, most recent first."""
    try:
        context = require_tenant(tenant)
        return get_mapping_preset_service().list_presets(context.tenant_id)

    except Exception as e:
        return handle_error(e)


@router.put("/mappings/{name}", response_model=MappingPresetResponse)
async def save_mapping_preset(
    name: str,
    data: MappingPresetSave,
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """Create or replace a saved mapping."""
    try:
        context = require_tenant(tenant)
        return get_mapping_preset_service().save(context.tenant_id, name, data, user_id=context.user_id)

    except Exception as e:
        return handle_error(e)


@router.delete("/mappings/{name}", status_code=204)
async def delete_mapping_preset(
    name: str,
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """Delete a saved mapping."""
    try:
        context = require_tenant(tenant)
        get_mapping_preset_service().delete(context.tenant_id, name)
        return None

    except Exception as e:
        return handle_error(e)
