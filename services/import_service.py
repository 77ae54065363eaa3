"""
Spreadsheet price import: preview, validate-mapping and apply.

Every phase re-reads the uploaded file; nothing is cached between calls.
Only apply writes, and only after the mapping produced no field errors.
"""

from typing import Optional
import structlog

from config import settings
from models.imports import (
    ImportMode,
    BatchFailurePolicy,
    ImportOptions,
    PreviewResponse,
    RowErrorResponse,
    ImportRowPreview,
    ValidationReport,
    ApplyResponse,
)
from models.tenant import TenantContext
from parsers.spreadsheet_parser import (
    RawGrid,
    read_workbook,
    resolve_sheet_index,
    select_grid,
    build_columns,
    data_rows,
)
from services.column_mapping_service import suggest_mapping
from services.row_normalizer_service import (
    NormalizationResult,
    RowError,
    normalize_rows_with_mapping,
    dedupe_last_row_wins,
    summarize_rows,
)
from services.reconciliation_service import get_reconciliation_service
from services.tenant_settings_service import get_tenant_settings_service
from exceptions import (
    FileTooLargeError,
    ImportMappingError,
    OverwriteConfirmationError,
    OverwriteForbiddenError,
)

logger = structlog.get_logger(__name__)


def _row_errors(errors: list[RowError]) -> list[RowErrorResponse]:
    return [
        RowErrorResponse(row=error.row, message=error.message)
        for error in errors[:settings.import_max_row_errors]
    ]


class ImportService:
    """
    Import wizard backend.

    preview → validate → apply. All phases take the raw upload bytes.
    """

    # ===================
    # FILE
    # ===================

    def load_grid(
        self,
        content: bytes,
        filename: Optional[str],
        sheet_index: int,
        has_header: bool
    ) -> tuple[list[str], int, RawGrid]:
        """
        Read an upload and select the requested sheet.

        Returns:
            (sheet names, effective sheet index, grid)

        Raises:
            FileTooLargeError: If the upload exceeds the size limit
            EmptyUploadError: If the upload is empty
            SpreadsheetParseError: If the file cannot be read
        """
        if len(content) > settings.import_max_file_bytes:
            raise FileTooLargeError(len(content), settings.import_max_file_bytes)

        workbook = read_workbook(content, filename)
        index = resolve_sheet_index(sheet_index, workbook.sheet_count)
        grid = select_grid(workbook, index, has_header)
        return workbook.sheet_names, index, grid

    # ===================
    # PREVIEW
    # ===================

    def preview(
        self,
        content: bytes,
        filename: Optional[str],
        sheet_index: int = 0,
        has_header: bool = True
    ) -> PreviewResponse:
        """Columns, sample rows and a suggested mapping for one sheet."""
        sheet_names, index, grid = self.load_grid(content, filename, sheet_index, has_header)
        columns = build_columns(grid, has_header)
        rows = data_rows(grid, has_header)

        suggested = suggest_mapping(columns) if has_header else {}

        logger.info(
            "import_preview_built",
            filename=filename,
            sheet_index=index,
            columns=len(columns),
            rows=len(rows),
            suggested_fields=len(suggested)
        )

        return PreviewResponse(
            sheet_names=sheet_names,
            sheet_index=index,
            has_header=has_header,
            columns=columns,
            sample_rows=[cells for _, cells in rows[:settings.import_preview_rows]],
            total_rows=len(rows),
            suggested_mapping=suggested,
        )

    # ===================
    # VALIDATE
    # ===================

    def normalize(
        self,
        content: bytes,
        filename: Optional[str],
        options: ImportOptions
    ) -> NormalizationResult:
        _, _, grid = self.load_grid(content, filename, options.sheet_index, options.has_header)
        return normalize_rows_with_mapping(
            grid,
            options.has_header,
            options.mapping,
            options.overrides(),
            ignored_rows=options.ignored_rows,
        )

    def validate(
        self,
        content: bytes,
        filename: Optional[str],
        options: ImportOptions
    ) -> ValidationReport:
        """
        Dry run of apply: normalize, dedupe and report.

        Never writes. A non-empty field_errors means the mapping is unusable.
        """
        result = self.normalize(content, filename, options)
        if result.field_errors:
            return ValidationReport(field_errors=result.field_errors)

        deduped = dedupe_last_row_wins(result.rows)
        report = ValidationReport(
            row_errors=_row_errors(result.row_errors),
            row_error_count=len(result.row_errors),
            preview_rows=[
                ImportRowPreview(**row.to_dict())
                for row in deduped[:settings.import_validate_preview_rows]
            ],
            stats=summarize_rows(result, deduped),
        )

        logger.info(
            "import_mapping_validated",
            filename=filename,
            row_errors=report.row_error_count,
            **report.stats.model_dump()
        )
        return report

    # ===================
    # APPLY
    # ===================

    def check_overwrite_allowed(self, tenant: TenantContext, confirmation: Optional[str]) -> None:
        """
        Raises:
            OverwriteForbiddenError: If the caller is not a tenant owner
            OverwriteConfirmationError: If the confirmation text is wrong
        """
        if not tenant.is_owner:
            raise OverwriteForbiddenError(tenant.role.value)
        if (confirmation or "").strip() != settings.overwrite_confirmation:
            raise OverwriteConfirmationError(settings.overwrite_confirmation)

    def apply(
        self,
        content: bytes,
        filename: Optional[str],
        options: ImportOptions,
        tenant: TenantContext,
        mode: ImportMode = ImportMode.MERGE,
        confirmation: Optional[str] = None,
        on_batch_failure: Optional[BatchFailurePolicy] = None
    ) -> ApplyResponse:
        """
        Import the file into the tenant's data.

        Args:
            content: Upload bytes
            filename: Upload name
            options: Sheet, mapping and overrides
            tenant: Tenant context (role checked for overwrite)
            mode: merge or overwrite
            confirmation: Must equal the overwrite confirmation text in overwrite mode
            on_batch_failure: Overrides the mode's default batch failure policy

        Returns:
            ApplyResponse with stats and capped row errors

        Raises:
            ImportMappingError: If the mapping has field errors (nothing written)
            OverwriteForbiddenError / OverwriteConfirmationError: Overwrite not allowed
            ImportBatchError: A batch failed under the abort policy
        """
        if mode == ImportMode.OVERWRITE:
            self.check_overwrite_allowed(tenant, confirmation)

        policy = on_batch_failure or BatchFailurePolicy.default_for(mode)
        logger.info(
            "import_apply_started",
            tenant_id=tenant.tenant_id,
            filename=filename,
            mode=mode.value,
            policy=policy.value
        )

        result = self.normalize(content, filename, options)
        if result.field_errors:
            raise ImportMappingError(result.field_errors)

        deduped = dedupe_last_row_wins(result.rows)

        reconciliation = get_reconciliation_service()
        tenant_settings = get_tenant_settings_service()

        if mode == ImportMode.OVERWRITE:
            reconciliation.wipe_tenant_data(tenant.tenant_id)
            config = tenant_settings.create_defaults(tenant.tenant_id)
        else:
            config = tenant_settings.get_pricing_config(tenant.tenant_id)

        stats = reconciliation.reconcile(tenant, deduped, config, policy)

        logger.info(
            "import_apply_complete",
            tenant_id=tenant.tenant_id,
            mode=mode.value,
            rows=len(deduped),
            row_errors=len(result.row_errors),
            prices_inserted=stats.prices_inserted,
            prices_skipped=stats.prices_skipped
        )

        return ApplyResponse(
            success=True,
            mode=mode,
            stats=stats,
            row_errors=_row_errors(result.row_errors),
            row_error_count=len(result.row_errors),
        )


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create import service instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
