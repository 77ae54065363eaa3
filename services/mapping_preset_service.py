"""
Saved column mapping presets.

Presets are stored per tenant in import_mappings, unique by (tenant_id,
name). The payload is opaque JSON: {"source_type": ..., "mapping": {...}}.
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from models.imports import MappingPresetSave, MappingPresetResponse, SourceType
from exceptions import DatabaseError, MappingPresetNotFoundError

logger = structlog.get_logger(__name__)


def _to_response(row: dict) -> MappingPresetResponse:
    payload = row.get("mapping_json") or {}
    # Older presets stored the bare field → column dict
    if "mapping" in payload and isinstance(payload.get("mapping"), dict):
        mapping = payload["mapping"]
        source_type = payload.get("source_type") or SourceType.EXCEL.value
    else:
        mapping = payload
        source_type = SourceType.EXCEL.value

    return MappingPresetResponse(
        id=str(row["id"]),
        name=row["name"],
        mapping=mapping,
        source_type=source_type,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class MappingPresetService:
    """CRUD for a tenant's saved import mappings."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "import_mappings"

    def list_presets(self, tenant_id: str) -> list[MappingPresetResponse]:
        """All presets of a tenant, most recently updated first."""
        try:
            response = (
                self.db.table(self.table)
                .select("*")
                .eq("tenant_id", tenant_id)
                .order("updated_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("mapping_presets_list_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [_to_response(row) for row in response.data or []]

    def save(
        self,
        tenant_id: str,
        name: str,
        data: MappingPresetSave,
        user_id: Optional[str] = None
    ) -> MappingPresetResponse:
        """
        Create or replace the preset `name`.

        Args:
            tenant_id: Owning tenant
            name: Preset name (unique per tenant)
            data: Mapping and source type
            user_id: Author, if known

        Returns:
            Stored preset
        """
        record = {
            "tenant_id": tenant_id,
            "name": name,
            "mapping_json": {
                "source_type": data.source_type.value,
                "mapping": data.mapping,
            },
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if user_id:
            record["created_by"] = user_id

        try:
            response = (
                self.db.table(self.table)
                .upsert(record, on_conflict="tenant_id,name")
                .execute()
            )
        except Exception as e:
            logger.error("mapping_preset_save_failed", tenant_id=tenant_id, name=name, error=str(e))
            raise DatabaseError("upsert", str(e))

        if not response.data:
            raise DatabaseError("upsert", "No data returned")

        logger.info("mapping_preset_saved", tenant_id=tenant_id, name=name, fields=len(data.mapping))
        return _to_response(response.data[0])

    def delete(self, tenant_id: str, name: str) -> None:
        """
        Delete the preset `name`.

        Raises:
            MappingPresetNotFoundError: If no such preset exists
        """
        try:
            response = (
                self.db.table(self.table)
                .delete()
                .eq("tenant_id", tenant_id)
                .eq("name", name)
                .execute()
            )
        except Exception as e:
            logger.error("mapping_preset_delete_failed", tenant_id=tenant_id, name=name, error=str(e))
            raise DatabaseError("delete", str(e))

        if not response.data:
            raise MappingPresetNotFoundError(name)

        logger.info("mapping_preset_deleted", tenant_id=tenant_id, name=name)


# Singleton instance
_mapping_preset_service: Optional[MappingPresetService] = None


def get_mapping_preset_service() -> MappingPresetService:
    """Get or create mapping preset service instance."""
    global _mapping_preset_service
    if _mapping_preset_service is None:
        _mapping_preset_service = MappingPresetService()
    return _mapping_preset_service
