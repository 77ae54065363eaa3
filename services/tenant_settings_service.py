"""
Tenant settings service.

One settings row per tenant holds the pricing configuration. Imports load it
once; overwrite imports delete it and recreate the defaults.
"""

from typing import Optional
import structlog

from config import get_supabase_client, settings
from models.settings import TenantPricingConfig
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

SETTINGS_COLUMNS = "tenant_id,vat_percent,global_margin_percent,use_margin,use_vat,decimal_precision"


class TenantSettingsService:
    """Read and reset the per-tenant pricing settings row."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "settings"

    def get_pricing_config(self, tenant_id: str) -> TenantPricingConfig:
        """
        Load a tenant's pricing configuration.

        A missing row yields the defaults (VAT 18, margin 0, precision 2).

        Raises:
            DatabaseError: If the query fails
        """
        try:
            response = (
                self.db.table(self.table)
                .select(SETTINGS_COLUMNS)
                .eq("tenant_id", tenant_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("tenant_settings_get_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("select", str(e))

        row: Optional[dict] = response.data[0] if response.data else None
        if row is None:
            logger.info("tenant_settings_missing_using_defaults", tenant_id=tenant_id)

        return TenantPricingConfig.from_row(
            row,
            default_vat_percent=settings.default_vat_percent,
            default_precision=settings.default_decimal_precision,
        )

    def create_defaults(self, tenant_id: str) -> TenantPricingConfig:
        """
        Insert a fresh settings row with default values.

        Raises:
            DatabaseError: If the insert fails
        """
        config = TenantPricingConfig(
            vat_percent=settings.default_vat_percent,
            decimal_precision=settings.default_decimal_precision,
        )
        try:
            self.db.table(self.table).insert({
                "tenant_id": tenant_id,
                **config.model_dump(),
            }).execute()
        except Exception as e:
            logger.error("tenant_settings_create_failed", tenant_id=tenant_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info("tenant_settings_defaults_created", tenant_id=tenant_id)
        return config


# Singleton instance
_tenant_settings_service: Optional[TenantSettingsService] = None


def get_tenant_settings_service() -> TenantSettingsService:
    """Get or create tenant settings service instance."""
    global _tenant_settings_service
    if _tenant_settings_service is None:
        _tenant_settings_service = TenantSettingsService()
    return _tenant_settings_service
