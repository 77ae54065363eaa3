"""
Pricing API routes.

Live sell-price calculation with the tenant's pricing settings, using the
same calculator as imports.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.settings import SellPriceRequest, SellPriceResponse
from models.tenant import TenantContext
from routes.tenant import get_tenant_context, require_tenant
from services.pricing_service import calculate_price_entry
from services.tenant_settings_service import get_tenant_settings_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


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


@router.post("/sell-price", response_model=SellPriceResponse)
async def calculate_sell_price(
    data: SellPriceRequest,
    tenant: Optional[TenantContext] = Depends(get_tenant_context)
):
    """
    Price a cost with the tenant's VAT, margin and precision settings.

    margin_percent in the body overrides the tenant's global margin.
    """
    try:
        context = require_tenant(tenant)
        config = get_tenant_settings_service().get_pricing_config(context.tenant_id)
        calculation = calculate_price_entry(
            data.cost_price,
            data.discount_percent,
            config,
            margin_override=data.margin_percent,
        )

        return SellPriceResponse(
            cost_price=calculation.cost_price,
            discount_percent=calculation.discount_percent,
            cost_price_after_discount=calculation.cost_price_after_discount,
            margin_percent=calculation.margin_percent,
            vat_percent=calculation.vat_percent,
            sell_price=calculation.sell_price,
            decimal_precision=config.decimal_precision,
        )

    except Exception as e:
        return handle_error(e)
