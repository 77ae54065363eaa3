"""
Tenant context from gateway headers.

The upstream gateway authenticates the user and forwards X-Tenant-Id,
X-User-Id and X-Tenant-Role. Routes take the context as a dependency and
call require_tenant() inside their error handling.
"""

from fastapi import Header
from typing import Optional
import structlog

from models.tenant import TenantContext, TenantRole
from exceptions import MissingTenantError

logger = structlog.get_logger(__name__)


def get_tenant_context(
    x_tenant_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_tenant_role: Optional[str] = Header(None)
) -> Optional[TenantContext]:
    """Build the tenant context, or None if no tenant header was sent."""
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        return None

    try:
        role = TenantRole((x_tenant_role or "").strip().lower())
    except ValueError:
        # Unknown roles get the least privileges
        role = TenantRole.WORKER

    return TenantContext(
        tenant_id=tenant_id,
        user_id=(x_user_id or "").strip() or None,
        role=role,
    )


def require_tenant(context: Optional[TenantContext]) -> TenantContext:
    """
    Raises:
        MissingTenantError: If the request carried no tenant
    """
    if context is None:
        logger.warning("tenant_context_missing")
        raise MissingTenantError()
    return context
