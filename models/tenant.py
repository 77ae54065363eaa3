"""
Tenant request context.

Authentication happens upstream; the gateway forwards the resolved tenant,
user and membership role as headers.
"""

from pydantic import Field
from typing import Optional
from enum import Enum

from models.base import BaseSchema


class TenantRole(str, Enum):
    """Membership role within a tenant."""
    OWNER = "owner"
    WORKER = "worker"


class TenantContext(BaseSchema):
    tenant_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    role: TenantRole = TenantRole.WORKER

    @property
    def is_owner(self) -> bool:
        return self.role == TenantRole.OWNER
