"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.imports import router as imports_router
from routes.pricing import router as pricing_router

__all__ = [
    "imports_router",
    "pricing_router",
]
