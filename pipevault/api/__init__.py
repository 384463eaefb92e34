"""FastAPI routes for PipeVault."""

from pipevault.api.audit import router as audit_router
from pipevault.api.documents import router as documents_router
from pipevault.api.inventory import router as inventory_router
from pipevault.api.loads import router as loads_router
from pipevault.api.requests import router as requests_router
from pipevault.api.yards import router as yards_router

__all__ = [
    "audit_router",
    "documents_router",
    "inventory_router",
    "loads_router",
    "requests_router",
    "yards_router",
]
