"""FastAPI application entry point."""

import logging

from fastapi import FastAPI

from pipevault.api.audit import router as audit_router
from pipevault.api.documents import router as documents_router
from pipevault.api.inventory import router as inventory_router
from pipevault.api.loads import router as loads_router
from pipevault.api.requests import router as requests_router
from pipevault.api.yards import router as yards_router
from pipevault.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="PipeVault",
    description="Oilfield pipe storage: rack allocation, approvals, inventory and manifests",
    version="0.1.0",
    debug=settings.debug,
)

# Include API routers
app.include_router(requests_router)
app.include_router(yards_router)
app.include_router(inventory_router)
app.include_router(loads_router)
app.include_router(documents_router)
app.include_router(audit_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
