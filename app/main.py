"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import documents, health, meters, readings, reconciliation, sites, tariffs
from app.core.config import settings
from app.core.database import Base, engine
from app.core.logging import configure_logging

# Import models for Base.metadata.create_all - order matters for foreign keys
from app.models import (
    site,  # noqa: F401
    tariff,  # noqa: F401
    meter,  # noqa: F401
    meter_reading,  # noqa: F401
    document,  # noqa: F401
    document_tariff_calculation,  # noqa: F401
    reconciliation as reconciliation_models,  # noqa: F401
)

configure_logging(settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup: Create database tables
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Metered vs billed electricity reconciliation",
    lifespan=lifespan,
)

# Include API routers
app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(sites.router, prefix="/api")
app.include_router(meters.router, prefix="/api")
app.include_router(readings.router, prefix="/api")
app.include_router(tariffs.router, prefix="/api")
app.include_router(documents.router, prefix="/api")
app.include_router(reconciliation.router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
