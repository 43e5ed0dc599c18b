"""
FastAPI Application Entry Point.

This is the main application file for the Windpark Settlement Backend.
"""

from contextlib import asynccontextmanager
import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from windpark_backend.app.core.config import settings
from windpark_backend.app.api.v1.router import router as api_v1_router
from windpark_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from windpark_backend.app.core.redis_client import ping_redis
from windpark_backend.app.db.session import engine, Base
from windpark_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from windpark_backend.app.models.audit_log import AuditLog
from windpark_backend.app.models.park import Park, Turbine, Fund
from windpark_backend.app.models.energy_settlement import EnergySettlement, EnergySettlementItem
from windpark_backend.app.models.invoice import Invoice, InvoiceItem, InvoiceNumberSequence
from windpark_backend.app.models.settlement_period import SettlementPeriod
from windpark_backend.app.models.energy_revenue_type import EnergyRevenueType
from windpark_backend.app.models.turbine_production import TurbineProduction


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    """
    configure_logging(settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Revenue settlement and credit note generation for wind parks",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "redis": "ok" if await ping_redis() else "unavailable",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


if __name__ == "__main__":
    uvicorn.run("windpark_backend.app.main:app", host=settings.host, port=settings.port, reload=settings.debug)
