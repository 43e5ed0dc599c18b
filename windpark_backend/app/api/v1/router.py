"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from windpark_backend.app.api.v1.endpoints import energy_settlements, settlement_periods

router = APIRouter()

# Energy settlements and credit notes
router.include_router(energy_settlements.router)

# Administrative settlement periods
router.include_router(settlement_periods.router)
